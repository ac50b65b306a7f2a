"""Cross-entry reference resolution.

Every reference found in a resource moves through a small state machine::

    Unresolved -> Resolving -> ResolvedInBundle
                            -> ResolvedExternal
                            -> UnresolvedExternal
                            -> UnresolvedMissing

The policy only decides what happens to external references. A reference
that is neither in the bundle nor a recognizable external form is always
an error.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .. import config
from ..bundle import Bundle, BundleEntry
from ..exceptions import ValidationCancelledError
from ..navigation.navigator import PathNavigator
from ..rules import error_codes
from ..rules.models import FindingSource, ValidationFinding
from ..settings import ReferenceResolutionPolicy
from .lookup import ReferenceLookup

logger = logging.getLogger(__name__)

RELATIVE_REFERENCE_RE = re.compile(r"^([A-Z][A-Za-z]+)/([A-Za-z0-9\-.]{1,64})$")
_ABSOLUTE_TAIL_RE = re.compile(r"([A-Z][A-Za-z]+)/([A-Za-z0-9\-.]{1,64})$")
_HISTORY_RE = re.compile(r"/_history/[^/]+$")

# Expected target types implied by common reference field names
EXPECTED_TARGETS: dict[str, frozenset[str]] = {
    "subject": frozenset({"Patient", "Group", "Device", "Location"}),
    "patient": frozenset({"Patient"}),
    "performer": frozenset({"Practitioner", "PractitionerRole", "Organization",
                            "Patient", "RelatedPerson", "CareTeam", "Device"}),
    "practitioner": frozenset({"Practitioner", "PractitionerRole"}),
    "encounter": frozenset({"Encounter"}),
    "location": frozenset({"Location"}),
}

_LOGICAL_REFERENCE_KEYS = frozenset({"identifier", "type", "display", "extension", "id"})


class ReferenceState(str, Enum):
    UNRESOLVED = "Unresolved"
    RESOLVING = "Resolving"
    RESOLVED_IN_BUNDLE = "ResolvedInBundle"
    RESOLVED_EXTERNAL = "ResolvedExternal"
    UNRESOLVED_EXTERNAL = "UnresolvedExternal"
    UNRESOLVED_MISSING = "UnresolvedMissing"

    @property
    def terminal(self) -> bool:
        return self not in (ReferenceState.UNRESOLVED, ReferenceState.RESOLVING)


_TRANSITIONS = {
    ReferenceState.UNRESOLVED: {ReferenceState.RESOLVING},
    ReferenceState.RESOLVING: {
        ReferenceState.RESOLVED_IN_BUNDLE,
        ReferenceState.RESOLVED_EXTERNAL,
        ReferenceState.UNRESOLVED_EXTERNAL,
        ReferenceState.UNRESOLVED_MISSING,
    },
}


@dataclass
class ReferenceResolution:
    """Resolution state of one reference occurrence."""

    entry: BundleEntry
    reference: str
    path: str
    field_name: str
    declared_type: str | None = None
    logical: bool = False
    state: ReferenceState = ReferenceState.UNRESOLVED
    target: Mapping[str, Any] | None = None
    detail: str | None = None

    def transition(self, new_state: ReferenceState) -> None:
        if new_state not in _TRANSITIONS.get(self.state, set()):
            raise RuntimeError(
                f"Illegal reference state transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state

    @property
    def target_type(self) -> str | None:
        if self.target is None:
            return None
        return self.target.get("resourceType")


@dataclass
class BundleIndex:
    """Lookup of bundle entries by fullUrl and ``Type/id``."""

    by_key: dict[str, BundleEntry] = field(default_factory=dict)

    @classmethod
    def build(cls, bundle: Bundle) -> "BundleIndex":
        index = cls()
        for entry in bundle:
            keys = []
            if entry.full_url:
                keys.append(_HISTORY_RE.sub("", entry.full_url))
                if entry.full_url.startswith(("http://", "https://")):
                    tail = _ABSOLUTE_TAIL_RE.search(_HISTORY_RE.sub("", entry.full_url))
                    if tail:
                        keys.append(f"{tail.group(1)}/{tail.group(2)}")
            if entry.resource_id:
                keys.append(f"{entry.resource_type}/{entry.resource_id}")
            for key in keys:
                # First entry wins for duplicate keys
                index.by_key.setdefault(key, entry)
        return index

    def find(self, reference: str) -> BundleEntry | None:
        return self.by_key.get(_HISTORY_RE.sub("", reference))


def entry_identity(entry: BundleEntry) -> str:
    if entry.resource_id:
        return f"{entry.resource_type}/{entry.resource_id}"
    return entry.full_url or f"entry[{entry.index}]"


def is_external_form(reference: str) -> bool:
    """Whether a reference string has a recognizable external shape."""
    if reference.startswith(("http://", "https://", "urn:oid:")):
        return True
    return RELATIVE_REFERENCE_RE.match(_HISTORY_RE.sub("", reference)) is not None


class ReferenceResolver:
    """Resolves references inside a bundle under a resolution policy."""

    def __init__(
        self,
        navigator: PathNavigator | None = None,
        lookup: ReferenceLookup | None = None,
        lookup_timeout: float = config.LOOKUP_TIMEOUT,
    ) -> None:
        self.navigator = navigator or PathNavigator()
        self.lookup = lookup
        self.lookup_timeout = lookup_timeout

    def scan(self, entry: BundleEntry) -> list[ReferenceResolution]:
        """Find every reference in one resource, each distinct string once."""
        found: list[ReferenceResolution] = []
        seen: set[str] = set()
        for path, key, node in self.navigator.walk(entry.resource, include_containers=True):
            if not isinstance(node, Mapping):
                continue
            declared = node.get("type") if isinstance(node.get("type"), str) else None
            reference = node.get("reference")
            if isinstance(reference, str):
                if reference in seen:
                    continue
                seen.add(reference)
                found.append(
                    ReferenceResolution(
                        entry=entry, reference=reference, path=f"{path}.reference",
                        field_name=key, declared_type=declared,
                    )
                )
            elif (
                "reference" not in node
                and isinstance(node.get("identifier"), Mapping)
                and key != "identifier"
                and set(node) <= _LOGICAL_REFERENCE_KEYS
            ):
                ident = node["identifier"]
                logical = f"{ident.get('system', '')}|{ident.get('value', '')}"
                if logical in seen:
                    continue
                seen.add(logical)
                found.append(
                    ReferenceResolution(
                        entry=entry, reference=logical, path=f"{path}.identifier",
                        field_name=key, declared_type=declared, logical=True,
                    )
                )
        return found

    def resolve_all(
        self,
        bundle: Bundle,
        policy: ReferenceResolutionPolicy | str = ReferenceResolutionPolicy.IN_BUNDLE_ONLY,
        cancel_check: Callable[[], bool] | None = None,
    ) -> list[ReferenceResolution]:
        """Resolve every reference in the bundle and return the final states."""
        policy = ReferenceResolutionPolicy.parse(policy)
        index = BundleIndex.build(bundle)
        resolutions: list[ReferenceResolution] = []
        executor: ThreadPoolExecutor | None = None

        try:
            for entry in bundle:
                if cancel_check and cancel_check():
                    raise ValidationCancelledError("Reference resolution cancelled")
                for resolution in self.scan(entry):
                    resolution.transition(ReferenceState.RESOLVING)
                    outcome = self._classify(resolution, index)
                    if outcome is None:
                        # external
                        if policy == ReferenceResolutionPolicy.REQUIRE_RESOLUTION:
                            if executor is None:
                                executor = ThreadPoolExecutor(
                                    max_workers=4, thread_name_prefix="reference-lookup"
                                )
                            outcome = self._lookup(resolution, executor)
                        else:
                            outcome = ReferenceState.UNRESOLVED_EXTERNAL
                    resolution.transition(outcome)
                    resolutions.append(resolution)
        finally:
            if executor is not None:
                executor.shutdown(wait=False, cancel_futures=True)

        logger.debug(f"Resolved {len(resolutions)} reference(s) under {policy.value}")
        return resolutions

    def _classify(
        self, resolution: ReferenceResolution, index: BundleIndex
    ) -> ReferenceState | None:
        """Return a terminal state, or None when the reference is external."""
        reference = resolution.reference
        if resolution.logical:
            return None

        if reference.startswith("#"):
            local_id = reference[1:]
            if not local_id:
                resolution.target = resolution.entry.resource
                return ReferenceState.RESOLVED_IN_BUNDLE
            for contained in resolution.entry.resource.get("contained") or ():
                if isinstance(contained, Mapping) and contained.get("id") == local_id:
                    resolution.target = contained
                    return ReferenceState.RESOLVED_IN_BUNDLE
            resolution.detail = "contained resource not found"
            return ReferenceState.UNRESOLVED_MISSING

        target = index.find(reference)
        if target is not None:
            resolution.target = target.resource
            return ReferenceState.RESOLVED_IN_BUNDLE

        if reference.startswith("urn:uuid:"):
            resolution.detail = "no bundle entry has this fullUrl"
            return ReferenceState.UNRESOLVED_MISSING
        if is_external_form(reference):
            return None
        resolution.detail = "unrecognized reference format"
        return ReferenceState.UNRESOLVED_MISSING

    def _lookup(
        self, resolution: ReferenceResolution, executor: ThreadPoolExecutor
    ) -> ReferenceState:
        if resolution.logical:
            resolution.detail = "logical reference cannot be resolved"
            return ReferenceState.UNRESOLVED_EXTERNAL
        if self.lookup is None:
            resolution.detail = "no external lookup configured"
            return ReferenceState.UNRESOLVED_EXTERNAL

        future = executor.submit(self.lookup.exists, resolution.reference)
        try:
            found = future.result(timeout=self.lookup_timeout)
        except FutureTimeoutError:
            logger.warning(
                f"Lookup of {resolution.reference} timed out after {self.lookup_timeout}s"
            )
            resolution.detail = f"lookup timed out after {self.lookup_timeout}s"
            return ReferenceState.UNRESOLVED_EXTERNAL
        except Exception as e:
            logger.warning(f"Lookup of {resolution.reference} failed: {e}")
            resolution.detail = f"lookup failed: {e}"
            return ReferenceState.UNRESOLVED_EXTERNAL

        if found:
            return ReferenceState.RESOLVED_EXTERNAL
        resolution.detail = "not found by external lookup"
        return ReferenceState.UNRESOLVED_EXTERNAL

    def resolve(
        self,
        bundle: Bundle,
        policy: ReferenceResolutionPolicy | str = ReferenceResolutionPolicy.IN_BUNDLE_ONLY,
        cancel_check: Callable[[], bool] | None = None,
    ) -> list[ValidationFinding]:
        """Resolve references and report the problems as findings."""
        policy = ReferenceResolutionPolicy.parse(policy)
        findings: list[ValidationFinding] = []
        for resolution in self.resolve_all(bundle, policy, cancel_check):
            finding = self._finding_for(resolution, policy)
            if finding is not None:
                findings.append(finding)
        return findings

    def _finding_for(
        self, resolution: ReferenceResolution, policy: ReferenceResolutionPolicy
    ) -> ValidationFinding | None:
        state = resolution.state
        ref = resolution.reference

        if state == ReferenceState.RESOLVED_IN_BUNDLE:
            expected = self._expected_types(resolution)
            target_type = resolution.target_type
            if expected and target_type and target_type not in expected:
                return self._make(
                    resolution, "error", error_codes.REFERENCE_TYPE_MISMATCH,
                    f"Reference '{ref}' points to {target_type}, expected "
                    f"{' or '.join(sorted(expected))}",
                    expected=sorted(expected), actual=target_type,
                )
            return None

        if state == ReferenceState.RESOLVED_EXTERNAL:
            return None

        if state == ReferenceState.UNRESOLVED_MISSING:
            return self._make(
                resolution, "error", error_codes.REFERENCE_NOT_FOUND,
                f"Reference '{ref}' cannot be resolved ({resolution.detail})",
            )

        if policy == ReferenceResolutionPolicy.ALLOW_EXTERNAL:
            return self._make(
                resolution, "warning", error_codes.REFERENCE_EXTERNAL,
                f"Reference '{ref}' points outside the bundle",
            )
        if policy == ReferenceResolutionPolicy.REQUIRE_RESOLUTION:
            return self._make(
                resolution, "error", error_codes.REFERENCE_UNRESOLVED,
                f"External reference '{ref}' could not be resolved ({resolution.detail})",
            )
        return self._make(
            resolution, "error", error_codes.REFERENCE_EXTERNAL,
            f"Reference '{ref}' points outside the bundle, which is not allowed",
        )

    @staticmethod
    def _expected_types(resolution: ReferenceResolution) -> frozenset[str]:
        if resolution.declared_type:
            return frozenset({resolution.declared_type})
        return EXPECTED_TARGETS.get(resolution.field_name, frozenset())

    @staticmethod
    def _make(
        resolution: ReferenceResolution,
        severity: str,
        error_code: str,
        text: str,
        **evidence: Any,
    ) -> ValidationFinding:
        entry = resolution.entry
        return ValidationFinding(
            source=FindingSource.REFERENCE,
            resource_type=entry.resource_type,
            path=resolution.path,
            severity=severity,
            message=f"{entry.label}: {text}",
            error_code=error_code,
            entry_index=entry.index,
            resource_id=entry.resource_id,
            evidence={"reference": resolution.reference, "state": resolution.state.value,
                      **evidence},
        )

    def reachable(self, bundle: Bundle, start: str) -> list[str]:
        """Identities of entries reachable from ``start`` through in-bundle references.

        ``start`` is a reference string (``Type/id`` or a fullUrl). The walk
        keeps a visited set, so mutually referencing resources terminate.
        """
        index = BundleIndex.build(bundle)
        first = index.find(start)
        if first is None:
            return []

        visited: set[int] = {first.index}
        order: list[str] = [entry_identity(first)]
        queue: deque[BundleEntry] = deque([first])
        while queue:
            current = queue.popleft()
            for resolution in self.scan(current):
                if resolution.logical or resolution.reference.startswith("#"):
                    continue
                target = index.find(resolution.reference)
                if target is None or target.index in visited:
                    continue
                visited.add(target.index)
                order.append(entry_identity(target))
                queue.append(target)
        return order
