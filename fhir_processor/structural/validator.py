"""Structural validation collaborators.

Full schema validation is delegated to an external validator implementing
``StructuralValidator``. ``BasicStructuralValidator`` covers the handful of
structural checks that need no schema.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from ..bundle import Bundle, BundleEntry
from ..navigation.model_resolver import ModelResolver, default_model_resolver
from ..navigation.navigator import PathNavigator
from ..rules import error_codes
from ..rules.models import FindingSource, ValidationFinding

logger = logging.getLogger(__name__)

ID_RE = re.compile(r"^[A-Za-z0-9\-.]{1,64}$")


@runtime_checkable
class StructuralValidator(Protocol):
    def validate(self, bundle: Bundle) -> list[ValidationFinding]:
        ...


def _structural_finding(
    entry: BundleEntry, path: str, error_code: str, text: str, **evidence: Any
) -> ValidationFinding:
    return ValidationFinding(
        source=FindingSource.STRUCTURAL,
        resource_type=entry.resource_type,
        path=path,
        severity="error",
        message=f"{entry.label}: {text}",
        error_code=error_code,
        entry_index=entry.index,
        resource_id=entry.resource_id,
        evidence=evidence,
    )


class BasicStructuralValidator:
    """Checks id grammar, choice field exclusivity and reference grammar."""

    def __init__(
        self,
        model_resolver: ModelResolver | None = None,
        navigator: PathNavigator | None = None,
    ) -> None:
        self.model_resolver = model_resolver or default_model_resolver
        self.navigator = navigator or PathNavigator(self.model_resolver)

    def validate(self, bundle: Bundle) -> list[ValidationFinding]:
        findings: list[ValidationFinding] = []
        for entry in bundle:
            findings.extend(self._check_id(entry))
            findings.extend(self._check_nodes(entry))
        logger.debug(f"Structural checks produced {len(findings)} finding(s)")
        return findings

    def _check_id(self, entry: BundleEntry) -> list[ValidationFinding]:
        if "id" not in entry.resource:
            return []
        value = entry.resource["id"]
        if isinstance(value, str) and ID_RE.match(value):
            return []
        return [
            _structural_finding(
                entry, f"{entry.resource_type}.id", error_codes.ID_INVALID,
                f"Resource id '{value}' is not a valid id", actual=value,
            )
        ]

    def _check_nodes(self, entry: BundleEntry) -> list[ValidationFinding]:
        findings: list[ValidationFinding] = []
        resource_type = entry.resource_type
        nodes = [(resource_type, entry.resource)]
        nodes.extend(
            (path, node)
            for path, _key, node in self.navigator.walk(entry.resource, include_containers=True)
            if isinstance(node, Mapping)
        )

        for path, node in nodes:
            groups: dict[str, list[str]] = {}
            for key in node:
                base = self.model_resolver.choice_base(resource_type, key)
                if base is not None:
                    groups.setdefault(base, []).append(key)
            for base, keys in groups.items():
                if len(keys) > 1:
                    findings.append(
                        _structural_finding(
                            entry, f"{path}.{base}[x]", error_codes.CHOICE_TYPE_INVALID,
                            f"Choice field {base}[x] at {path} has several values: {', '.join(keys)}",
                            actual=keys,
                        )
                    )

            reference = node.get("reference")
            if "reference" in node and (
                not isinstance(reference, str) or not reference.strip()
                or any(ch.isspace() for ch in reference)
            ):
                findings.append(
                    _structural_finding(
                        entry, f"{path}.reference", error_codes.REFERENCE_INVALID,
                        f"Reference value '{reference}' is not a valid reference",
                        actual=reference,
                    )
                )
        return findings
