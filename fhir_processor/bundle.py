"""Immutable bundle representation.

A bundle is parsed once, checked for well-formedness and deep-frozen:
mappings become read-only ``MappingProxyType`` views and lists become
tuples. Every component downstream only reads from it.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from . import config
from .exceptions import MalformedBundleError


def freeze(value: Any, max_depth: int = config.MAX_BUNDLE_DEPTH, _depth: int = 0) -> Any:
    """Return a deep read-only copy of a JSON-like tree.

    Raises:
        ValueError: If objects and arrays nest deeper than ``max_depth``.
    """
    if isinstance(value, (Mapping, list, tuple)) and _depth >= max_depth:
        raise ValueError(f"nesting exceeds {max_depth} levels")
    if isinstance(value, Mapping):
        return MappingProxyType(
            {str(k): freeze(v, max_depth, _depth + 1) for k, v in value.items()}
        )
    if isinstance(value, (list, tuple)):
        return tuple([freeze(v, max_depth, _depth + 1) for v in value])
    return value


def thaw(value: Any) -> Any:
    """Convert a frozen tree back into plain dicts and lists."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return value


@dataclass(frozen=True)
class BundleEntry:
    """One entry of a bundle, wrapping a single resource."""

    index: int
    resource: Mapping[str, Any]
    full_url: str | None = None

    @property
    def resource_type(self) -> str:
        return self.resource["resourceType"]

    @property
    def resource_id(self) -> str | None:
        value = self.resource.get("id")
        return value if isinstance(value, str) else None

    @property
    def label(self) -> str:
        """Short human readable locator, e.g. ``entry[2] Patient/p1``."""
        identity = self.resource_type
        if self.resource_id:
            identity = f"{identity}/{self.resource_id}"
        return f"entry[{self.index}] {identity}"


@dataclass(frozen=True)
class Bundle:
    """Read-only bundle with an ordered tuple of entries."""

    entries: tuple[BundleEntry, ...]
    bundle_type: str | None = None
    bundle_id: str | None = None

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def resources_of_type(self, resource_type: str) -> list[BundleEntry]:
        return [e for e in self.entries if e.resource_type == resource_type]

    @property
    def resource_types(self) -> list[str]:
        """Distinct resource types in entry order."""
        return list(dict.fromkeys(e.resource_type for e in self.entries))

    @classmethod
    def from_dict(cls, data: Any) -> "Bundle":
        """Build a bundle from parsed JSON.

        Raises:
            MalformedBundleError: If the document is not a bundle-shaped tree
                or any entry lacks a resource with a resourceType.
        """
        if isinstance(data, Bundle):
            return data
        if not isinstance(data, Mapping):
            raise MalformedBundleError(
                f"Bundle must be a JSON object, got {type(data).__name__}"
            )
        if data.get("resourceType") not in (None, "Bundle"):
            raise MalformedBundleError(
                f"Expected resourceType 'Bundle', got '{data.get('resourceType')}'"
            )

        raw_entries = data.get("entry", [])
        if raw_entries is None:
            raw_entries = []
        if not isinstance(raw_entries, (list, tuple)):
            raise MalformedBundleError("Bundle 'entry' must be an array")

        problems: list[dict[str, Any]] = []
        entries: list[BundleEntry] = []
        for idx, raw in enumerate(raw_entries):
            if not isinstance(raw, Mapping):
                problems.append({"index": idx, "reason": "entry is not an object"})
                continue
            resource = raw.get("resource")
            if not isinstance(resource, Mapping):
                problems.append({"index": idx, "reason": "entry has no resource object"})
                continue
            resource_type = resource.get("resourceType")
            if not isinstance(resource_type, str) or not resource_type.strip():
                problems.append({"index": idx, "reason": "resource lacks a resourceType"})
                continue
            full_url = raw.get("fullUrl")
            if full_url is not None and not isinstance(full_url, str):
                problems.append({"index": idx, "reason": "fullUrl is not a string"})
                continue
            try:
                frozen = freeze(resource)
            except ValueError as e:
                problems.append({"index": idx, "reason": f"resource {e}"})
                continue
            entries.append(BundleEntry(index=idx, resource=frozen, full_url=full_url))

        if problems:
            raise MalformedBundleError(
                f"Bundle has {len(problems)} malformed entr{'y' if len(problems) == 1 else 'ies'}",
                problems,
            )

        bundle_type = data.get("type")
        bundle_id = data.get("id")
        return cls(
            entries=tuple(entries),
            bundle_type=bundle_type if isinstance(bundle_type, str) else None,
            bundle_id=bundle_id if isinstance(bundle_id, str) else None,
        )

    @classmethod
    def from_json(cls, text: str) -> "Bundle":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedBundleError(f"Bundle is not valid JSON: {e}") from e
        except RecursionError as e:
            raise MalformedBundleError("Bundle JSON is nested too deeply to parse") from e
        return cls.from_dict(data)

    @classmethod
    def load(cls, file_path: str | Path) -> "Bundle":
        """Load a bundle from a JSON or YAML file."""
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Bundle file not found: {path}")
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() in (".yaml", ".yml"):
            try:
                return cls.from_dict(yaml.safe_load(text))
            except yaml.YAMLError as e:
                raise MalformedBundleError(f"Bundle is not valid YAML: {e}") from e
        return cls.from_json(text)
