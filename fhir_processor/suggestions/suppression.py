"""Path categories, suppression rules and per-path precedence.

Suppression is absolute: a suppressed candidate is dropped whatever its
confidence would have been.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from enum import Enum
from typing import Any

from ..rules.models import RuleType


class PathCategory(str, Enum):
    IDENTIFIER = "identifier"
    REFERENCE = "reference"
    FREE_TEXT = "free_text"
    ADDRESS_FREE_TEXT = "address_free_text"
    TERMINOLOGY = "terminology"
    STRUCTURAL_ENUM = "structural_enum"
    CONTACT = "contact"
    EXTENSION_METADATA = "extension_metadata"
    OTHER = "other"


_FREE_TEXT_LEAVES = frozenset({"display", "text", "div", "narrative"})
_ENUM_LEAVES = frozenset({"status", "type", "use", "intent", "priority"})
_VALUE_RULES = frozenset({RuleType.FIXED_VALUE, RuleType.ALLOWED_VALUES})

# Regex > AllowedValues > FixedValue; other rule types are not ranked
PRECEDENCE: dict[RuleType, int] = {
    RuleType.REGEX: 1,
    RuleType.ALLOWED_VALUES: 2,
    RuleType.FIXED_VALUE: 3,
}


def classify_path(path: str) -> PathCategory:
    """Categorize a logical path such as ``Patient.identifier.value``."""
    lower = path.lower()
    last = lower.rsplit(".", 1)[-1]

    if lower.endswith(".id") or "identifier.value" in lower:
        return PathCategory.IDENTIFIER
    if ".reference" in lower:
        return PathCategory.REFERENCE
    if last in _FREE_TEXT_LEAVES or "name.text" in lower or "text.div" in lower:
        return PathCategory.FREE_TEXT
    if "address" in lower and "line" in lower:
        return PathCategory.ADDRESS_FREE_TEXT
    if ".code" in lower or ".system" in lower or ".coding" in lower:
        return PathCategory.TERMINOLOGY
    if last in _ENUM_LEAVES:
        return PathCategory.STRUCTURAL_ENUM
    if "telecom" in lower and "value" in lower:
        return PathCategory.CONTACT
    if "extension" in lower and last == "url":
        return PathCategory.EXTENSION_METADATA
    return PathCategory.OTHER


def has_uuid_values(values: Iterable[Any]) -> bool:
    return any(isinstance(v, str) and v.lower().startswith("urn:uuid:") for v in values)


def suppression_reason(
    rule_type: RuleType, category: PathCategory, observed_values: Sequence[Any]
) -> str | None:
    """Return why a candidate must be dropped, or None to keep it."""
    if category in (PathCategory.FREE_TEXT, PathCategory.ADDRESS_FREE_TEXT):
        return "free text field"
    if rule_type not in _VALUE_RULES:
        return None
    if category == PathCategory.IDENTIFIER:
        return "identifier field"
    if category == PathCategory.REFERENCE:
        return "reference field"
    if category == PathCategory.EXTENSION_METADATA:
        return "extension url"
    if has_uuid_values(observed_values):
        return "urn:uuid values"
    return None


def apply_precedence(candidates: Sequence[Any]) -> list[Any]:
    """Keep only the highest ranked value rule per (resourceType, path).

    Candidates need ``rule_type``, ``resource_type`` and ``target_path``
    attributes. Unranked rule types are always kept. Input order is
    preserved.
    """
    best: dict[tuple[str, str], int] = {}
    for c in candidates:
        rank = PRECEDENCE.get(c.rule_type)
        if rank is None:
            continue
        key = (c.resource_type, c.target_path)
        best[key] = min(rank, best.get(key, rank))

    kept = []
    for c in candidates:
        rank = PRECEDENCE.get(c.rule_type)
        if rank is None or rank == best[(c.resource_type, c.target_path)]:
            kept.append(c)
    return kept
