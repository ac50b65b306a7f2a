"""Unified error model.

Raw findings from every phase arrive with their own severity vocabulary.
The builder maps them onto one canonical severity, removes duplicates and
sorts them into a total, reproducible order.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ..bundle import thaw
from ..rules import error_codes
from ..rules.models import FindingSource, Severity, ValidationFinding

logger = logging.getLogger(__name__)

SEVERITY_ALIASES: dict[str, Severity] = {
    "fatal": Severity.ERROR,
    "error": Severity.ERROR,
    "critical": Severity.ERROR,
    "high": Severity.ERROR,
    "warning": Severity.WARNING,
    "warn": Severity.WARNING,
    "medium": Severity.WARNING,
    "info": Severity.INFO,
    "information": Severity.INFO,
    "informational": Severity.INFO,
    "low": Severity.INFO,
    "hint": Severity.INFO,
}


def map_severity(raw: Any) -> Severity:
    """Map any severity spelling onto the canonical scale; unknown means error."""
    if isinstance(raw, Severity):
        return raw
    return SEVERITY_ALIASES.get(str(raw).strip().lower(), Severity.ERROR)


def category_for(finding: ValidationFinding) -> str:
    if finding.error_code in error_codes.DIAGNOSTIC_CODES:
        return "diagnostic"
    if finding.source == FindingSource.STRUCTURAL:
        return "structural"
    if finding.source == FindingSource.REFERENCE:
        return "reference"
    if finding.error_code in error_codes.TERMINOLOGY_CODES:
        return "terminology"
    return "business"


@dataclass(frozen=True)
class UnifiedError:
    severity: Severity
    category: str
    source: str
    resource_type: str
    path: str
    message: str
    rule_id: str | None = None
    error_code: str | None = None
    entry_index: int | None = None
    resource_id: str | None = None
    evidence: Mapping[str, Any] = field(default_factory=dict)

    @property
    def dedup_key(self) -> tuple[str, str, str, str]:
        return (self.resource_type, self.path, self.rule_id or "", self.message)

    @property
    def sort_key(self) -> tuple:
        return (
            self.resource_type,
            self.path,
            self.severity.rank,
            self.rule_id or "",
            self.message,
            -1 if self.entry_index is None else self.entry_index,
            self.source,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "category": self.category,
            "source": self.source,
            "resourceType": self.resource_type,
            "path": self.path,
            "ruleId": self.rule_id,
            "errorCode": self.error_code,
            "message": self.message,
            "entryIndex": self.entry_index,
            "resourceId": self.resource_id,
            "evidence": thaw(dict(self.evidence)),
        }


@dataclass(frozen=True)
class ValidationResult:
    errors: tuple[UnifiedError, ...]
    passed: bool
    counts: Mapping[str, int]

    @property
    def error_count(self) -> int:
        return self.counts.get(Severity.ERROR.value, 0)

    def by_severity(self, severity: Severity) -> list[UnifiedError]:
        return [e for e in self.errors if e.severity == severity]

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "counts": dict(self.counts),
            "errors": [e.to_dict() for e in self.errors],
        }


class UnifiedErrorModelBuilder:
    """Normalizes, deduplicates and orders raw findings."""

    def unify(self, finding: ValidationFinding) -> UnifiedError:
        source = finding.source.value if isinstance(finding.source, FindingSource) else str(finding.source)
        return UnifiedError(
            severity=map_severity(finding.severity),
            category=category_for(finding),
            source=source,
            resource_type=finding.resource_type or "",
            path=finding.path or "",
            message=finding.message,
            rule_id=finding.rule_id,
            error_code=finding.error_code,
            entry_index=finding.entry_index,
            resource_id=finding.resource_id,
            evidence=finding.evidence,
        )

    def build(self, findings: Iterable[ValidationFinding]) -> ValidationResult:
        unique: dict[tuple[str, str, str, str], UnifiedError] = {}
        total = 0
        for finding in findings:
            total += 1
            error = self.unify(finding)
            existing = unique.get(error.dedup_key)
            # Keep the duplicate with the lowest sort key
            if existing is None or error.sort_key < existing.sort_key:
                unique[error.dedup_key] = error

        errors = tuple(sorted(unique.values(), key=lambda e: e.sort_key))
        counts = {s.value: 0 for s in Severity}
        for error in errors:
            counts[error.severity.value] += 1

        if total != len(errors):
            logger.debug(f"Removed {total - len(errors)} duplicate finding(s)")
        return ValidationResult(
            errors=errors,
            passed=counts[Severity.ERROR.value] == 0,
            counts=counts,
        )
