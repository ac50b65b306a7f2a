"""Data models for rule suggestion."""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..bundle import thaw
from ..rules.models import RuleType


class PrimitiveType(str, Enum):
    STRING = "String"
    NUMBER = "Number"
    DATE = "Date"
    CODE = "Code"
    BOOLEAN = "Boolean"
    OBJECT = "Object"
    UNKNOWN = "Unknown"


class ConfidenceLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


@dataclass(frozen=True)
class PathClassification:
    """Profile of one resourceType + path across the sample set."""

    path: str
    resource_type: str
    primitive_type: PrimitiveType
    is_array: bool
    distinct_value_count: int
    has_system_and_code: bool
    has_choice_field: bool
    has_consistent_format: bool
    observed_values: tuple[Any, ...]
    occurrence_count: int
    resource_count: int
    eligible_resources: int
    format_signatures: tuple[tuple[str, int], ...] = ()
    coding_systems: tuple[tuple[str, int], ...] = ()
    distinct_codes: int = 0
    uncoded_count: int = 0

    @property
    def target_path(self) -> str:
        """Path without the leading resource type."""
        prefix = f"{self.resource_type}."
        return self.path[len(prefix):] if self.path.startswith(prefix) else self.path

    @property
    def presence(self) -> float:
        if not self.eligible_resources:
            return 0.0
        return self.resource_count / self.eligible_resources


@dataclass(frozen=True)
class ConfidenceScoreBreakdown:
    coverage_score: float
    consistency_score: float
    sample_size_score: float
    risk_weight: float
    conflict_penalty: float
    total_score: float

    def to_dict(self) -> dict[str, float]:
        return {
            "coverageScore": self.coverage_score,
            "consistencyScore": self.consistency_score,
            "sampleSizeScore": self.sample_size_score,
            "riskWeight": self.risk_weight,
            "conflictPenalty": self.conflict_penalty,
            "totalScore": self.total_score,
        }


@dataclass(frozen=True)
class SuggestionCandidate:
    """Detector output before scoring."""

    rule_type: RuleType
    resource_type: str
    target_path: str
    parameters: dict[str, Any]
    rationale: str
    sample_evidence: tuple[Any, ...]
    sample_size: int
    coverage: float
    outliers: int = 0


@dataclass(frozen=True)
class RuleSuggestion:
    rule_type: RuleType
    resource_type: str
    target_path: str
    parameters: dict[str, Any]
    confidence_score: float
    confidence_level: ConfidenceLevel
    breakdown: ConfidenceScoreBreakdown
    rationale: str
    sample_evidence: tuple[Any, ...] = ()
    sample_size: int = 0
    coverage: float = 0.0
    category: str = "other"

    @property
    def coverage_percent(self) -> float:
        return round(self.coverage * 100, 2)

    @property
    def qualified_path(self) -> str:
        return f"{self.resource_type}.{self.target_path}"

    def suggested_rule_id(self) -> str:
        slug = re.sub(r"[^a-z0-9]+", "-", f"{self.qualified_path}-{self.rule_type.value}".lower())
        return f"suggested-{slug.strip('-')}"

    def to_rule_definition(self, rule_id: str | None = None, severity: str = "error") -> dict[str, Any]:
        """Rule set entry accepted by ``RuleSetLoader``."""
        return {
            "id": rule_id or self.suggested_rule_id(),
            "type": self.rule_type.value,
            "resourceType": self.resource_type,
            "targetPath": self.qualified_path,
            "severity": severity,
            "params": thaw(dict(self.parameters)),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "ruleType": self.rule_type.value,
            "resourceType": self.resource_type,
            "targetPath": self.target_path,
            "parameters": thaw(dict(self.parameters)),
            "confidenceScore": self.confidence_score,
            "confidenceLevel": self.confidence_level.value,
            "breakdown": self.breakdown.to_dict(),
            "rationale": self.rationale,
            "sampleEvidence": thaw(list(self.sample_evidence)),
            "sampleSize": self.sample_size,
            "coverage": self.coverage_percent,
            "category": self.category,
        }

