"""Threshold configuration for rule suggestion."""
from __future__ import annotations

from dataclasses import dataclass

from .models import ConfidenceLevel


@dataclass(frozen=True)
class SuggestionThresholds:
    # Detector gates
    required_coverage_min: float = 0.9
    required_max_depth: int = 2
    fixed_value_min_samples: int = 3
    allowed_values_min_distinct: int = 2
    allowed_values_max_distinct: int = 5
    allowed_values_max_distinct_ratio: float = 0.5
    allowed_values_coverage_min: float = 0.8
    regex_min_distinct: int = 3
    regex_match_min: float = 0.8
    code_system_share_min: float = 0.8

    # Retention caps per path
    max_sample_values: int = 200
    max_distinct_values: int = 500
    max_evidence: int = 5

    # Confidence levels
    medium_min: float = 60.0
    high_min: float = 80.0
    min_confidence: float = 50.0

    def confidence_level(self, score: float) -> ConfidenceLevel:
        if score >= self.high_min:
            return ConfidenceLevel.HIGH
        if score >= self.medium_min:
            return ConfidenceLevel.MEDIUM
        return ConfidenceLevel.LOW

    @staticmethod
    def clamp_score(score: float) -> float:
        if score < 0.0:
            return 0.0
        if score > 100.0:
            return 100.0
        return score
