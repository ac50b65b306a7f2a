"""Confidence scoring for suggestion candidates."""

from __future__ import annotations

from collections.abc import Sequence

from ..rules.models import RuleType
from .models import ConfidenceScoreBreakdown, SuggestionCandidate
from .thresholds import SuggestionThresholds

MAX_COVERAGE_SCORE = 30.0
MAX_SAMPLE_SIZE_SCORE = 20.0
MAX_CONFLICT_PENALTY = 30.0

RISK_WEIGHTS: dict[RuleType, float] = {
    RuleType.CODE_SYSTEM: 15.0,
    RuleType.REQUIRED: 12.0,
    RuleType.FIXED_VALUE: 10.0,
    RuleType.ALLOWED_VALUES: 10.0,
    RuleType.REGEX: 5.0,
}

# (rule type, "ResourceType.logical.path")
ExistingRuleKey = tuple[RuleType, str]


def consistency_base(candidate: SuggestionCandidate) -> float:
    if candidate.rule_type == RuleType.FIXED_VALUE:
        return 25.0
    if candidate.rule_type == RuleType.ALLOWED_VALUES:
        return 20.0 if len(candidate.parameters.get("values", ())) <= 3 else 18.0
    if candidate.rule_type in (RuleType.CODE_SYSTEM, RuleType.REQUIRED):
        return 20.0
    if candidate.rule_type == RuleType.REGEX:
        return 15.0
    return 0.0


def sample_size_score(sample_size: int) -> float:
    if sample_size >= 20:
        return MAX_SAMPLE_SIZE_SCORE
    if sample_size >= 10:
        return 15.0
    if sample_size >= 5:
        return 10.0
    return 5.0


def _is_related(a: str, b: str) -> bool:
    return a.startswith(f"{b}.") or b.startswith(f"{a}.")


def conflict_penalty(candidate: SuggestionCandidate, existing: Sequence[ExistingRuleKey]) -> float:
    """Penalty for overlap with existing rules and contradictory evidence, capped at 30."""
    path = f"{candidate.resource_type}.{candidate.target_path}"
    penalty = 0.0
    for rule_type, existing_path in existing:
        if existing_path == path:
            penalty += 30.0 if rule_type == candidate.rule_type else 15.0
        elif _is_related(existing_path, path):
            penalty += 5.0

    inconsistency = 1.0 - candidate.coverage
    if inconsistency > 0.2:
        penalty += inconsistency * 20.0
    if candidate.outliers >= 2 and candidate.coverage < 1.0:
        penalty += 10.0
    return min(MAX_CONFLICT_PENALTY, penalty)


class ConfidenceScorer:
    """Computes a ConfidenceScoreBreakdown for a candidate.

    Components:
        coverage     coverage fraction x 30
        consistency  per-type base x consistency ratio (max 25)
        sample size  step function, max 20
        risk weight  per-type constant, max 15
        conflict     subtracted, max 30

    The total is clamped to [0, 100] and every component is rounded to two
    decimals, so identical inputs always give identical scores.
    """

    def __init__(self, thresholds: SuggestionThresholds | None = None):
        self.thresholds = thresholds or SuggestionThresholds()

    def score(
        self, candidate: SuggestionCandidate, existing: Sequence[ExistingRuleKey] = ()
    ) -> ConfidenceScoreBreakdown:
        coverage = min(max(candidate.coverage, 0.0), 1.0)
        coverage_score = coverage * MAX_COVERAGE_SCORE
        consistency_score = consistency_base(candidate) * coverage
        size_score = sample_size_score(candidate.sample_size)
        risk = RISK_WEIGHTS.get(candidate.rule_type, 5.0)
        penalty = conflict_penalty(candidate, existing)

        total = self.thresholds.clamp_score(
            coverage_score + consistency_score + size_score + risk - penalty
        )
        return ConfidenceScoreBreakdown(
            coverage_score=round(coverage_score, 2),
            consistency_score=round(consistency_score, 2),
            sample_size_score=round(size_score, 2),
            risk_weight=round(risk, 2),
            conflict_penalty=round(penalty, 2),
            total_score=round(total, 2),
        )
