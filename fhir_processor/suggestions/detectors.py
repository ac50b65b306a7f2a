"""Candidate detectors.

Each detector looks at one PathClassification and returns zero or more
candidates. Detectors never score; the scorer and the engine's filters
decide what survives.
"""

from __future__ import annotations

from collections.abc import Callable

from ..rules.models import RuleType
from .models import PathClassification, PrimitiveType, SuggestionCandidate
from .patterns import first_known_pattern, is_structured_signature, pattern_from_signature
from .thresholds import SuggestionThresholds

Detector = Callable[[PathClassification, SuggestionThresholds], list[SuggestionCandidate]]

_REGEX_TYPES = frozenset({PrimitiveType.STRING, PrimitiveType.CODE, PrimitiveType.DATE})


def _distinct_in_order(values) -> list:
    seen = set()
    out = []
    for value in values:
        key = (type(value).__name__, value)
        if key in seen:
            continue
        seen.add(key)
        out.append(value)
    return out


def required_detector(c: PathClassification, thresholds: SuggestionThresholds) -> list[SuggestionCandidate]:
    depth = len(c.target_path.split("."))
    if depth > thresholds.required_max_depth:
        return []
    if c.presence < thresholds.required_coverage_min:
        return []
    return [
        SuggestionCandidate(
            rule_type=RuleType.REQUIRED,
            resource_type=c.resource_type,
            target_path=c.target_path,
            parameters={},
            rationale=(
                f"Present in {c.resource_count}/{c.eligible_resources} "
                f"{c.resource_type} resources"
            ),
            sample_evidence=c.observed_values[: thresholds.max_evidence],
            sample_size=c.eligible_resources,
            coverage=c.presence,
        )
    ]


def fixed_value_detector(c: PathClassification, thresholds: SuggestionThresholds) -> list[SuggestionCandidate]:
    if c.has_system_and_code or c.distinct_value_count != 1:
        return []
    sample_size = len(c.observed_values)
    if sample_size < thresholds.fixed_value_min_samples:
        return []
    value = c.observed_values[0]
    return [
        SuggestionCandidate(
            rule_type=RuleType.FIXED_VALUE,
            resource_type=c.resource_type,
            target_path=c.target_path,
            parameters={"value": value},
            rationale=f"All {sample_size} observed values are identical",
            sample_evidence=(value,),
            sample_size=sample_size,
            coverage=1.0,
        )
    ]


def allowed_values_detector(c: PathClassification, thresholds: SuggestionThresholds) -> list[SuggestionCandidate]:
    if c.has_system_and_code or c.primitive_type == PrimitiveType.BOOLEAN:
        return []
    sample_size = len(c.observed_values)
    distinct = c.distinct_value_count
    if not thresholds.allowed_values_min_distinct <= distinct <= thresholds.allowed_values_max_distinct:
        return []
    if distinct > sample_size * thresholds.allowed_values_max_distinct_ratio:
        return []
    if c.presence < thresholds.allowed_values_coverage_min:
        return []
    values = _distinct_in_order(c.observed_values)
    return [
        SuggestionCandidate(
            rule_type=RuleType.ALLOWED_VALUES,
            resource_type=c.resource_type,
            target_path=c.target_path,
            parameters={"values": values},
            rationale=(
                f"Observed {distinct} distinct values across {sample_size} samples, "
                "likely a closed value set"
            ),
            sample_evidence=tuple(values[: thresholds.max_evidence]),
            sample_size=sample_size,
            coverage=c.presence,
        )
    ]


def regex_detector(c: PathClassification, thresholds: SuggestionThresholds) -> list[SuggestionCandidate]:
    if c.primitive_type not in _REGEX_TYPES or c.has_system_and_code:
        return []
    if c.distinct_value_count < thresholds.regex_min_distinct:
        return []
    strings = [v for v in c.observed_values if isinstance(v, str)]
    if not strings:
        return []

    found = first_known_pattern(strings, thresholds.regex_match_min)
    if found is not None:
        pattern, matched, total = found
        return [
            SuggestionCandidate(
                rule_type=RuleType.REGEX,
                resource_type=c.resource_type,
                target_path=c.target_path,
                parameters={"pattern": pattern.pattern},
                rationale=f"{matched}/{total} values match {pattern.description} ({pattern.name})",
                sample_evidence=tuple(strings[: thresholds.max_evidence]),
                sample_size=total,
                coverage=matched / total,
                outliers=total - matched,
            )
        ]

    if not c.has_consistent_format:
        return []
    signature = c.format_signatures[0][0]
    if not is_structured_signature(signature):
        return []
    return [
        SuggestionCandidate(
            rule_type=RuleType.REGEX,
            resource_type=c.resource_type,
            target_path=c.target_path,
            parameters={"pattern": pattern_from_signature(signature)},
            rationale=f"All {len(strings)} values share the format {signature}",
            sample_evidence=tuple(strings[: thresholds.max_evidence]),
            sample_size=len(strings),
            coverage=1.0,
        )
    ]


def code_system_detector(c: PathClassification, thresholds: SuggestionThresholds) -> list[SuggestionCandidate]:
    if not c.has_system_and_code or not c.coding_systems:
        return []
    system, count = c.coding_systems[0]
    # Plain values at a coding path count against the dominant system
    total = sum(n for _system, n in c.coding_systems) + c.uncoded_count
    share = count / total
    if share < thresholds.code_system_share_min:
        return []
    evidence = [v for v in c.observed_values if isinstance(v, str) and v.startswith(f"{system}|")]
    return [
        SuggestionCandidate(
            rule_type=RuleType.CODE_SYSTEM,
            resource_type=c.resource_type,
            target_path=c.target_path,
            parameters={"system": system},
            rationale=(
                f"{count}/{total} codings use {system} "
                f"({c.distinct_codes} distinct code(s))"
            ),
            sample_evidence=tuple(evidence[: thresholds.max_evidence]),
            sample_size=total,
            coverage=share,
            outliers=total - count,
        )
    ]


DEFAULT_DETECTORS: tuple[Detector, ...] = (
    required_detector,
    fixed_value_detector,
    allowed_values_detector,
    regex_detector,
    code_system_detector,
)
