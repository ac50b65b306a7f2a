"""Scalar value rules: regex, allowed values and fixed value."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from fhir_processor.rules import error_codes
from fhir_processor.rules.models import (
    AllowedValuesParams,
    FixedValueParams,
    RegexParams,
    RuleContext,
    ValidationFinding,
    compile_pattern,
)


def is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool))


def normalize_scalar(value: Any, case_sensitive: bool = True) -> str:
    """Comparable text form of a scalar (``True`` -> ``"true"``, ``1.0`` -> ``"1.0"``)."""
    if isinstance(value, bool):
        text = "true" if value else "false"
    else:
        text = str(value).strip()
    return text if case_sensitive else text.casefold()


def matches_pattern(value: Any, pattern: str) -> bool:
    return compile_pattern(pattern).search(normalize_scalar(value)) is not None


def value_allowed(value: Any, allowed: Iterable[Any], case_sensitive: bool = True) -> bool:
    target = normalize_scalar(value, case_sensitive)
    return any(normalize_scalar(a, case_sensitive) == target for a in allowed)


def equals_fixed(value: Any, expected: Any) -> bool:
    if isinstance(expected, Mapping) or isinstance(value, Mapping):
        return value == expected
    return normalize_scalar(value) == normalize_scalar(expected)


def regex_rule(context: RuleContext) -> list[ValidationFinding]:
    """Each resolved scalar must match the configured pattern."""
    hits: list[ValidationFinding] = []
    params: RegexParams = context.rule.params

    for match in context.navigator.resolve(context.resource, context.rule.target_path):
        if not is_scalar(match.value):
            continue
        if not matches_pattern(match.value, params.pattern):
            hits.append(
                context.finding(
                    match.path,
                    f"Value '{match.value}' at {match.path} does not match pattern {params.pattern}",
                    error_codes.PATTERN_MISMATCH,
                    evidence={"actual": match.value, "pattern": params.pattern,
                              "violation": "pattern"},
                )
            )

    return hits


def allowed_values_rule(context: RuleContext) -> list[ValidationFinding]:
    """Each resolved scalar must be one of the configured values."""
    hits: list[ValidationFinding] = []
    params: AllowedValuesParams = context.rule.params

    for match in context.navigator.resolve(context.resource, context.rule.target_path):
        if not is_scalar(match.value):
            continue
        if not value_allowed(match.value, params.values, params.case_sensitive):
            hits.append(
                context.finding(
                    match.path,
                    f"Value '{match.value}' at {match.path} is not one of "
                    f"{', '.join(str(v) for v in params.values)}",
                    error_codes.VALUE_NOT_ALLOWED,
                    evidence={"actual": match.value, "allowed": list(params.values),
                              "violation": "value"},
                )
            )

    return hits


def fixed_value_rule(context: RuleContext) -> list[ValidationFinding]:
    """Each resolved value must equal the configured value."""
    hits: list[ValidationFinding] = []
    params: FixedValueParams = context.rule.params

    for match in context.navigator.resolve(context.resource, context.rule.target_path):
        if not equals_fixed(match.value, params.value):
            hits.append(
                context.finding(
                    match.path,
                    f"Value '{match.value}' at {match.path} must equal '{params.value}'",
                    error_codes.FIXED_VALUE_MISMATCH,
                    evidence={"actual": match.value, "expected": params.value,
                              "violation": "value"},
                )
            )

    return hits
