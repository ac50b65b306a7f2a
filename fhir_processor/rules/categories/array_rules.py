"""Cardinality rules."""

from __future__ import annotations

from fhir_processor.rules import error_codes
from fhir_processor.rules.categories.required_rules import is_empty
from fhir_processor.rules.models import ArrayLengthParams, RuleContext, ValidationFinding


def array_length_rule(context: RuleContext) -> list[ValidationFinding]:
    """Check the number of resolved elements against min, max and nonEmpty."""
    params: ArrayLengthParams = context.rule.params
    matches = context.navigator.resolve(context.resource, context.rule.target_path)
    count = len(matches)

    problems: list[str] = []
    if params.non_empty and (count == 0 or any(is_empty(m.value) for m in matches)):
        problems.append("must not be empty")
    if params.min is not None and count < params.min:
        problems.append(f"has {count} element(s), fewer than the minimum {params.min}")
    if params.max is not None and count > params.max:
        problems.append(f"has {count} element(s), more than the maximum {params.max}")

    if not problems:
        return []

    path = context.rule.qualified_path
    return [
        context.finding(
            path,
            f"{path} {'; '.join(problems)}",
            error_codes.ARRAY_LENGTH_VIOLATION,
            evidence={"actual": count, "min": params.min, "max": params.max,
                      "nonEmpty": params.non_empty, "violation": "length"},
        )
    ]
