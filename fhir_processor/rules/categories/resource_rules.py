"""Resource level rules spanning several fields of one instance."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from fhir_processor.navigation.navigator import PathNavigator
from fhir_processor.navigation.paths import qualify_path
from fhir_processor.rules import error_codes
from fhir_processor.rules.categories.required_rules import is_empty
from fhir_processor.rules.categories.value_rules import (
    equals_fixed,
    matches_pattern,
    value_allowed,
)
from fhir_processor.rules.models import (
    FieldCondition,
    ResourceParams,
    RuleContext,
    ValidationFinding,
)


def condition_holds(
    navigator: PathNavigator, resource: Mapping[str, Any], condition: FieldCondition
) -> bool:
    """Evaluate one field condition against a resource."""
    values = [v for v in navigator.values(resource, condition.path) if not is_empty(v)]
    op = condition.operator

    if op == "exists":
        return bool(values)
    if op == "notExists":
        return not values
    if op == "equals":
        return any(equals_fixed(v, condition.value) for v in values)
    if op == "notEquals":
        return all(not equals_fixed(v, condition.value) for v in values)
    if op == "in":
        return bool(values) and all(value_allowed(v, condition.values or ()) for v in values)
    if op == "matches":
        return bool(values) and all(matches_pattern(v, condition.pattern or "") for v in values)
    raise ValueError(f"Unsupported condition operator: {op}")


def resource_rule(context: RuleContext) -> list[ValidationFinding]:
    """When every ``when`` condition holds, every ``require`` condition must hold."""
    hits: list[ValidationFinding] = []
    params: ResourceParams = context.rule.params
    resource = context.resource
    navigator = context.navigator

    if not all(condition_holds(navigator, resource, c) for c in params.when):
        return hits

    for condition in params.require:
        if condition_holds(navigator, resource, condition):
            continue
        path = qualify_path(condition.path, context.entry.resource_type)
        hits.append(
            context.finding(
                path,
                f"Condition failed: {condition.describe()}",
                error_codes.RESOURCE_CONDITION_FAILED,
                evidence={
                    "condition": condition.describe(),
                    "when": [c.describe() for c in params.when],
                    "actual": navigator.values(resource, condition.path),
                    "violation": "condition",
                },
            )
        )

    return hits
