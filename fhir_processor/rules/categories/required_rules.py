"""Presence rules."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from fhir_processor.rules import error_codes
from fhir_processor.rules.models import RuleContext, ValidationFinding


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (Mapping, list, tuple)):
        return len(value) == 0
    return False


def required_rule(context: RuleContext) -> list[ValidationFinding]:
    """Fail once when the target path resolves to nothing."""
    matches = context.navigator.resolve(context.resource, context.rule.target_path)
    if any(not is_empty(m.value) for m in matches):
        return []

    path = context.rule.qualified_path
    return [
        context.finding(
            path,
            f"Required field {path} is missing",
            error_codes.FIELD_REQUIRED,
            evidence={"actual": None, "violation": "missing"},
        )
    ]
