"""Conditional question/answer rules.

An item (for example an Observation component or a QuestionnaireResponse
item) qualifies when its discriminator matches one of the configured
question values. Its paired answer is then checked.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from fhir_processor.rules import error_codes
from fhir_processor.rules.categories.required_rules import is_empty
from fhir_processor.rules.categories.value_rules import (
    equals_fixed,
    is_scalar,
    matches_pattern,
    value_allowed,
)
from fhir_processor.rules.models import (
    AllowedValuesConstraint,
    FixedValueConstraint,
    QuestionAnswerParams,
    RegexConstraint,
    RuleContext,
    ValidationFinding,
)


def _answer_scalar(value: Any) -> Any:
    """Comparable scalar of an answer: quantities by value, codings by code."""
    if is_scalar(value):
        return value
    if isinstance(value, Mapping):
        for key in ("value", "code", "reference", "display"):
            inner = value.get(key)
            if is_scalar(inner):
                return inner
        coding = value.get("coding")
        if coding and isinstance(coding[0], Mapping) and is_scalar(coding[0].get("code")):
            return coding[0].get("code")
    return None


def _satisfies(value: Any, constraint: Any) -> tuple[bool, dict[str, Any]]:
    if isinstance(constraint, FixedValueConstraint):
        if isinstance(constraint.value, Mapping):
            return equals_fixed(value, constraint.value), {"expected": constraint.value}
        scalar = _answer_scalar(value)
        ok = scalar is not None and equals_fixed(scalar, constraint.value)
        return ok, {"expected": constraint.value}

    scalar = _answer_scalar(value)
    if isinstance(constraint, RegexConstraint):
        ok = scalar is not None and matches_pattern(scalar, constraint.pattern)
        return ok, {"pattern": constraint.pattern}
    if isinstance(constraint, AllowedValuesConstraint):
        ok = scalar is not None and value_allowed(scalar, constraint.values, constraint.case_sensitive)
        return ok, {"allowed": list(constraint.values)}
    return True, {}


def question_answer_rule(context: RuleContext) -> list[ValidationFinding]:
    hits: list[ValidationFinding] = []
    params: QuestionAnswerParams = context.rule.params
    navigator = context.navigator
    questions = set(params.question_values)

    for item in navigator.resolve(context.resource, params.iteration_path):
        if not isinstance(item.value, Mapping):
            continue
        asked = [
            v for v in navigator.values(item.value, params.question_path)
            if is_scalar(v) and str(v) in questions
        ]
        if not asked:
            continue
        question = str(asked[0])

        answers = [a for a in navigator.resolve(item.value, params.answer_path) if not is_empty(a.value)]
        if not answers:
            if params.answer_required:
                path = f"{item.path}.{params.answer_path}"
                hits.append(
                    context.finding(
                        path,
                        f"Question '{question}' at {item.path} has no answer",
                        error_codes.ANSWER_REQUIRED,
                        evidence={"question": question, "actual": None, "violation": "missing"},
                    )
                )
            continue

        if params.constraint is None:
            continue
        for answer in answers:
            ok, expectation = _satisfies(answer.value, params.constraint)
            if ok:
                continue
            path = f"{item.path}.{answer.path}"
            hits.append(
                context.finding(
                    path,
                    f"Answer to question '{question}' at {path} is not valid",
                    error_codes.INVALID_ANSWER_VALUE,
                    evidence={"question": question, "actual": answer.value,
                              **expectation, "violation": "answer"},
                )
            )

    return hits
