"""Evaluator registry keyed by rule type."""

from __future__ import annotations

from collections.abc import Callable, Iterable

from .models import RuleContext, RuleType, ValidationFinding

RuleEvaluator = Callable[[RuleContext], list[ValidationFinding]]


class RuleRegistry:
    def __init__(self) -> None:
        self._evaluators: dict[RuleType, RuleEvaluator] = {}

    def register(self, rule_type: RuleType, evaluator: RuleEvaluator) -> None:
        self._evaluators[RuleType(rule_type)] = evaluator

    def extend(self, evaluators: Iterable[tuple[RuleType, RuleEvaluator]]) -> None:
        for rule_type, evaluator in evaluators:
            self.register(rule_type, evaluator)

    def evaluator_for(self, rule_type: RuleType) -> RuleEvaluator:
        try:
            return self._evaluators[rule_type]
        except KeyError:
            raise LookupError(f"No evaluator registered for rule type {rule_type.value}") from None

    def registered_types(self) -> tuple[RuleType, ...]:
        return tuple(self._evaluators)


def register_default_evaluators(registry: RuleRegistry) -> None:
    """Register the built-in evaluator for every rule type."""
    from .categories import (
        allowed_values_rule,
        array_length_rule,
        code_system_rule,
        fixed_value_rule,
        question_answer_rule,
        regex_rule,
        required_rule,
        resource_rule,
    )

    registry.extend(
        [
            (RuleType.REQUIRED, required_rule),
            (RuleType.REGEX, regex_rule),
            (RuleType.ALLOWED_VALUES, allowed_values_rule),
            (RuleType.FIXED_VALUE, fixed_value_rule),
            (RuleType.ARRAY_LENGTH, array_length_rule),
            (RuleType.CODE_SYSTEM, code_system_rule),
            (RuleType.QUESTION_ANSWER, question_answer_rule),
            (RuleType.RESOURCE, resource_rule),
        ]
    )


default_registry = RuleRegistry()
register_default_evaluators(default_registry)
