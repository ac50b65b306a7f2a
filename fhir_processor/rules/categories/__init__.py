"""Rule evaluators organized by category."""

from __future__ import annotations

from .array_rules import array_length_rule
from .question_answer_rules import question_answer_rule
from .required_rules import required_rule
from .resource_rules import resource_rule
from .terminology_rules import code_system_rule
from .value_rules import allowed_values_rule, fixed_value_rule, regex_rule

__all__ = [
    "allowed_values_rule",
    "array_length_rule",
    "code_system_rule",
    "fixed_value_rule",
    "question_answer_rule",
    "regex_rule",
    "required_rule",
    "resource_rule",
]
