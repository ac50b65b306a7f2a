"""Typed rule sets and their evaluation."""

from .engine import RuleEngine
from .loader import RuleDefinition, RuleSetLoader
from .models import (
    PARAMS_BY_TYPE,
    FindingSource,
    Rule,
    RuleContext,
    RuleSet,
    RuleType,
    Severity,
    ValidationFinding,
)
from .registry import RuleRegistry, default_registry, register_default_evaluators

__all__ = [
    "PARAMS_BY_TYPE",
    "FindingSource",
    "Rule",
    "RuleContext",
    "RuleDefinition",
    "RuleEngine",
    "RuleRegistry",
    "RuleSet",
    "RuleSetLoader",
    "RuleType",
    "Severity",
    "ValidationFinding",
    "default_registry",
    "register_default_evaluators",
]
