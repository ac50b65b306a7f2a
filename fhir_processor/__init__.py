"""FHIR Processor validation engine.

This package validates FHIR R4 bundles against project rule sets and
suggests new rules from sample data, including:

- Path navigation with implicit array expansion and choice fields
- Typed rule sets (Required, Regex, AllowedValues, FixedValue,
  ArrayLength, CodeSystem, QuestionAnswer, Resource)
- Reference resolution under a configurable policy
- A unified, deterministically ordered error model
- Confidence-scored rule suggestions from sample bundles

Usage:
    from fhir_processor import ValidationPipeline, RuleSetLoader

    rules = RuleSetLoader().load_file("rules.yaml")
    result = ValidationPipeline().run(bundle_dict, rules)

    # Command line:
    fhir-processor validate bundle.json --rules rules.yaml

Modules:
    bundle: immutable bundle model and loaders
    navigation: path grammar, model resolver and navigator
    rules: rule models, loader, category evaluators and engine
    references: in-bundle index, resolution policy and external lookup
    structural: basic structural validator
    terminology: code master lookups
    pipeline: validation pipeline and unified error model
    suggestions: profiling, detectors and confidence scoring
"""

from .bundle import Bundle, BundleEntry
from .exceptions import (
    FhirProcessorError,
    MalformedBundleError,
    ReferenceLookupError,
    RuleSetValidationError,
    ValidationCancelledError,
)
from .pipeline import UnifiedError, ValidationPipeline, ValidationResult
from .rules import Rule, RuleSet, RuleSetLoader, RuleType
from .settings import ReferenceResolutionPolicy, ValidationSettings, load_settings
from .suggestions import RuleSuggestion, RuleSuggestionEngine, SuggestionThresholds
from .terminology import CodeMaster

__version__ = "0.1.0"

__all__ = [
    "Bundle",
    "BundleEntry",
    "CodeMaster",
    "FhirProcessorError",
    "MalformedBundleError",
    "ReferenceLookupError",
    "ReferenceResolutionPolicy",
    "Rule",
    "RuleSet",
    "RuleSetLoader",
    "RuleSetValidationError",
    "RuleSuggestion",
    "RuleSuggestionEngine",
    "RuleType",
    "SuggestionThresholds",
    "UnifiedError",
    "ValidationCancelledError",
    "ValidationPipeline",
    "ValidationResult",
    "ValidationSettings",
    "load_settings",
]
