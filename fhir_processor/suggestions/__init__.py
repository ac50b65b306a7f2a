"""Rule suggestion from sample bundles."""

from .engine import RuleSuggestionEngine
from .models import (
    ConfidenceLevel,
    ConfidenceScoreBreakdown,
    PathClassification,
    PrimitiveType,
    RuleSuggestion,
    SuggestionCandidate,
)
from .profiler import BundleProfiler
from .scorer import ConfidenceScorer
from .suppression import PathCategory, classify_path
from .thresholds import SuggestionThresholds

__all__ = [
    "BundleProfiler",
    "ConfidenceLevel",
    "ConfidenceScoreBreakdown",
    "ConfidenceScorer",
    "PathCategory",
    "PathClassification",
    "PrimitiveType",
    "RuleSuggestion",
    "RuleSuggestionEngine",
    "SuggestionCandidate",
    "SuggestionThresholds",
    "classify_path",
]
