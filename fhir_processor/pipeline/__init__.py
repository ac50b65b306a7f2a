"""Validation pipeline and unified error model."""

from .pipeline import ValidationPipeline
from .unified_errors import (
    UnifiedError,
    UnifiedErrorModelBuilder,
    ValidationResult,
    map_severity,
)

__all__ = [
    "UnifiedError",
    "UnifiedErrorModelBuilder",
    "ValidationPipeline",
    "ValidationResult",
    "map_severity",
]
