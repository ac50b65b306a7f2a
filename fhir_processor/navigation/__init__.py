"""Path navigation over resource trees."""

from .model_resolver import (
    DEFAULT_R4_CHOICES,
    ModelResolver,
    StaticModelResolver,
    default_model_resolver,
)
from .navigator import PathMatch, PathNavigator
from .paths import PathSegment, logical_path, parse_path

__all__ = [
    "DEFAULT_R4_CHOICES",
    "ModelResolver",
    "PathMatch",
    "PathNavigator",
    "PathSegment",
    "StaticModelResolver",
    "default_model_resolver",
    "logical_path",
    "parse_path",
]
