"""Structural validation."""

from .validator import BasicStructuralValidator, StructuralValidator

__all__ = ["BasicStructuralValidator", "StructuralValidator"]
