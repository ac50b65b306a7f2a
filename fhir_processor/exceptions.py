"""Exception hierarchy for the validation engine.

Fatal/precondition failures are raised as exceptions; everything else is
reported as a finding inside a ValidationResult.
"""

from __future__ import annotations

from typing import Any


class FhirProcessorError(Exception):
    """Base class for all engine errors."""


class MalformedBundleError(FhirProcessorError):
    """Raised when a bundle is not a well-formed entry tree."""

    def __init__(self, message: str, problems: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.problems = problems or []

    def __str__(self) -> str:
        base = super().__str__()
        if not self.problems:
            return base
        details = "; ".join(
            f"entry[{p.get('index')}]: {p.get('reason')}" if p.get("index") is not None
            else str(p.get("reason"))
            for p in self.problems
        )
        return f"{base} ({details})"


class RuleSetValidationError(FhirProcessorError):
    """Raised when a rule set fails validation at load time."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


class ValidationCancelledError(FhirProcessorError):
    """Raised when a validation run is cancelled or runs past its deadline."""


class ReferenceLookupError(FhirProcessorError):
    """Raised by external reference lookups that cannot complete."""

    def __init__(self, message: str, reference: str, status_code: int | None = None):
        super().__init__(message)
        self.reference = reference
        self.status_code = status_code
