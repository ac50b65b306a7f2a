"""Shared utility functions for the FHIR processor."""

from .dates import is_date_like, parse_fhir_date

__all__ = ["is_date_like", "parse_fhir_date"]
