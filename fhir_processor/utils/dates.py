"""Date parsing utilities for FHIR date and dateTime values."""

from __future__ import annotations

import re
from datetime import datetime

# Reasonable date bounds for clinical records
MIN_VALID_YEAR = 1800
MAX_VALID_YEAR = 2200

_PARTIAL_DATE_RE = re.compile(r"^\d{4}-\d{2}(-\d{2})?$")
_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:\d{2})?$")


def parse_fhir_date(value: str | None) -> datetime | None:
    """Parse a FHIR date or dateTime string.

    Supports the following formats:
    - Year-month: YYYY-MM (e.g., 2024-01)
    - Date: YYYY-MM-DD (e.g., 2024-01-15)
    - DateTime: YYYY-MM-DDThh:mm[:ss[.fff]][Z|+hh:mm]

    Validates that the date is a real calendar date and that the year is
    within sensible bounds.

    Args:
        value: Date string to parse, or None

    Returns:
        Parsed datetime object, or None if parsing fails or input is None

    Examples:
        >>> parse_fhir_date("2024-01-15")
        datetime.datetime(2024, 1, 15, 0, 0)
        >>> parse_fhir_date("2024-01")
        datetime.datetime(2024, 1, 1, 0, 0)
        >>> parse_fhir_date("2024-02-30")  # Invalid date
        None
        >>> parse_fhir_date("12345-6")
        None
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()

    parsed: datetime | None = None
    if _PARTIAL_DATE_RE.match(text):
        fmt = "%Y-%m-%d" if text.count("-") == 2 else "%Y-%m"
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            # strptime raises ValueError for invalid dates like Feb 30
            return None
    elif _DATETIME_RE.match(text):
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None

    if parsed is None:
        return None
    if parsed.year < MIN_VALID_YEAR or parsed.year > MAX_VALID_YEAR:
        return None
    return parsed


def is_date_like(value: str) -> bool:
    return parse_fhir_date(value) is not None
