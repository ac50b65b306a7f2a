"""Known value patterns and format signatures."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from itertools import groupby


@dataclass(frozen=True)
class KnownPattern:
    name: str
    pattern: str
    description: str

    def matches(self, value: str) -> bool:
        return re.search(self.pattern, value, re.IGNORECASE) is not None


# Checked in order; the first pattern reaching the match threshold wins
KNOWN_PATTERNS: tuple[KnownPattern, ...] = (
    KnownPattern("Phone (E.164)", r"^\+[1-9]\d{1,14}$", "international phone number format"),
    KnownPattern("Phone (US)", r"^\d{3}-\d{3}-\d{4}$", "US phone number (###-###-####)"),
    KnownPattern("Email", r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$", "email address format"),
    KnownPattern("Date (ISO)", r"^\d{4}-\d{2}-\d{2}$", "ISO date format (YYYY-MM-DD)"),
    KnownPattern("DateTime (ISO)", r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}", "ISO datetime format"),
    KnownPattern("UUID", r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", "UUID format"),
    KnownPattern("Postal Code (US)", r"^\d{5}(-\d{4})?$", "US ZIP code"),
    KnownPattern("Postal Code (SG)", r"^\d{6}$", "Singapore postal code"),
    KnownPattern("NRIC (SG)", r"^[STFG]\d{7}[A-Z]$", "Singapore NRIC/FIN"),
    KnownPattern("Identifier", r"^[A-Z0-9]{6,20}$", "uppercase alphanumeric identifier"),
)

_SIGNATURE_CLASSES = {"N": r"\d", "A": "[A-Z]", "a": "[a-z]", "S": " ", "D": "-", "L": "/", "C": ":"}


def format_signature(value: str) -> str:
    """Reduce a value to its character classes.

    Digits become ``N``, upper and lower case letters ``A`` and ``a``,
    space ``S``, dash ``D``, slash ``L`` and colon ``C``. Anything else is
    kept as is.
    """
    out = []
    for ch in value:
        if ch.isdigit():
            out.append("N")
        elif ch.isalpha():
            out.append("A" if ch.isupper() else "a")
        elif ch == " ":
            out.append("S")
        elif ch == "-":
            out.append("D")
        elif ch == "/":
            out.append("L")
        elif ch == ":":
            out.append("C")
        else:
            out.append(ch)
    return "".join(out)


def pattern_from_signature(signature: str) -> str:
    """Build an anchored regex from a format signature (``NNNNDNN`` -> ``^\\d{4}-\\d{2}$``)."""
    parts = ["^"]
    for symbol, run in groupby(signature):
        count = len(list(run))
        token = _SIGNATURE_CLASSES.get(symbol, re.escape(symbol))
        parts.append(token if count == 1 else f"{token}{{{count}}}")
    parts.append("$")
    return "".join(parts)


def is_structured_signature(signature: str) -> bool:
    """Signatures worth turning into a regex: some digits and no spaces."""
    return "N" in signature and "S" not in signature


def first_known_pattern(values: Iterable[str], threshold: float) -> tuple[KnownPattern, int, int] | None:
    """Return the first known pattern matching at least ``threshold`` of values.

    Returns:
        ``(pattern, matched, total)`` or None
    """
    items = list(values)
    if not items:
        return None
    for pattern in KNOWN_PATTERNS:
        matched = sum(1 for v in items if pattern.matches(v))
        if matched / len(items) >= threshold:
            return pattern, matched, len(items)
    return None
