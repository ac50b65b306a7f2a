"""Path expression parsing.

Grammar (dot separated segments)::

    path     := segment ("." segment)*
    segment  := name [ "[*]" | "[" digits "]" | "[x]" ]

Arrays are always expanded implicitly, so ``[*]`` is accepted but adds
nothing. ``[n]`` selects a single element. ``[x]`` marks a choice field
whose concrete key is type-suffixed (``value[x]`` -> ``valueQuantity``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache

_SEGMENT_RE = re.compile(r"^(?P<name>[A-Za-z_][A-Za-z0-9_\-]*)(?:\[(?P<selector>\*|x|\d+)\])?$")


@dataclass(frozen=True)
class PathSegment:
    name: str
    index: int | None = None
    choice: bool = False

    def __str__(self) -> str:
        if self.choice:
            return f"{self.name}[x]"
        if self.index is not None:
            return f"{self.name}[{self.index}]"
        return self.name


@lru_cache(maxsize=1024)
def parse_path(expression: str) -> tuple[PathSegment, ...]:
    """Parse a path expression into segments.

    Raises:
        ValueError: If the expression is empty or a segment is malformed
    """
    if not isinstance(expression, str) or not expression.strip():
        raise ValueError("Path expression must be a non-empty string")

    segments: list[PathSegment] = []
    for raw in expression.strip().split("."):
        match = _SEGMENT_RE.match(raw)
        if not match:
            raise ValueError(f"Invalid path segment '{raw}' in '{expression}'")
        selector = match.group("selector")
        if selector == "x":
            segments.append(PathSegment(match.group("name"), choice=True))
        elif selector is not None and selector != "*":
            segments.append(PathSegment(match.group("name"), index=int(selector)))
        else:
            segments.append(PathSegment(match.group("name")))
    return tuple(segments)


def strip_resource_type(
    segments: tuple[PathSegment, ...], resource_type: str
) -> tuple[PathSegment, ...]:
    """Drop a leading segment naming the resource type itself."""
    if segments and segments[0].name == resource_type and segments[0].index is None:
        return segments[1:]
    return segments


def leading_resource_type(expression: str) -> str | None:
    """Return the leading segment when it looks like a resource type."""
    head = expression.strip().split(".", 1)[0]
    if head[:1].isupper() and "[" not in head:
        return head
    return None


def logical_path(expression: str) -> str:
    """Remove selectors from a concrete path (``name[0].given[1]`` -> ``name.given``)."""
    return re.sub(r"\[[^\]]*\]", "", expression)


def qualify_path(expression: str, resource_type: str) -> str:
    """Render a path with the resource type as its first segment."""
    segments = strip_resource_type(parse_path(expression), resource_type)
    if not segments:
        return resource_type
    return ".".join([resource_type, *(str(s) for s in segments)])
