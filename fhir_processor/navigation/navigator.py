"""Path navigation over resource trees.

Arrays are expanded implicitly: when a key holds an array, the rest of the
path is resolved against every element and the matches are concatenated.
Choice fields are matched through the model resolver.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from .. import config
from .model_resolver import ModelResolver, default_model_resolver
from .paths import PathSegment, parse_path, strip_resource_type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PathMatch:
    """A value found by a path together with its concrete location."""

    value: Any
    path: str


class PathNavigator:
    """Resolves path expressions against a single resource.

    Navigation never raises on absent or oddly shaped data: missing keys,
    scalars where an object was expected and over-deep branches all
    produce no match.
    """

    def __init__(
        self,
        model_resolver: ModelResolver | None = None,
        max_depth: int = config.MAX_PATH_DEPTH,
    ):
        self.model_resolver = model_resolver or default_model_resolver
        self.max_depth = max_depth

    def resolve(
        self, resource: Mapping[str, Any], path: str | tuple[PathSegment, ...]
    ) -> list[PathMatch]:
        """Resolve a path against a resource.

        Args:
            resource: Resource tree (mapping with a resourceType)
            path: Expression such as ``Patient.name.given`` or parsed segments

        Returns:
            Matches in document order; empty when nothing is present
        """
        if not isinstance(resource, Mapping):
            return []
        resource_type = resource.get("resourceType")
        resource_type = resource_type if isinstance(resource_type, str) else ""

        if isinstance(path, str):
            try:
                segments = parse_path(path)
            except ValueError as e:
                logger.debug(f"Unresolvable path '{path}': {e}")
                return []
        else:
            segments = tuple(path)
        segments = strip_resource_type(segments, resource_type)

        matches: list[PathMatch] = []
        self._descend(resource, segments, 0, resource_type, (), resource_type, 0, matches)
        return matches

    def values(self, resource: Mapping[str, Any], path: str) -> list[Any]:
        return [m.value for m in self.resolve(resource, path)]

    def _descend(
        self,
        node: Any,
        segments: tuple[PathSegment, ...],
        pos: int,
        concrete: str,
        logical: tuple[str, ...],
        resource_type: str,
        depth: int,
        out: list[PathMatch],
    ) -> None:
        if pos == len(segments):
            out.append(PathMatch(value=node, path=concrete))
            return
        if depth >= self.max_depth:
            logger.warning(f"Path depth limit {self.max_depth} reached at '{concrete}'")
            return
        if not isinstance(node, Mapping):
            return

        segment = segments[pos]
        logical = (*logical, segment.name)
        for key in self._matching_keys(node, segment, ".".join(logical), resource_type):
            value = node[key]
            if value is None:
                continue
            child_path = f"{concrete}.{key}" if concrete else key

            if isinstance(value, (list, tuple)):
                if segment.index is None:
                    elements = list(enumerate(value))
                elif 0 <= segment.index < len(value):
                    elements = [(segment.index, value[segment.index])]
                else:
                    elements = []
                for i, item in elements:
                    if item is None:
                        continue
                    self._descend(
                        item, segments, pos + 1, f"{child_path}[{i}]",
                        logical, resource_type, depth + 1, out,
                    )
            elif segment.index is None:
                self._descend(
                    value, segments, pos + 1, child_path,
                    logical, resource_type, depth + 1, out,
                )

    def _matching_keys(
        self, node: Mapping[str, Any], segment: PathSegment, logical: str, resource_type: str
    ) -> list[str]:
        if not segment.choice and segment.name in node:
            return [segment.name]

        candidates = self.model_resolver.choice_field_suffixes(resource_type, logical)
        if candidates:
            return [key for key in node if key in candidates]
        if segment.choice:
            # Unknown to the resolver: accept any type-suffixed key
            prefix = segment.name
            return [
                key for key in node
                if key.startswith(prefix) and len(key) > len(prefix) and key[len(prefix)].isupper()
            ]
        return []

    def walk(
        self, resource: Mapping[str, Any], include_containers: bool = False
    ) -> Iterator[tuple[str, str, Any]]:
        """Yield ``(concrete_path, key, value)`` for every leaf in document order.

        With ``include_containers`` every nested object is yielded as well,
        before its children. Array elements keep the key of their array.
        """
        if not isinstance(resource, Mapping):
            return
        resource_type = resource.get("resourceType")
        root = resource_type if isinstance(resource_type, str) else ""
        yield from self._walk(resource, root, None, 0, include_containers)

    def _walk(
        self, node: Any, path: str, key: str | None, depth: int, include_containers: bool
    ) -> Iterator[tuple[str, str, Any]]:
        if isinstance(node, Mapping):
            if include_containers and key is not None:
                yield path, key, node
            if depth >= self.max_depth:
                logger.warning(f"Path depth limit {self.max_depth} reached at '{path}'")
                return
            for child_key, child in node.items():
                if child is None:
                    continue
                child_path = f"{path}.{child_key}" if path else child_key
                yield from self._walk(child, child_path, child_key, depth + 1, include_containers)
        elif isinstance(node, (list, tuple)):
            if depth >= self.max_depth:
                logger.warning(f"Path depth limit {self.max_depth} reached at '{path}'")
                return
            for i, item in enumerate(node):
                if item is None:
                    continue
                yield from self._walk(item, f"{path}[{i}]", key, depth + 1, include_containers)
        elif key is not None:
            yield path, key, node
