"""Bundle profiling.

Walks every resource in the sample bundles and accumulates, per
resourceType + logical path, the evidence the detectors need. Retention
is bounded per path so large samples keep memory flat.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ..bundle import Bundle
from ..navigation.model_resolver import ModelResolver, default_model_resolver
from ..navigation.navigator import PathNavigator
from ..navigation.paths import logical_path
from ..utils.dates import is_date_like
from .models import PathClassification, PrimitiveType
from .patterns import format_signature
from .thresholds import SuggestionThresholds

logger = logging.getLogger(__name__)


def detect_primitive_type(value: Any) -> PrimitiveType:
    if isinstance(value, bool):
        return PrimitiveType.BOOLEAN
    if isinstance(value, (int, float)):
        return PrimitiveType.NUMBER
    if isinstance(value, Mapping):
        return PrimitiveType.OBJECT
    if isinstance(value, str):
        if is_date_like(value):
            return PrimitiveType.DATE
        if is_code_like(value):
            return PrimitiveType.CODE
        return PrimitiveType.STRING
    return PrimitiveType.UNKNOWN


def is_code_like(value: str) -> bool:
    """Short upper case tokens or dash/underscore separated codes."""
    if len(value) > 20 or " " in value:
        return False
    letters = [ch for ch in value if ch.isalpha()]
    return (bool(letters) and all(ch.isupper() for ch in letters)) or "-" in value or "_" in value


@dataclass
class _PathProfile:
    """Mutable accumulator for one path; private to a single profiling call."""

    path: str
    resource_type: str
    first_value: Any = None
    is_array: bool = False
    has_choice_field: bool = False
    occurrences: int = 0
    resource_count: int = 0
    last_resource: tuple[int, int] | None = None
    samples: list[Any] = field(default_factory=list)
    distinct: dict[Any, int] = field(default_factory=dict)
    signatures: Counter = field(default_factory=Counter)
    systems: Counter = field(default_factory=Counter)
    codes: set[tuple[str, str]] = field(default_factory=set)
    uncoded: int = 0
    is_coding: bool = False

    def record(self, value: Any, resource_key: tuple[int, int], thresholds: SuggestionThresholds) -> None:
        self.occurrences += 1
        if self.last_resource != resource_key:
            self.resource_count += 1
            self.last_resource = resource_key
        if self.first_value is None:
            self.first_value = value

        # A path seen with both shapes keeps the shape it was first seen with
        if self.is_coding:
            if isinstance(value, Mapping):
                system = str(value.get("system"))
                code = str(value.get("code"))
                if system in self.systems or len(self.systems) < thresholds.max_distinct_values:
                    self.systems[system] += 1
                if len(self.codes) < thresholds.max_distinct_values:
                    self.codes.add((system, code))
                sample = f"{system}|{code}"
            else:
                self.uncoded += 1
                sample = value
        else:
            if isinstance(value, Mapping):
                value = f"{value.get('system')}|{value.get('code')}"
            sample = value
            if isinstance(value, str):
                signature = format_signature(value)
                if signature in self.signatures or len(self.signatures) < thresholds.max_distinct_values:
                    self.signatures[signature] += 1

        if len(self.samples) < thresholds.max_sample_values:
            self.samples.append(sample)
        key = (type(sample).__name__, sample)
        if key in self.distinct:
            self.distinct[key] += 1
        elif len(self.distinct) < thresholds.max_distinct_values:
            self.distinct[key] = 1

    def classify(self, eligible: int) -> PathClassification:
        primitive = PrimitiveType.OBJECT if self.is_coding else detect_primitive_type(self.first_value)
        return PathClassification(
            path=self.path,
            resource_type=self.resource_type,
            primitive_type=primitive,
            is_array=self.is_array,
            distinct_value_count=len(self.distinct),
            has_system_and_code=self.is_coding,
            has_choice_field=self.has_choice_field,
            has_consistent_format=len(self.signatures) == 1,
            observed_values=tuple(self.samples),
            occurrence_count=self.occurrences,
            resource_count=self.resource_count,
            eligible_resources=eligible,
            format_signatures=tuple(sorted(self.signatures.items(), key=lambda kv: (-kv[1], kv[0]))),
            coding_systems=tuple(sorted(self.systems.items(), key=lambda kv: (-kv[1], kv[0]))),
            distinct_codes=len({code for _system, code in self.codes}),
            uncoded_count=self.uncoded,
        )


def _is_coding(node: Any) -> bool:
    return (
        isinstance(node, Mapping)
        and isinstance(node.get("system"), str)
        and isinstance(node.get("code"), (str, int))
        and not isinstance(node.get("code"), bool)
    )


class BundleProfiler:
    """Builds path classifications from sample bundles."""

    def __init__(
        self,
        navigator: PathNavigator | None = None,
        model_resolver: ModelResolver | None = None,
        thresholds: SuggestionThresholds | None = None,
    ) -> None:
        self.model_resolver = model_resolver or default_model_resolver
        self.navigator = navigator or PathNavigator(self.model_resolver)
        self.thresholds = thresholds or SuggestionThresholds()

    def profile(self, bundles: Iterable[Bundle]) -> list[PathClassification]:
        """Classify every observed path, in first-seen order."""
        profiles: dict[tuple[str, str], _PathProfile] = {}
        eligible: Counter = Counter()

        for bundle_idx, bundle in enumerate(bundles):
            for entry in bundle:
                resource_type = entry.resource_type
                eligible[resource_type] += 1
                resource_key = (bundle_idx, entry.index)
                for concrete, key, value in self.navigator.walk(entry.resource, include_containers=True):
                    if key == "resourceType" or key.startswith("_"):
                        continue
                    if isinstance(value, Mapping):
                        if not _is_coding(value):
                            continue
                        coding = True
                    else:
                        if isinstance(value, str):
                            value = value.strip()
                            if not value:
                                continue
                        coding = False

                    path = logical_path(concrete)
                    profile = profiles.get((resource_type, path))
                    if profile is None:
                        profile = _PathProfile(path=path, resource_type=resource_type, is_coding=coding)
                        profiles[(resource_type, path)] = profile
                    if "[" in concrete:
                        profile.is_array = True
                    if not profile.has_choice_field and self._crosses_choice(resource_type, path):
                        profile.has_choice_field = True
                    profile.record(value, resource_key, self.thresholds)

        classifications = [p.classify(eligible[p.resource_type]) for p in profiles.values()]
        logger.info(
            f"Profiled {sum(eligible.values())} resource(s) into {len(classifications)} path(s)"
        )
        return classifications

    def _crosses_choice(self, resource_type: str, path: str) -> bool:
        return any(
            self.model_resolver.is_choice_key(resource_type, segment)
            for segment in path.split(".")[1:]
        )
