"""Read-only code system lookup."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

logger = logging.getLogger(__name__)


class CodeMaster:
    """Mapping of code system URL to its permitted codes.

    An unknown system is distinguished from a known system with an invalid
    code so callers can report the two cases with different severities.
    """

    def __init__(self, systems: Mapping[str, Iterable[str]] | None = None):
        self._systems = MappingProxyType(
            {
                str(system): frozenset(str(code) for code in codes)
                for system, codes in (systems or {}).items()
            }
        )

    def has_system(self, system: str | None) -> bool:
        return system is not None and system in self._systems

    def is_valid(self, system: str | None, code: str | None) -> bool:
        if system is None or code is None:
            return False
        return str(code) in self._systems.get(system, frozenset())

    def codes(self, system: str) -> frozenset[str]:
        return self._systems.get(system, frozenset())

    @property
    def systems(self) -> list[str]:
        return sorted(self._systems)

    def __len__(self) -> int:
        return len(self._systems)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "CodeMaster":
        """Build a code master from either supported document shape.

        ``{"systems": {url: [code, ...]}}`` or
        ``{"codeSystems": [{"url": ..., "concepts": [{"code": ...}]}]}``.
        """
        if not data:
            return cls()
        if not isinstance(data, Mapping):
            raise ValueError("Code master document must be an object")

        systems: dict[str, set[str]] = {}
        for url, codes in (data.get("systems") or {}).items():
            if not isinstance(codes, (list, tuple)):
                raise ValueError(f"Codes for system '{url}' must be a list")
            systems.setdefault(url, set()).update(str(c) for c in codes)

        for idx, entry in enumerate(data.get("codeSystems") or []):
            url = entry.get("url") if isinstance(entry, Mapping) else None
            if not url:
                raise ValueError(f"codeSystems[{idx}] has no url")
            bucket = systems.setdefault(url, set())
            for concept in entry.get("concepts") or []:
                code = concept.get("code") if isinstance(concept, Mapping) else concept
                if code is not None:
                    bucket.add(str(code))

        return cls(systems)

    @classmethod
    def from_file(cls, file_path: str | Path) -> "CodeMaster":
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Code master file not found: {path}")
        with open(path, encoding="utf-8") as f:
            if path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
        master = cls.from_dict(data)
        logger.info(f"Loaded {len(master)} code systems from {path.name}")
        return master
