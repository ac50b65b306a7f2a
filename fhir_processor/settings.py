"""Per-run validation settings.

Settings are supplied fresh for every pipeline run. Defaults come from
``fhir_processor.config`` so deployments can tune them through the
environment without touching rule sets.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from . import config

logger = logging.getLogger(__name__)


class ReferenceResolutionPolicy(str, Enum):
    """How references that leave the bundle are treated."""

    IN_BUNDLE_ONLY = "InBundleOnly"
    ALLOW_EXTERNAL = "AllowExternal"
    REQUIRE_RESOLUTION = "RequireResolution"

    @classmethod
    def parse(cls, value: Any) -> "ReferenceResolutionPolicy":
        if isinstance(value, cls):
            return value
        text = str(value).strip().replace("_", "").replace("-", "").lower()
        for member in cls:
            if member.value.lower() == text or member.name.replace("_", "").lower() == text:
                return member
        raise ValueError(
            f"Unknown reference resolution policy: '{value}'. "
            f"Expected one of: {', '.join(m.value for m in cls)}"
        )


class ValidationSettings(BaseModel):
    """Settings consumed by the validation pipeline and its phases."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    reference_resolution_policy: ReferenceResolutionPolicy = Field(
        default_factory=lambda: ReferenceResolutionPolicy.parse(config.REFERENCE_POLICY),
        alias="referenceResolutionPolicy",
    )
    max_path_depth: int = Field(default=config.MAX_PATH_DEPTH, ge=1, le=1024, alias="maxPathDepth")
    external_lookup_timeout: float = Field(
        default=config.LOOKUP_TIMEOUT, gt=0, alias="externalLookupTimeout"
    )
    # 0 disables the whole-run deadline
    run_timeout: float = Field(default=config.RUN_TIMEOUT, ge=0, alias="runTimeout")
    unknown_code_system_severity: Literal["error", "warning", "info", "ignore"] = Field(
        default="warning", alias="unknownCodeSystemSeverity"
    )
    max_workers: int = Field(default=1, ge=1, le=64, alias="maxWorkers")

    @field_validator("reference_resolution_policy", mode="before")
    @classmethod
    def parse_policy(cls, v: Any) -> ReferenceResolutionPolicy:
        return ReferenceResolutionPolicy.parse(v)

    @field_validator("unknown_code_system_severity", mode="before")
    @classmethod
    def lower_severity(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v


def load_settings(file_path: str | Path) -> ValidationSettings:
    """Load validation settings from a YAML or JSON file.

    Args:
        file_path: Path to the settings file

    Returns:
        Validated settings

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the format is unsupported
        pydantic.ValidationError: If a value is invalid
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")

    suffix = path.suffix.lower()
    with open(path, encoding="utf-8") as f:
        if suffix in (".yaml", ".yml"):
            data = yaml.safe_load(f) or {}
        elif suffix == ".json":
            data = json.load(f)
        else:
            raise ValueError(f"Unsupported settings format: {suffix}")

    # Allow settings nested under a project file's "settings" key
    if isinstance(data, dict) and isinstance(data.get("settings"), dict):
        data = data["settings"]

    settings = ValidationSettings.model_validate(data)
    logger.debug(f"Loaded settings from {path.name}: {settings.model_dump()}")
    return settings
