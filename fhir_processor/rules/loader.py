"""Rule set loader.

Loads rule sets from YAML and JSON files and validates every rule into a
typed ``Rule`` before any evaluation happens. Problems are accumulated
across the whole file and raised together so authors can fix them in one
pass.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import RuleSetValidationError
from ..navigation.paths import leading_resource_type, parse_path
from .models import PARAMS_BY_TYPE, Rule, RuleSet, RuleType, Severity

logger = logging.getLogger(__name__)

_SEVERITY_ALIASES = {
    "fatal": Severity.ERROR,
    "error": Severity.ERROR,
    "critical": Severity.ERROR,
    "warning": Severity.WARNING,
    "warn": Severity.WARNING,
    "info": Severity.INFO,
    "information": Severity.INFO,
}


class RuleDefinition(BaseModel):
    """Raw rule entry as written in a rule set file."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str = Field(..., min_length=1)
    type: str
    resource_type: str | None = Field(
        default=None, validation_alias=AliasChoices("resourceType", "resource_type")
    )
    target_path: str | None = Field(
        default=None, validation_alias=AliasChoices("targetPath", "path", "target_path")
    )
    severity: str = "error"
    params: dict[str, Any] = Field(default_factory=dict)
    message: str | None = None
    description: str | None = None
    enabled: bool = True


class RuleSetLoader:
    """Loads and validates rule sets from files or parsed documents."""

    def load_file(self, file_path: str | Path) -> RuleSet:
        """Load a rule set from a single file.

        Args:
            file_path: Path to a YAML or JSON rule set

        Returns:
            Validated rule set

        Raises:
            RuleSetValidationError: If any rule fails validation
            FileNotFoundError: If file doesn't exist
        """
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"Rule set file not found: {path}")

        suffix = path.suffix.lower()
        with open(path, encoding="utf-8") as f:
            if suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            elif suffix == ".json":
                data = json.load(f)
            else:
                raise ValueError(f"Unsupported rule set format: {suffix}")

        rule_set = self.load_dict(data, source=path.name)
        logger.info(f"Loaded {len(rule_set)} rule(s) from {path.name}")
        return rule_set

    def load_dict(self, data: dict[str, Any] | list[Any] | None, source: str = "<memory>") -> RuleSet:
        """Validate a parsed rule set document.

        Accepts ``{version, project, rules: [...]}`` or a bare list of rules.
        """
        if data is None:
            return RuleSet()
        if isinstance(data, list):
            raw_rules, version, project = data, None, None
        elif isinstance(data, dict):
            raw_rules = data.get("rules") or []
            version = data.get("version")
            project = data.get("project")
        else:
            raise RuleSetValidationError(
                f"Invalid rule set format in {source}",
                errors=[{"index": None, "rule_id": None, "field": None,
                         "reason": "Expected an object or a list"}],
            )
        if not isinstance(raw_rules, list):
            raise RuleSetValidationError(
                f"Invalid rule set format in {source}",
                errors=[{"index": None, "rule_id": None, "field": "rules",
                         "reason": "'rules' must be a list"}],
            )

        rules: list[Rule] = []
        errors: list[dict[str, Any]] = []
        seen_ids: set[str] = set()

        for idx, raw in enumerate(raw_rules):
            rule, rule_errors = self._validate_rule(raw, idx)
            if rule_errors:
                errors.extend(rule_errors)
                continue
            if rule is None:
                continue
            if rule.id in seen_ids:
                errors.append(
                    {"index": idx, "rule_id": rule.id, "field": "id",
                     "reason": f"Duplicate rule id '{rule.id}'"}
                )
                continue
            seen_ids.add(rule.id)
            rules.append(rule)

        if errors:
            raise RuleSetValidationError(
                f"Validation failed for {len(errors)} rule field(s) in {source}",
                errors=errors,
            )

        return RuleSet(
            rules=tuple(rules),
            version=str(version) if version is not None else None,
            project=str(project) if project is not None else None,
        )

    def _validate_rule(self, raw: Any, index: int) -> tuple[Rule | None, list[dict[str, Any]]]:
        """Validate one raw rule entry.

        Returns:
            The typed rule (None when disabled) and the list of problems found
        """
        rule_id = raw.get("id") if isinstance(raw, dict) else None

        def problem(field: str | None, reason: str) -> dict[str, Any]:
            return {"index": index, "rule_id": rule_id, "field": field, "reason": reason}

        if not isinstance(raw, dict):
            return None, [problem(None, "Rule must be an object")]

        try:
            definition = RuleDefinition.model_validate(raw)
        except ValidationError as e:
            return None, [
                problem(".".join(str(p) for p in err["loc"]) or None, err["msg"])
                for err in e.errors()
            ]

        if not definition.enabled:
            logger.debug(f"Skipping disabled rule {definition.id}")
            return None, []

        errors: list[dict[str, Any]] = []

        try:
            rule_type = RuleType(definition.type)
        except ValueError:
            errors.append(
                problem("type", f"Unknown rule type: {definition.type}. "
                                f"Valid: {[t.value for t in RuleType]}")
            )
            rule_type = None

        severity = _SEVERITY_ALIASES.get(definition.severity.strip().lower())
        if severity is None:
            errors.append(problem("severity", f"Unknown severity: {definition.severity}"))

        target_path = definition.target_path
        resource_type = definition.resource_type
        if target_path is not None:
            try:
                parse_path(target_path)
            except ValueError as e:
                errors.append(problem("targetPath", str(e)))
            if resource_type is None:
                resource_type = leading_resource_type(target_path)
        elif rule_type is not None and rule_type != RuleType.RESOURCE:
            errors.append(problem("targetPath", "Target path is required"))

        if not resource_type:
            errors.append(problem("resourceType", "Resource type is required"))
        elif target_path is not None:
            head = leading_resource_type(target_path)
            if head is not None and head != resource_type:
                errors.append(
                    problem("targetPath", f"Path root '{head}' does not match resource type '{resource_type}'")
                )

        params = None
        if rule_type is not None:
            try:
                params = PARAMS_BY_TYPE[rule_type].model_validate(definition.params)
            except ValidationError as e:
                for err in e.errors():
                    loc = ".".join(str(p) for p in err["loc"])
                    errors.append(problem(f"params.{loc}" if loc else "params", err["msg"]))

        if errors:
            return None, errors

        return (
            Rule(
                id=definition.id,
                type=rule_type,
                resource_type=resource_type,
                target_path=target_path or resource_type,
                severity=severity,
                params=params,
                message=definition.message,
            ),
            [],
        )
