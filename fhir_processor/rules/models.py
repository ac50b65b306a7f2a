"""Data models for the rules engine."""
from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import TYPE_CHECKING, Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..navigation.paths import parse_path, qualify_path

if TYPE_CHECKING:
    from ..bundle import BundleEntry
    from ..navigation.navigator import PathNavigator
    from ..settings import ValidationSettings
    from ..terminology.code_master import CodeMaster


class RuleType(str, Enum):
    REQUIRED = "Required"
    REGEX = "Regex"
    ALLOWED_VALUES = "AllowedValues"
    FIXED_VALUE = "FixedValue"
    CODE_SYSTEM = "CodeSystem"
    ARRAY_LENGTH = "ArrayLength"
    QUESTION_ANSWER = "QuestionAnswer"
    RESOURCE = "Resource"


class Severity(str, Enum):
    """Canonical severities, most severe first."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        return {"error": 0, "warning": 1, "info": 2}[self.value]


class FindingSource(str, Enum):
    STRUCTURAL = "Structural"
    RULE = "Rule"
    REFERENCE = "Reference"


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


# --- Typed rule parameters -------------------------------------------------


class RuleParams(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class RequiredParams(RuleParams):
    pass


class RegexParams(RuleParams):
    pattern: str = Field(..., min_length=1)

    @field_validator("pattern")
    @classmethod
    def pattern_compiles(cls, v: str) -> str:
        try:
            compile_pattern(v)
        except re.error as e:
            raise ValueError(f"Invalid regular expression: {e}") from e
        return v


class AllowedValuesParams(RuleParams):
    values: tuple[Any, ...] = Field(..., min_length=1)
    case_sensitive: bool = Field(default=True, alias="caseSensitive")


class FixedValueParams(RuleParams):
    value: Any

    @field_validator("value")
    @classmethod
    def value_present(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("Fixed value must not be null")
        return v


class ArrayLengthParams(RuleParams):
    min: int | None = Field(default=None, ge=0)
    max: int | None = Field(default=None, ge=0)
    non_empty: bool = Field(default=False, alias="nonEmpty")

    @model_validator(mode="after")
    def check_bounds(self) -> "ArrayLengthParams":
        if self.min is None and self.max is None and not self.non_empty:
            raise ValueError("At least one of min, max or nonEmpty must be set")
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"min ({self.min}) must not exceed max ({self.max})")
        return self


class CodeSystemParams(RuleParams):
    system: str | None = None
    codes: tuple[str, ...] | None = None
    unknown_system_severity: Literal["error", "warning", "info", "ignore"] | None = Field(
        default=None, alias="unknownSystemSeverity"
    )

    @field_validator("unknown_system_severity", mode="before")
    @classmethod
    def lower_severity(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v


class RegexConstraint(RuleParams):
    type: Literal["Regex"]
    pattern: str = Field(..., min_length=1)

    @field_validator("pattern")
    @classmethod
    def pattern_compiles(cls, v: str) -> str:
        try:
            compile_pattern(v)
        except re.error as e:
            raise ValueError(f"Invalid regular expression: {e}") from e
        return v


class AllowedValuesConstraint(RuleParams):
    type: Literal["AllowedValues"]
    values: tuple[Any, ...] = Field(..., min_length=1)
    case_sensitive: bool = Field(default=True, alias="caseSensitive")


class FixedValueConstraint(RuleParams):
    type: Literal["FixedValue"]
    value: Any


AnswerConstraint = Annotated[
    Union[RegexConstraint, AllowedValuesConstraint, FixedValueConstraint],
    Field(discriminator="type"),
]


class QuestionAnswerParams(RuleParams):
    iteration_path: str = Field(..., alias="iterationPath")
    question_path: str = Field(..., alias="questionPath")
    question_values: tuple[str, ...] = Field(..., min_length=1, alias="questionValues")
    answer_path: str = Field(..., alias="answerPath")
    answer_required: bool = Field(default=False, alias="answerRequired")
    constraint: AnswerConstraint | None = None

    @field_validator("iteration_path", "question_path", "answer_path")
    @classmethod
    def path_parses(cls, v: str) -> str:
        parse_path(v)
        return v

    @model_validator(mode="after")
    def check_effect(self) -> "QuestionAnswerParams":
        if self.constraint is None and not self.answer_required:
            raise ValueError("Either constraint or answerRequired must be set")
        return self


ConditionOperator = Literal["exists", "notExists", "equals", "notEquals", "in", "matches"]


class FieldCondition(RuleParams):
    path: str
    operator: ConditionOperator
    value: Any = None
    values: tuple[Any, ...] | None = None
    pattern: str | None = None

    @field_validator("path")
    @classmethod
    def path_parses(cls, v: str) -> str:
        parse_path(v)
        return v

    @model_validator(mode="after")
    def check_operands(self) -> "FieldCondition":
        if self.operator in ("equals", "notEquals") and self.value is None:
            raise ValueError(f"Operator '{self.operator}' requires 'value'")
        if self.operator == "in" and not self.values:
            raise ValueError("Operator 'in' requires non-empty 'values'")
        if self.operator == "matches":
            if not self.pattern:
                raise ValueError("Operator 'matches' requires 'pattern'")
            try:
                compile_pattern(self.pattern)
            except re.error as e:
                raise ValueError(f"Invalid regular expression: {e}") from e
        return self

    def describe(self) -> str:
        operand = self.value if self.value is not None else (self.values or self.pattern or "")
        return f"{self.path} {self.operator} {operand}".strip()


class ResourceParams(RuleParams):
    when: tuple[FieldCondition, ...] = ()
    require: tuple[FieldCondition, ...] = Field(..., min_length=1)


PARAMS_BY_TYPE: dict[RuleType, type[RuleParams]] = {
    RuleType.REQUIRED: RequiredParams,
    RuleType.REGEX: RegexParams,
    RuleType.ALLOWED_VALUES: AllowedValuesParams,
    RuleType.FIXED_VALUE: FixedValueParams,
    RuleType.CODE_SYSTEM: CodeSystemParams,
    RuleType.ARRAY_LENGTH: ArrayLengthParams,
    RuleType.QUESTION_ANSWER: QuestionAnswerParams,
    RuleType.RESOURCE: ResourceParams,
}


# --- Rules -----------------------------------------------------------------


@dataclass(frozen=True)
class Rule:
    """A loaded, typed rule. Immutable once built by the loader."""

    id: str
    type: RuleType
    resource_type: str
    target_path: str
    severity: Severity
    params: RuleParams
    message: str | None = None

    @property
    def qualified_path(self) -> str:
        """Target path with the resource type as first segment."""
        return qualify_path(self.target_path, self.resource_type)


@dataclass(frozen=True)
class RuleSet:
    rules: tuple[Rule, ...] = ()
    version: str | None = None
    project: str | None = None

    def __iter__(self) -> Iterator[Rule]:
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)

    def get(self, rule_id: str) -> Rule | None:
        return next((r for r in self.rules if r.id == rule_id), None)

    def rules_for(self, resource_type: str) -> list[Rule]:
        return [r for r in self.rules if r.resource_type == resource_type]


# --- Findings --------------------------------------------------------------


@dataclass(frozen=True)
class ValidationFinding:
    """Raw finding produced by any validation phase, before unification."""

    source: FindingSource
    resource_type: str
    path: str
    severity: str
    message: str
    rule_id: str | None = None
    error_code: str | None = None
    entry_index: int | None = None
    resource_id: str | None = None
    evidence: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RuleContext:
    """Inputs required to evaluate one rule against one bundle entry."""

    rule: Rule
    entry: BundleEntry
    navigator: PathNavigator
    code_master: CodeMaster
    settings: ValidationSettings

    @property
    def resource(self) -> Mapping[str, Any]:
        return self.entry.resource

    def finding(
        self,
        path: str,
        text: str,
        error_code: str,
        evidence: dict[str, Any] | None = None,
        severity: str | None = None,
    ) -> ValidationFinding:
        """Build a finding for this rule, prefixed with the entry location.

        A rule ``message`` replaces ``text`` after its tokens are resolved.
        """
        from .messages import resolve_message

        body = text
        if self.rule.message:
            body = resolve_message(self.rule.message, self.rule, evidence) or text
        return ValidationFinding(
            source=FindingSource.RULE,
            resource_type=self.entry.resource_type,
            path=path,
            severity=severity or self.rule.severity.value,
            message=f"{self.entry.label}: {body}",
            rule_id=self.rule.id,
            error_code=error_code,
            entry_index=self.entry.index,
            resource_id=self.entry.resource_id,
            evidence=evidence or {},
        )
