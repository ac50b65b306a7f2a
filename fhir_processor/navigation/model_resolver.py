"""Model resolution for choice fields.

The navigator never hardcodes type suffixes. It asks a resolver which
concrete keys can carry a logical choice field on a given resource type.
A resolver is built once at startup and shared read-only between runs.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Protocol, runtime_checkable

WILDCARD = "*"

_QUANTITY_TYPES = ("Quantity", "CodeableConcept", "String", "Boolean", "Integer",
                   "Range", "Ratio", "SampledData", "Time", "DateTime", "Period")
_ANSWER_TYPES = ("Boolean", "Decimal", "Integer", "Date", "DateTime", "Time",
                 "String", "Uri", "Attachment", "Coding", "Quantity", "Reference")
_OPEN_TYPES = ("Base64Binary", "Boolean", "Canonical", "Code", "Date", "DateTime",
               "Decimal", "Id", "Instant", "Integer", "Markdown", "Oid",
               "PositiveInt", "String", "Time", "UnsignedInt", "Uri", "Url", "Uuid",
               "Address", "Age", "Annotation", "Attachment", "CodeableConcept",
               "Coding", "ContactPoint", "Count", "Distance", "Duration",
               "HumanName", "Identifier", "Money", "Period", "Quantity", "Range",
               "Ratio", "Reference", "SampledData", "Signature", "Timing")
_ONSET_TYPES = ("DateTime", "Age", "Period", "Range", "String")

# Common FHIR R4 choice elements
DEFAULT_R4_CHOICES: dict[str, dict[str, tuple[str, ...]]] = {
    WILDCARD: {
        "value": _OPEN_TYPES,
        "extension.value": _OPEN_TYPES,
    },
    "Observation": {
        "value": _QUANTITY_TYPES,
        "effective": ("DateTime", "Period", "Timing", "Instant"),
        "component.value": _QUANTITY_TYPES,
    },
    "Patient": {
        "deceased": ("Boolean", "DateTime"),
        "multipleBirth": ("Boolean", "Integer"),
    },
    "Condition": {
        "onset": _ONSET_TYPES,
        "abatement": _ONSET_TYPES,
    },
    "Procedure": {
        "performed": ("DateTime", "Period", "String", "Age", "Range"),
    },
    "MedicationRequest": {
        "medication": ("CodeableConcept", "Reference"),
        "reported": ("Boolean", "Reference"),
    },
    "MedicationStatement": {
        "medication": ("CodeableConcept", "Reference"),
        "effective": ("DateTime", "Period"),
    },
    "MedicationAdministration": {
        "medication": ("CodeableConcept", "Reference"),
        "effective": ("DateTime", "Period"),
    },
    "Immunization": {
        "occurrence": ("DateTime", "String"),
    },
    "QuestionnaireResponse": {
        "item.answer.value": _ANSWER_TYPES,
        "item.item.answer.value": _ANSWER_TYPES,
    },
    "Questionnaire": {
        "item.enableWhen.answer": ("Boolean", "Decimal", "Integer", "Date",
                                   "DateTime", "Time", "String", "Coding",
                                   "Quantity", "Reference"),
        "item.answerOption.value": ("Integer", "Date", "Time", "String",
                                    "Coding", "Reference"),
        "item.initial.value": _ANSWER_TYPES,
    },
}


@runtime_checkable
class ModelResolver(Protocol):
    def choice_field_suffixes(self, resource_type: str, path: str) -> frozenset[str]:
        """Concrete keys that can carry the logical choice field at ``path``."""
        ...

    def choice_base(self, resource_type: str, key: str) -> str | None:
        ...

    def is_choice_key(self, resource_type: str, key: str) -> bool:
        ...


class StaticModelResolver:
    """Model resolver backed by a static ``{type: {path: [suffixes]}}`` table.

    Lookup order for ``(resource_type, path)``:
    1. the resource type's own table
    2. the ``"*"`` table by full path
    3. the ``"*"`` table by the path's last segment
    """

    def __init__(self, table: Mapping[str, Mapping[str, Iterable[str]]] | None = None):
        source = DEFAULT_R4_CHOICES if table is None else table
        frozen: dict[str, Mapping[str, frozenset[str]]] = {}
        bases: dict[str, dict[str, str]] = {}
        for resource_type, fields in source.items():
            per_type: dict[str, frozenset[str]] = {}
            for path, suffixes in fields.items():
                name = path.rsplit(".", 1)[-1]
                keys = frozenset(f"{name}{suffix}" for suffix in suffixes)
                per_type[path] = keys
                for key in keys:
                    bases.setdefault(resource_type, {})[key] = name
            frozen[resource_type] = MappingProxyType(per_type)
        self._table = MappingProxyType(frozen)
        self._bases = MappingProxyType({k: MappingProxyType(v) for k, v in bases.items()})

    def choice_field_suffixes(self, resource_type: str, path: str) -> frozenset[str]:
        own = self._table.get(resource_type, {})
        if path in own:
            return own[path]
        wildcard = self._table.get(WILDCARD, {})
        if path in wildcard:
            return wildcard[path]
        return wildcard.get(path.rsplit(".", 1)[-1], frozenset())

    def choice_base(self, resource_type: str, key: str) -> str | None:
        """Logical field name for a concrete choice key, if it is one."""
        for table_key in (resource_type, WILDCARD):
            base = self._bases.get(table_key, {}).get(key)
            if base is not None:
                return base
        return None

    def is_choice_key(self, resource_type: str, key: str) -> bool:
        return self.choice_base(resource_type, key) is not None


default_model_resolver = StaticModelResolver()
