"""Pytest configuration and fixtures."""

from __future__ import annotations

from typing import Any

import pytest

from fhir_processor.rules import RuleSetLoader
from fhir_processor.terminology import CodeMaster

LOINC = "http://loinc.org"

LOINC_CODES = [
    "8867-4", "8310-5", "8462-4", "8480-6", "9279-1",
    "2708-6", "8302-2", "3141-9", "2339-0", "6690-2",
]


def make_bundle(*resources: dict[str, Any], full_urls: bool = False) -> dict[str, Any]:
    """Wrap resources in a collection bundle."""
    entries = []
    for resource in resources:
        entry: dict[str, Any] = {"resource": resource}
        if full_urls and resource.get("id"):
            entry["fullUrl"] = f"http://example.org/fhir/{resource['resourceType']}/{resource['id']}"
        entries.append(entry)
    return {"resourceType": "Bundle", "type": "collection", "entry": entries}


def load_rules(*rules: dict[str, Any]):
    return RuleSetLoader().load_dict({"rules": list(rules)})


@pytest.fixture
def patient() -> dict[str, Any]:
    """Sample patient with two names and an identifier."""
    return {
        "resourceType": "Patient",
        "id": "p1",
        "active": True,
        "gender": "female",
        "birthDate": "1984-03-12",
        "identifier": [{"system": "http://example.org/nric", "value": "S1234567D"}],
        "name": [
            {"family": "Tan", "given": ["Mei", "Ling"]},
            {"family": "Tan", "given": ["May"]},
        ],
        "telecom": [{"system": "phone", "value": "+6591234567"}],
    }


@pytest.fixture
def observation() -> dict[str, Any]:
    """Sample blood pressure observation referencing the patient."""
    return {
        "resourceType": "Observation",
        "id": "o1",
        "status": "final",
        "code": {"coding": [{"system": LOINC, "code": "85354-9", "display": "Blood pressure"}]},
        "subject": {"reference": "Patient/p1"},
        "effectiveDateTime": "2024-01-15T10:30:00Z",
        "component": [
            {
                "code": {"coding": [{"system": LOINC, "code": "8480-6"}]},
                "valueQuantity": {"value": 120, "unit": "mmHg"},
            },
            {
                "code": {"coding": [{"system": LOINC, "code": "8462-4"}]},
                "valueQuantity": {"value": 80, "unit": "mmHg"},
            },
        ],
    }


@pytest.fixture
def sample_bundle(patient, observation) -> dict[str, Any]:
    return make_bundle(patient, observation, full_urls=True)


@pytest.fixture
def code_master() -> CodeMaster:
    return CodeMaster({LOINC: ["85354-9", "8480-6", "8462-4", "8867-4"]})


@pytest.fixture
def rule_set():
    """Small rule set covering several rule types."""
    return load_rules(
        {"id": "patient-gender", "type": "Required", "targetPath": "Patient.gender"},
        {
            "id": "patient-gender-values",
            "type": "AllowedValues",
            "targetPath": "Patient.gender",
            "params": {"values": ["male", "female", "other", "unknown"]},
        },
        {
            "id": "obs-status",
            "type": "FixedValue",
            "targetPath": "Observation.status",
            "params": {"value": "final"},
        },
        {
            "id": "obs-code",
            "type": "CodeSystem",
            "targetPath": "Observation.code",
            "params": {"system": LOINC},
        },
    )


@pytest.fixture
def loinc_samples() -> list[dict[str, Any]]:
    """Ten Observation bundles sharing LOINC with ten distinct codes."""
    bundles = []
    for i, code in enumerate(LOINC_CODES):
        bundles.append(
            make_bundle(
                {
                    "resourceType": "Observation",
                    "id": f"obs{i}",
                    "status": "final",
                    "code": {"coding": [{"system": LOINC, "code": code}]},
                }
            )
        )
    return bundles


@pytest.fixture
def patient_samples() -> list[dict[str, Any]]:
    """Ten patients with a two-valued gender and an identical name text."""
    resources = []
    for i in range(10):
        resources.append(
            {
                "resourceType": "Patient",
                "id": f"pat-{i}",
                "gender": "male" if i % 2 else "female",
                "name": [{"text": "Test Patient"}],
                "identifier": [{"system": "http://example.org/mrn", "value": f"MRN{1000 + i}"}],
            }
        )
    return [make_bundle(*resources)]
