"""Tests for the basic structural checks."""

from __future__ import annotations

from conftest import make_bundle
from fhir_processor.bundle import Bundle
from fhir_processor.rules import error_codes
from fhir_processor.structural import BasicStructuralValidator, StructuralValidator


def _validate(*resources):
    return BasicStructuralValidator().validate(Bundle.from_dict(make_bundle(*resources)))


class TestBasicStructuralValidator:
    """Tests for BasicStructuralValidator."""

    def test_clean_bundle(self, sample_bundle):
        """Test that a well-formed bundle has no structural findings."""
        assert BasicStructuralValidator().validate(Bundle.from_dict(sample_bundle)) == []

    def test_satisfies_protocol(self):
        """Test that the basic validator is a StructuralValidator."""
        assert isinstance(BasicStructuralValidator(), StructuralValidator)

    def test_invalid_id(self):
        """Test that an id with spaces and punctuation is rejected."""
        findings = _validate({"resourceType": "Patient", "id": "bad id!"})
        assert [f.error_code for f in findings] == [error_codes.ID_INVALID]
        assert findings[0].path == "Patient.id"
        assert findings[0].severity == "error"

    def test_id_too_long(self):
        """Test that ids longer than 64 characters are rejected."""
        findings = _validate({"resourceType": "Patient", "id": "a" * 65})
        assert [f.error_code for f in findings] == [error_codes.ID_INVALID]

    def test_two_choice_values(self):
        """Test that two concrete values for value[x] are reported."""
        findings = _validate(
            {
                "resourceType": "Observation",
                "id": "o1",
                "valueQuantity": {"value": 1},
                "valueString": "one",
            }
        )
        assert [f.error_code for f in findings] == [error_codes.CHOICE_TYPE_INVALID]
        assert findings[0].path == "Observation.value[x]"

    def test_nested_choice_values(self):
        """Test that choice exclusivity is checked inside nested elements."""
        findings = _validate(
            {
                "resourceType": "Observation",
                "component": [{"valueString": "a", "valueBoolean": True}],
            }
        )
        assert findings[0].path == "Observation.component[0].value[x]"

    def test_reference_with_whitespace(self):
        """Test that a reference containing whitespace is rejected."""
        findings = _validate(
            {"resourceType": "Observation", "subject": {"reference": "Patient/ p1"}}
        )
        assert [f.error_code for f in findings] == [error_codes.REFERENCE_INVALID]
        assert findings[0].path == "Observation.subject.reference"

    def test_empty_reference(self):
        """Test that an empty reference string is rejected."""
        findings = _validate({"resourceType": "Observation", "subject": {"reference": ""}})
        assert [f.error_code for f in findings] == [error_codes.REFERENCE_INVALID]
