"""Tests for rule categories and the rules engine."""

from __future__ import annotations

import pytest

from conftest import LOINC, load_rules, make_bundle
from fhir_processor.bundle import Bundle
from fhir_processor.exceptions import ValidationCancelledError
from fhir_processor.rules import RuleEngine, RuleRegistry, RuleType, register_default_evaluators
from fhir_processor.rules import error_codes
from fhir_processor.rules.messages import resolve_message
from fhir_processor.settings import ValidationSettings
from fhir_processor.terminology import CodeMaster


def evaluate(resources, *rules, code_master=None, settings=None):
    bundle = Bundle.from_dict(make_bundle(*resources))
    return RuleEngine().evaluate(bundle, load_rules(*rules), code_master, settings)


# ============================================================================
# REQUIRED / ARRAY LENGTH
# ============================================================================
class TestRequiredRule:
    """Tests for Required rules."""

    RULE = {"id": "gender-required", "type": "Required", "targetPath": "Patient.gender"}

    def test_missing_field_single_finding(self):
        """Test that a missing gender yields exactly one finding at Patient.gender."""
        findings = evaluate([{"resourceType": "Patient", "id": "p1"}], self.RULE)
        assert len(findings) == 1
        finding = findings[0]
        assert finding.path == "Patient.gender"
        assert finding.rule_id == "gender-required"
        assert finding.error_code == error_codes.FIELD_REQUIRED
        assert finding.severity == "error"
        assert finding.message.startswith("entry[0] Patient/p1:")

    def test_present_field(self, patient):
        """Test that a present field passes."""
        assert evaluate([patient], self.RULE) == []

    def test_blank_string_counts_as_missing(self):
        """Test that a whitespace-only value does not satisfy Required."""
        findings = evaluate([{"resourceType": "Patient", "gender": "  "}], self.RULE)
        assert len(findings) == 1

    def test_custom_message(self):
        """Test that the rule message replaces the default text."""
        rule = {**self.RULE, "message": "Gender is mandatory"}
        findings = evaluate([{"resourceType": "Patient", "id": "p1"}], rule)
        assert findings[0].message == "entry[0] Patient/p1: Gender is mandatory"

    def test_only_matching_resource_type(self, observation):
        """Test that rules apply only to their resource type."""
        assert evaluate([observation], self.RULE) == []

    def test_one_finding_per_resource(self):
        """Test that each failing resource gets its own finding."""
        findings = evaluate(
            [{"resourceType": "Patient", "id": "a"}, {"resourceType": "Patient", "id": "b"}],
            self.RULE,
        )
        assert [f.entry_index for f in findings] == [0, 1]


class TestArrayLengthRule:
    """Tests for ArrayLength rules."""

    RULE = {
        "id": "name-length",
        "type": "ArrayLength",
        "targetPath": "Patient.name",
        "params": {"min": 1, "nonEmpty": True},
    }

    def test_empty_array_fails(self):
        """Test that an empty array violates min=1 nonEmpty."""
        findings = evaluate([{"resourceType": "Patient", "name": []}], self.RULE)
        assert len(findings) == 1
        assert findings[0].error_code == error_codes.ARRAY_LENGTH_VIOLATION
        assert findings[0].path == "Patient.name"

    def test_one_element_passes(self):
        """Test that a single element satisfies min=1 nonEmpty."""
        assert evaluate([{"resourceType": "Patient", "name": [{"family": "Tan"}]}], self.RULE) == []

    def test_absent_array_fails(self):
        """Test that a missing array counts as zero elements."""
        assert len(evaluate([{"resourceType": "Patient"}], self.RULE)) == 1

    def test_max(self, patient):
        """Test the upper bound."""
        rule = {"id": "max", "type": "ArrayLength", "targetPath": "Patient.name", "params": {"max": 1}}
        findings = evaluate([patient], rule)
        assert len(findings) == 1
        assert findings[0].evidence["actual"] == 2


# ============================================================================
# VALUE RULES
# ============================================================================
class TestValueRules:
    """Tests for Regex, AllowedValues and FixedValue rules."""

    def test_regex_reports_concrete_path(self):
        """Test that each non-matching value is reported at its own path."""
        patient = {
            "resourceType": "Patient",
            "identifier": [{"value": "S1234567D"}, {"value": "12345"}],
        }
        rule = {
            "id": "nric",
            "type": "Regex",
            "targetPath": "Patient.identifier.value",
            "params": {"pattern": "^[STFG]\\d{7}[A-Z]$"},
        }
        findings = evaluate([patient], rule)
        assert len(findings) == 1
        assert findings[0].path == "Patient.identifier[1].value"
        assert findings[0].error_code == error_codes.PATTERN_MISMATCH
        assert findings[0].evidence["actual"] == "12345"

    def test_allowed_values(self):
        """Test that values outside the set are reported."""
        rule = {
            "id": "gender",
            "type": "AllowedValues",
            "targetPath": "Patient.gender",
            "params": {"values": ["male", "female"]},
        }
        findings = evaluate([{"resourceType": "Patient", "gender": "unknown"}], rule)
        assert [f.error_code for f in findings] == [error_codes.VALUE_NOT_ALLOWED]

    def test_allowed_values_case_insensitive(self):
        """Test the caseSensitive switch."""
        rule = {
            "id": "gender",
            "type": "AllowedValues",
            "targetPath": "Patient.gender",
            "params": {"values": ["male", "female"], "caseSensitive": False},
        }
        assert evaluate([{"resourceType": "Patient", "gender": "MALE"}], rule) == []

    def test_allowed_values_boolean(self):
        """Test that booleans compare by their JSON spelling."""
        rule = {
            "id": "active",
            "type": "AllowedValues",
            "targetPath": "Patient.active",
            "params": {"values": [True]},
        }
        assert evaluate([{"resourceType": "Patient", "active": True}], rule) == []
        assert len(evaluate([{"resourceType": "Patient", "active": False}], rule)) == 1

    def test_fixed_value(self, observation):
        """Test that a different value is reported."""
        rule = {
            "id": "status",
            "type": "FixedValue",
            "targetPath": "Observation.status",
            "params": {"value": "final"},
        }
        assert evaluate([observation], rule) == []
        findings = evaluate([{**observation, "status": "preliminary"}], rule)
        assert findings[0].error_code == error_codes.FIXED_VALUE_MISMATCH
        assert findings[0].evidence["expected"] == "final"

    def test_absent_value_not_reported(self):
        """Test that value rules ignore absent fields."""
        rule = {
            "id": "status",
            "type": "FixedValue",
            "targetPath": "Observation.status",
            "params": {"value": "final"},
        }
        assert evaluate([{"resourceType": "Observation"}], rule) == []


# ============================================================================
# CODE SYSTEM
# ============================================================================
class TestCodeSystemRule:
    """Tests for CodeSystem rules."""

    def _observation(self, system, code):
        return {
            "resourceType": "Observation",
            "id": "o1",
            "code": {"coding": [{"system": system, "code": code}]},
        }

    def test_valid_code(self, code_master):
        """Test that a known code passes."""
        rule = {"id": "cs", "type": "CodeSystem", "targetPath": "Observation.code", "params": {"system": LOINC}}
        assert evaluate([self._observation(LOINC, "8480-6")], rule, code_master=code_master) == []

    def test_invalid_code(self, code_master):
        """Test that an unknown code in a known system is a violation."""
        rule = {"id": "cs", "type": "CodeSystem", "targetPath": "Observation.code", "params": {"system": LOINC}}
        findings = evaluate([self._observation(LOINC, "9999-9")], rule, code_master=code_master)
        assert len(findings) == 1
        assert findings[0].error_code == error_codes.CODESYSTEM_VIOLATION
        assert findings[0].path == "Observation.code.coding[0]"

    def test_wrong_system(self, code_master):
        """Test that a coding from another system is a violation."""
        rule = {"id": "cs", "type": "CodeSystem", "targetPath": "Observation.code", "params": {"system": LOINC}}
        findings = evaluate(
            [self._observation("http://snomed.info/sct", "271649006")], rule, code_master=code_master
        )
        assert findings[0].evidence["violation"] == "system"

    def test_unknown_system_uses_setting_severity(self, code_master):
        """Test that an unconfigured system gets the configured severity."""
        rule = {"id": "cs", "type": "CodeSystem", "targetPath": "Observation.code"}
        resource = self._observation("http://example.org/local", "x")

        findings = evaluate([resource], rule, code_master=code_master)
        assert findings[0].error_code == error_codes.UNKNOWN_CODE_SYSTEM
        assert findings[0].severity == "warning"

        ignore = ValidationSettings(unknownCodeSystemSeverity="ignore")
        assert evaluate([resource], rule, code_master=code_master, settings=ignore) == []

    def test_explicit_codes(self):
        """Test the codes parameter without a code master."""
        rule = {
            "id": "status",
            "type": "CodeSystem",
            "targetPath": "Observation.code.coding",
            "params": {"system": LOINC, "codes": ["8480-6"]},
        }
        assert evaluate([self._observation(LOINC, "8480-6")], rule, code_master=CodeMaster()) == []
        assert len(evaluate([self._observation(LOINC, "8462-4")], rule)) == 1


# ============================================================================
# QUESTION ANSWER / RESOURCE
# ============================================================================
class TestQuestionAnswerRule:
    """Tests for QuestionAnswer rules."""

    RULE = {
        "id": "systolic",
        "type": "QuestionAnswer",
        "targetPath": "Observation.component",
        "params": {
            "iterationPath": "component",
            "questionPath": "code.coding.code",
            "questionValues": ["8480-6"],
            "answerPath": "value",
            "answerRequired": True,
            "constraint": {"type": "Regex", "pattern": "^\\d+$"},
        },
    }

    def test_valid_answer(self, observation):
        """Test that a matching answer passes."""
        assert evaluate([observation], self.RULE) == []

    def test_missing_answer(self, observation):
        """Test that a qualifying item without answer is reported."""
        observation["component"][0].pop("valueQuantity")
        findings = evaluate([observation], self.RULE)
        assert len(findings) == 1
        assert findings[0].error_code == error_codes.ANSWER_REQUIRED
        assert findings[0].path == "Observation.component[0].value"

    def test_invalid_answer(self, observation):
        """Test that an answer failing the constraint is reported."""
        observation["component"][0]["valueQuantity"]["value"] = 12.5
        findings = evaluate([observation], self.RULE)
        assert len(findings) == 1
        assert findings[0].error_code == error_codes.INVALID_ANSWER_VALUE
        assert findings[0].path == "Observation.component[0].valueQuantity"

    def test_other_questions_ignored(self, observation):
        """Test that items with other questions are not checked."""
        observation["component"][1].pop("valueQuantity")
        assert evaluate([observation], self.RULE) == []


class TestResourceRule:
    """Tests for Resource rules."""

    RULE = {
        "id": "active-needs-telecom",
        "type": "Resource",
        "resourceType": "Patient",
        "params": {
            "when": [{"path": "active", "operator": "equals", "value": True}],
            "require": [{"path": "telecom", "operator": "exists"}],
        },
    }

    def test_condition_met(self, patient):
        """Test that a satisfied requirement passes."""
        assert evaluate([patient], self.RULE) == []

    def test_requirement_fails(self):
        """Test that a failed requirement is reported at its path."""
        findings = evaluate([{"resourceType": "Patient", "active": True}], self.RULE)
        assert len(findings) == 1
        assert findings[0].path == "Patient.telecom"
        assert findings[0].error_code == error_codes.RESOURCE_CONDITION_FAILED

    def test_when_not_met(self):
        """Test that the rule is skipped when its precondition is false."""
        assert evaluate([{"resourceType": "Patient", "active": False}], self.RULE) == []


# ============================================================================
# ENGINE
# ============================================================================
class TestRuleEngine:
    """Tests for RuleEngine orchestration."""

    def test_rule_fault_isolated(self, patient):
        """Test that a failing rule becomes one diagnostic and others still run."""
        def broken(context):
            if context.entry.index == 1:
                raise KeyError("boom")
            return [context.finding("Patient.x", "partial", "X")]

        registry = RuleRegistry()
        register_default_evaluators(registry)
        registry.register(RuleType.FIXED_VALUE, broken)

        bundle = Bundle.from_dict(make_bundle(patient, {"resourceType": "Patient", "id": "p2"}))
        rules = load_rules(
            {"id": "broken", "type": "FixedValue", "targetPath": "Patient.gender", "params": {"value": "x"}},
            {"id": "gender", "type": "Required", "targetPath": "Patient.gender"},
        )
        findings = RuleEngine(registry=registry).evaluate(bundle, rules)

        diagnostics = [f for f in findings if f.rule_id == "broken"]
        assert len(diagnostics) == 1
        assert diagnostics[0].error_code == error_codes.RULE_EVALUATION_ERROR
        assert "KeyError" in diagnostics[0].message
        assert [f.rule_id for f in findings if f.rule_id == "gender"] == ["gender"]

    def test_parallel_keeps_rule_order(self, patient):
        """Test that a thread pool does not change finding order."""
        rules = load_rules(
            *[{"id": f"r{i}", "type": "Required", "targetPath": f"Patient.field{i}"} for i in range(8)]
        )
        bundle = Bundle.from_dict(make_bundle(patient))
        serial = RuleEngine().evaluate(bundle, rules)
        parallel = RuleEngine().evaluate(bundle, rules, settings=ValidationSettings(maxWorkers=4))
        assert [f.rule_id for f in parallel] == [f.rule_id for f in serial]

    def test_cancellation(self, patient, rule_set):
        """Test that a cancel check stops evaluation with an error."""
        bundle = Bundle.from_dict(make_bundle(patient))
        with pytest.raises(ValidationCancelledError):
            RuleEngine().evaluate(bundle, rule_set, cancel_check=lambda: True)


class TestMessageTemplates:
    """Tests for token substitution in rule messages."""

    def test_full_path_token(self):
        """Test that {fullPath} is replaced in a Required rule message."""
        rule = {**TestRequiredRule.RULE, "message": "{fullPath} is required"}
        findings = evaluate([{"resourceType": "Patient", "id": "p1"}], rule)
        assert findings[0].message == "entry[0] Patient/p1: Patient.gender is required"

    def test_params_actual_and_double_braces(self):
        """Test parameter and runtime tokens in both brace forms."""
        rule = {
            "id": "gender",
            "type": "AllowedValues",
            "targetPath": "Patient.gender",
            "params": {"values": ["male", "female"]},
            "message": "{{actual}} at {path} is not one of {allowed} ({{count}})",
        }
        findings = evaluate([{"resourceType": "Patient", "gender": "other"}], rule)
        assert findings[0].message == (
            'entry[0] Patient: other at gender is not one of "male", "female" (2)'
        )

    def test_unresolved_tokens_removed(self):
        """Test that unknown tokens are stripped from the text."""
        rule = {
            "id": "status",
            "type": "FixedValue",
            "targetPath": "Observation.status",
            "params": {"value": "final"},
            "message": "Expected {expected}{unknown}, got {actual} ({severity} {ruleType})",
        }
        findings = evaluate([{"resourceType": "Observation", "status": "draft"}], rule)
        assert findings[0].message == (
            "entry[0] Observation: Expected final, got draft (error FixedValue)"
        )

    def test_rule_tokens(self):
        """Test tokens for code system and array length rules."""
        rules = load_rules(
            {"id": "loinc", "type": "CodeSystem", "targetPath": "Observation.code.coding",
             "params": {"system": LOINC}},
            {"id": "names", "type": "ArrayLength", "targetPath": "Patient.name",
             "params": {"min": 1, "max": 3}, "severity": "warning"},
        )
        assert resolve_message("Use {system} codes", rules.get("loinc")) == "Use loinc.org codes"
        assert resolve_message(
            "{resource}.{path} needs {min}..{max} ({severity})", rules.get("names")
        ) == "Patient.name needs 1..3 (warning)"

    def test_template_resolving_to_nothing(self):
        """Test that a message made only of unknown tokens keeps the default text."""
        rule = {**TestRequiredRule.RULE, "message": "{nothing}"}
        findings = evaluate([{"resourceType": "Patient", "id": "p1"}], rule)
        assert findings[0].message != "entry[0] Patient/p1: "
        assert findings[0].message.startswith("entry[0] Patient/p1: ")
