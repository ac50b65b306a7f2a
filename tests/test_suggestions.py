"""Tests for rule suggestion: profiling, detection, scoring and ranking."""

from __future__ import annotations

import pytest

from conftest import LOINC, load_rules, make_bundle
from fhir_processor.bundle import Bundle
from fhir_processor.rules import RuleType
from fhir_processor.suggestions import (
    BundleProfiler,
    ConfidenceLevel,
    ConfidenceScorer,
    PathCategory,
    PrimitiveType,
    RuleSuggestionEngine,
    SuggestionCandidate,
    SuggestionThresholds,
    classify_path,
)
from fhir_processor.suggestions.patterns import (
    first_known_pattern,
    format_signature,
    pattern_from_signature,
)
from fhir_processor.suggestions.profiler import detect_primitive_type
from fhir_processor.suggestions.suppression import apply_precedence, suppression_reason


def _candidate(rule_type=RuleType.FIXED_VALUE, path="gender", **overrides):
    values = {
        "rule_type": rule_type,
        "resource_type": "Patient",
        "target_path": path,
        "parameters": {},
        "rationale": "",
        "sample_evidence": (),
        "sample_size": 10,
        "coverage": 1.0,
    }
    values.update(overrides)
    return SuggestionCandidate(**values)


def _find(suggestions, rule_type, target_path):
    return [s for s in suggestions if s.rule_type == rule_type and s.target_path == target_path]


class TestPrimitiveDetection:
    """Tests for primitive type detection."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (True, PrimitiveType.BOOLEAN),
            (3.5, PrimitiveType.NUMBER),
            ("2024-01-15", PrimitiveType.DATE),
            ("AMB", PrimitiveType.CODE),
            ("in-progress", PrimitiveType.CODE),
            ("Blood pressure", PrimitiveType.STRING),
            ({"a": 1}, PrimitiveType.OBJECT),
            (None, PrimitiveType.UNKNOWN),
        ],
    )
    def test_detect(self, value, expected):
        """Test classification of representative values."""
        assert detect_primitive_type(value) == expected


class TestPatterns:
    """Tests for format signatures and known patterns."""

    def test_format_signature(self):
        """Test character class reduction."""
        assert format_signature("AB-12/c d:") == "AADNNLaSaC"
        assert format_signature("2024-01") == "NNNNDNN"

    def test_pattern_from_signature(self):
        """Test that runs collapse into counted character classes."""
        assert pattern_from_signature("NNNNDNN") == r"^\d{4}-\d{2}$"
        assert pattern_from_signature("AN.N") == r"^[A-Z]\d\.\d$"

    def test_first_known_pattern(self):
        """Test that the first pattern reaching the threshold wins."""
        pattern, matched, total = first_known_pattern(
            ["+6591234567", "+6598765432", "+6581112222", "unknown"], 0.7
        )
        assert pattern.name == "Phone (E.164)"
        assert (matched, total) == (3, 4)
        assert first_known_pattern(["x", "y"], 0.8) is None
        assert first_known_pattern([], 0.8) is None


class TestSuppression:
    """Tests for path categories, suppression and precedence."""

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("Patient.id", PathCategory.IDENTIFIER),
            ("Patient.identifier.value", PathCategory.IDENTIFIER),
            ("Observation.subject.reference", PathCategory.REFERENCE),
            ("Patient.name.text", PathCategory.FREE_TEXT),
            ("Observation.code.coding.display", PathCategory.FREE_TEXT),
            ("Patient.address.line", PathCategory.ADDRESS_FREE_TEXT),
            ("Observation.code.coding", PathCategory.TERMINOLOGY),
            ("Observation.status", PathCategory.STRUCTURAL_ENUM),
            ("Patient.telecom.value", PathCategory.CONTACT),
            ("Patient.extension.url", PathCategory.EXTENSION_METADATA),
            ("Patient.gender", PathCategory.OTHER),
        ],
    )
    def test_classify_path(self, path, expected):
        """Test path categorization."""
        assert classify_path(path) == expected

    def test_free_text_suppresses_everything(self):
        """Test that free text fields get no suggestion of any type."""
        for rule_type in RuleType:
            assert suppression_reason(rule_type, PathCategory.FREE_TEXT, ()) == "free text field"

    def test_identifier_only_suppresses_value_rules(self):
        """Test that identifiers may still be required but never enumerated."""
        assert suppression_reason(RuleType.FIXED_VALUE, PathCategory.IDENTIFIER, ()) is not None
        assert suppression_reason(RuleType.REQUIRED, PathCategory.IDENTIFIER, ()) is None

    def test_uuid_values(self):
        """Test that urn:uuid values suppress value rules."""
        reason = suppression_reason(RuleType.ALLOWED_VALUES, PathCategory.OTHER, ["urn:uuid:1", "x"])
        assert reason == "urn:uuid values"

    def test_precedence(self):
        """Test that Regex beats AllowedValues beats FixedValue on one path."""
        candidates = [
            _candidate(RuleType.FIXED_VALUE),
            _candidate(RuleType.REQUIRED),
            _candidate(RuleType.ALLOWED_VALUES),
            _candidate(RuleType.REGEX),
            _candidate(RuleType.FIXED_VALUE, path="active"),
        ]
        kept = apply_precedence(candidates)
        assert [(c.rule_type, c.target_path) for c in kept] == [
            (RuleType.REQUIRED, "gender"),
            (RuleType.REGEX, "gender"),
            (RuleType.FIXED_VALUE, "active"),
        ]


class TestConfidenceScorer:
    """Tests for ConfidenceScorer."""

    def test_code_system_breakdown(self):
        """Test the breakdown for a fully consistent code system."""
        breakdown = ConfidenceScorer().score(
            _candidate(RuleType.CODE_SYSTEM, path="code.coding", parameters={"system": LOINC})
        )
        assert breakdown.coverage_score == 30.0
        assert breakdown.consistency_score == 20.0
        assert breakdown.sample_size_score == 15.0
        assert breakdown.risk_weight == 15.0
        assert breakdown.conflict_penalty == 0.0
        assert breakdown.total_score == 80.0

    def test_allowed_values_consistency(self):
        """Test that larger value sets earn less consistency."""
        small = ConfidenceScorer().score(
            _candidate(RuleType.ALLOWED_VALUES, parameters={"values": ["a", "b"]})
        )
        large = ConfidenceScorer().score(
            _candidate(RuleType.ALLOWED_VALUES, parameters={"values": ["a", "b", "c", "d"]})
        )
        assert small.consistency_score == 20.0
        assert large.consistency_score == 18.0

    @pytest.mark.parametrize("size,expected", [(1, 5.0), (5, 10.0), (10, 15.0), (20, 20.0), (500, 20.0)])
    def test_sample_size_steps(self, size, expected):
        """Test the sample size step function."""
        assert ConfidenceScorer().score(_candidate(sample_size=size)).sample_size_score == expected

    def test_conflicts(self):
        """Test penalties for same-type, other-type and related existing rules."""
        scorer = ConfidenceScorer()
        candidate = _candidate(RuleType.REQUIRED, path="name.family")
        assert scorer.score(candidate, [(RuleType.REQUIRED, "Patient.name.family")]).conflict_penalty == 30.0
        assert scorer.score(candidate, [(RuleType.REGEX, "Patient.name.family")]).conflict_penalty == 15.0
        assert scorer.score(candidate, [(RuleType.REGEX, "Patient.name")]).conflict_penalty == 5.0
        assert scorer.score(candidate, [(RuleType.REGEX, "Patient.named")]).conflict_penalty == 0.0

    def test_inconsistency_penalty(self):
        """Test that coverage well below 1 and outliers are penalized."""
        breakdown = ConfidenceScorer().score(
            _candidate(RuleType.REGEX, parameters={"pattern": "x"}, coverage=0.5, outliers=5)
        )
        assert breakdown.conflict_penalty == 20.0

    def test_clamped_at_zero(self):
        """Test that a heavily penalized candidate never goes below zero."""
        breakdown = ConfidenceScorer().score(
            _candidate(coverage=0.0, outliers=5, sample_size=1),
            [(RuleType.FIXED_VALUE, "Patient.gender")],
        )
        assert breakdown.conflict_penalty == 30.0
        assert breakdown.total_score == 0.0

    def test_confidence_levels(self):
        """Test the level boundaries."""
        thresholds = SuggestionThresholds()
        assert thresholds.confidence_level(80.0) == ConfidenceLevel.HIGH
        assert thresholds.confidence_level(79.99) == ConfidenceLevel.MEDIUM
        assert thresholds.confidence_level(60.0) == ConfidenceLevel.MEDIUM
        assert thresholds.confidence_level(59.99) == ConfidenceLevel.LOW


class TestBundleProfiler:
    """Tests for BundleProfiler."""

    def _by_path(self, bundles, thresholds=None):
        classifications = BundleProfiler(thresholds=thresholds).profile(
            [Bundle.from_dict(b) for b in bundles]
        )
        return {c.path: c for c in classifications}

    def test_gender_profile(self, patient_samples):
        """Test counts and types for a simple scalar path."""
        gender = self._by_path(patient_samples)["Patient.gender"]
        assert gender.primitive_type == PrimitiveType.STRING
        assert gender.distinct_value_count == 2
        assert gender.resource_count == 10
        assert gender.eligible_resources == 10
        assert gender.presence == 1.0
        assert gender.is_array is False
        assert gender.target_path == "gender"

    def test_array_and_format(self, patient_samples):
        """Test array detection and format signatures."""
        profiles = self._by_path(patient_samples)
        assert profiles["Patient.name.text"].is_array is True
        ident = profiles["Patient.identifier.value"]
        assert ident.has_consistent_format is True
        assert ident.format_signatures == (("AAANNNN", 10),)

    def test_coding_profile(self, loinc_samples):
        """Test that codings are profiled by system and code."""
        coding = self._by_path(loinc_samples)["Observation.code.coding"]
        assert coding.has_system_and_code is True
        assert coding.coding_systems == ((LOINC, 10),)
        assert coding.distinct_codes == 10
        assert coding.observed_values[0] == f"{LOINC}|8867-4"

    def test_choice_field(self, observation):
        """Test that paths through a choice key are flagged."""
        profiles = self._by_path([make_bundle(observation)])
        assert profiles["Observation.component.valueQuantity.value"].has_choice_field is True
        assert profiles["Observation.status"].has_choice_field is False

    def test_blank_strings_ignored(self):
        """Test that whitespace-only values are not observations."""
        bundle = make_bundle({"resourceType": "Patient", "gender": "  "})
        assert "Patient.gender" not in self._by_path([bundle])

    def test_retention_caps(self, patient_samples):
        """Test that retained samples are capped while counts are not."""
        thresholds = SuggestionThresholds(max_sample_values=3, max_distinct_values=4)
        ident = self._by_path(patient_samples, thresholds)["Patient.identifier.value"]
        assert len(ident.observed_values) == 3
        assert ident.occurrence_count == 10
        assert ident.distinct_value_count == 4

    def test_presence_per_resource(self, patient, patient_samples):
        """Test that presence counts resources, not occurrences."""
        bundles = patient_samples + [make_bundle(patient)]
        given = self._by_path(bundles)
        assert given["Patient.name.given"].occurrence_count == 3
        assert given["Patient.name.given"].resource_count == 1
        assert given["Patient.gender"].eligible_resources == 11

    def test_mixed_shapes_at_one_path(self):
        """Test that a path holding both a plain code and a coding is profiled in either order."""
        plain = {"resourceType": "Observation", "id": "a", "code": "abc"}
        coded = {"resourceType": "Observation", "id": "b", "code": {"system": LOINC, "code": "1-8"}}

        plain_first = self._by_path([make_bundle(plain, coded)])["Observation.code"]
        assert plain_first.has_system_and_code is False
        assert plain_first.observed_values == ("abc", f"{LOINC}|1-8")
        assert plain_first.occurrence_count == 2

        coded_first = self._by_path([make_bundle(coded, plain)])["Observation.code"]
        assert coded_first.has_system_and_code is True
        assert coded_first.coding_systems == ((LOINC, 1),)
        assert coded_first.uncoded_count == 1
        assert coded_first.observed_values == (f"{LOINC}|1-8", "abc")

    def test_mixed_shapes_through_engine(self):
        """Test that suggestion over mixed shapes completes without a code system rule."""
        plain = {"resourceType": "Observation", "code": "abc"}
        coded = {"resourceType": "Observation", "code": {"system": LOINC, "code": "1-8"}}
        for samples in ([make_bundle(plain, coded)], [make_bundle(coded, plain)]):
            suggestions = RuleSuggestionEngine().profile(samples, min_confidence=0)
            assert _find(suggestions, RuleType.CODE_SYSTEM, "code") == []

    def test_coding_systems_capped(self):
        """Test that distinct code systems are retained up to the distinct cap."""
        bundle = make_bundle(
            *(
                {"resourceType": "Observation", "code": {"system": f"http://s{i}.org", "code": "x"}}
                for i in range(5)
            )
        )
        thresholds = SuggestionThresholds(max_distinct_values=2)
        coding = self._by_path([bundle], thresholds)["Observation.code"]
        assert coding.coding_systems == (("http://s0.org", 1), ("http://s1.org", 1))
        assert coding.occurrence_count == 5


class TestRuleSuggestionEngine:
    """Tests for RuleSuggestionEngine.profile."""

    def test_loinc_code_system_is_high(self, loinc_samples):
        """Test that ten LOINC observations yield a High CodeSystem suggestion."""
        suggestions = RuleSuggestionEngine().profile(loinc_samples)
        [code_system] = _find(suggestions, RuleType.CODE_SYSTEM, "code.coding")
        assert code_system.parameters == {"system": LOINC}
        assert code_system.coverage_percent == 100.0
        assert code_system.sample_size == 10
        assert code_system.confidence_score == 80.0
        assert code_system.confidence_level == ConfidenceLevel.HIGH
        assert code_system.category == "terminology"

    def test_allowed_values_for_gender(self, patient_samples):
        """Test that a two-valued field becomes AllowedValues in first-seen order."""
        suggestions = RuleSuggestionEngine().profile(patient_samples)
        [allowed] = _find(suggestions, RuleType.ALLOWED_VALUES, "gender")
        assert allowed.parameters == {"values": ["female", "male"]}
        assert allowed.confidence_score == 75.0

    def test_free_text_never_suggested(self, patient_samples):
        """Test that an identical free text value is not turned into a rule."""
        suggestions = RuleSuggestionEngine().profile(patient_samples)
        assert not [s for s in suggestions if s.target_path == "name.text"]

    def test_identifier_not_enumerated(self, patient_samples):
        """Test that identifier values only get Required or Regex suggestions."""
        suggestions = RuleSuggestionEngine().profile(patient_samples)
        types = {s.rule_type for s in suggestions if s.target_path == "identifier.value"}
        assert types <= {RuleType.REQUIRED, RuleType.REGEX}

    def test_existing_rules_excluded_and_penalized(self, patient_samples):
        """Test that covered suggestions disappear and overlapping ones lose points."""
        existing = [
            {"type": "AllowedValues", "targetPath": "Patient.gender"},
            {"type": "NotARuleType", "targetPath": "Patient.gender"},
        ]
        suggestions = RuleSuggestionEngine().profile(patient_samples, existing_rules=existing)
        assert not _find(suggestions, RuleType.ALLOWED_VALUES, "gender")
        [required] = _find(suggestions, RuleType.REQUIRED, "gender")
        assert required.breakdown.conflict_penalty == 15.0
        assert required.confidence_score == 62.0

    def test_existing_rule_set(self, patient_samples):
        """Test that a loaded rule set is accepted as existing rules."""
        rule_set = load_rules(
            {"id": "g", "type": "Required", "resourceType": "Patient", "path": "gender"}
        )
        suggestions = RuleSuggestionEngine().profile(patient_samples, existing_rules=rule_set)
        assert not _find(suggestions, RuleType.REQUIRED, "gender")

    def test_min_confidence(self, loinc_samples):
        """Test the confidence floor."""
        engine = RuleSuggestionEngine()
        assert engine.profile(loinc_samples, min_confidence=101) == []
        high_only = engine.profile(loinc_samples, min_confidence=80)
        assert high_only
        assert all(s.confidence_score >= 80 for s in high_only)

    def test_ordering_and_idempotence(self, patient_samples, loinc_samples):
        """Test descending scores and identical output on repeat calls."""
        engine = RuleSuggestionEngine()
        samples = patient_samples + loinc_samples
        first = engine.profile(samples)
        second = engine.profile(samples)
        assert first == second
        scores = [s.confidence_score for s in first]
        assert scores == sorted(scores, reverse=True)
        assert all(0.0 <= s <= 100.0 for s in scores)

    def test_single_bundle_input(self, loinc_samples):
        """Test that a single bundle dict is accepted."""
        assert RuleSuggestionEngine().profile(loinc_samples[0], min_confidence=0)

    def test_empty_samples(self):
        """Test that no samples means no suggestions."""
        assert RuleSuggestionEngine().profile([]) == []

    def test_suggestions_load_as_rules(self, patient_samples, loinc_samples):
        """Test that every suggestion converts to a loadable rule."""
        suggestions = RuleSuggestionEngine().profile(patient_samples + loinc_samples)
        rule_set = load_rules(*[s.to_rule_definition() for s in suggestions])
        assert len(rule_set) == len(suggestions)
        assert rule_set.get("suggested-patient-gender-allowedvalues") is not None

    def test_to_dict(self, loinc_samples):
        """Test the serialized suggestion shape."""
        suggestions = RuleSuggestionEngine().profile(loinc_samples)
        [code_system] = _find(suggestions, RuleType.CODE_SYSTEM, "code.coding")
        data = code_system.to_dict()
        assert data["ruleType"] == "CodeSystem"
        assert data["confidenceLevel"] == "High"
        assert data["coverage"] == 100.0
        assert data["breakdown"]["totalScore"] == 80.0
