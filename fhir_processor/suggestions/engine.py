"""Rule suggestion from sample bundles.

Profiles sample bundles, runs the detectors over every path
classification, and returns scored suggestions. Every call is a pure
function of its inputs; the engine keeps no state between calls.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from ..bundle import Bundle
from ..navigation.model_resolver import ModelResolver, default_model_resolver
from ..navigation.navigator import PathNavigator
from ..navigation.paths import logical_path
from ..rules.models import Rule, RuleSet, RuleType
from .detectors import DEFAULT_DETECTORS, Detector
from .models import PathClassification, RuleSuggestion, SuggestionCandidate
from .profiler import BundleProfiler
from .scorer import ConfidenceScorer, ExistingRuleKey
from .suppression import apply_precedence, classify_path, suppression_reason
from .thresholds import SuggestionThresholds

logger = logging.getLogger(__name__)

# Tie-break order for suggestions with equal score and path
IMPACT_ORDER: dict[RuleType, int] = {
    RuleType.RESOURCE: 1,
    RuleType.CODE_SYSTEM: 2,
    RuleType.QUESTION_ANSWER: 3,
    RuleType.FIXED_VALUE: 4,
    RuleType.ALLOWED_VALUES: 5,
    RuleType.REGEX: 6,
    RuleType.REQUIRED: 7,
}


def _as_bundles(samples: Any) -> list[Bundle]:
    if isinstance(samples, (Bundle, Mapping)):
        samples = [samples]
    return [Bundle.from_dict(s) for s in samples]


def _existing_rule_keys(existing_rules: RuleSet | Iterable[Any] | None) -> list[ExistingRuleKey]:
    """Normalize existing rules (typed or raw dicts) to (type, logical path) pairs."""
    keys: list[ExistingRuleKey] = []
    for rule in existing_rules or ():
        if isinstance(rule, Rule):
            keys.append((rule.type, logical_path(rule.qualified_path)))
            continue
        if not isinstance(rule, Mapping):
            continue
        try:
            rule_type = RuleType(rule.get("type"))
        except ValueError:
            logger.debug(f"Ignoring existing rule with unknown type: {rule.get('type')!r}")
            continue
        path = rule.get("targetPath") or rule.get("path") or rule.get("target_path")
        if not isinstance(path, str) or not path:
            continue
        path = logical_path(path)
        resource_type = rule.get("resourceType") or rule.get("resource_type")
        if resource_type and not path.startswith(f"{resource_type}.") and path != resource_type:
            path = f"{resource_type}.{path}"
        keys.append((rule_type, path))
    return keys


def _sort_key(s: RuleSuggestion) -> tuple:
    return (
        -s.confidence_score,
        s.qualified_path,
        IMPACT_ORDER.get(s.rule_type, 99),
        json.dumps(s.parameters, sort_keys=True, default=str),
    )


class RuleSuggestionEngine:
    """Suggests rules from the shape of sample bundles.

    Args:
        navigator: navigator used to walk resources
        thresholds: detector and confidence thresholds
        model_resolver: choice field knowledge shared with the navigator
        detectors: detector functions, run in order for every classification
    """

    def __init__(
        self,
        navigator: PathNavigator | None = None,
        thresholds: SuggestionThresholds | None = None,
        model_resolver: ModelResolver | None = None,
        detectors: Sequence[Detector] = DEFAULT_DETECTORS,
    ):
        self.model_resolver = model_resolver or default_model_resolver
        self.navigator = navigator or PathNavigator(self.model_resolver)
        self.thresholds = thresholds or SuggestionThresholds()
        self.detectors = tuple(detectors)
        self.scorer = ConfidenceScorer(self.thresholds)

    def classify(self, samples: Any) -> list[PathClassification]:
        """Profile samples into classifications ordered by resource type and path."""
        profiler = BundleProfiler(self.navigator, self.model_resolver, self.thresholds)
        classifications = profiler.profile(_as_bundles(samples))
        return sorted(classifications, key=lambda c: (c.resource_type, c.path))

    def profile(
        self,
        sample_bundles: Any,
        existing_rules: RuleSet | Iterable[Any] | None = None,
        min_confidence: float | None = None,
    ) -> list[RuleSuggestion]:
        """Suggest rules for a bundle or a sequence of bundles.

        Args:
            sample_bundles: a Bundle, a bundle dict, or an iterable of either
            existing_rules: rules already in force; suggestions they cover are
                excluded and overlapping ones are penalized
            min_confidence: minimum total score, defaults to the thresholds'

        Returns:
            Suggestions ordered by descending confidence, then path

        Raises:
            MalformedBundleError: if a sample is not a well-formed bundle
        """
        floor = self.thresholds.min_confidence if min_confidence is None else min_confidence
        existing = _existing_rule_keys(existing_rules)
        covered = set(existing)

        classifications = self.classify(sample_bundles)
        candidates: list[tuple[SuggestionCandidate, str]] = []
        suppressed = 0
        for classification in classifications:
            category = classify_path(classification.path)
            for detector in self.detectors:
                for candidate in detector(classification, self.thresholds):
                    reason = suppression_reason(
                        candidate.rule_type, category, classification.observed_values
                    )
                    if reason is not None:
                        logger.debug(
                            f"Suppressed {candidate.rule_type.value} on {classification.path}: {reason}"
                        )
                        suppressed += 1
                        continue
                    if (candidate.rule_type, classification.path) in covered:
                        continue
                    candidates.append((candidate, category.value))

        kept = apply_precedence([c for c, _category in candidates])
        kept_ids = {id(c) for c in kept}

        suggestions = []
        for candidate, category in candidates:
            if id(candidate) not in kept_ids:
                continue
            breakdown = self.scorer.score(candidate, existing)
            if breakdown.total_score < floor:
                continue
            suggestions.append(
                RuleSuggestion(
                    rule_type=candidate.rule_type,
                    resource_type=candidate.resource_type,
                    target_path=candidate.target_path,
                    parameters=candidate.parameters,
                    confidence_score=breakdown.total_score,
                    confidence_level=self.thresholds.confidence_level(breakdown.total_score),
                    breakdown=breakdown,
                    rationale=candidate.rationale,
                    sample_evidence=candidate.sample_evidence,
                    sample_size=candidate.sample_size,
                    coverage=candidate.coverage,
                    category=category,
                )
            )

        suggestions.sort(key=_sort_key)
        logger.info(
            f"Suggested {len(suggestions)} rule(s) from {len(classifications)} path(s) "
            f"({suppressed} suppressed, {len(candidates) - len(kept)} superseded)"
        )
        return suggestions
