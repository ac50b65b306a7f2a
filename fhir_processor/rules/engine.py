"""Core rules evaluation engine."""
from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from ..bundle import Bundle
from ..exceptions import ValidationCancelledError
from ..navigation.navigator import PathNavigator
from ..settings import ValidationSettings
from ..terminology.code_master import CodeMaster
from . import error_codes
from .models import FindingSource, Rule, RuleContext, RuleSet, ValidationFinding
from .registry import RuleRegistry, default_registry

logger = logging.getLogger(__name__)


class RuleEngine:
    """Evaluates a rule set against a bundle.

    Each rule is evaluated in isolation: its findings are collected into a
    list owned by that rule only, and a rule that raises is replaced by a
    single diagnostic finding while the other rules carry on.
    """

    def __init__(
        self,
        navigator: PathNavigator | None = None,
        registry: RuleRegistry | None = None,
    ) -> None:
        self.navigator = navigator or PathNavigator()
        self.registry = registry or default_registry

    def evaluate(
        self,
        bundle: Bundle,
        rule_set: RuleSet,
        code_master: CodeMaster | None = None,
        settings: ValidationSettings | None = None,
        cancel_check: Callable[[], bool] | None = None,
    ) -> list[ValidationFinding]:
        """Evaluate every rule and return the concatenated findings in rule order.

        Args:
            bundle: Bundle to validate
            rule_set: Loaded rule set
            code_master: Code lookup for CodeSystem rules
            settings: Run settings; ``max_workers > 1`` evaluates rules on a thread pool
            cancel_check: Function returning True to cancel

        Raises:
            ValidationCancelledError: If cancel_check fires between rules
        """
        code_master = code_master or CodeMaster()
        settings = settings or ValidationSettings()
        rules = list(rule_set)

        def checkpoint() -> None:
            if cancel_check and cancel_check():
                raise ValidationCancelledError("Rule evaluation cancelled")

        per_rule: list[list[ValidationFinding]]
        if settings.max_workers > 1 and len(rules) > 1:
            with ThreadPoolExecutor(max_workers=settings.max_workers) as executor:
                futures = []
                try:
                    for rule in rules:
                        checkpoint()
                        futures.append(
                            executor.submit(self.evaluate_rule, rule, bundle, code_master, settings)
                        )
                    per_rule = []
                    for future in futures:
                        checkpoint()
                        per_rule.append(future.result())
                except ValidationCancelledError:
                    for future in futures:
                        future.cancel()
                    raise
        else:
            per_rule = []
            for rule in rules:
                checkpoint()
                per_rule.append(self.evaluate_rule(rule, bundle, code_master, settings))

        findings = [f for rule_findings in per_rule for f in rule_findings]
        logger.info(f"Evaluated {len(rules)} rule(s) against {len(bundle)} entries: {len(findings)} finding(s)")
        return findings

    def evaluate_rule(
        self,
        rule: Rule,
        bundle: Bundle,
        code_master: CodeMaster,
        settings: ValidationSettings,
    ) -> list[ValidationFinding]:
        """Evaluate one rule against every matching entry."""
        hits: list[ValidationFinding] = []
        try:
            evaluator = self.registry.evaluator_for(rule.type)
            for entry in bundle.resources_of_type(rule.resource_type):
                context = RuleContext(
                    rule=rule,
                    entry=entry,
                    navigator=self.navigator,
                    code_master=code_master,
                    settings=settings,
                )
                hits.extend(evaluator(context))
        except Exception as e:
            logger.exception(f"Rule {rule.id} failed to evaluate")
            return [
                ValidationFinding(
                    source=FindingSource.RULE,
                    resource_type=rule.resource_type,
                    path=rule.target_path,
                    severity="error",
                    message=f"Rule '{rule.id}' could not be evaluated: {type(e).__name__}: {e}",
                    rule_id=rule.id,
                    error_code=error_codes.RULE_EVALUATION_ERROR,
                    evidence={"exception": type(e).__name__},
                )
            ]

        if hits:
            logger.debug(f"Rule {rule.id} produced {len(hits)} finding(s)")
        return hits
