"""Validation pipeline orchestrator.

Coordinates structural validation, rule evaluation and reference
resolution for one bundle, then hands every raw finding to the unified
error model.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

from ..bundle import Bundle
from ..exceptions import ValidationCancelledError
from ..navigation.model_resolver import ModelResolver, default_model_resolver
from ..navigation.navigator import PathNavigator
from ..references.lookup import ReferenceLookup
from ..references.resolver import ReferenceResolver
from ..rules import error_codes
from ..rules.engine import RuleEngine
from ..rules.models import FindingSource, RuleSet, ValidationFinding
from ..rules.registry import RuleRegistry
from ..settings import ValidationSettings
from ..structural.validator import BasicStructuralValidator, StructuralValidator
from ..terminology.code_master import CodeMaster
from .unified_errors import UnifiedErrorModelBuilder, ValidationResult

logger = logging.getLogger(__name__)


class ValidationPipeline:
    """Pipeline for validating a bundle against a rule set.

    The pipeline itself holds only read-only collaborators. Navigators,
    engines and resolvers are built per run from that run's settings, so
    one pipeline instance can serve concurrent runs.
    """

    def __init__(
        self,
        structural_validator: StructuralValidator | None = None,
        model_resolver: ModelResolver | None = None,
        reference_lookup: ReferenceLookup | None = None,
        registry: RuleRegistry | None = None,
        error_builder: UnifiedErrorModelBuilder | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            structural_validator: Schema validator; defaults to the basic checks
            model_resolver: Choice field resolution shared by every run
            reference_lookup: External lookup used under RequireResolution
            registry: Rule evaluators; defaults to the built-in set
            error_builder: Finding unification
        """
        self.model_resolver = model_resolver or default_model_resolver
        self.structural_validator = structural_validator or BasicStructuralValidator(
            self.model_resolver
        )
        self.reference_lookup = reference_lookup
        self.registry = registry
        self.error_builder = error_builder or UnifiedErrorModelBuilder()

    def run(
        self,
        bundle: Bundle | Mapping[str, Any],
        rule_set: RuleSet,
        code_master: CodeMaster | None = None,
        settings: ValidationSettings | None = None,
        cancel_check: Callable[[], bool] | None = None,
    ) -> ValidationResult:
        """Run every validation phase and return the unified result.

        Args:
            bundle: Bundle or raw bundle document
            rule_set: Loaded rule set
            code_master: Code lookup; empty when omitted
            settings: Run settings; defaults from configuration
            cancel_check: Function returning True to cancel

        Returns:
            Complete validation result

        Raises:
            MalformedBundleError: If the bundle is not well-formed (no phase runs)
            ValidationCancelledError: If the run is cancelled or times out
        """
        bundle = Bundle.from_dict(bundle)
        code_master = code_master or CodeMaster()
        settings = settings or ValidationSettings()

        started = time.monotonic()
        deadline = started + settings.run_timeout if settings.run_timeout > 0 else None

        def should_stop() -> bool:
            if cancel_check and cancel_check():
                return True
            return deadline is not None and time.monotonic() > deadline

        def checkpoint(phase: str) -> None:
            if cancel_check and cancel_check():
                logger.info(f"Validation cancelled before {phase}")
                raise ValidationCancelledError(f"Validation cancelled before {phase}")
            if deadline is not None and time.monotonic() > deadline:
                logger.info(f"Validation timed out before {phase}")
                raise ValidationCancelledError(
                    f"Validation exceeded run timeout of {settings.run_timeout}s before {phase}"
                )

        navigator = PathNavigator(self.model_resolver, max_depth=settings.max_path_depth)
        engine = RuleEngine(navigator, self.registry)
        resolver = ReferenceResolver(
            navigator, self.reference_lookup, lookup_timeout=settings.external_lookup_timeout
        )

        logger.info(
            f"Validating bundle with {len(bundle)} entries against {len(rule_set)} rule(s)"
        )
        findings: list[ValidationFinding] = []

        checkpoint("structural validation")
        findings.extend(self._run_structural(bundle))

        checkpoint("rule evaluation")
        findings.extend(engine.evaluate(bundle, rule_set, code_master, settings, cancel_check=should_stop))

        checkpoint("reference resolution")
        findings.extend(
            resolver.resolve(bundle, settings.reference_resolution_policy, cancel_check=should_stop)
        )

        checkpoint("error unification")
        result = self.error_builder.build(findings)

        elapsed = time.monotonic() - started
        logger.info(
            f"Validation finished in {elapsed:.3f}s: passed={result.passed}, "
            f"counts={dict(result.counts)}"
        )
        return result

    def _run_structural(self, bundle: Bundle) -> list[ValidationFinding]:
        try:
            return list(self.structural_validator.validate(bundle))
        except Exception as e:
            logger.warning(f"Structural validator unavailable: {e}", exc_info=True)
            return [
                ValidationFinding(
                    source=FindingSource.STRUCTURAL,
                    resource_type="Bundle",
                    path="Bundle",
                    severity="warning",
                    message=f"Structural validation could not run: {type(e).__name__}: {e}",
                    error_code=error_codes.STRUCTURAL_VALIDATOR_UNAVAILABLE,
                )
            ]
