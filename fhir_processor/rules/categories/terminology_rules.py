"""Code system rules."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any

from fhir_processor.rules import error_codes
from fhir_processor.rules.models import CodeSystemParams, RuleContext, ValidationFinding


def _codings(value: Any, path: str, default_system: str | None) -> Iterator[tuple[str, str | None, Any]]:
    """Yield ``(path, system, code)`` for every coding carried by a value.

    CodeableConcepts are expanded to their ``coding`` elements; a bare code
    string is checked against the rule's configured system.
    """
    if isinstance(value, Mapping):
        if "coding" in value:
            for i, coding in enumerate(value.get("coding") or ()):
                if isinstance(coding, Mapping):
                    yield f"{path}.coding[{i}]", coding.get("system"), coding.get("code")
        elif "system" in value or "code" in value:
            yield path, value.get("system"), value.get("code")
    elif isinstance(value, str):
        yield path, default_system, value


def code_system_rule(context: RuleContext) -> list[ValidationFinding]:
    """Check (system, code) pairs against the rule and the code master."""
    hits: list[ValidationFinding] = []
    params: CodeSystemParams = context.rule.params
    code_master = context.code_master
    unknown_severity = params.unknown_system_severity or context.settings.unknown_code_system_severity

    for match in context.navigator.resolve(context.resource, context.rule.target_path):
        for path, system, code in _codings(match.value, match.path, params.system):
            evidence = {"system": system, "code": code}

            if params.system is not None and system != params.system:
                hits.append(
                    context.finding(
                        path,
                        f"Coding at {path} uses system '{system}', expected '{params.system}'",
                        error_codes.CODESYSTEM_VIOLATION,
                        evidence={**evidence, "expected": params.system, "violation": "system"},
                    )
                )
                continue

            if code is None or (isinstance(code, str) and not code.strip()):
                hits.append(
                    context.finding(
                        path,
                        f"Coding at {path} has no code",
                        error_codes.CODESYSTEM_VIOLATION,
                        evidence={**evidence, "violation": "code"},
                    )
                )
                continue

            if params.codes is not None:
                if str(code) not in params.codes:
                    hits.append(
                        context.finding(
                            path,
                            f"Code '{code}' at {path} is not permitted",
                            error_codes.CODESYSTEM_VIOLATION,
                            evidence={**evidence, "allowed": list(params.codes), "violation": "code"},
                        )
                    )
                continue

            if not code_master.has_system(system):
                if unknown_severity == "ignore":
                    continue
                hits.append(
                    context.finding(
                        path,
                        f"Code system '{system}' at {path} is not configured",
                        error_codes.UNKNOWN_CODE_SYSTEM,
                        evidence={**evidence, "violation": "system"},
                        severity=unknown_severity,
                    )
                )
                continue

            if not code_master.is_valid(system, str(code)):
                hits.append(
                    context.finding(
                        path,
                        f"Code '{code}' at {path} is not valid in system '{system}'",
                        error_codes.CODESYSTEM_VIOLATION,
                        evidence={**evidence, "violation": "code"},
                    )
                )

    return hits
