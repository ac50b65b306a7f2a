"""Message template tokens for rule findings.

A rule's ``message`` may reference tokens in single or double braces,
e.g. ``"{fullPath} must be one of {allowed}"`` or ``"{{actual}} is invalid"``.
Tokens that cannot be resolved are removed from the text.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from .models import Rule

_LEFTOVER_TOKEN = re.compile(r"\{\{?[^}]+\}\}?")


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _quoted_list(values: Any) -> str:
    return ", ".join(f'"{_text(v)}"' for v in values)


def rule_tokens(rule: Rule) -> dict[str, str]:
    """Tokens derived from the rule itself and its typed parameters."""
    qualified = rule.qualified_path
    prefix = f"{rule.resource_type}."
    tokens = {
        "resource": rule.resource_type,
        "path": qualified[len(prefix):] if qualified.startswith(prefix) else "",
        "fullPath": qualified,
        "ruleType": rule.type.value,
        "severity": rule.severity.value,
    }

    params = rule.params.model_dump()
    if "value" in params:
        tokens["expected"] = _text(params["value"])
    for key in ("values", "codes"):
        if params.get(key):
            tokens["allowed"] = _quoted_list(params[key])
            tokens["count"] = str(len(params[key]))
    if "pattern" in params:
        tokens["pattern"] = _text(params["pattern"])
    for key in ("min", "max"):
        if key in params:
            tokens[key] = _text(params[key])
    if params.get("system"):
        # Short name, e.g. loinc.org for http://loinc.org
        tokens["system"] = params["system"].rstrip("/").rsplit("/", 1)[-1]
    return tokens


def resolve_message(template: str, rule: Rule, evidence: Mapping[str, Any] | None = None) -> str:
    """Substitute rule, parameter and runtime tokens into a message template."""
    if not template:
        return template
    tokens = rule_tokens(rule)
    if evidence and "actual" in evidence:
        tokens["actual"] = _text(evidence["actual"])

    resolved = template
    for name, value in tokens.items():
        resolved = resolved.replace(f"{{{{{name}}}}}", value).replace(f"{{{name}}}", value)
    return _LEFTOVER_TOKEN.sub("", resolved)
