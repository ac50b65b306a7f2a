"""Command line entry point.

Usage:
    fhir-processor validate bundle.json --rules rules.yaml [--codes codes.yaml] [--settings settings.yaml]
    fhir-processor suggest sample1.json sample2.json [--existing-rules rules.yaml] [--min-confidence 60]

Output is JSON on stdout. Exit status is 0 when validation passed, 1 when
the result contains errors and 2 when the input was rejected.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence

from pydantic import ValidationError

from . import __version__, config
from .bundle import Bundle
from .exceptions import FhirProcessorError, RuleSetValidationError
from .pipeline import ValidationPipeline
from .rules import RuleSet, RuleSetLoader
from .settings import ReferenceResolutionPolicy, ValidationSettings, load_settings
from .suggestions import RuleSuggestionEngine
from .terminology import CodeMaster

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_REJECTED = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fhir-processor",
        description="Validate FHIR bundles against rule sets and suggest new rules.",
    )
    parser.add_argument("--version", action="version", version=f"fhir-processor {__version__}")
    parser.add_argument(
        "--log-level",
        default=config.LOG_LEVEL,
        help=f"Logging level (default: {config.LOG_LEVEL})",
    )

    subparsers = parser.add_subparsers(title="commands", dest="command")
    subparsers.required = True

    validate = subparsers.add_parser("validate", help="Validate a bundle")
    validate.add_argument("bundle", help="Bundle file (JSON or YAML)")
    validate.add_argument("--rules", help="Rule set file (JSON or YAML)")
    validate.add_argument("--codes", help="Code master file (JSON or YAML)")
    validate.add_argument("--settings", help="Settings file (JSON or YAML)")
    validate.add_argument(
        "--policy",
        choices=[p.value for p in ReferenceResolutionPolicy],
        help="Override the reference resolution policy",
    )

    suggest = subparsers.add_parser("suggest", help="Suggest rules from sample bundles")
    suggest.add_argument("bundles", nargs="+", help="Sample bundle files")
    suggest.add_argument("--existing-rules", help="Rule set already in force")
    suggest.add_argument(
        "--min-confidence",
        type=float,
        default=None,
        help="Minimum confidence score (default: 50)",
    )
    suggest.add_argument(
        "--as-rules",
        action="store_true",
        help="Print suggestions as a rule set document",
    )
    return parser


def _print_json(data) -> None:
    json.dump(data, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")


def _reject(message: str, details=None) -> int:
    payload = {"error": message}
    if details:
        payload["details"] = details
    json.dump(payload, sys.stderr, indent=2, default=str)
    sys.stderr.write("\n")
    return EXIT_REJECTED


def run_validate(args: argparse.Namespace) -> int:
    rule_set = RuleSetLoader().load_file(args.rules) if args.rules else RuleSet()
    code_master = CodeMaster.from_file(args.codes) if args.codes else CodeMaster()
    settings = load_settings(args.settings) if args.settings else ValidationSettings()
    if args.policy:
        settings = settings.model_copy(
            update={"reference_resolution_policy": ReferenceResolutionPolicy.parse(args.policy)}
        )

    result = ValidationPipeline().run(Bundle.load(args.bundle), rule_set, code_master, settings)
    _print_json(result.to_dict())
    return EXIT_OK if result.passed else EXIT_FAILED


def run_suggest(args: argparse.Namespace) -> int:
    samples = [Bundle.load(path) for path in args.bundles]
    existing = RuleSetLoader().load_file(args.existing_rules) if args.existing_rules else None

    suggestions = RuleSuggestionEngine().profile(
        samples, existing_rules=existing, min_confidence=args.min_confidence
    )
    if args.as_rules:
        _print_json({"rules": [s.to_rule_definition() for s in suggestions]})
    else:
        _print_json([s.to_dict() for s in suggestions])
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    handler = run_validate if args.command == "validate" else run_suggest
    try:
        return handler(args)
    except RuleSetValidationError as e:
        return _reject(str(e), e.errors)
    except FhirProcessorError as e:
        return _reject(str(e), getattr(e, "problems", None))
    except ValidationError as e:
        return _reject("Invalid settings", e.errors(include_url=False))
    except (FileNotFoundError, ValueError) as e:
        return _reject(str(e))


if __name__ == "__main__":
    sys.exit(main())
