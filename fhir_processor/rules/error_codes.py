"""Stable error codes attached to findings."""

# Business rules
FIELD_REQUIRED = "FIELD_REQUIRED"
PATTERN_MISMATCH = "PATTERN_MISMATCH"
VALUE_NOT_ALLOWED = "VALUE_NOT_ALLOWED"
FIXED_VALUE_MISMATCH = "FIXED_VALUE_MISMATCH"
ARRAY_LENGTH_VIOLATION = "ARRAY_LENGTH_VIOLATION"
ANSWER_REQUIRED = "ANSWER_REQUIRED"
INVALID_ANSWER_VALUE = "INVALID_ANSWER_VALUE"
RESOURCE_CONDITION_FAILED = "RESOURCE_CONDITION_FAILED"

# Terminology
CODESYSTEM_VIOLATION = "CODESYSTEM_VIOLATION"
UNKNOWN_CODE_SYSTEM = "UNKNOWN_CODE_SYSTEM"

# References
REFERENCE_NOT_FOUND = "REFERENCE_NOT_FOUND"
REFERENCE_EXTERNAL = "REFERENCE_EXTERNAL"
REFERENCE_UNRESOLVED = "REFERENCE_UNRESOLVED"
REFERENCE_TYPE_MISMATCH = "REFERENCE_TYPE_MISMATCH"

# Structural
CHOICE_TYPE_INVALID = "CHOICE_TYPE_INVALID"
ID_INVALID = "ID_INVALID"
REFERENCE_INVALID = "REFERENCE_INVALID"

# Diagnostics
RULE_EVALUATION_ERROR = "RULE_EVALUATION_ERROR"
STRUCTURAL_VALIDATOR_UNAVAILABLE = "STRUCTURAL_VALIDATOR_UNAVAILABLE"

TERMINOLOGY_CODES = frozenset({CODESYSTEM_VIOLATION, UNKNOWN_CODE_SYSTEM})
DIAGNOSTIC_CODES = frozenset({RULE_EVALUATION_ERROR, STRUCTURAL_VALIDATOR_UNAVAILABLE})
