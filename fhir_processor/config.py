"""Shared configuration for the FHIR processor engine.

This module centralizes environment variable access and default values
to prevent drift between modules.
"""

import os

# Path navigation
MAX_PATH_DEPTH = int(os.getenv("FHIR_PROCESSOR_MAX_PATH_DEPTH", "64"))

# Deepest object/array nesting accepted when a bundle is parsed
MAX_BUNDLE_DEPTH = int(os.getenv("FHIR_PROCESSOR_MAX_BUNDLE_DEPTH", "128"))

# Reference resolution
REFERENCE_POLICY = os.getenv("FHIR_PROCESSOR_REFERENCE_POLICY", "InBundleOnly")
LOOKUP_TIMEOUT = float(os.getenv("FHIR_PROCESSOR_LOOKUP_TIMEOUT", "5.0"))
FHIR_BASE_URL = os.getenv("FHIR_PROCESSOR_FHIR_BASE_URL", "")

# Whole-run deadline in seconds; 0 disables it
RUN_TIMEOUT = float(os.getenv("FHIR_PROCESSOR_RUN_TIMEOUT", "0"))

# Logging level used by the command line entry point
LOG_LEVEL = os.getenv("FHIR_PROCESSOR_LOG_LEVEL", "WARNING")
