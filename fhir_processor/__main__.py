"""Allow ``python -m fhir_processor``."""

import sys

from .cli import main

sys.exit(main())
