"""Reference resolution."""

from .lookup import HttpReferenceLookup, ReferenceLookup
from .resolver import (
    BundleIndex,
    ReferenceResolution,
    ReferenceResolver,
    ReferenceState,
)

__all__ = [
    "BundleIndex",
    "HttpReferenceLookup",
    "ReferenceLookup",
    "ReferenceResolution",
    "ReferenceResolver",
    "ReferenceState",
]
