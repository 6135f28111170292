"""
Cryptographic helpers for the aggregation backend.
"""

from backend.crypto.core import (
    canonical_bytes,
    rfc8785_canonicalize,
)

__all__ = [
    "canonical_bytes",
    "rfc8785_canonicalize",
]
