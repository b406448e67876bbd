"""
Small shared helpers.

Re-exports:
- bytes: hex helpers and fixed-width big-endian integers
- hash: SHA3-256 convenience wrapper
- cbor: canonical CBOR (de)serialization via cbor2
- retry: bounded retry with backoff for idempotent reads
"""

from .bytes import from_hex, to_hex, u64_be, u64_from_be
from .cbor import cbor_dumps, cbor_loads
from .hash import sha3_256
from .retry import ReadRetryPolicy, RetryError, backoff_delay, retry_call

__all__ = [
    # bytes
    "to_hex",
    "from_hex",
    "u64_be",
    "u64_from_be",
    # hash
    "sha3_256",
    # cbor
    "cbor_dumps",
    "cbor_loads",
    # retry
    "RetryError",
    "ReadRetryPolicy",
    "backoff_delay",
    "retry_call",
]
