"""
Canonical CBOR helpers.

Transactions are signed over their CBOR encoding, so the encoder must be
deterministic: cbor2 in canonical mode sorts map keys by their encoded bytes
and emits minimal-length integers.
"""

from __future__ import annotations

from typing import Any

import cbor2

from .bytes import BytesLike

class CBOREncodeError(ValueError):
    pass

class CBORDecodeError(ValueError):
    pass

def cbor_dumps(obj: Any) -> bytes:
    """Encode *obj* to deterministic CBOR bytes."""
    try:
        return cbor2.dumps(obj, canonical=True)
    except (cbor2.CBOREncodeError, TypeError, ValueError) as e:
        raise CBOREncodeError(str(e)) from e

def cbor_loads(data: BytesLike) -> Any:
    try:
        return cbor2.loads(bytes(data))
    except (cbor2.CBORDecodeError, ValueError) as e:
        raise CBORDecodeError(str(e)) from e


__all__ = ["cbor_dumps", "cbor_loads", "CBOREncodeError", "CBORDecodeError"]
