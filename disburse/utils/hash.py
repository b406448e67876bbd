from __future__ import annotations

import hashlib

from .bytes import BytesLike


def sha3_256(data: BytesLike) -> bytes:
    return hashlib.sha3_256(bytes(data)).digest()


def sha3_256_hex(data: BytesLike) -> str:
    return "0x" + hashlib.sha3_256(bytes(data)).hexdigest()


__all__ = ["sha3_256", "sha3_256_hex"]
