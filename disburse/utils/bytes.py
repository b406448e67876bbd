from __future__ import annotations

from typing import Union

BytesLike = Union[bytes, bytearray, memoryview]

U64_MAX = (1 << 64) - 1


def to_hex(b: BytesLike, prefix: bool = True) -> str:
    s = bytes(b).hex()
    return f"0x{s}" if prefix else s


def from_hex(s: str) -> bytes:
    """Hex string (optionally '0x' prefixed) -> bytes. Odd lengths are rejected."""
    if not isinstance(s, str):
        raise TypeError("from_hex expects a string")
    if s.startswith(("0x", "0X")):
        s = s[2:]
    if len(s) % 2 != 0:
        raise ValueError("hex string must have even length")
    try:
        return bytes.fromhex(s)
    except ValueError as e:
        raise ValueError(f"invalid hex string: {e}") from e


def u64_be(n: int) -> bytes:
    """Encode an unsigned 64-bit integer as 8 big-endian bytes."""
    if not isinstance(n, int) or isinstance(n, bool):
        raise TypeError("u64_be expects an int")
    if n < 0 or n > U64_MAX:
        raise ValueError(f"value out of uint64 range: {n}")
    return n.to_bytes(8, "big")


def u64_from_be(b: BytesLike) -> int:
    raw = bytes(b)
    if len(raw) != 8:
        raise ValueError(f"uint64 needs exactly 8 bytes, got {len(raw)}")
    return int.from_bytes(raw, "big")


__all__ = [
    "BytesLike",
    "U64_MAX",
    "to_hex",
    "from_hex",
    "u64_be",
    "u64_from_be",
]
