"""
Account and application addresses.

An address is the Bech32m (BIP-0350) encoding of a 32-byte Ed25519 public
key under the human-readable part ``dsb``. Contract escrow accounts have no
key: their address is derived deterministically from the application id, so
the same app id always maps to the same escrow.

>>> pk = bytes(range(32))
>>> addr = encode(pk)
>>> decode(addr) == pk
True
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Tuple

from .utils.bytes import u64_be
from .utils.hash import sha3_256

__all__ = [
    "HRP",
    "ADDRESS_LEN",
    "ZERO_ADDRESS",
    "AddressError",
    "encode",
    "decode",
    "is_valid",
    "app_address",
    "convertbits",
]

HRP = "dsb"
ADDRESS_LEN = 32

CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
CHARSET_REV = {c: i for i, c in enumerate(CHARSET)}

_BECH32M_CONST = 0x2BC830A3
_GENERATORS = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)


class AddressError(ValueError):
    pass


def _polymod(values: Sequence[int]) -> int:
    chk = 1
    for v in values:
        top = chk >> 25
        chk = ((chk & 0x1FFFFFF) << 5) ^ v
        for i, gen in enumerate(_GENERATORS):
            if (top >> i) & 1:
                chk ^= gen
    return chk


def _hrp_expand(hrp: str) -> List[int]:
    return [ord(x) >> 5 for x in hrp] + [0] + [ord(x) & 31 for x in hrp]


def _checksum(hrp: str, data5: Sequence[int]) -> List[int]:
    pm = _polymod(_hrp_expand(hrp) + list(data5) + [0] * 6) ^ _BECH32M_CONST
    return [(pm >> 5 * (5 - i)) & 31 for i in range(6)]


def convertbits(data: Iterable[int], from_bits: int, to_bits: int, *, pad: bool = True) -> List[int]:
    """Regroup a sequence of ``from_bits``-wide integers into ``to_bits``-wide ones."""
    acc = 0
    bits = 0
    out: List[int] = []
    maxv = (1 << to_bits) - 1
    max_acc = (1 << (from_bits + to_bits - 1)) - 1
    for value in data:
        if value < 0 or value >> from_bits:
            raise AddressError("invalid value for convertbits")
        acc = ((acc << from_bits) | value) & max_acc
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            out.append((acc >> bits) & maxv)
    if pad:
        if bits:
            out.append((acc << (to_bits - bits)) & maxv)
    elif bits >= from_bits or ((acc << (to_bits - bits)) & maxv):
        raise AddressError("non-zero padding")
    return out


def _split(addr: str) -> Tuple[str, List[int]]:
    if not isinstance(addr, str):
        raise AddressError("address must be a string")
    if any(ord(x) < 33 or ord(x) > 126 for x in addr):
        raise AddressError("invalid characters")
    if addr.lower() != addr and addr.upper() != addr:
        raise AddressError("mixed case not allowed")
    addr = addr.lower()
    pos = addr.rfind("1")
    if pos < 1:
        raise AddressError("missing separator '1'")
    hrp, rest = addr[:pos], addr[pos + 1 :]
    if len(rest) < 6:
        raise AddressError("too short data/checksum")
    try:
        data = [CHARSET_REV[c] for c in rest]
    except KeyError:
        raise AddressError("invalid charset") from None
    if _polymod(_hrp_expand(hrp) + data) != _BECH32M_CONST:
        raise AddressError("invalid checksum")
    return hrp, data[:-6]


def encode(public_key: bytes, *, hrp: str = HRP) -> str:
    """Encode a 32-byte account key as a Bech32m address string."""
    raw = bytes(public_key)
    if len(raw) != ADDRESS_LEN:
        raise AddressError(f"address payload must be {ADDRESS_LEN} bytes, got {len(raw)}")
    data5 = convertbits(raw, 8, 5, pad=True)
    return hrp + "1" + "".join(CHARSET[d] for d in data5 + _checksum(hrp, data5))


def decode(addr: str, *, hrp: str = HRP) -> bytes:
    """Decode an address into its 32-byte payload, checking checksum and HRP."""
    got_hrp, data5 = _split(addr)
    if got_hrp != hrp:
        raise AddressError(f"HRP mismatch: expected {hrp}, got {got_hrp}")
    raw = bytes(convertbits(data5, 5, 8, pad=False))
    if len(raw) != ADDRESS_LEN:
        raise AddressError(f"address payload must be {ADDRESS_LEN} bytes, got {len(raw)}")
    return raw


def is_valid(addr: Optional[str], *, hrp: str = HRP) -> bool:
    if not addr:
        return False
    try:
        decode(addr, hrp=hrp)
    except AddressError:
        return False
    return True


def app_address(app_id: int) -> str:
    """Escrow address owned by application ``app_id``."""
    return encode(sha3_256(b"appID" + u64_be(int(app_id))))


ZERO_ADDRESS = encode(bytes(ADDRESS_LEN))
