"""
Entity-scoped box records.

Every stored record starts with a schema version byte followed by a fixed
``struct`` layout and zero padding up to the box size. Readers reject unknown
versions and wrong sizes with :class:`~disburse.errors.RecordSchemaError`
instead of guessing.

Box keys
--------
    b"scheme_" + u64_be(scheme_id)                      -> SchemeRecord (256 bytes)
    b"benef_"  + u64_be(scheme_id) + address(32 bytes)  -> BeneficiaryRecord (32 bytes)
    b"admin_"  + address(32 bytes)                      -> 1-byte marker

Scheme v1 layout (big-endian)::

    version u8 | name 64s | budget u64 | payout u64 | deadline u64 | status u8 |
    funded u64 | spent u64 | beneficiary_count u64 | authority 32s |
    created_round u64 | zero padding

Beneficiary v1 layout::

    version u8 | status u8 | amount_received u64 | registered_round u64 |
    updated_round u64 | zero padding
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, fields, replace
from typing import Tuple

from .. import address as addrs
from ..errors import RecordSchemaError
from ..types import (Beneficiary, BeneficiaryStatus, Eligibility, Scheme,
                     SchemeStatus)
from ..utils.bytes import u64_be, u64_from_be

__all__ = [
    "SCHEME_PREFIX",
    "BENEFICIARY_PREFIX",
    "ADMIN_PREFIX",
    "SCHEME_BOX_SIZE",
    "BENEFICIARY_BOX_SIZE",
    "ADMIN_BOX_SIZE",
    "NAME_MAX_BYTES",
    "box_mbr",
    "scheme_key",
    "scheme_id_from_key",
    "beneficiary_key",
    "parse_beneficiary_key",
    "admin_key",
    "SchemeRecord",
    "BeneficiaryRecord",
    "pack_eligibility",
    "unpack_eligibility",
]

SCHEME_PREFIX = b"scheme_"
BENEFICIARY_PREFIX = b"benef_"
ADMIN_PREFIX = b"admin_"

SCHEME_BOX_SIZE = 256
BENEFICIARY_BOX_SIZE = 32
ADMIN_BOX_SIZE = 1

NAME_MAX_BYTES = 64

BOX_FLAT_MBR = 2500
BOX_BYTE_MBR = 400


def box_mbr(size: int) -> int:
    """Minimum-balance reserve locked for a record of ``size`` bytes."""
    return BOX_FLAT_MBR + BOX_BYTE_MBR * int(size)


# --- keys --------------------------------------------------------------------


def scheme_key(scheme_id: int) -> bytes:
    return SCHEME_PREFIX + u64_be(scheme_id)


def scheme_id_from_key(key: bytes) -> int:
    if not key.startswith(SCHEME_PREFIX) or len(key) != len(SCHEME_PREFIX) + 8:
        raise RecordSchemaError(f"not a scheme key: {key!r}")
    return u64_from_be(key[len(SCHEME_PREFIX):])


def beneficiary_key(scheme_id: int, address: str) -> bytes:
    return BENEFICIARY_PREFIX + u64_be(scheme_id) + addrs.decode(address)


def parse_beneficiary_key(key: bytes) -> Tuple[int, str]:
    n = len(BENEFICIARY_PREFIX)
    if not key.startswith(BENEFICIARY_PREFIX) or len(key) != n + 8 + addrs.ADDRESS_LEN:
        raise RecordSchemaError(f"not a beneficiary key: {key!r}")
    return u64_from_be(key[n:n + 8]), addrs.encode(key[n + 8:])


def admin_key(address: str) -> bytes:
    return ADMIN_PREFIX + addrs.decode(address)


# --- helpers -----------------------------------------------------------------


def _pad(raw: bytes, size: int) -> bytes:
    if len(raw) > size:
        raise RecordSchemaError(f"record body of {len(raw)} bytes exceeds box size {size}", size=len(raw))
    return raw + bytes(size - len(raw))


def _check_header(raw: bytes, *, size: int, version: int, kind: str) -> None:
    if len(raw) != size:
        raise RecordSchemaError(f"{kind} record must be {size} bytes, got {len(raw)}", size=len(raw))
    if raw[0] != version:
        raise RecordSchemaError(f"unsupported {kind} record version {raw[0]}", version=raw[0], size=len(raw))


def encode_name(name: str) -> bytes:
    raw = name.encode("utf-8")
    if len(raw) > NAME_MAX_BYTES:
        raise RecordSchemaError(f"name is {len(raw)} bytes; at most {NAME_MAX_BYTES} fit the record")
    return raw


# --- scheme ------------------------------------------------------------------


@dataclass(frozen=True)
class SchemeRecord:
    VERSION = 1
    _LAYOUT = struct.Struct(">B64sQQQBQQQ32sQ")

    name: str
    budget: int
    payout: int
    deadline: int
    status: SchemeStatus
    funded: int
    spent: int
    beneficiary_count: int
    authority: str
    created_round: int

    def encode(self) -> bytes:
        body = self._LAYOUT.pack(
            self.VERSION,
            encode_name(self.name),
            self.budget,
            self.payout,
            self.deadline,
            int(self.status),
            self.funded,
            self.spent,
            self.beneficiary_count,
            addrs.decode(self.authority),
            self.created_round,
        )
        return _pad(body, SCHEME_BOX_SIZE)

    @classmethod
    def decode(cls, raw: bytes) -> "SchemeRecord":
        raw = bytes(raw)
        _check_header(raw, size=SCHEME_BOX_SIZE, version=cls.VERSION, kind="scheme")
        (_, name, budget, payout, deadline, status, funded, spent, count, authority, created) = cls._LAYOUT.unpack_from(raw)
        try:
            status = SchemeStatus(status)
        except ValueError:
            raise RecordSchemaError(f"unknown scheme status {status}", version=cls.VERSION) from None
        return cls(
            name=name.rstrip(b"\x00").decode("utf-8", errors="replace"),
            budget=budget,
            payout=payout,
            deadline=deadline,
            status=status,
            funded=funded,
            spent=spent,
            beneficiary_count=count,
            authority=addrs.encode(authority),
            created_round=created,
        )

    def with_changes(self, **changes) -> "SchemeRecord":
        return replace(self, **changes)

    def to_scheme(self, scheme_id: int) -> Scheme:
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        return Scheme(scheme_id=scheme_id, **values)


# --- beneficiary -------------------------------------------------------------


@dataclass(frozen=True)
class BeneficiaryRecord:
    VERSION = 1
    _LAYOUT = struct.Struct(">BBQQQ")

    status: BeneficiaryStatus
    amount_received: int = 0
    registered_round: int = 0
    updated_round: int = 0

    def encode(self) -> bytes:
        body = self._LAYOUT.pack(
            self.VERSION,
            int(self.status),
            self.amount_received,
            self.registered_round,
            self.updated_round,
        )
        return _pad(body, BENEFICIARY_BOX_SIZE)

    @classmethod
    def decode(cls, raw: bytes) -> "BeneficiaryRecord":
        raw = bytes(raw)
        _check_header(raw, size=BENEFICIARY_BOX_SIZE, version=cls.VERSION, kind="beneficiary")
        _, status, amount, registered, updated = cls._LAYOUT.unpack_from(raw)
        try:
            status = BeneficiaryStatus(status)
        except ValueError:
            raise RecordSchemaError(f"unknown beneficiary status {status}", version=cls.VERSION) from None
        return cls(status=status, amount_received=amount, registered_round=registered, updated_round=updated)

    def with_changes(self, **changes) -> "BeneficiaryRecord":
        return replace(self, **changes)

    def to_beneficiary(self, scheme_id: int, address: str) -> Beneficiary:
        return Beneficiary(
            scheme_id=scheme_id,
            address=address,
            status=self.status,
            amount_received=self.amount_received,
            registered_round=self.registered_round,
            updated_round=self.updated_round,
        )


# --- eligibility bits --------------------------------------------------------


def pack_eligibility(elig: Eligibility) -> int:
    bits = 0
    for i, f in enumerate(fields(Eligibility)):
        if getattr(elig, f.name):
            bits |= 1 << i
    return bits


def unpack_eligibility(bits: int) -> Eligibility:
    if bits < 0 or bits > 0xFF:
        raise RecordSchemaError(f"eligibility flags out of range: {bits}")
    return Eligibility(**{f.name: bool(bits >> i & 1) for i, f in enumerate(fields(Eligibility))})
