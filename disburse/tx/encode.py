"""
disburse.tx.encode
==================

Deterministic CBOR encoding for transactions.

- `canonical_body(tx)`  → signable dict view (short keys, empty fields omitted)
- `encode_unsigned(tx)` → CBOR of the body (what an external signer receives)
- `decode_unsigned(raw)`→ Transaction back from body bytes
- `sign_bytes(tx)`      → b"TX" + body CBOR (domain-separated message to sign)
- `tx_id(tx)`           → 0x-hex sha3_256 of sign bytes
- `assign_group_id(txs)`→ sha3_256(b"TG" + CBOR[list of raw ids]) set on every member
- `pack_signed` / `unpack_signed` → wire envelope {"txn": body, "sig": bytes}

The group id is computed over bodies without a group field, then written into
each transaction, so every member's id (and signature) commits to the group.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Sequence, Tuple, Type

from ..utils.bytes import to_hex
from ..utils.cbor import cbor_dumps, cbor_loads
from ..utils.hash import sha3_256
from .types import (
    ApplicationCallTxn,
    AssetConfigTxn,
    AssetFreezeTxn,
    AssetTransferTxn,
    OnComplete,
    PaymentTxn,
    Transaction,
)

__all__ = [
    "canonical_body",
    "decode_body",
    "encode_unsigned",
    "decode_unsigned",
    "sign_bytes",
    "tx_id",
    "raw_tx_id",
    "compute_group_id",
    "assign_group_id",
    "pack_signed",
    "unpack_signed",
]

SIGN_PREFIX = b"TX"
GROUP_PREFIX = b"TG"

# field name -> wire key, per transaction type (header is shared)
_HEADER = (
    ("sender", "snd"),
    ("fee", "fee"),
    ("first_valid", "fv"),
    ("last_valid", "lv"),
    ("genesis_id", "gen"),
    ("note", "note"),
    ("group", "grp"),
)

_FIELDS: Dict[str, Tuple[Tuple[str, str], ...]] = {
    "pay": (("receiver", "rcv"), ("amount", "amt")),
    "appl": (
        ("app_id", "apid"),
        ("on_complete", "apan"),
        ("app_args", "apaa"),
        ("accounts", "apat"),
        ("foreign_assets", "apas"),
        ("boxes", "apbx"),
        ("program", "prog"),
    ),
    "acfg": (
        ("total", "t"),
        ("decimals", "dc"),
        ("asset_name", "an"),
        ("unit_name", "un"),
        ("url", "au"),
        ("default_frozen", "df"),
        ("manager", "m"),
        ("reserve", "r"),
        ("freeze", "f"),
        ("clawback", "c"),
    ),
    "axfer": (
        ("asset_id", "xaid"),
        ("receiver", "arcv"),
        ("amount", "aamt"),
        ("asset_sender", "asnd"),
    ),
    "afrz": (("asset_id", "faid"), ("target", "fadd"), ("frozen", "afrz")),
}

_CLASSES: Dict[str, Type[Transaction]] = {
    cls.TYPE: cls
    for cls in (PaymentTxn, ApplicationCallTxn, AssetConfigTxn, AssetTransferTxn, AssetFreezeTxn)
}


def _is_empty(v: Any) -> bool:
    return v is None or v == b"" or v == "" or v == [] or v is False or (isinstance(v, int) and not isinstance(v, bool) and v == 0)


def _wire(v: Any) -> Any:
    if isinstance(v, OnComplete):
        return int(v)
    if isinstance(v, tuple):
        return [_wire(x) for x in v]
    if isinstance(v, list):
        return [_wire(x) for x in v]
    if isinstance(v, bytearray):
        return bytes(v)
    return v


def canonical_body(tx: Transaction) -> Dict[str, Any]:
    """Build the signable body dictionary. Zero/empty values are omitted."""
    if tx.TYPE not in _FIELDS:
        raise TypeError(f"unsupported transaction type: {type(tx).__name__}")
    body: Dict[str, Any] = {"type": tx.TYPE}
    for attr, key in _HEADER + _FIELDS[tx.TYPE]:
        v = getattr(tx, attr)
        if _is_empty(v):
            continue
        body[key] = _wire(v)
    return body


def decode_body(body: Mapping[str, Any]) -> Transaction:
    """Inverse of :func:`canonical_body`."""
    ttype = body.get("type")
    if ttype not in _CLASSES:
        raise ValueError(f"unknown transaction type: {ttype!r}")
    cls = _CLASSES[ttype]
    kwargs: Dict[str, Any] = {}
    for attr, key in _HEADER + _FIELDS[ttype]:
        if key in body:
            kwargs[attr] = body[key]
    if ttype == "appl":
        kwargs["on_complete"] = OnComplete(kwargs.get("on_complete", 0))
        kwargs["boxes"] = [(int(a), bytes(n)) for a, n in kwargs.get("boxes", [])]
        kwargs.setdefault("app_id", 0)
    elif ttype == "pay":
        kwargs.setdefault("amount", 0)
    elif ttype == "acfg":
        kwargs.setdefault("total", 0)
    elif ttype == "afrz":
        kwargs.setdefault("frozen", False)
    return cls(**kwargs)


def encode_unsigned(tx: Transaction) -> bytes:
    return cbor_dumps(canonical_body(tx))


def decode_unsigned(raw: bytes) -> Transaction:
    obj = cbor_loads(raw)
    if not isinstance(obj, dict):
        raise ValueError("transaction body must decode to a CBOR map")
    return decode_body(obj)


def sign_bytes(tx: Transaction) -> bytes:
    """Exact byte string an external signer signs for ``tx``."""
    return SIGN_PREFIX + encode_unsigned(tx)


def raw_tx_id(tx: Transaction) -> bytes:
    return sha3_256(sign_bytes(tx))


def tx_id(tx: Transaction) -> str:
    return to_hex(raw_tx_id(tx))


def compute_group_id(txs: Sequence[Transaction]) -> bytes:
    ids: List[bytes] = []
    for tx in txs:
        saved, tx.group = tx.group, None
        try:
            ids.append(raw_tx_id(tx))
        finally:
            tx.group = saved
    return sha3_256(GROUP_PREFIX + cbor_dumps(ids))


def assign_group_id(txs: Sequence[Transaction]) -> bytes:
    gid = compute_group_id(txs)
    for tx in txs:
        tx.group = gid
    return gid


def pack_signed(tx_or_body: Any, signature: bytes) -> bytes:
    """Signed envelope. Accepts a Transaction, a body dict, or body CBOR bytes."""
    if isinstance(tx_or_body, Transaction):
        body = canonical_body(tx_or_body)
    elif isinstance(tx_or_body, (bytes, bytearray)):
        body = cbor_loads(bytes(tx_or_body))
    else:
        body = dict(tx_or_body)
    return cbor_dumps({"txn": body, "sig": bytes(signature)})


def unpack_signed(raw: bytes) -> Tuple[Transaction, bytes]:
    if not isinstance(raw, (bytes, bytearray)):
        raise TypeError("raw must be bytes")
    obj = cbor_loads(bytes(raw))
    if not isinstance(obj, dict) or "txn" not in obj or "sig" not in obj:
        raise ValueError("signed transaction must be a map with 'txn' and 'sig'")
    return decode_body(obj["txn"]), bytes(obj["sig"])
