"""
ABI method codec.

A method is described by its signature string, e.g.
``create_scheme(pay,string,uint64,uint64,uint64)uint64``. The 4-byte selector
is the first four bytes of sha3_256(signature) and is passed as the first
application argument.

Argument encodings (one application argument per non-transaction arg):

- ``uint64`` / ``uint8`` : big-endian, 8 / 1 bytes
- ``bool``               : one byte, 0x00 or 0x80
- ``string``             : 2-byte big-endian length + UTF-8 bytes
- ``byte[]``             : 2-byte big-endian length + raw bytes
- ``address``            : 32 raw bytes
- ``account``            : 1-byte index into the call's accounts array
                           (0 = sender, i = accounts[i-1])

Transaction-typed args (``pay``, ``axfer``, ``txn``) are not encoded; they
are the transactions immediately preceding the call in the group.

Return values are logged by the program as ``RETURN_PREFIX + encoded value``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from . import address as addrs
from .errors import AbiError
from .utils.hash import sha3_256

__all__ = [
    "Arg",
    "Method",
    "RETURN_PREFIX",
    "TXN_TYPES",
    "encode_value",
    "decode_value",
    "selector",
    "find_return",
    "method_table",
]

RETURN_PREFIX = b"\x15\x1f\x7c\x75"

TXN_TYPES = frozenset({"pay", "axfer", "txn"})
VALUE_TYPES = frozenset({"uint64", "uint8", "bool", "string", "byte[]", "address", "account"})

_SIG_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\(([^()]*)\)([A-Za-z0-9\[\]]+)$")


def selector(signature: str) -> bytes:
    return sha3_256(signature.encode("utf-8"))[:4]


@dataclass(frozen=True)
class Arg:
    type: str
    name: Optional[str] = None

    @property
    def is_txn(self) -> bool:
        return self.type in TXN_TYPES


@dataclass(frozen=True)
class Method:
    name: str
    args: Tuple[Arg, ...]
    returns: str = "void"

    @classmethod
    def from_signature(cls, signature: str) -> "Method":
        m = _SIG_RE.match(signature.strip())
        if not m:
            raise AbiError(f"malformed method signature: {signature!r}")
        name, arg_str, ret = m.groups()
        types = [t.strip() for t in arg_str.split(",")] if arg_str.strip() else []
        for t in types:
            if t not in VALUE_TYPES and t not in TXN_TYPES:
                raise AbiError(f"unsupported argument type {t!r}", method=signature)
        if ret != "void" and ret not in VALUE_TYPES - {"account"}:
            raise AbiError(f"unsupported return type {ret!r}", method=signature)
        return cls(name=name, args=tuple(Arg(t) for t in types), returns=ret)

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(a.type for a in self.args)}){self.returns}"

    @property
    def selector(self) -> bytes:
        return selector(self.signature)

    @property
    def txn_arg_count(self) -> int:
        return sum(1 for a in self.args if a.is_txn)

    @property
    def value_args(self) -> List[Arg]:
        return [a for a in self.args if not a.is_txn]

    def decode_return(self, logs: Sequence[bytes]) -> Any:
        """Return value from the call's logs, or None for void methods."""
        if self.returns == "void":
            return None
        raw = find_return(logs)
        if raw is None:
            raise AbiError("no return value logged", method=self.signature)
        return decode_value(self.returns, raw)

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.signature


def _check_uint(value: Any, bits: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise AbiError(f"uint{bits} expects int, got {type(value).__name__}")
    if value < 0 or value >= (1 << bits):
        raise AbiError(f"value {value} out of range for uint{bits}")
    return value


def _with_len(raw: bytes) -> bytes:
    if len(raw) > 0xFFFF:
        raise AbiError("dynamic value longer than 65535 bytes")
    return len(raw).to_bytes(2, "big") + raw


def encode_value(abi_type: str, value: Any) -> bytes:
    """Encode a single non-transaction value. ``account`` expects the index."""
    if abi_type == "uint64":
        return _check_uint(value, 64).to_bytes(8, "big")
    if abi_type in ("uint8", "account"):
        return _check_uint(value, 8).to_bytes(1, "big")
    if abi_type == "bool":
        return b"\x80" if value else b"\x00"
    if abi_type == "string":
        if not isinstance(value, str):
            raise AbiError(f"string expects str, got {type(value).__name__}")
        return _with_len(value.encode("utf-8"))
    if abi_type == "byte[]":
        return _with_len(bytes(value))
    if abi_type == "address":
        if isinstance(value, str):
            try:
                return addrs.decode(value)
            except addrs.AddressError as e:
                raise AbiError(f"invalid address: {e}") from e
        raw = bytes(value)
        if len(raw) != addrs.ADDRESS_LEN:
            raise AbiError("address must be 32 bytes")
        return raw
    raise AbiError(f"cannot encode type {abi_type!r}")


def decode_value(abi_type: str, raw: bytes) -> Any:
    """Decode a single value. ``address`` decodes to a bech32m string."""
    raw = bytes(raw)
    if abi_type == "uint64":
        if len(raw) != 8:
            raise AbiError(f"uint64 needs 8 bytes, got {len(raw)}")
        return int.from_bytes(raw, "big")
    if abi_type in ("uint8", "account"):
        if len(raw) != 1:
            raise AbiError(f"{abi_type} needs 1 byte, got {len(raw)}")
        return raw[0]
    if abi_type == "bool":
        if len(raw) != 1 or raw not in (b"\x00", b"\x80"):
            raise AbiError("malformed bool")
        return raw == b"\x80"
    if abi_type in ("string", "byte[]"):
        if len(raw) < 2:
            raise AbiError(f"{abi_type} is missing its length prefix")
        n = int.from_bytes(raw[:2], "big")
        body = raw[2:]
        if len(body) != n:
            raise AbiError(f"{abi_type} length prefix {n} does not match {len(body)} bytes")
        if abi_type == "string":
            try:
                return body.decode("utf-8")
            except UnicodeDecodeError as e:
                raise AbiError(f"string is not valid UTF-8: {e}") from e
        return body
    if abi_type == "address":
        if len(raw) != addrs.ADDRESS_LEN:
            raise AbiError("address must be 32 bytes")
        return addrs.encode(raw)
    raise AbiError(f"cannot decode type {abi_type!r}")


def find_return(logs: Sequence[bytes]) -> Optional[bytes]:
    """Payload of the last return-prefixed log line, if any."""
    for line in reversed(list(logs)):
        line = bytes(line)
        if line.startswith(RETURN_PREFIX):
            return line[len(RETURN_PREFIX):]
    return None


def method_table(signatures: Sequence[str]) -> Dict[bytes, Method]:
    """selector -> Method lookup for decoding call history."""
    out: Dict[bytes, Method] = {}
    for sig in signatures:
        m = Method.from_signature(sig)
        out[m.selector] = m
    return out
