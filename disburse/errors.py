"""
Typed errors for the disbursement SDK.

Every failure surfaced to callers derives from :class:`DisburseError` so a
presentation layer can catch one base class and still branch on the stable
``code`` string.

Hierarchy
---------
DisburseError
 ├─ ValidationError      : local, pre-submission input problems (no network I/O happened)
 ├─ AbiError             : method signature / argument encoding problems
 ├─ RecordSchemaError    : box record version or size mismatch
 ├─ NotFoundError        : a ledger object (box, app, account state) does not exist
 ├─ UserDeclinedError    : the external signer refused to sign
 ├─ SubmissionError      : the ledger rejected a transaction group
 │   └─ AuthorizationError : a contract assertion failed (wrong caller, already paid, ...)
 ├─ NetworkError         : endpoint unreachable, stale validity window, transport failure
 │   └─ ConfirmationTimeout : bounded confirmation wait expired
 └─ RpcError             : JSON-RPC error object returned by a node
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional, Sequence, Union

__all__ = [
    "DisburseError",
    "ValidationError",
    "AbiError",
    "RecordSchemaError",
    "NotFoundError",
    "UserDeclinedError",
    "SubmissionError",
    "AuthorizationError",
    "NetworkError",
    "ConfirmationTimeout",
    "RpcError",
    "JsonRpcCode",
    "from_jsonrpc_error",
]


@dataclass(eq=False)
class DisburseError(Exception):
    """
    Base SDK error.

    Attributes:
        message: Human-readable explanation.
        code:    Stable machine code string (e.g. 'VALIDATION', 'AUTHORIZATION').
        data:    Optional structured details (kept JSON-serializable).
    """

    message: str = "disbursement error"
    code: str = "DISBURSE_ERROR"
    data: Optional[Dict[str, Any]] = field(default=None)

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.data:
            return f"{self.code}: {self.message} ({self.data})"
        return f"{self.code}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            out["data"] = self.data
        return out


class ValidationError(DisburseError):
    """Input rejected before anything was sent to the ledger."""

    def __init__(self, problems: Union[str, Sequence[str]], *, data: Optional[Dict[str, Any]] = None):
        if isinstance(problems, str):
            problems = [problems]
        self.problems: List[str] = list(problems)
        super().__init__(message="; ".join(self.problems), code="VALIDATION", data=data)


class AbiError(DisburseError):
    def __init__(self, message: str, *, method: Optional[str] = None):
        self.method = method
        data = {"method": method} if method else None
        super().__init__(message=message, code="ABI", data=data)


class RecordSchemaError(DisburseError):
    """A stored record does not match the schema the reader understands."""

    def __init__(self, message: str, *, version: Optional[int] = None, size: Optional[int] = None):
        self.version = version
        self.size = size
        super().__init__(
            message=message,
            code="RECORD_SCHEMA",
            data={"version": version, "size": size},
        )


class NotFoundError(DisburseError):
    def __init__(self, what: str):
        self.what = what
        super().__init__(message=f"{what} not found", code="NOT_FOUND")


class UserDeclinedError(DisburseError):
    """The external signer declined. Recoverable by asking the user again; never retried."""

    def __init__(self, message: str = "transaction signing was declined in the wallet"):
        super().__init__(message=message, code="USER_DECLINED")


class SubmissionError(DisburseError):
    """
    The ledger rejected a transaction group. Nothing in the group was applied.

    Optional fields:
        reason:   rejection reason reported by the ledger.
        tx_index: index of the offending transaction inside the group.
    """

    def __init__(
        self,
        reason: str,
        *,
        tx_index: Optional[int] = None,
        code: str = "SUBMISSION_REJECTED",
        data: Optional[Dict[str, Any]] = None,
    ):
        self.reason = reason
        self.tx_index = tx_index
        payload = dict(data or {})
        if tx_index is not None:
            payload["txIndex"] = tx_index
        super().__init__(message=reason, code=code, data=payload or None)


class AuthorizationError(SubmissionError):
    """A contract assertion failed; ``reason`` carries the assertion message."""

    def __init__(self, reason: str, *, tx_index: Optional[int] = None, data: Optional[Dict[str, Any]] = None):
        super().__init__(reason, tx_index=tx_index, code="AUTHORIZATION", data=data)


class NetworkError(DisburseError):
    """Transient ledger connectivity problem; callers decide whether to retry."""

    def __init__(self, message: str, *, code: str = "NETWORK", data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code=code, data=data)


class ConfirmationTimeout(NetworkError):
    def __init__(self, tx_id: str, rounds: int):
        self.tx_id = tx_id
        self.rounds = rounds
        super().__init__(
            f"transaction {tx_id} was not confirmed within {rounds} rounds; "
            "poll its status manually before resubmitting",
            code="CONFIRMATION_TIMEOUT",
            data={"txId": tx_id, "rounds": rounds},
        )


class JsonRpcCode(IntEnum):
    # JSON-RPC 2.0 reserved codes
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Server range (implementation-defined)
    SERVER_ERROR = -32000
    RATE_LIMITED = -32001
    NOT_FOUND = -32004
    TX_REJECTED = -32011
    LOGIC_REJECTED = -32012
    STALE_PARAMS = -32013
    TRANSPORT = -32098


class RpcError(DisburseError):
    """Raised when a JSON-RPC call returns an error object."""

    def __init__(
        self,
        rpc_code: int,
        message: str,
        *,
        method: Optional[str] = None,
        rpc_data: Any = None,
        http_status: Optional[int] = None,
    ):
        self.rpc_code = int(rpc_code)
        self.method = method
        self.rpc_data = rpc_data
        self.http_status = http_status
        super().__init__(
            message=message,
            code="RPC_ERROR",
            data={"rpcCode": self.rpc_code, "method": method, "httpStatus": http_status},
        )

    @property
    def code_enum(self) -> Optional[JsonRpcCode]:
        try:
            return JsonRpcCode(self.rpc_code)
        except ValueError:
            return None


def from_jsonrpc_error(
    err_obj: Dict[str, Any],
    *,
    method: Optional[str] = None,
    http_status: Optional[int] = None,
) -> RpcError:
    """Convert a JSON-RPC error object ``{"code", "message", "data"?}`` into RpcError."""
    return RpcError(
        int(err_obj.get("code", JsonRpcCode.SERVER_ERROR)),
        str(err_obj.get("message", "Unknown JSON-RPC error")),
        method=method,
        rpc_data=err_obj.get("data"),
        http_status=http_status,
    )
