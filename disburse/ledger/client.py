"""
Ledger client interface.

Everything above this layer talks to the ledger exclusively through the
:class:`LedgerClient` protocol, so the JSON-RPC client and the in-process
development ledger are interchangeable.

Contract state is exposed as ``Dict[bytes, int | bytes]`` (key -> value).
Missing objects raise :class:`~disburse.errors.NotFoundError`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, Union, runtime_checkable

from ..tx.types import SuggestedParams

__all__ = [
    "StateValue",
    "StateMap",
    "Confirmation",
    "PendingInfo",
    "TxRecord",
    "LedgerClient",
    "state_int",
    "state_bytes",
]

StateValue = Union[int, bytes]
StateMap = Dict[bytes, StateValue]


@dataclass(frozen=True)
class Confirmation:
    tx_id: str
    confirmed_round: int
    logs: Tuple[bytes, ...] = ()
    created_app_id: Optional[int] = None
    created_asset_id: Optional[int] = None
    inner_txns: Tuple[Dict[str, Any], ...] = ()


@dataclass(frozen=True)
class PendingInfo:
    """Status of a submitted transaction; ``confirmed_round`` is None while pending."""

    tx_id: str
    confirmed_round: Optional[int] = None
    pool_error: str = ""
    logs: Tuple[bytes, ...] = ()
    created_app_id: Optional[int] = None
    created_asset_id: Optional[int] = None
    inner_txns: Tuple[Dict[str, Any], ...] = ()

    def to_confirmation(self) -> Confirmation:
        if self.confirmed_round is None:
            raise ValueError(f"transaction {self.tx_id} is not confirmed")
        return Confirmation(
            tx_id=self.tx_id,
            confirmed_round=self.confirmed_round,
            logs=self.logs,
            created_app_id=self.created_app_id,
            created_asset_id=self.created_asset_id,
            inner_txns=self.inner_txns,
        )


@dataclass(frozen=True)
class TxRecord:
    """One confirmed transaction as returned by history search."""

    tx_id: str
    confirmed_round: int
    round_time: int
    sender: str
    tx_type: str
    app_id: int = 0
    app_args: Tuple[bytes, ...] = ()
    logs: Tuple[bytes, ...] = ()
    amount: int = 0
    receiver: Optional[str] = None
    inner_txns: Tuple[Dict[str, Any], ...] = field(default=())


@runtime_checkable
class LedgerClient(Protocol):
    def suggested_params(self) -> SuggestedParams: ...

    def send_group(self, signed: Sequence[bytes]) -> List[str]: ...

    def await_confirmation(self, tx_id: str, max_rounds: int) -> Confirmation: ...

    def app_global_state(self, app_id: int) -> StateMap: ...

    def account_app_local_state(self, address: str, app_id: int) -> StateMap: ...

    def app_box(self, app_id: int, name: bytes) -> bytes: ...

    def app_box_names(self, app_id: int, prefix: bytes = b"") -> List[bytes]: ...

    def search_transactions(
        self,
        app_id: int,
        *,
        min_round: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[TxRecord]: ...


def state_int(state: StateMap, key: bytes, default: int = 0) -> int:
    v = state.get(key, default)
    return v if isinstance(v, int) else default


def state_bytes(state: StateMap, key: bytes, default: bytes = b"") -> bytes:
    v = state.get(key, default)
    return v if isinstance(v, (bytes, bytearray)) else default
