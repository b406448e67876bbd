"""
JSON-RPC ledger client.

Methods used on the node:

    ledger.getParams                 -> {minFee, firstValid, lastValid, genesisId}
    ledger.sendGroup [hex...]        -> {txIds: [...]}
    ledger.getStatus                 -> {lastRound}
    ledger.getStatusAfterRound [r]   -> {lastRound}
    ledger.getPendingInfo [txId]     -> {confirmedRound, poolError, logs, createdAppId, ...}
    ledger.getAppGlobalState [app]   -> {keyHex: {"uint": n} | {"bytes": hex}}
    ledger.getAccountAppLocalState [addr, app]
    ledger.getAppBox [app, nameHex]  -> {name, value}
    ledger.listAppBoxes [app, prefixHex] -> {names: [hex]}
    indexer.searchTransactions {appId, minRound?, limit?} -> {transactions: [...]}

Binary values travel as 0x-hex strings. Reads go through the client's bounded
retry policy; ``ledger.sendGroup`` is sent exactly once.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..errors import (AuthorizationError, JsonRpcCode, NetworkError,
                      NotFoundError, RpcError, SubmissionError)
from ..logging import get_logger
from ..rpc.http import RpcClient
from ..tx.send import wait_for_confirmation
from ..tx.types import SuggestedParams
from ..utils.bytes import from_hex, to_hex
from .client import Confirmation, PendingInfo, StateMap, TxRecord

log = get_logger(__name__)

_NETWORKISH = {
    int(JsonRpcCode.SERVER_ERROR),
    int(JsonRpcCode.INTERNAL_ERROR),
    int(JsonRpcCode.RATE_LIMITED),
    int(JsonRpcCode.TRANSPORT),
}


def _map_rpc_error(e: RpcError, what: str) -> Exception:
    data = e.rpc_data if isinstance(e.rpc_data, Mapping) else {}
    if e.rpc_code == JsonRpcCode.NOT_FOUND:
        return NotFoundError(what)
    if e.rpc_code == JsonRpcCode.LOGIC_REJECTED:
        return AuthorizationError(e.message, tx_index=data.get("txIndex"))
    if e.rpc_code == JsonRpcCode.TX_REJECTED:
        return SubmissionError(e.message, tx_index=data.get("txIndex"))
    if e.rpc_code == JsonRpcCode.STALE_PARAMS:
        return NetworkError(e.message, code="STALE_PARAMS")
    if e.rpc_code in _NETWORKISH:
        return NetworkError(e.message, data={"rpcCode": e.rpc_code, "method": e.method})
    return e


def _decode_state(raw: Optional[Mapping[str, Any]]) -> StateMap:
    out: StateMap = {}
    for key_hex, val in (raw or {}).items():
        key = from_hex(key_hex)
        if "uint" in val:
            out[key] = int(val["uint"])
        else:
            out[key] = from_hex(val.get("bytes", "0x"))
    return out


def _hex_tuple(items: Optional[Sequence[str]]) -> tuple:
    return tuple(from_hex(x) for x in (items or ()))


class HttpLedgerClient:
    """LedgerClient backed by a node's JSON-RPC endpoint."""

    def __init__(self, rpc: RpcClient):
        self.rpc = rpc

    @classmethod
    def from_config(cls, cfg: Any) -> "HttpLedgerClient":
        return cls(
            RpcClient(
                cfg.rpc_url,
                timeout=cfg.request_timeout,
                retry=cfg.read_retry_policy(),
                headers={"User-Agent": cfg.user_agent},
            )
        )

    def close(self) -> None:
        self.rpc.close()

    def _read(self, method: str, params: Any, what: str) -> Any:
        try:
            return self.rpc.request(method, params)
        except RpcError as e:
            raise _map_rpc_error(e, what) from e

    # --- params / submission -------------------------------------------

    def suggested_params(self) -> SuggestedParams:
        res = self._read("ledger.getParams", [], "params")
        return SuggestedParams(
            min_fee=int(res["minFee"]),
            first_valid=int(res["firstValid"]),
            last_valid=int(res["lastValid"]),
            genesis_id=str(res["genesisId"]),
        )

    def send_group(self, signed: Sequence[bytes]) -> List[str]:
        try:
            res = self.rpc.request("ledger.sendGroup", [[to_hex(s) for s in signed]], idempotent=False)
        except RpcError as e:
            raise _map_rpc_error(e, "group") from e
        return [str(x) for x in res["txIds"]]

    # --- confirmation ------------------------------------------------------

    def last_round(self) -> int:
        return int(self._read("ledger.getStatus", [], "status")["lastRound"])

    def status_after_round(self, round_: int) -> int:
        return int(self._read("ledger.getStatusAfterRound", [int(round_)], "status")["lastRound"])

    def pending_info(self, tx_id: str) -> PendingInfo:
        res = self._read("ledger.getPendingInfo", [tx_id], f"transaction {tx_id}")
        return PendingInfo(
            tx_id=tx_id,
            confirmed_round=res.get("confirmedRound"),
            pool_error=res.get("poolError") or "",
            logs=_hex_tuple(res.get("logs")),
            created_app_id=res.get("createdAppId"),
            created_asset_id=res.get("createdAssetId"),
            inner_txns=tuple(res.get("innerTxns") or ()),
        )

    def await_confirmation(self, tx_id: str, max_rounds: int) -> Confirmation:
        return wait_for_confirmation(self, tx_id, max_rounds)

    # --- state -------------------------------------------------------------

    def app_global_state(self, app_id: int) -> StateMap:
        return _decode_state(self._read("ledger.getAppGlobalState", [int(app_id)], f"app {app_id}"))

    def account_app_local_state(self, address: str, app_id: int) -> StateMap:
        res = self._read(
            "ledger.getAccountAppLocalState",
            [address, int(app_id)],
            f"local state of {address} in app {app_id}",
        )
        return _decode_state(res)

    def app_box(self, app_id: int, name: bytes) -> bytes:
        res = self._read("ledger.getAppBox", [int(app_id), to_hex(name)], f"box {to_hex(name)}")
        return from_hex(res["value"])

    def app_box_names(self, app_id: int, prefix: bytes = b"") -> List[bytes]:
        res = self._read("ledger.listAppBoxes", [int(app_id), to_hex(prefix)], f"app {app_id}")
        return [from_hex(n) for n in res.get("names", [])]

    def search_transactions(
        self,
        app_id: int,
        *,
        min_round: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[TxRecord]:
        query: Dict[str, Any] = {"appId": int(app_id)}
        if min_round is not None:
            query["minRound"] = int(min_round)
        if limit is not None:
            query["limit"] = int(limit)
        res = self._read("indexer.searchTransactions", query, f"app {app_id}")
        return [
            TxRecord(
                tx_id=t["id"],
                confirmed_round=int(t["confirmedRound"]),
                round_time=int(t.get("roundTime", 0)),
                sender=t["sender"],
                tx_type=t["txType"],
                app_id=int(t.get("appId", 0)),
                app_args=_hex_tuple(t.get("appArgs")),
                logs=_hex_tuple(t.get("logs")),
                amount=int(t.get("amount", 0)),
                receiver=t.get("receiver"),
                inner_txns=tuple(t.get("innerTxns") or ()),
            )
            for t in res.get("transactions", [])
        ]


__all__ = ["HttpLedgerClient"]
