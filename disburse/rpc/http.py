"""
HTTP JSON-RPC client (sync) over httpx.

- Idempotent calls (reads) are retried on transport failures and transient
  HTTP statuses with bounded exponential backoff.
- Non-idempotent calls (submissions) are sent exactly once.
- JSON-RPC error objects are raised as :class:`~disburse.errors.RpcError` and
  are never retried.

Example:
    from disburse.rpc.http import RpcClient
    rpc = RpcClient("http://localhost:8680")
    params = rpc.request("ledger.getParams")
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence, Union

import httpx

from ..errors import JsonRpcCode, NetworkError, RpcError, from_jsonrpc_error
from ..logging import get_logger
from ..utils.retry import ReadRetryPolicy, RetryError
from ..version import __version__ as SDK_VERSION

JSON = Union[dict, list, str, int, float, bool, None]
Params = Union[Sequence[Any], Mapping[str, Any], None]

log = get_logger(__name__)


class _Transient(Exception):
    """Internal marker for failures worth retrying on idempotent calls."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def _is_retriable_http(status: int) -> bool:
    return status in (429, 502, 503, 504)


@dataclass
class RpcClient:
    """Synchronous JSON-RPC 2.0 client over HTTP."""

    url: str
    timeout: float = 10.0
    retry: ReadRetryPolicy = field(default_factory=ReadRetryPolicy)
    headers: Optional[Mapping[str, str]] = None
    transport: Optional[httpx.BaseTransport] = None
    _ids: Iterator[int] = field(init=False, repr=False, default_factory=lambda: count(start=int(time.time() * 1000)))
    _client: httpx.Client = field(init=False, repr=False)

    def __post_init__(self) -> None:
        merged: Dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": f"disburse-py/{SDK_VERSION}",
        }
        if self.headers:
            merged.update(dict(self.headers))
        self._client = httpx.Client(timeout=self.timeout, headers=merged, transport=self.transport)

    def __enter__(self) -> "RpcClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.close()

    def close(self) -> None:
        self._client.close()

    # --- public API ------------------------------------------------------

    def request(self, method: str, params: Params = None, *, idempotent: bool = True) -> JSON:
        """
        Perform one JSON-RPC request and return ``result``.

        Raises RpcError for JSON-RPC error objects and NetworkError when the
        endpoint cannot be reached (after retries, for idempotent calls).
        """
        payload = self._make_payload(method, params)
        if not idempotent:
            try:
                return self._send_once(method, payload)
            except _Transient as e:
                raise NetworkError(f"{method}: {e.message}", data={"method": method}) from e

        def _on_retry(attempt: int, exc: BaseException, delay: float) -> None:
            log.debug("retrying rpc read", method=method, attempt=attempt, delay=round(delay, 3), err=str(exc))

        try:
            return self.retry.call(self._send_once, method, payload, exceptions=_Transient, on_retry=_on_retry)
        except RetryError as e:
            last = e.last_exception
            msg = last.message if isinstance(last, _Transient) else str(last)
            raise NetworkError(
                f"{method}: {msg} (after {e.attempts} attempts)",
                data={"method": method, "attempts": e.attempts},
            ) from last

    # --- internals -------------------------------------------------------

    def _make_payload(self, method: str, params: Params) -> Dict[str, Any]:
        if params is None:
            params = []
        elif isinstance(params, Mapping):
            params = dict(params)
        elif isinstance(params, Sequence) and not isinstance(params, (str, bytes, bytearray)):
            params = list(params)
        else:
            params = [params]
        return {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}

    def _send_once(self, method: str, payload: Dict[str, Any]) -> JSON:
        body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
        try:
            r = self._client.post(self.url, content=body)
        except httpx.TransportError as e:
            raise _Transient(f"transport error: {e}") from e
        if _is_retriable_http(r.status_code):
            raise _Transient(f"HTTP {r.status_code}")
        try:
            resp = r.json()
        except ValueError as e:
            raise RpcError(
                JsonRpcCode.INTERNAL_ERROR,
                "Non-JSON response from RPC",
                method=method,
                rpc_data=f"HTTP {r.status_code}: {r.text[:256]}",
                http_status=r.status_code,
            ) from e

        if not isinstance(resp, dict):
            raise RpcError(JsonRpcCode.INTERNAL_ERROR, "Invalid JSON-RPC response type", method=method)
        if resp.get("error") is not None:
            raise from_jsonrpc_error(resp["error"], method=method, http_status=r.status_code)
        if "result" not in resp:
            raise RpcError(JsonRpcCode.INTERNAL_ERROR, "Malformed JSON-RPC response", method=method, rpc_data=resp)
        return resp["result"]


__all__ = ["RpcClient"]
