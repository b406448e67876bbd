"""
disburse.wallet.signer
======================

Signer adapter for externally held keys.

The SDK never touches private key material. A transaction group is handed to
an out-of-process *signer service* (browser wallet bridge, hardware wallet
daemon, HSM front-end) as a list of :class:`SignRequest` entries: the whole
unsigned group, with the indices this caller does not control marked by an
empty signer list. The service returns one entry per request, ``None`` for
skipped entries.

Layers
------
- :class:`SignerService` : transport-level protocol (``sign_transactions``)
- :class:`Signer`        : single-method interface used by the composer
- :class:`WalletSigner`  : adapts a service to :class:`Signer` for one account
- :class:`RemoteSignerService` : JSON-RPC signer service over httpx

Example
-------
    svc = RemoteSignerService("http://127.0.0.1:8690")
    signer = WalletSigner(svc, "dsb1...")
    sigs = signer.sign(group, [0, 2])
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

import httpx

from ..errors import NetworkError, SubmissionError, UserDeclinedError, from_jsonrpc_error
from ..logging import get_logger
from ..tx.encode import encode_unsigned, unpack_signed
from ..tx.types import Transaction
from ..version import __version__ as SDK_VERSION

__all__ = [
    "SignRequest",
    "SignerService",
    "Signer",
    "WalletSigner",
    "RemoteSignerService",
]

log = get_logger(__name__)


@dataclass(frozen=True)
class SignRequest:
    """
    One entry of a signing request.

    ``signers`` None means "the account in the transaction signs";
    an empty list means "do not sign this entry, it is here for context".
    """

    txn: bytes
    signers: Optional[List[str]] = None

    @property
    def skip(self) -> bool:
        return self.signers is not None and len(self.signers) == 0


class SignerService(Protocol):
    def sign_transactions(self, requests: Sequence[SignRequest]) -> Sequence[Optional[bytes]]:
        """Signed envelopes (or None for skipped entries). Raises UserDeclinedError."""
        ...


class Signer(Protocol):
    address: str

    def sign(self, group: Sequence[Transaction], indexes: Sequence[int]) -> List[bytes]:
        """Signed envelopes for ``group[i]`` for each ``i`` in ``indexes``, in that order."""
        ...


@dataclass
class WalletSigner:
    """Signs the transactions of ``address`` through a :class:`SignerService`."""

    service: SignerService
    address: str

    def sign(self, group: Sequence[Transaction], indexes: Sequence[int]) -> List[bytes]:
        wanted = set(indexes)
        for i in wanted:
            if not 0 <= i < len(group):
                raise IndexError(f"signing index {i} outside group of {len(group)}")
        requests = [
            SignRequest(txn=encode_unsigned(t), signers=None if i in wanted else [])
            for i, t in enumerate(group)
        ]
        log.debug("requesting signatures", signer=self.address, indexes=sorted(wanted), size=len(group))
        results = list(self.service.sign_transactions(requests))
        if len(results) != len(group):
            raise SubmissionError(f"signer returned {len(results)} entries for a group of {len(group)}")

        out: List[bytes] = []
        for i in indexes:
            signed = results[i]
            if not signed:
                raise UserDeclinedError(f"signer did not return a signature for transaction {i}")
            txn, _ = unpack_signed(signed)
            if encode_unsigned(txn) != requests[i].txn:
                raise SubmissionError("signer altered the transaction it signed", tx_index=i)
            out.append(bytes(signed))
        return out


# JSON-RPC error code a signer service uses for "user rejected the request"
USER_REJECTED_CODE = 4001


@dataclass
class RemoteSignerService:
    """
    Signer service reachable over HTTP JSON-RPC (``wallet.signTransactions``).

    Entries travel base64-encoded. Signing is interactive, so the request is
    sent once and never retried.
    """

    url: str
    timeout: float = 120.0
    headers: Optional[Mapping[str, str]] = None
    transport: Optional[httpx.BaseTransport] = None
    _client: httpx.Client = field(init=False, repr=False)
    _next_id: int = field(init=False, default=1, repr=False)

    def __post_init__(self) -> None:
        merged: Dict[str, str] = {
            "Content-Type": "application/json",
            "User-Agent": f"disburse-py/{SDK_VERSION}",
        }
        if self.headers:
            merged.update(dict(self.headers))
        self._client = httpx.Client(timeout=self.timeout, headers=merged, transport=self.transport)

    def close(self) -> None:
        self._client.close()

    def sign_transactions(self, requests: Sequence[SignRequest]) -> List[Optional[bytes]]:
        payload: Dict[str, Any] = {
            "jsonrpc": "2.0",
            "id": self._next_id,
            "method": "wallet.signTransactions",
            "params": [
                [
                    {"txn": base64.b64encode(r.txn).decode("ascii"), **({"signers": r.signers} if r.signers is not None else {})}
                    for r in requests
                ]
            ],
        }
        self._next_id += 1
        try:
            resp = self._client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            raise NetworkError(f"signer service unreachable: {e}", data={"url": self.url}) from e
        if resp.status_code >= 400:
            raise NetworkError(f"signer service HTTP {resp.status_code}", data={"url": self.url})

        body = resp.json()
        err = body.get("error")
        if err is not None:
            if isinstance(err, dict) and err.get("code") == USER_REJECTED_CODE:
                raise UserDeclinedError(str(err.get("message") or "transaction signing was declined in the wallet"))
            raise from_jsonrpc_error(err, method="wallet.signTransactions")

        result = body.get("result")
        if not isinstance(result, list):
            raise NetworkError("signer service returned a malformed result", data={"url": self.url})
        return [base64.b64decode(x) if x else None for x in result]
