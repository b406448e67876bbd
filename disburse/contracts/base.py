"""
disburse.contracts.base
=======================

Shared plumbing for typed application clients.

An :class:`AppClient` binds a ledger client, a signer and (after deployment)
an application id, and offers:

- ``call(...)``         one ABI call, optionally preceded by payment args, as one group
- ``pay_arg(amount)``   a payment to the application escrow, ready to pass as a ``pay`` arg
- ``deploy(...)``       create the application from its registered program
- ``global_state()`` / ``local_state(address)`` reads (missing local state -> None)
- ``poll_transactions`` contract history with decoded methods and events
"""

from __future__ import annotations

import time
from typing import Any, Callable, ClassVar, List, Optional, Sequence

from .. import address as addrs
from ..abi import Method, method_table
from ..config import DisburseConfig
from ..errors import NotFoundError, ValidationError
from ..ledger.client import LedgerClient, StateMap
from ..logging import get_logger
from ..metrics import METRICS, Metrics
from ..programs import REGISTRY
from ..tx.composer import ExecuteResult, TransactionComposer, TransactionWithSigner
from ..tx.types import BoxRef, OnComplete, PaymentTxn
from .events import HistoryEntry, decode_history

__all__ = ["AppClient"]

log = get_logger(__name__)


class AppClient:
    PROGRAM: ClassVar[str] = ""
    CREATE: ClassVar[str] = "create()void"

    def __init__(
        self,
        ledger: LedgerClient,
        signer: Any,
        *,
        app_id: Optional[int] = None,
        config: Optional[DisburseConfig] = None,
        metrics: Metrics = METRICS,
        clock: Callable[[], float] = time.time,
    ):
        self.ledger = ledger
        self.signer = signer
        self.app_id = app_id
        self.config = config or DisburseConfig()
        self.metrics = metrics
        self.clock = clock

    @property
    def sender(self) -> str:
        return self.signer.address

    @property
    def escrow(self) -> str:
        return addrs.app_address(self.require_app_id())

    def require_app_id(self) -> int:
        if not self.app_id:
            raise ValidationError(f"{self.PROGRAM} application id is not configured")
        return self.app_id

    def composer(self) -> TransactionComposer:
        return TransactionComposer(self.ledger, config=self.config, metrics=self.metrics)

    # --- writes ------------------------------------------------------------

    def pay_arg(self, amount: int, *, receiver: Optional[str] = None) -> TransactionWithSigner:
        txn = PaymentTxn(sender=self.sender, receiver=receiver or self.escrow, amount=amount)
        return TransactionWithSigner(txn, self.signer)

    def call(
        self,
        method: str,
        args: Sequence[Any] = (),
        *,
        inner: bool = False,
        boxes: Sequence[BoxRef] = (),
        on_complete: OnComplete = OnComplete.NOOP,
    ) -> ExecuteResult:
        """Single ABI call (plus its transaction args) submitted as one atomic group."""
        comp = self.composer()
        comp.add_method_call(
            app_id=self.require_app_id(),
            method=method,
            sender=self.sender,
            signer=self.signer,
            args=args,
            fee_multiplier=self.config.fee_multiplier_inner if inner else None,
            on_complete=on_complete,
            boxes=boxes,
        )
        return comp.execute()

    def deploy(self, args: Sequence[Any] = ()) -> int:
        comp = self.composer()
        comp.add_method_call(
            app_id=0,
            method=self.CREATE,
            sender=self.sender,
            signer=self.signer,
            args=args,
            program=self.PROGRAM,
        )
        result = comp.execute()
        app_id = result.confirmations[-1].created_app_id
        if not app_id:
            raise NotFoundError(f"created application id for {self.PROGRAM}")
        self.app_id = app_id
        log.info("application deployed", program=self.PROGRAM, app_id=app_id, tx_id=result.tx_ids[-1])
        return app_id

    # --- reads -------------------------------------------------------------

    def global_state(self) -> StateMap:
        return self.ledger.app_global_state(self.require_app_id())

    def local_state(self, address: str) -> Optional[StateMap]:
        try:
            return self.ledger.account_app_local_state(address, self.require_app_id())
        except NotFoundError:
            return None

    def methods(self) -> List[Method]:
        return REGISTRY[self.PROGRAM].methods

    def poll_transactions(self, *, min_round: Optional[int] = None, limit: Optional[int] = None) -> List[HistoryEntry]:
        records = self.ledger.search_transactions(self.require_app_id(), min_round=min_round, limit=limit)
        table = method_table([m.signature for m in self.methods()])
        return decode_history(records, table)
