"""
disburse.tx.composer
====================

Atomic group assembly, signing and submission.

A :class:`TransactionComposer` collects up to 16 transactions, each tagged
with the :class:`~disburse.wallet.signer.Signer` that must sign it, then:

1. ``build_group``       fetches suggested params, sets fees and assigns the group id
2. ``gather_signatures`` asks each distinct signer once for its indexes
3. ``submit``            sends the signed group (exactly once)
4. ``execute``           does all of the above and waits for confirmation,
                         decoding ABI return values from the logs

Fees: every transaction pays ``min_fee * multiplier``. Calls that emit an
inner transfer use the inner multiplier (2x) so the group covers the pooled
fee of the inner transaction.

Example
-------
    comp = TransactionComposer(ledger, config=cfg)
    comp.add_transaction(PaymentTxn(sender=a, receiver=escrow, amount=n), signer)
    comp.add_method_call(app_id=7, method="fund_scheme(uint64,pay)void",
                         sender=a, signer=signer, args=[scheme_id, pay_with_signer])
    result = comp.execute()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from ..abi import Method, encode_value
from ..config import DisburseConfig
from ..errors import (AuthorizationError, ConfirmationTimeout, NetworkError,
                      SubmissionError, UserDeclinedError, ValidationError)
from ..ledger.client import Confirmation, LedgerClient
from ..logging import get_logger
from ..metrics import METRICS, Metrics
from .encode import assign_group_id, tx_id
from .types import ApplicationCallTxn, BoxRef, OnComplete, Transaction

__all__ = [
    "ComposerStatus",
    "TransactionWithSigner",
    "ABIResult",
    "ExecuteResult",
    "TransactionComposer",
]

log = get_logger(__name__)


class ComposerStatus(IntEnum):
    BUILDING = 0
    BUILT = 1
    SIGNED = 2
    SUBMITTED = 3
    COMMITTED = 4


@dataclass
class TransactionWithSigner:
    txn: Transaction
    signer: Any
    fee_multiplier: Optional[int] = None


@dataclass(frozen=True)
class ABIResult:
    tx_id: str
    method: Method
    return_value: Any
    confirmation: Confirmation


@dataclass
class ExecuteResult:
    group_id: Optional[bytes]
    tx_ids: List[str]
    confirmed_round: int
    confirmations: List[Confirmation] = field(default_factory=list)
    method_results: List[ABIResult] = field(default_factory=list)

    @property
    def last_return(self) -> Any:
        return self.method_results[-1].return_value if self.method_results else None


MethodArg = Union[Any, TransactionWithSigner]


class TransactionComposer:
    MAX_GROUP_SIZE = 16

    def __init__(
        self,
        ledger: LedgerClient,
        *,
        config: Optional[DisburseConfig] = None,
        metrics: Metrics = METRICS,
    ):
        self.ledger = ledger
        self.config = config or DisburseConfig()
        self.metrics = metrics
        self.status = ComposerStatus.BUILDING
        self._txns: List[TransactionWithSigner] = []
        self._methods: Dict[int, Method] = {}
        self._signed: List[Optional[bytes]] = []
        self._tx_ids: List[str] = []
        self._group_id: Optional[bytes] = None

    # --- assembly ----------------------------------------------------------

    def count(self) -> int:
        return len(self._txns)

    def _check_open(self, adding: int = 1) -> None:
        if self.status != ComposerStatus.BUILDING:
            raise ValidationError(f"cannot add transactions to a composer in state {self.status.name}")
        if len(self._txns) + adding > self.MAX_GROUP_SIZE:
            raise ValidationError(f"a group holds at most {self.MAX_GROUP_SIZE} transactions")

    def add_transaction(self, txn: Transaction, signer: Any, *, fee_multiplier: Optional[int] = None) -> "TransactionComposer":
        self._check_open()
        if txn.group is not None:
            raise ValidationError("transaction already belongs to a group")
        self._txns.append(TransactionWithSigner(txn, signer, fee_multiplier))
        return self

    def add_method_call(
        self,
        *,
        app_id: int,
        method: Union[str, Method],
        sender: str,
        signer: Any,
        args: Sequence[MethodArg] = (),
        fee_multiplier: Optional[int] = None,
        on_complete: OnComplete = OnComplete.NOOP,
        boxes: Sequence[BoxRef] = (),
        accounts: Sequence[str] = (),
        foreign_assets: Sequence[int] = (),
        program: Optional[str] = None,
        note: bytes = b"",
    ) -> "TransactionComposer":
        m = method if isinstance(method, Method) else Method.from_signature(method)
        if len(args) != len(m.args):
            raise ValidationError(f"{m.signature} takes {len(m.args)} arguments, got {len(args)}")

        txn_args: List[TransactionWithSigner] = []
        app_args: List[bytes] = [m.selector]
        acct_list: List[str] = list(accounts)
        for arg, value in zip(m.args, args):
            if arg.is_txn:
                if not isinstance(value, TransactionWithSigner):
                    raise ValidationError(f"argument of type {arg.type} must be a TransactionWithSigner")
                if arg.type != "txn" and value.txn.TYPE != arg.type:
                    raise ValidationError(f"argument must be a {arg.type} transaction, got {value.txn.TYPE}")
                txn_args.append(value)
                continue
            if arg.type == "account":
                value = self._account_index(sender, acct_list, value)
            app_args.append(encode_value(arg.type, value))

        self._check_open(len(txn_args) + 1)
        for t in txn_args:
            self.add_transaction(t.txn, t.signer, fee_multiplier=t.fee_multiplier)

        call = ApplicationCallTxn(
            sender=sender,
            app_id=app_id,
            on_complete=on_complete,
            app_args=app_args,
            accounts=acct_list,
            foreign_assets=list(foreign_assets),
            boxes=list(boxes),
            program=program,
            note=note,
        )
        self._methods[len(self._txns)] = m
        self._txns.append(TransactionWithSigner(call, signer, fee_multiplier))
        return self

    @staticmethod
    def _account_index(sender: str, accounts: List[str], address: str) -> int:
        if address == sender:
            return 0
        if address not in accounts:
            accounts.append(address)
        return accounts.index(address) + 1

    # --- lifecycle ---------------------------------------------------------

    def build_group(self) -> List[Transaction]:
        if self.status >= ComposerStatus.BUILT:
            return [t.txn for t in self._txns]
        if not self._txns:
            raise ValidationError("cannot build an empty group")
        params = self.ledger.suggested_params()
        default_mult = self.config.fee_multiplier_ordinary
        for t in self._txns:
            mult = t.fee_multiplier if t.fee_multiplier is not None else default_mult
            t.txn.apply_params(params, multiplier=mult)
        group = [t.txn for t in self._txns]
        if len(group) > 1:
            self._group_id = assign_group_id(group)
        self._tx_ids = [tx_id(t) for t in group]
        self.status = ComposerStatus.BUILT
        return group

    def gather_signatures(self) -> List[bytes]:
        if self.status >= ComposerStatus.SIGNED:
            return [s for s in self._signed if s is not None]
        group = self.build_group()

        by_signer: Dict[int, Tuple[Any, List[int]]] = {}
        for i, t in enumerate(self._txns):
            by_signer.setdefault(id(t.signer), (t.signer, []))[1].append(i)

        signed: List[Optional[bytes]] = [None] * len(group)
        for signer, indexes in by_signer.values():
            sigs = signer.sign(group, indexes)
            if len(sigs) != len(indexes):
                raise SubmissionError(f"signer returned {len(sigs)} signatures for {len(indexes)} transactions")
            for i, s in zip(indexes, sigs):
                signed[i] = s

        self._signed = signed
        self.status = ComposerStatus.SIGNED
        return [s for s in signed if s is not None]

    def submit(self) -> List[str]:
        if self.status >= ComposerStatus.SUBMITTED:
            raise SubmissionError("group was already submitted")
        blobs = self.gather_signatures()
        ids = self.ledger.send_group(blobs)
        self.status = ComposerStatus.SUBMITTED
        log.info("group submitted", size=len(ids), first_tx=ids[0] if ids else None)
        return list(ids)

    def execute(self, max_rounds: Optional[int] = None) -> ExecuteResult:
        """Build, sign, submit and wait. Every failure is counted by outcome and re-raised."""
        rounds = max_rounds if max_rounds is not None else self.config.confirmation_rounds
        try:
            ids = self.submit()
            with self.metrics.confirmation_timer():
                confirmations = [self.ledger.await_confirmation(i, rounds) for i in ids]
        except UserDeclinedError:
            self.metrics.record_group("declined")
            raise
        except AuthorizationError:
            self.metrics.record_group("unauthorized")
            raise
        except SubmissionError:
            self.metrics.record_group("rejected")
            raise
        except ConfirmationTimeout:
            self.metrics.record_group("timeout")
            raise
        except NetworkError:
            self.metrics.record_group("network")
            raise

        self.status = ComposerStatus.COMMITTED
        self.metrics.record_group("committed")
        results = [
            ABIResult(
                tx_id=confirmations[i].tx_id,
                method=m,
                return_value=m.decode_return(confirmations[i].logs),
                confirmation=confirmations[i],
            )
            for i, m in sorted(self._methods.items())
        ]
        return ExecuteResult(
            group_id=self._group_id,
            tx_ids=ids,
            confirmed_round=max(c.confirmed_round for c in confirmations),
            confirmations=confirmations,
            method_results=results,
        )
