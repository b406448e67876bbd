"""
In-process development ledger.

``LocalLedger`` implements :class:`~disburse.ledger.client.LedgerClient`
against in-memory state so the whole stack (composer, signer adapter,
contract clients, orchestration service) runs without a node. It enforces
the rules the clients depend on:

- groups of 1..16 signed transactions, all-or-nothing
- Ed25519 signatures over ``b"TX" + body`` (verified with ``cryptography``)
- matching group ids, genesis id and validity window
- each transaction id is accepted once; resending a queued or confirmed one
  is rejected
- pooled fees: sum(fees) >= min_fee * (transactions + inner transactions)
- minimum balances: 100_000 per account, +100_000 per asset holding and per
  opted-in application; application escrows must cover their box reserves
- fungible assets with opt-in, freeze and clawback roles

Programs run from :data:`disburse.programs.REGISTRY`. Box references on
application calls are carried but not enforced.

Development helpers (not part of the client protocol): ``fund``,
``balance``, ``asset_holding``, ``asset_params``, ``hold_confirmations`` and
``release_pending``.
"""

from __future__ import annotations

import copy
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from .. import address as addrs
from ..errors import (AuthorizationError, NetworkError, NotFoundError,
                      RecordSchemaError, SubmissionError)
from ..logging import get_logger
from ..programs import REGISTRY
from ..programs.runtime import Program, Reject
from ..storage.records import box_mbr
from ..tx.encode import compute_group_id, sign_bytes, tx_id, unpack_signed
from ..tx.send import wait_for_confirmation
from ..tx.types import (ApplicationCallTxn, AssetConfigTxn, AssetFreezeTxn,
                        AssetTransferTxn, OnComplete, PaymentTxn,
                        SuggestedParams, Transaction)
from .client import Confirmation, PendingInfo, StateMap, TxRecord

log = get_logger(__name__)

MIN_BALANCE = 100_000
ASSET_MIN_BALANCE = 100_000
APP_OPTIN_MIN_BALANCE = 100_000
MAX_GROUP_SIZE = 16
DEFAULT_MIN_FEE = 1000
VALIDITY_WINDOW = 1000


class _Fail(Exception):
    """Ledger-rule violation inside group execution."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


@dataclass
class _Holding:
    amount: int = 0
    frozen: bool = False


@dataclass
class _Account:
    balance: int = 0
    holdings: Dict[int, _Holding] = field(default_factory=dict)
    local: Dict[int, Dict[bytes, Any]] = field(default_factory=dict)


@dataclass
class _Asset:
    asset_id: int
    creator: str
    total: int
    decimals: int
    asset_name: str
    unit_name: str
    url: str
    default_frozen: bool
    manager: Optional[str]
    reserve: Optional[str]
    freeze: Optional[str]
    clawback: Optional[str]


@dataclass
class _App:
    app_id: int
    program: str
    creator: str
    escrow: str
    global_state: Dict[bytes, Any] = field(default_factory=dict)
    boxes: Dict[bytes, bytes] = field(default_factory=dict)


@dataclass
class _World:
    accounts: Dict[str, _Account] = field(default_factory=dict)
    apps: Dict[int, _App] = field(default_factory=dict)
    assets: Dict[int, _Asset] = field(default_factory=dict)
    escrows: Dict[str, int] = field(default_factory=dict)
    next_id: int = 1000

    def account(self, address: str) -> _Account:
        acct = self.accounts.get(address)
        if acct is None:
            acct = self.accounts[address] = _Account()
        return acct

    def allocate_id(self) -> int:
        self.next_id += 1
        return self.next_id


class _AppContext:
    """Concrete program context bound to one application call."""

    def __init__(
        self,
        world: _World,
        app: _App,
        group: Sequence[Transaction],
        index: int,
        round_: int,
        timestamp: int,
        is_create: bool,
    ):
        self._world = world
        self._app = app
        self.app_id = app.app_id
        self.escrow = app.escrow
        self.group = group
        self.index = index
        self.txn: ApplicationCallTxn = group[index]  # type: ignore[assignment]
        self.sender = self.txn.sender
        self.round = round_
        self.timestamp = timestamp
        self.is_create = is_create
        self.logs: List[bytes] = []
        self.inner: List[Dict[str, Any]] = []

    # global state
    def global_get(self, key: bytes, default: Any = 0) -> Any:
        return self._app.global_state.get(key, default)

    def global_put(self, key: bytes, value: Any) -> None:
        self._app.global_state[key] = value

    # local state
    def is_opted_in(self, address: str) -> bool:
        acct = self._world.accounts.get(address)
        return acct is not None and self.app_id in acct.local

    def local_get(self, address: str, key: bytes, default: Any = 0) -> Any:
        if not self.is_opted_in(address):
            raise Reject("account not opted in")
        return self._world.accounts[address].local[self.app_id].get(key, default)

    def local_put(self, address: str, key: bytes, value: Any) -> None:
        if not self.is_opted_in(address):
            raise Reject("account not opted in")
        self._world.accounts[address].local[self.app_id][key] = value

    # boxes
    def box_get(self, name: bytes) -> Optional[bytes]:
        return self._app.boxes.get(bytes(name))

    def box_create(self, name: bytes, data: bytes) -> None:
        name = bytes(name)
        if name in self._app.boxes:
            raise Reject("box already exists")
        self._app.boxes[name] = bytes(data)

    def box_put(self, name: bytes, data: bytes) -> None:
        name = bytes(name)
        current = self._app.boxes.get(name)
        if current is None:
            raise Reject("box does not exist")
        if len(current) != len(data):
            raise Reject("box size is fixed")
        self._app.boxes[name] = bytes(data)

    def box_delete(self, name: bytes) -> None:
        if self._app.boxes.pop(bytes(name), None) is None:
            raise Reject("box does not exist")

    # value
    def balance(self, address: str) -> int:
        acct = self._world.accounts.get(address)
        return acct.balance if acct else 0

    def pay(self, receiver: str, amount: int) -> None:
        if amount < 0:
            raise Reject("negative payment")
        escrow = self._world.account(self.escrow)
        if escrow.balance < amount:
            raise _Fail("application escrow has insufficient balance")
        escrow.balance -= amount
        self._world.account(receiver).balance += amount
        self.inner.append({"type": "pay", "sender": self.escrow, "receiver": receiver, "amount": amount})

    def log(self, data: bytes) -> None:
        self.logs.append(bytes(data))


@dataclass
class _Executed:
    tx_id: str
    txn: Transaction
    logs: List[bytes] = field(default_factory=list)
    inner: List[Dict[str, Any]] = field(default_factory=list)
    created_app_id: Optional[int] = None
    created_asset_id: Optional[int] = None


class LocalLedger:
    """In-memory ledger implementing the LedgerClient protocol."""

    def __init__(
        self,
        *,
        genesis_id: str = "disburse-devnet-v1",
        min_fee: int = DEFAULT_MIN_FEE,
        clock: Callable[[], float] = time.time,
        programs: Optional[Mapping[str, Program]] = None,
    ):
        self.genesis_id = genesis_id
        self.min_fee = min_fee
        self.clock = clock
        self.programs = dict(programs if programs is not None else REGISTRY)
        self.hold_confirmations = False
        self._world = _World()
        self._round = 1
        self._confirmed: Dict[str, PendingInfo] = {}
        self._pending: List[Tuple[List[str], List[Transaction]]] = []
        self._rejected: Dict[str, PendingInfo] = {}
        self._history: List[TxRecord] = []

    # --- development helpers ---------------------------------------------

    def fund(self, address: str, amount: int) -> None:
        """Credit ``amount`` base units to ``address`` out of thin air."""
        if not addrs.is_valid(address):
            raise ValueError(f"invalid address: {address!r}")
        self._world.account(address).balance += int(amount)

    def balance(self, address: str) -> int:
        acct = self._world.accounts.get(address)
        return acct.balance if acct else 0

    def min_balance(self, address: str) -> int:
        return self._min_balance(self._world, address)

    def asset_holding(self, address: str, asset_id: int) -> Optional[Tuple[int, bool]]:
        acct = self._world.accounts.get(address)
        if acct is None or asset_id not in acct.holdings:
            return None
        h = acct.holdings[asset_id]
        return h.amount, h.frozen

    def asset_params(self, asset_id: int) -> Dict[str, Any]:
        asset = self._world.assets.get(asset_id)
        if asset is None:
            raise NotFoundError(f"asset {asset_id}")
        return dict(vars(asset))

    def release_pending(self) -> List[str]:
        """
        Apply groups held back while ``hold_confirmations`` was set, in
        arrival order. A group that fails is dropped from the pool and its
        transactions report the rejection reason as ``pool_error``; later
        groups still apply. Returns the ids that committed.
        """
        pending, self._pending = self._pending, []
        applied: List[str] = []
        for ids, txns in pending:
            try:
                self._apply(txns, ids)
            except SubmissionError as e:
                for i in ids:
                    self._rejected[i] = PendingInfo(tx_id=i, pool_error=e.reason)
                continue
            applied.extend(ids)
        return applied

    # --- LedgerClient ------------------------------------------------------

    def suggested_params(self) -> SuggestedParams:
        return SuggestedParams(
            min_fee=self.min_fee,
            first_valid=self._round,
            last_valid=self._round + VALIDITY_WINDOW,
            genesis_id=self.genesis_id,
        )

    def send_group(self, signed: Sequence[bytes]) -> List[str]:
        if not 1 <= len(signed) <= MAX_GROUP_SIZE:
            raise SubmissionError(f"group size must be 1..{MAX_GROUP_SIZE}, got {len(signed)}")
        txns: List[Transaction] = []
        for i, raw in enumerate(signed):
            try:
                txn, sig = unpack_signed(raw)
            except (TypeError, ValueError) as e:
                raise SubmissionError(f"malformed transaction: {e}", tx_index=i) from e
            self._check_signature(txn, sig, i)
            self._check_header(txn, i)
            txns.append(txn)
        self._check_group(txns)

        ids = [tx_id(t) for t in txns]
        seen: set = set()
        for i, t in enumerate(ids):
            if t in seen:
                raise SubmissionError("duplicate transaction in group", tx_index=i)
            if t in self._confirmed or any(t in queued for queued, _ in self._pending):
                raise SubmissionError("transaction already in ledger", tx_index=i)
            seen.add(t)
        if self.hold_confirmations:
            self._pending.append((ids, txns))
        else:
            self._apply(txns, ids)
        return ids

    def last_round(self) -> int:
        return self._round

    def status_after_round(self, round_: int) -> int:
        # an idle devnet still produces (empty) rounds while a caller waits
        self._round = max(self._round, int(round_) + 1)
        return self._round

    def pending_info(self, tx_id_: str) -> PendingInfo:
        info = self._confirmed.get(tx_id_)
        if info is not None:
            return info
        if any(tx_id_ in ids for ids, _ in self._pending):
            return PendingInfo(tx_id=tx_id_)
        rejected = self._rejected.get(tx_id_)
        if rejected is not None:
            return rejected
        raise NotFoundError(f"transaction {tx_id_}")

    def await_confirmation(self, tx_id: str, max_rounds: int) -> Confirmation:
        return wait_for_confirmation(self, tx_id, max_rounds)

    def app_global_state(self, app_id: int) -> StateMap:
        app = self._world.apps.get(int(app_id))
        if app is None:
            raise NotFoundError(f"app {app_id}")
        return dict(app.global_state)

    def account_app_local_state(self, address: str, app_id: int) -> StateMap:
        acct = self._world.accounts.get(address)
        if acct is None or int(app_id) not in acct.local:
            raise NotFoundError(f"local state of {address} in app {app_id}")
        return dict(acct.local[int(app_id)])

    def app_box(self, app_id: int, name: bytes) -> bytes:
        app = self._world.apps.get(int(app_id))
        if app is None or bytes(name) not in app.boxes:
            raise NotFoundError(f"box {bytes(name).hex()} of app {app_id}")
        return app.boxes[bytes(name)]

    def app_box_names(self, app_id: int, prefix: bytes = b"") -> List[bytes]:
        app = self._world.apps.get(int(app_id))
        if app is None:
            raise NotFoundError(f"app {app_id}")
        return sorted(n for n in app.boxes if n.startswith(prefix))

    def search_transactions(
        self,
        app_id: int,
        *,
        min_round: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[TxRecord]:
        out = [
            r
            for r in self._history
            if r.app_id == int(app_id) and (min_round is None or r.confirmed_round >= min_round)
        ]
        return out[:limit] if limit is not None else out

    # --- validation --------------------------------------------------------

    def _check_signature(self, txn: Transaction, sig: bytes, index: int) -> None:
        try:
            key = Ed25519PublicKey.from_public_bytes(addrs.decode(txn.sender))
            key.verify(sig, sign_bytes(txn))
        except (InvalidSignature, ValueError) as e:
            raise SubmissionError("invalid signature", tx_index=index) from e

    def _check_header(self, txn: Transaction, index: int) -> None:
        if txn.genesis_id != self.genesis_id:
            raise SubmissionError(f"genesis id mismatch: {txn.genesis_id!r}", tx_index=index)
        upcoming = self._round + 1
        if txn.last_valid < upcoming:
            raise NetworkError(
                f"transaction {index} validity window ended at round {txn.last_valid}; refresh parameters",
                code="STALE_PARAMS",
                data={"txIndex": index, "lastValid": txn.last_valid, "round": self._round},
            )
        if txn.first_valid > upcoming:
            raise SubmissionError(f"transaction not valid before round {txn.first_valid}", tx_index=index)
        if txn.fee < 0:
            raise SubmissionError("negative fee", tx_index=index)

    def _check_group(self, txns: Sequence[Transaction]) -> None:
        if len(txns) == 1 and txns[0].group is None:
            return
        expected = compute_group_id(txns)
        for i, t in enumerate(txns):
            if t.group != expected:
                raise SubmissionError("group id mismatch", tx_index=i)

    # --- execution ---------------------------------------------------------

    def _min_balance(self, world: _World, address: str) -> int:
        app_id = world.escrows.get(address)
        if app_id is not None:
            return sum(box_mbr(len(v)) for v in world.apps[app_id].boxes.values())
        acct = world.accounts.get(address)
        if acct is None:
            return 0
        return MIN_BALANCE + ASSET_MIN_BALANCE * len(acct.holdings) + APP_OPTIN_MIN_BALANCE * len(acct.local)

    def _apply(self, txns: List[Transaction], ids: List[str]) -> None:
        world = copy.deepcopy(self._world)
        round_ = self._round + 1
        timestamp = int(self.clock())
        executed: List[_Executed] = []
        touched: set = set()
        index = 0
        try:
            for index, txn in enumerate(txns):
                ex = _Executed(tx_id=ids[index], txn=txn)
                self._charge_fee(world, txn)
                touched.add(txn.sender)
                self._execute(world, txns, index, ex, round_, timestamp, touched)
                executed.append(ex)
            index = -1
            self._check_fees(txns, executed)
            for address in touched:
                acct = world.accounts.get(address)
                held = acct.balance if acct is not None else 0
                if held < self._min_balance(world, address):
                    raise _Fail(f"account {address} would fall below its minimum balance")
        except Reject as e:
            log.info("group rejected by program", reason=e.reason, tx_index=index)
            raise AuthorizationError(e.reason, tx_index=index) from e
        except _Fail as e:
            log.info("group rejected by ledger", reason=e.reason, tx_index=index)
            raise SubmissionError(e.reason, tx_index=index if index >= 0 else None) from e
        except RecordSchemaError as e:
            raise SubmissionError(f"corrupt record: {e.message}", tx_index=index) from e

        self._world = world
        self._round = round_
        for ex in executed:
            self._record(ex, round_, timestamp)
        log.debug("group committed", round=round_, size=len(txns))

    def _charge_fee(self, world: _World, txn: Transaction) -> None:
        acct = world.account(txn.sender)
        if acct.balance < txn.fee:
            raise _Fail(f"{txn.sender} cannot pay fee {txn.fee}")
        acct.balance -= txn.fee

    def _check_fees(self, txns: Sequence[Transaction], executed: Sequence[_Executed]) -> None:
        inner = sum(len(ex.inner) for ex in executed)
        required = self.min_fee * (len(txns) + inner)
        paid = sum(t.fee for t in txns)
        if paid < required:
            raise _Fail(f"fee too small: group paid {paid}, needs {required}")

    def _execute(
        self,
        world: _World,
        group: Sequence[Transaction],
        index: int,
        ex: _Executed,
        round_: int,
        timestamp: int,
        touched: set,
    ) -> None:
        txn = group[index]
        if isinstance(txn, PaymentTxn):
            self._move(world, txn.sender, txn.receiver, txn.amount)
            touched.add(txn.receiver)
        elif isinstance(txn, ApplicationCallTxn):
            self._call(world, group, index, ex, round_, timestamp, touched)
        elif isinstance(txn, AssetConfigTxn):
            self._asset_create(world, txn, ex)
        elif isinstance(txn, AssetTransferTxn):
            self._asset_transfer(world, txn)
        elif isinstance(txn, AssetFreezeTxn):
            self._asset_freeze(world, txn)
        else:
            raise _Fail(f"unsupported transaction type {txn.TYPE!r}")

    def _move(self, world: _World, sender: str, receiver: str, amount: int) -> None:
        if amount < 0:
            raise _Fail("negative amount")
        src = world.account(sender)
        if src.balance < amount:
            raise _Fail(f"overspend by {sender}: balance {src.balance}, amount {amount}")
        src.balance -= amount
        world.account(receiver).balance += amount

    def _call(
        self,
        world: _World,
        group: Sequence[Transaction],
        index: int,
        ex: _Executed,
        round_: int,
        timestamp: int,
        touched: set,
    ) -> None:
        txn: ApplicationCallTxn = group[index]  # type: ignore[assignment]
        is_create = txn.app_id == 0
        if is_create:
            program = self.programs.get(txn.program or "")
            if program is None:
                raise _Fail(f"unknown program {txn.program!r}")
            app_id = world.allocate_id()
            app = _App(app_id=app_id, program=program.name, creator=txn.sender, escrow=addrs.app_address(app_id))
            world.apps[app_id] = app
            world.escrows[app.escrow] = app_id
            ex.created_app_id = app_id
        else:
            app = world.apps.get(txn.app_id)
            if app is None:
                raise _Fail(f"app {txn.app_id} does not exist")
            program = self.programs[app.program]

        if txn.on_complete == OnComplete.OPT_IN:
            acct = world.account(txn.sender)
            if app.app_id in acct.local:
                raise _Fail("account already opted in")
            acct.local[app.app_id] = {}
        elif txn.on_complete == OnComplete.CLOSE_OUT:
            raise _Fail("close-out is not supported")

        ctx = _AppContext(world, app, group, index, round_, timestamp, is_create)
        program.dispatch(ctx)
        ex.logs = ctx.logs
        ex.inner = ctx.inner
        touched.add(app.escrow)
        touched.update(i["receiver"] for i in ctx.inner)

    def _asset_create(self, world: _World, txn: AssetConfigTxn, ex: _Executed) -> None:
        if txn.total <= 0:
            raise _Fail("asset total must be positive")
        if not 0 <= txn.decimals <= 19:
            raise _Fail("asset decimals out of range")
        if len(txn.unit_name.encode("utf-8")) > 8:
            raise _Fail("unit name longer than 8 bytes")
        if len(txn.asset_name.encode("utf-8")) > 32:
            raise _Fail("asset name longer than 32 bytes")
        asset_id = world.allocate_id()
        world.assets[asset_id] = _Asset(
            asset_id=asset_id,
            creator=txn.sender,
            total=txn.total,
            decimals=txn.decimals,
            asset_name=txn.asset_name,
            unit_name=txn.unit_name,
            url=txn.url,
            default_frozen=txn.default_frozen,
            manager=txn.manager,
            reserve=txn.reserve,
            freeze=txn.freeze,
            clawback=txn.clawback,
        )
        world.account(txn.sender).holdings[asset_id] = _Holding(amount=txn.total)
        ex.created_asset_id = asset_id

    def _asset_transfer(self, world: _World, txn: AssetTransferTxn) -> None:
        asset = world.assets.get(txn.asset_id)
        if asset is None:
            raise _Fail(f"asset {txn.asset_id} does not exist")
        if txn.amount < 0:
            raise _Fail("negative amount")

        if txn.asset_sender is None and txn.sender == txn.receiver and txn.amount == 0:
            acct = world.account(txn.sender)
            if txn.asset_id not in acct.holdings:
                acct.holdings[txn.asset_id] = _Holding(frozen=asset.default_frozen)
            return

        if txn.asset_sender is not None:
            if txn.sender != asset.clawback:
                raise _Fail("sender is not the clawback account")
            source = txn.asset_sender
        else:
            source = txn.sender

        src = world.account(source).holdings.get(txn.asset_id)
        dst = world.account(txn.receiver).holdings.get(txn.asset_id)
        if src is None:
            raise _Fail(f"{source} has not opted in to asset {txn.asset_id}")
        if dst is None:
            raise _Fail(f"{txn.receiver} has not opted in to asset {txn.asset_id}")
        if txn.asset_sender is None and (src.frozen or dst.frozen):
            raise _Fail("asset holding is frozen")
        if src.amount < txn.amount:
            raise _Fail(f"underflow on asset {txn.asset_id}: {src.amount} < {txn.amount}")
        src.amount -= txn.amount
        dst.amount += txn.amount

    def _asset_freeze(self, world: _World, txn: AssetFreezeTxn) -> None:
        asset = world.assets.get(txn.asset_id)
        if asset is None:
            raise _Fail(f"asset {txn.asset_id} does not exist")
        if txn.sender != asset.freeze:
            raise _Fail("sender is not the freeze account")
        holding = world.account(txn.target).holdings.get(txn.asset_id)
        if holding is None:
            raise _Fail(f"{txn.target} has not opted in to asset {txn.asset_id}")
        holding.frozen = bool(txn.frozen)

    def _record(self, ex: _Executed, round_: int, timestamp: int) -> None:
        txn = ex.txn
        inner = tuple(ex.inner)
        self._confirmed[ex.tx_id] = PendingInfo(
            tx_id=ex.tx_id,
            confirmed_round=round_,
            logs=tuple(ex.logs),
            created_app_id=ex.created_app_id,
            created_asset_id=ex.created_asset_id,
            inner_txns=inner,
        )
        if isinstance(txn, ApplicationCallTxn):
            self._history.append(
                TxRecord(
                    tx_id=ex.tx_id,
                    confirmed_round=round_,
                    round_time=timestamp,
                    sender=txn.sender,
                    tx_type=txn.TYPE,
                    app_id=ex.created_app_id or txn.app_id,
                    app_args=tuple(bytes(a) for a in txn.app_args),
                    logs=tuple(ex.logs),
                    inner_txns=inner,
                )
            )


__all__ = ["LocalLedger", "MIN_BALANCE", "MAX_GROUP_SIZE"]
