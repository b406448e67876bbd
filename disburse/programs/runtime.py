"""
Runtime surface for ledger programs.

A program is a set of ABI methods registered on a :class:`Program` with the
``@PROGRAM.method("sig")`` decorator. The ledger decodes the call's arguments
from the method signature and invokes the handler as ``fn(ctx, *args)``:

- value args arrive decoded (``account`` args as bech32m address strings)
- transaction args (``pay``/``axfer``) arrive as the preceding group members
- a non-void return value is logged with the ABI return prefix

Handlers talk to the ledger only through the :class:`AppContext` they are
given and abort with :func:`require`; an abort rolls back the whole group.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from ..abi import RETURN_PREFIX, Method, decode_value, encode_value
from ..errors import AbiError
from ..tx.types import (ApplicationCallTxn, AssetTransferTxn, OnComplete,
                        PaymentTxn, Transaction)
from ..utils.cbor import cbor_dumps

__all__ = [
    "Reject",
    "require",
    "AppContext",
    "Program",
    "EVENT_PREFIX",
    "emit",
]

EVENT_PREFIX = b"evt:"

_TXN_CLASSES = {"pay": PaymentTxn, "axfer": AssetTransferTxn, "txn": Transaction}


class Reject(Exception):
    """Program assertion failure; the ledger aborts the group."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


def require(cond: Any, reason: str) -> None:
    if not cond:
        raise Reject(reason)


class AppContext(Protocol):
    """What a running program may observe and change."""

    app_id: int
    escrow: str
    sender: str
    txn: ApplicationCallTxn
    group: Sequence[Transaction]
    index: int
    round: int
    timestamp: int
    is_create: bool

    def global_get(self, key: bytes, default: Any = 0) -> Any: ...

    def global_put(self, key: bytes, value: Any) -> None: ...

    def is_opted_in(self, address: str) -> bool: ...

    def local_get(self, address: str, key: bytes, default: Any = 0) -> Any: ...

    def local_put(self, address: str, key: bytes, value: Any) -> None: ...

    def box_get(self, name: bytes) -> Optional[bytes]: ...

    def box_create(self, name: bytes, data: bytes) -> None: ...

    def box_put(self, name: bytes, data: bytes) -> None: ...

    def box_delete(self, name: bytes) -> None: ...

    def balance(self, address: str) -> int: ...

    def pay(self, receiver: str, amount: int) -> None: ...

    def log(self, data: bytes) -> None: ...


def emit(ctx: AppContext, name: str, **fields: Any) -> None:
    """Log a structured event line (``EVENT_PREFIX`` + CBOR map)."""
    ctx.log(EVENT_PREFIX + cbor_dumps({"event": name, **fields}))


@dataclass(frozen=True)
class Handler:
    method: Method
    fn: Callable[..., Any]
    create: bool
    on_complete: OnComplete


class Program:
    def __init__(self, name: str):
        self.name = name
        self._handlers: Dict[bytes, Handler] = {}
        self._bare_opt_in: Optional[Callable[[AppContext], None]] = None

    def method(
        self,
        signature: str,
        *,
        create: bool = False,
        on_complete: OnComplete = OnComplete.NOOP,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        m = Method.from_signature(signature)

        def _decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
            if m.selector in self._handlers:
                raise ValueError(f"duplicate method {signature} in program {self.name}")
            self._handlers[m.selector] = Handler(m, fn, create, on_complete)
            return fn

        return _decorator

    def bare_opt_in(self, fn: Callable[[AppContext], None]) -> Callable[[AppContext], None]:
        self._bare_opt_in = fn
        return fn

    @property
    def methods(self) -> List[Method]:
        return [h.method for h in self._handlers.values()]

    def dispatch(self, ctx: AppContext) -> None:
        txn = ctx.txn
        if not txn.app_args:
            require(
                txn.on_complete == OnComplete.OPT_IN and not ctx.is_create and self._bare_opt_in is not None,
                "no method selected",
            )
            self._bare_opt_in(ctx)  # type: ignore[misc]
            return

        handler = self._handlers.get(bytes(txn.app_args[0]))
        require(handler is not None, "unknown method")
        assert handler is not None
        require(handler.create == ctx.is_create, "method not callable in this phase")
        require(handler.on_complete == txn.on_complete, "wrong on-completion for method")

        args = self._decode_args(ctx, handler.method)
        result = handler.fn(ctx, *args)
        if handler.method.returns != "void":
            ctx.log(RETURN_PREFIX + encode_value(handler.method.returns, result))

    def _decode_args(self, ctx: AppContext, method: Method) -> List[Any]:
        txn = ctx.txn
        raw_args = [bytes(a) for a in txn.app_args[1:]]
        require(len(raw_args) == len(method.value_args), "wrong argument count")

        first_txn_arg = ctx.index - method.txn_arg_count
        require(first_txn_arg >= 0, "missing transaction argument")

        out: List[Any] = []
        raw_iter = iter(raw_args)
        txn_pos = first_txn_arg
        for arg in method.args:
            if arg.is_txn:
                member = ctx.group[txn_pos]
                txn_pos += 1
                require(isinstance(member, _TXN_CLASSES[arg.type]), f"argument must be a {arg.type} transaction")
                out.append(member)
                continue
            raw = next(raw_iter)
            try:
                value = decode_value(arg.type, raw)
            except AbiError as e:
                raise Reject(f"malformed argument: {e.message}") from e
            if arg.type == "account":
                if value == 0:
                    value = txn.sender
                else:
                    require(value <= len(txn.accounts), "account index out of range")
                    value = txn.accounts[value - 1]
            out.append(value)
        return out
