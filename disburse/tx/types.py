"""
disburse.tx.types
=================

Transaction dataclasses understood by the ledger.

Every transaction shares a header (sender, fee, validity window, genesis id,
note, group id) and adds type-specific fields:

- PaymentTxn          ("pay")   native value transfer
- ApplicationCallTxn  ("appl")  contract call / create / opt-in
- AssetConfigTxn      ("acfg")  fungible asset creation
- AssetTransferTxn    ("axfer") asset transfer, opt-in (0 to self) or clawback
- AssetFreezeTxn      ("afrz")  freeze / unfreeze a holding
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import ClassVar, List, Optional, Tuple

__all__ = [
    "OnComplete",
    "SuggestedParams",
    "Transaction",
    "PaymentTxn",
    "ApplicationCallTxn",
    "AssetConfigTxn",
    "AssetTransferTxn",
    "AssetFreezeTxn",
    "BoxRef",
]

BoxRef = Tuple[int, bytes]


class OnComplete(IntEnum):
    NOOP = 0
    OPT_IN = 1
    CLOSE_OUT = 2


@dataclass(frozen=True)
class SuggestedParams:
    """Network fee and validity parameters fetched before building a group."""

    min_fee: int
    first_valid: int
    last_valid: int
    genesis_id: str

    def fee(self, multiplier: int = 1) -> int:
        return self.min_fee * int(multiplier)


@dataclass(kw_only=True)
class Transaction:
    TYPE: ClassVar[str] = ""

    sender: str
    fee: int = 0
    first_valid: int = 0
    last_valid: int = 0
    genesis_id: str = ""
    note: bytes = b""
    group: Optional[bytes] = None

    def apply_params(self, params: SuggestedParams, *, multiplier: int = 1) -> None:
        """Fill the header from ``params``. An explicit non-zero fee is kept."""
        if not self.fee:
            self.fee = params.fee(multiplier)
        self.first_valid = params.first_valid
        self.last_valid = params.last_valid
        self.genesis_id = params.genesis_id


@dataclass(kw_only=True)
class PaymentTxn(Transaction):
    TYPE: ClassVar[str] = "pay"

    receiver: str
    amount: int


@dataclass(kw_only=True)
class ApplicationCallTxn(Transaction):
    """
    Contract invocation.

    ``app_id == 0`` creates a new application running ``program`` (a name
    registered with the ledger's program registry).
    """

    TYPE: ClassVar[str] = "appl"

    app_id: int
    on_complete: OnComplete = OnComplete.NOOP
    app_args: List[bytes] = field(default_factory=list)
    accounts: List[str] = field(default_factory=list)
    foreign_assets: List[int] = field(default_factory=list)
    boxes: List[BoxRef] = field(default_factory=list)
    program: Optional[str] = None


@dataclass(kw_only=True)
class AssetConfigTxn(Transaction):
    TYPE: ClassVar[str] = "acfg"

    total: int
    decimals: int = 0
    asset_name: str = ""
    unit_name: str = ""
    url: str = ""
    default_frozen: bool = False
    manager: Optional[str] = None
    reserve: Optional[str] = None
    freeze: Optional[str] = None
    clawback: Optional[str] = None


@dataclass(kw_only=True)
class AssetTransferTxn(Transaction):
    """
    Asset movement. ``asset_sender`` set means a clawback: ``sender`` must be
    the clawback role and funds move from ``asset_sender`` to ``receiver``.
    """

    TYPE: ClassVar[str] = "axfer"

    asset_id: int
    receiver: str
    amount: int = 0
    asset_sender: Optional[str] = None


@dataclass(kw_only=True)
class AssetFreezeTxn(Transaction):
    TYPE: ClassVar[str] = "afrz"

    asset_id: int
    target: str
    frozen: bool
