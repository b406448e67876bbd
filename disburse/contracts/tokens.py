"""
disburse.contracts.tokens
=========================

Fungible disbursement tokens (scheme credits, scholarships, grants).

The issuing authority holds all four roles (manager, reserve, freeze,
clawback). Holders must opt in before they can receive anything.

- ``create_token(cfg)``              -> asset id
- ``opt_in(asset_id)``               zero-amount transfer to self, by the holder
- ``transfer`` / ``batch_transfer``  authority -> opted-in recipients (<= 16 per group)
- ``clawback(asset_id, holder, n)``  holder balance back to the authority
- ``freeze`` / ``unfreeze``
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple

from .. import address as addrs
from ..config import DisburseConfig
from ..errors import NotFoundError, ValidationError
from ..ledger.client import LedgerClient
from ..logging import get_logger
from ..metrics import METRICS, Metrics
from ..tx.composer import ExecuteResult, TransactionComposer
from ..tx.types import AssetConfigTxn, AssetFreezeTxn, AssetTransferTxn
from ..types import TokenConfig

__all__ = ["TokenIssuer", "generate_unit_name", "MAX_UNIT_NAME", "MAX_ASSET_NAME"]

log = get_logger(__name__)

MAX_UNIT_NAME = 8
MAX_ASSET_NAME = 32
MAX_DECIMALS = 19


def generate_unit_name(scheme_name: str, *, clock: Callable[[], float] = time.time) -> str:
    """Initials of ``scheme_name`` plus the two-digit year, at most 8 characters."""
    initials = "".join(w[0] for w in scheme_name.split() if w).upper()
    year = datetime.fromtimestamp(clock(), tz=timezone.utc).strftime("%y")
    return (initials + year)[:MAX_UNIT_NAME]


def validate_token_config(cfg: TokenConfig) -> List[str]:
    problems: List[str] = []
    if not cfg.name.strip():
        problems.append("token name is required")
    elif len(cfg.name.encode("utf-8")) > MAX_ASSET_NAME:
        problems.append(f"token name must be at most {MAX_ASSET_NAME} bytes")
    if not cfg.unit_name.strip():
        problems.append("unit name is required")
    elif len(cfg.unit_name.encode("utf-8")) > MAX_UNIT_NAME:
        problems.append(f"unit name must be at most {MAX_UNIT_NAME} bytes")
    if cfg.total <= 0:
        problems.append("total supply must be positive")
    if not 0 <= cfg.decimals <= MAX_DECIMALS:
        problems.append(f"decimals must be within 0..{MAX_DECIMALS}")
    return problems


class TokenIssuer:
    def __init__(
        self,
        ledger: LedgerClient,
        signer,
        *,
        config: Optional[DisburseConfig] = None,
        metrics: Metrics = METRICS,
    ):
        self.ledger = ledger
        self.signer = signer
        self.config = config or DisburseConfig()
        self.metrics = metrics

    @property
    def sender(self) -> str:
        return self.signer.address

    def _composer(self) -> TransactionComposer:
        return TransactionComposer(self.ledger, config=self.config, metrics=self.metrics)

    def _single(self, txn) -> ExecuteResult:
        comp = self._composer()
        comp.add_transaction(txn, self.signer)
        return comp.execute()

    @staticmethod
    def _check_address(address: str) -> None:
        if not addrs.is_valid(address):
            raise ValidationError(f"invalid address: {address!r}")

    def create_token(self, cfg: TokenConfig) -> int:
        asset_id, _ = self.create_token_with_result(cfg)
        return asset_id

    def create_token_with_result(self, cfg: TokenConfig) -> Tuple[int, ExecuteResult]:
        problems = validate_token_config(cfg)
        if problems:
            raise ValidationError(problems)
        me = self.sender
        result = self._single(
            AssetConfigTxn(
                sender=me,
                total=cfg.total,
                decimals=cfg.decimals,
                asset_name=cfg.name,
                unit_name=cfg.unit_name,
                url=cfg.url,
                manager=me,
                reserve=me,
                freeze=me,
                clawback=me,
            )
        )
        asset_id = result.confirmations[0].created_asset_id
        if not asset_id:
            raise NotFoundError("created asset id")
        log.info("token created", asset_id=asset_id, unit=cfg.unit_name, total=cfg.total)
        return asset_id, result

    def opt_in(self, asset_id: int) -> ExecuteResult:
        return self._single(AssetTransferTxn(sender=self.sender, asset_id=asset_id, receiver=self.sender, amount=0))

    def transfer(self, asset_id: int, receiver: str, amount: int) -> ExecuteResult:
        self._check_address(receiver)
        if amount <= 0:
            raise ValidationError("amount must be positive")
        return self._single(AssetTransferTxn(sender=self.sender, asset_id=asset_id, receiver=receiver, amount=amount))

    def batch_transfer(self, asset_id: int, transfers: Sequence[Tuple[str, int]]) -> ExecuteResult:
        """All ``(receiver, amount)`` pairs in one atomic group."""
        limit = self.config.max_transfer_group
        problems: List[str] = []
        if not transfers:
            problems.append("no transfers given")
        if len(transfers) > limit:
            problems.append(f"at most {limit} transfers fit in one group, got {len(transfers)}")
        for receiver, amount in transfers:
            if not addrs.is_valid(receiver):
                problems.append(f"invalid address: {receiver!r}")
            if amount <= 0:
                problems.append(f"amount for {receiver} must be positive")
        if problems:
            raise ValidationError(problems)

        comp = self._composer()
        for receiver, amount in transfers:
            comp.add_transaction(
                AssetTransferTxn(sender=self.sender, asset_id=asset_id, receiver=receiver, amount=amount),
                self.signer,
            )
        return comp.execute()

    def clawback(self, asset_id: int, holder: str, amount: int) -> ExecuteResult:
        self._check_address(holder)
        if amount <= 0:
            raise ValidationError("amount must be positive")
        return self._single(
            AssetTransferTxn(
                sender=self.sender,
                asset_id=asset_id,
                receiver=self.sender,
                amount=amount,
                asset_sender=holder,
            )
        )

    def freeze(self, asset_id: int, holder: str, frozen: bool = True) -> ExecuteResult:
        self._check_address(holder)
        return self._single(AssetFreezeTxn(sender=self.sender, asset_id=asset_id, target=holder, frozen=frozen))

    def unfreeze(self, asset_id: int, holder: str) -> ExecuteResult:
        return self.freeze(asset_id, holder, frozen=False)
