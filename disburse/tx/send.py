"""
disburse.tx.send
================

Bounded confirmation waiting.

`wait_for_confirmation(node, tx_id, max_rounds)` checks the pending pool once
per round for at most ``max_rounds`` rounds. When the budget runs out it
raises :class:`~disburse.errors.ConfirmationTimeout`; the transaction may
still land later, so callers poll its status manually instead of resubmitting.
"""

from __future__ import annotations

from typing import Protocol

from ..errors import ConfirmationTimeout, SubmissionError
from ..ledger.client import Confirmation, PendingInfo
from ..logging import get_logger

log = get_logger(__name__)


class _Node(Protocol):
    def last_round(self) -> int: ...

    def pending_info(self, tx_id: str) -> PendingInfo: ...

    def status_after_round(self, round_: int) -> int: ...


def wait_for_confirmation(node: _Node, tx_id: str, max_rounds: int = 4) -> Confirmation:
    if max_rounds < 1:
        raise ValueError("max_rounds must be >= 1")
    start = node.last_round()
    current = start
    while current < start + max_rounds:
        info = node.pending_info(tx_id)
        if info.confirmed_round is not None and info.confirmed_round > 0:
            return info.to_confirmation()
        if info.pool_error:
            raise SubmissionError(info.pool_error, data={"txId": tx_id})
        node.status_after_round(current)
        current += 1
    log.warning("confirmation wait expired", tx_id=tx_id, rounds=max_rounds)
    raise ConfirmationTimeout(tx_id, max_rounds)


__all__ = ["wait_for_confirmation"]
