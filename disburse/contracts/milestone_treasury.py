"""
disburse.contracts.milestone_treasury
=====================================

Client for the single-scheme milestone treasury.

Student flow: ``opt_in`` -> ``register_student`` -> (authority)
``mark_milestone_complete`` -> ``release_payout``. Opt-in is pre-checked
against local state so an already opted-in account fails locally.
"""

from __future__ import annotations

from typing import Optional

from .. import address as addrs
from ..errors import ValidationError
from ..ledger.client import state_bytes, state_int
from ..programs.milestone_treasury import (K_ACTIVE, K_AUTHORITY, K_PAYOUT,
                                           K_SPENT_BUDGET, K_TOTAL_BUDGET,
                                           L_COMPLETED, L_PAID, L_REGISTERED)
from ..tx.composer import ExecuteResult
from ..tx.types import ApplicationCallTxn, OnComplete
from ..types import StudentRecord, TreasuryState
from .base import AppClient

__all__ = ["MilestoneTreasuryClient"]


class MilestoneTreasuryClient(AppClient):
    PROGRAM = "milestone_treasury"
    CREATE = "create(uint64,uint64)void"

    def deploy_treasury(self, total_budget: int, payout_amount: int) -> int:
        problems = []
        if payout_amount <= 0:
            problems.append("payout must be positive")
        if total_budget < payout_amount:
            problems.append("payout cannot exceed budget")
        if problems:
            raise ValidationError(problems)
        return self.deploy([total_budget, payout_amount])

    def fund(self, amount: int) -> ExecuteResult:
        if amount <= 0:
            raise ValidationError("amount must be positive")
        comp = self.composer()
        comp.add_transaction(self.pay_arg(amount).txn, self.signer)
        return comp.execute()

    def opt_in(self) -> ExecuteResult:
        if self.local_state(self.sender) is not None:
            raise ValidationError("account is already opted in to the treasury")
        comp = self.composer()
        comp.add_transaction(
            ApplicationCallTxn(sender=self.sender, app_id=self.require_app_id(), on_complete=OnComplete.OPT_IN),
            self.signer,
        )
        return comp.execute()

    def register_student(self) -> ExecuteResult:
        if self.local_state(self.sender) is None:
            raise ValidationError("opt in to the treasury before registering")
        return self.call("register_student()void")

    def mark_milestone_complete(self, student: str) -> ExecuteResult:
        if not addrs.is_valid(student):
            raise ValidationError(f"invalid address: {student!r}")
        return self.call("mark_milestone_complete(account)void", [student])

    def release_payout(self, student: str) -> ExecuteResult:
        if not addrs.is_valid(student):
            raise ValidationError(f"invalid address: {student!r}")
        return self.call("release_payout(account)void", [student], inner=True)

    def set_active(self, active: bool) -> ExecuteResult:
        return self.call("set_active(bool)void", [bool(active)])

    # --- reads -------------------------------------------------------------

    def treasury_state(self) -> TreasuryState:
        g = self.global_state()
        raw_auth = state_bytes(g, K_AUTHORITY)
        return TreasuryState(
            total_budget=state_int(g, K_TOTAL_BUDGET),
            spent_budget=state_int(g, K_SPENT_BUDGET),
            payout_amount=state_int(g, K_PAYOUT),
            scheme_active=state_int(g, K_ACTIVE) == 1,
            authority=addrs.encode(raw_auth) if len(raw_auth) == addrs.ADDRESS_LEN else "",
        )

    def student_record(self, address: str) -> Optional[StudentRecord]:
        local = self.local_state(address)
        if local is None:
            return None
        return StudentRecord(
            address=address,
            is_registered=state_int(local, L_REGISTERED) == 1,
            milestone_completed=state_int(local, L_COMPLETED) == 1,
            has_been_paid=state_int(local, L_PAID) == 1,
        )
