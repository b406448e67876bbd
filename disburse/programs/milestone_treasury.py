# Milestone Treasury program
# --------------------------
# One scholarship-style scheme per application. Students opt in (allocating
# local state), register themselves, get their milestone confirmed by the
# authority, and are paid once from the application escrow.
#
# Interface:
#   create(uint64 total_budget, uint64 payout_amount)   deployer becomes authority
#   <bare opt-in>                                       allocates the student record
#   register_student()
#   mark_milestone_complete(account)                    authority only
#   release_payout(account)                             authority or the student
#   set_active(bool)                                    authority only
#
# Student flags are one-way: 0 -> 1, never back.

from __future__ import annotations

from .. import address as addrs
from .runtime import AppContext, Program, emit, require

PROGRAM = Program("milestone_treasury")

# ---- global keys --------------------------------------------------------------------
K_AUTHORITY = b"authority"
K_TOTAL_BUDGET = b"total_budget"
K_SPENT_BUDGET = b"spent_budget"
K_PAYOUT = b"payout_amount"
K_ACTIVE = b"scheme_active"

# ---- local keys ---------------------------------------------------------------------
L_REGISTERED = b"is_registered"
L_COMPLETED = b"milestone_completed"
L_PAID = b"has_been_paid"


def _authority(ctx: AppContext) -> str:
    return addrs.encode(ctx.global_get(K_AUTHORITY, b""))


@PROGRAM.method("create(uint64,uint64)void", create=True)
def create(ctx: AppContext, total_budget: int, payout_amount: int) -> None:
    require(payout_amount > 0, "payout must be positive")
    require(total_budget >= payout_amount, "payout exceeds budget")
    ctx.global_put(K_AUTHORITY, addrs.decode(ctx.sender))
    ctx.global_put(K_TOTAL_BUDGET, total_budget)
    ctx.global_put(K_SPENT_BUDGET, 0)
    ctx.global_put(K_PAYOUT, payout_amount)
    ctx.global_put(K_ACTIVE, 1)


@PROGRAM.bare_opt_in
def opt_in(ctx: AppContext) -> None:
    for key in (L_REGISTERED, L_COMPLETED, L_PAID):
        ctx.local_put(ctx.sender, key, 0)


@PROGRAM.method("register_student()void")
def register_student(ctx: AppContext) -> None:
    require(ctx.is_opted_in(ctx.sender), "not opted in")
    require(ctx.local_get(ctx.sender, L_REGISTERED) == 0, "already registered")
    ctx.local_put(ctx.sender, L_REGISTERED, 1)
    emit(ctx, "StudentRegistered", student=ctx.sender)


@PROGRAM.method("mark_milestone_complete(account)void")
def mark_milestone_complete(ctx: AppContext, student: str) -> None:
    require(ctx.sender == _authority(ctx), "unauthorized")
    require(ctx.is_opted_in(student), "student not opted in")
    ctx.local_put(student, L_COMPLETED, 1)
    emit(ctx, "MilestoneCompleted", student=student)


@PROGRAM.method("release_payout(account)void")
def release_payout(ctx: AppContext, student: str) -> None:
    require(ctx.sender in (_authority(ctx), student), "unauthorized")
    require(ctx.global_get(K_ACTIVE) == 1, "scheme is not active")
    require(ctx.is_opted_in(student), "student not opted in")
    require(ctx.local_get(student, L_REGISTERED) == 1, "student not registered")
    require(ctx.local_get(student, L_COMPLETED) == 1, "milestone not complete")
    require(ctx.local_get(student, L_PAID) == 0, "already paid")
    payout = ctx.global_get(K_PAYOUT)
    spent = ctx.global_get(K_SPENT_BUDGET)
    require(spent + payout <= ctx.global_get(K_TOTAL_BUDGET), "budget exhausted")

    ctx.pay(student, payout)
    ctx.local_put(student, L_PAID, 1)
    ctx.global_put(K_SPENT_BUDGET, spent + payout)
    emit(ctx, "PayoutReleased", student=student, amount=payout)


@PROGRAM.method("set_active(bool)void")
def set_active(ctx: AppContext, active: bool) -> None:
    require(ctx.sender == _authority(ctx), "unauthorized")
    ctx.global_put(K_ACTIVE, 1 if active else 0)
