# Scheme Factory program
# ----------------------
# Hosts many benefit schemes in one application. Each scheme is a 256-byte
# box record, each beneficiary a 32-byte box record (see disburse.storage.records).
# The application's escrow account holds every scheme's funded-but-unspent
# balance plus the box reserves, and is the source of every payout.
#
# Interface:
#   create()                                           deployer becomes primary authority
#   update_authority(address)                          primary only
#   add_admin(address) / remove_admin(address)         primary only
#   create_scheme(pay,string,uint64,uint64,uint64)uint64
#   fund_scheme(uint64,pay)
#   activate_scheme / pause_scheme / resume_scheme(uint64)
#   close_scheme(uint64)     -> CANCELLED, remainder back to the scheme authority
#   complete_scheme(uint64)  -> COMPLETED, remainder back to the scheme authority
#   register_beneficiary(uint64,pay)                   self-service
#   verify_beneficiary / approve_beneficiary / reject_beneficiary(uint64,account)
#   release_funds(uint64,account)                      at most once per beneficiary
#
# Notes:
# - Amount and destination of a release come from stored state only.
# - Invariant kept by every method: spent <= funded <= budget.

from __future__ import annotations

from .. import address as addrs
from ..storage.records import (BENEFICIARY_BOX_SIZE, NAME_MAX_BYTES,
                               SCHEME_BOX_SIZE, BeneficiaryRecord,
                               SchemeRecord, admin_key, beneficiary_key,
                               box_mbr, scheme_key)
from ..types import BeneficiaryStatus, SchemeStatus
from .runtime import AppContext, Program, emit, require

PROGRAM = Program("scheme_factory")

# ---- global keys --------------------------------------------------------------------
K_AUTHORITY = b"authority"
K_SCHEME_COUNT = b"scheme_count"
K_TOTAL_FUNDED = b"total_funded"
K_TOTAL_DISBURSED = b"total_disbursed"
K_TOTAL_BENEFICIARIES = b"total_beneficiaries"

# ---- helpers ------------------------------------------------------------------------


def _primary(ctx: AppContext) -> str:
    return addrs.encode(ctx.global_get(K_AUTHORITY, b""))


def _is_secondary(ctx: AppContext, who: str) -> bool:
    return ctx.box_get(admin_key(who)) is not None


def _is_admin(ctx: AppContext, rec: SchemeRecord, who: str) -> bool:
    return who == rec.authority or who == _primary(ctx) or _is_secondary(ctx, who)


def _bump(ctx: AppContext, key: bytes, delta: int) -> None:
    ctx.global_put(key, ctx.global_get(key, 0) + delta)


def _load(ctx: AppContext, scheme_id: int) -> SchemeRecord:
    raw = ctx.box_get(scheme_key(scheme_id))
    require(raw is not None, "scheme not found")
    return SchemeRecord.decode(raw)


def _store(ctx: AppContext, scheme_id: int, rec: SchemeRecord) -> None:
    ctx.box_put(scheme_key(scheme_id), rec.encode())


def _load_beneficiary(ctx: AppContext, scheme_id: int, who: str) -> BeneficiaryRecord:
    raw = ctx.box_get(beneficiary_key(scheme_id, who))
    require(raw is not None, "beneficiary not registered")
    return BeneficiaryRecord.decode(raw)


def _require_deposit(ctx: AppContext, pay, minimum: int, what: str) -> None:
    require(pay.sender == ctx.sender, f"{what} must come from the caller")
    require(pay.receiver == ctx.escrow, f"{what} must go to the application escrow")
    require(pay.amount >= minimum, f"{what} below required {minimum}")


def _settle(ctx: AppContext, scheme_id: int, rec: SchemeRecord, final: SchemeStatus) -> None:
    require(_is_admin(ctx, rec, ctx.sender), "unauthorized")
    remainder = rec.funded - rec.spent
    if remainder > 0:
        ctx.pay(rec.authority, remainder)
    _store(ctx, scheme_id, rec.with_changes(status=final))
    emit(ctx, "SchemeSettled", scheme_id=scheme_id, status=int(final), refunded=remainder)


# ---- administration -----------------------------------------------------------------


@PROGRAM.method("create()void", create=True)
def create(ctx: AppContext) -> None:
    ctx.global_put(K_AUTHORITY, addrs.decode(ctx.sender))
    for key in (K_SCHEME_COUNT, K_TOTAL_FUNDED, K_TOTAL_DISBURSED, K_TOTAL_BENEFICIARIES):
        ctx.global_put(key, 0)


@PROGRAM.method("update_authority(address)void")
def update_authority(ctx: AppContext, new_authority: str) -> None:
    require(ctx.sender == _primary(ctx), "only the primary authority may rotate authority")
    ctx.global_put(K_AUTHORITY, addrs.decode(new_authority))
    emit(ctx, "AuthorityRotated", authority=new_authority)


@PROGRAM.method("add_admin(address)void")
def add_admin(ctx: AppContext, who: str) -> None:
    require(ctx.sender == _primary(ctx), "only the primary authority may add admins")
    require(not _is_secondary(ctx, who), "already an admin")
    ctx.box_create(admin_key(who), b"\x01")


@PROGRAM.method("remove_admin(address)void")
def remove_admin(ctx: AppContext, who: str) -> None:
    require(ctx.sender == _primary(ctx), "only the primary authority may remove admins")
    require(_is_secondary(ctx, who), "not an admin")
    ctx.box_delete(admin_key(who))


# ---- scheme lifecycle ---------------------------------------------------------------


@PROGRAM.method("create_scheme(pay,string,uint64,uint64,uint64)uint64")
def create_scheme(ctx: AppContext, pay, name: str, budget: int, payout: int, deadline: int) -> int:
    require(ctx.sender == _primary(ctx) or _is_secondary(ctx, ctx.sender), "unauthorized")
    _require_deposit(ctx, pay, box_mbr(SCHEME_BOX_SIZE), "storage reserve")
    require(0 < len(name.encode("utf-8")) <= NAME_MAX_BYTES, "bad name length")
    require(payout > 0, "payout must be positive")
    require(budget >= payout, "payout exceeds budget")
    require(deadline > ctx.timestamp, "deadline must be in the future")

    scheme_id = ctx.global_get(K_SCHEME_COUNT, 0) + 1
    ctx.global_put(K_SCHEME_COUNT, scheme_id)
    rec = SchemeRecord(
        name=name,
        budget=budget,
        payout=payout,
        deadline=deadline,
        status=SchemeStatus.DRAFT,
        funded=0,
        spent=0,
        beneficiary_count=0,
        authority=ctx.sender,
        created_round=ctx.round,
    )
    ctx.box_create(scheme_key(scheme_id), rec.encode())
    emit(ctx, "SchemeCreated", scheme_id=scheme_id, budget=budget, payout=payout)
    return scheme_id


@PROGRAM.method("fund_scheme(uint64,pay)void")
def fund_scheme(ctx: AppContext, scheme_id: int, pay) -> None:
    rec = _load(ctx, scheme_id)
    require(not rec.status.is_terminal, "scheme is closed")
    _require_deposit(ctx, pay, 1, "funding")
    require(rec.funded + pay.amount <= rec.budget, "funding exceeds budget")
    _store(ctx, scheme_id, rec.with_changes(funded=rec.funded + pay.amount))
    _bump(ctx, K_TOTAL_FUNDED, pay.amount)
    emit(ctx, "SchemeFunded", scheme_id=scheme_id, amount=pay.amount)


@PROGRAM.method("activate_scheme(uint64)void")
def activate_scheme(ctx: AppContext, scheme_id: int) -> None:
    rec = _load(ctx, scheme_id)
    require(_is_admin(ctx, rec, ctx.sender), "unauthorized")
    require(rec.status == SchemeStatus.DRAFT, "scheme is not a draft")
    _store(ctx, scheme_id, rec.with_changes(status=SchemeStatus.ACTIVE))


@PROGRAM.method("pause_scheme(uint64)void")
def pause_scheme(ctx: AppContext, scheme_id: int) -> None:
    rec = _load(ctx, scheme_id)
    require(_is_admin(ctx, rec, ctx.sender), "unauthorized")
    require(rec.status == SchemeStatus.ACTIVE, "scheme is not active")
    _store(ctx, scheme_id, rec.with_changes(status=SchemeStatus.PAUSED))


@PROGRAM.method("resume_scheme(uint64)void")
def resume_scheme(ctx: AppContext, scheme_id: int) -> None:
    rec = _load(ctx, scheme_id)
    require(_is_admin(ctx, rec, ctx.sender), "unauthorized")
    require(rec.status == SchemeStatus.PAUSED, "scheme is not paused")
    _store(ctx, scheme_id, rec.with_changes(status=SchemeStatus.ACTIVE))


@PROGRAM.method("close_scheme(uint64)void")
def close_scheme(ctx: AppContext, scheme_id: int) -> None:
    rec = _load(ctx, scheme_id)
    require(not rec.status.is_terminal, "scheme is already closed")
    _settle(ctx, scheme_id, rec, SchemeStatus.CANCELLED)


@PROGRAM.method("complete_scheme(uint64)void")
def complete_scheme(ctx: AppContext, scheme_id: int) -> None:
    rec = _load(ctx, scheme_id)
    require(rec.status in (SchemeStatus.ACTIVE, SchemeStatus.PAUSED), "scheme is not running")
    _settle(ctx, scheme_id, rec, SchemeStatus.COMPLETED)


# ---- beneficiaries ------------------------------------------------------------------


@PROGRAM.method("register_beneficiary(uint64,pay)void")
def register_beneficiary(ctx: AppContext, scheme_id: int, pay) -> None:
    rec = _load(ctx, scheme_id)
    require(rec.status == SchemeStatus.ACTIVE, "scheme is not active")
    require(ctx.timestamp <= rec.deadline, "registration deadline has passed")
    _require_deposit(ctx, pay, box_mbr(BENEFICIARY_BOX_SIZE), "storage reserve")
    key = beneficiary_key(scheme_id, ctx.sender)
    require(ctx.box_get(key) is None, "already registered")

    ctx.box_create(
        key,
        BeneficiaryRecord(
            status=BeneficiaryStatus.REGISTERED,
            registered_round=ctx.round,
            updated_round=ctx.round,
        ).encode(),
    )
    _store(ctx, scheme_id, rec.with_changes(beneficiary_count=rec.beneficiary_count + 1))
    _bump(ctx, K_TOTAL_BENEFICIARIES, 1)
    emit(ctx, "BeneficiaryRegistered", scheme_id=scheme_id, beneficiary=ctx.sender)


def _transition(ctx: AppContext, scheme_id: int, who: str, allowed, target: BeneficiaryStatus) -> None:
    rec = _load(ctx, scheme_id)
    require(_is_admin(ctx, rec, ctx.sender), "unauthorized")
    require(not rec.status.is_terminal, "scheme is closed")
    ben = _load_beneficiary(ctx, scheme_id, who)
    require(ben.status in allowed, f"cannot move beneficiary from {ben.status.name} to {target.name}")
    ctx.box_put(beneficiary_key(scheme_id, who), ben.with_changes(status=target, updated_round=ctx.round).encode())
    emit(ctx, "BeneficiaryUpdated", scheme_id=scheme_id, beneficiary=who, status=int(target))


@PROGRAM.method("verify_beneficiary(uint64,account)void")
def verify_beneficiary(ctx: AppContext, scheme_id: int, who: str) -> None:
    _transition(ctx, scheme_id, who, (BeneficiaryStatus.REGISTERED,), BeneficiaryStatus.VERIFIED)


@PROGRAM.method("approve_beneficiary(uint64,account)void")
def approve_beneficiary(ctx: AppContext, scheme_id: int, who: str) -> None:
    _transition(
        ctx,
        scheme_id,
        who,
        (BeneficiaryStatus.REGISTERED, BeneficiaryStatus.VERIFIED),
        BeneficiaryStatus.APPROVED,
    )


@PROGRAM.method("reject_beneficiary(uint64,account)void")
def reject_beneficiary(ctx: AppContext, scheme_id: int, who: str) -> None:
    _transition(
        ctx,
        scheme_id,
        who,
        (BeneficiaryStatus.REGISTERED, BeneficiaryStatus.VERIFIED, BeneficiaryStatus.APPROVED),
        BeneficiaryStatus.REJECTED,
    )


@PROGRAM.method("release_funds(uint64,account)void")
def release_funds(ctx: AppContext, scheme_id: int, who: str) -> None:
    rec = _load(ctx, scheme_id)
    require(_is_admin(ctx, rec, ctx.sender) or ctx.sender == who, "unauthorized")
    require(rec.status == SchemeStatus.ACTIVE, "scheme is not active")
    ben = _load_beneficiary(ctx, scheme_id, who)
    require(ben.status != BeneficiaryStatus.FUNDED, "already funded")
    require(ben.status == BeneficiaryStatus.APPROVED, "beneficiary is not approved")
    require(rec.spent + rec.payout <= rec.funded, "insufficient scheme funds")

    ctx.pay(who, rec.payout)
    _store(ctx, scheme_id, rec.with_changes(spent=rec.spent + rec.payout))
    ctx.box_put(
        beneficiary_key(scheme_id, who),
        ben.with_changes(
            status=BeneficiaryStatus.FUNDED,
            amount_received=rec.payout,
            updated_round=ctx.round,
        ).encode(),
    )
    _bump(ctx, K_TOTAL_DISBURSED, rec.payout)
    emit(ctx, "FundsReleased", scheme_id=scheme_id, beneficiary=who, amount=rec.payout)
