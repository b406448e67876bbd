# Identity / Eligibility Registry program
# ---------------------------------------
# Citizens mint one active identity each (self-service, after opting in).
# The authority records KYC level and eligibility flags and may revoke.
# Revocation is a soft delete: the record stays, is_active drops to 0, and
# the citizen may mint again later.
#
# Interface:
#   create()                                deployer becomes authority
#   <bare opt-in>
#   mint_identity(string,byte[])uint64      name, sha3-256 of the national id
#   verify_kyc(account,uint64)              level 0..4
#   update_eligibility(account,uint64)      8-bit flag mask
#   revoke_identity(account)

from __future__ import annotations

from .. import address as addrs
from ..storage.records import NAME_MAX_BYTES
from .runtime import AppContext, Program, emit, require

PROGRAM = Program("identity_registry")

MAX_KYC_LEVEL = 4
MAX_FLAGS = 0xFF
ID_HASH_LEN = 32

# ---- global keys --------------------------------------------------------------------
K_AUTHORITY = b"authority"
K_TOTAL = b"total_identities"
K_ACTIVE = b"active_identities"
K_REVOKED = b"revoked_count"

# ---- local keys ---------------------------------------------------------------------
L_ID = b"identity_id"
L_NAME = b"name"
L_HASH = b"id_hash"
L_KYC = b"kyc_level"
L_FLAGS = b"eligibility_flags"
L_ACTIVE = b"is_active"


def _require_authority(ctx: AppContext) -> None:
    require(ctx.sender == addrs.encode(ctx.global_get(K_AUTHORITY, b"")), "unauthorized")


def _require_active(ctx: AppContext, citizen: str) -> None:
    require(ctx.is_opted_in(citizen), "citizen not opted in")
    require(ctx.local_get(citizen, L_ACTIVE) == 1, "no active identity")


@PROGRAM.method("create()void", create=True)
def create(ctx: AppContext) -> None:
    ctx.global_put(K_AUTHORITY, addrs.decode(ctx.sender))
    for key in (K_TOTAL, K_ACTIVE, K_REVOKED):
        ctx.global_put(key, 0)


@PROGRAM.bare_opt_in
def opt_in(ctx: AppContext) -> None:
    ctx.local_put(ctx.sender, L_ID, 0)
    ctx.local_put(ctx.sender, L_NAME, b"")
    ctx.local_put(ctx.sender, L_HASH, b"")
    ctx.local_put(ctx.sender, L_KYC, 0)
    ctx.local_put(ctx.sender, L_FLAGS, 0)
    ctx.local_put(ctx.sender, L_ACTIVE, 0)


@PROGRAM.method("mint_identity(string,byte[])uint64")
def mint_identity(ctx: AppContext, name: str, id_hash: bytes) -> int:
    require(ctx.is_opted_in(ctx.sender), "not opted in")
    require(ctx.local_get(ctx.sender, L_ACTIVE) == 0, "identity already active")
    require(0 < len(name.encode("utf-8")) <= NAME_MAX_BYTES, "bad name length")
    require(len(id_hash) == ID_HASH_LEN, "id hash must be 32 bytes")

    identity_id = ctx.global_get(K_TOTAL) + 1
    ctx.global_put(K_TOTAL, identity_id)
    ctx.global_put(K_ACTIVE, ctx.global_get(K_ACTIVE) + 1)

    ctx.local_put(ctx.sender, L_ID, identity_id)
    ctx.local_put(ctx.sender, L_NAME, name.encode("utf-8"))
    ctx.local_put(ctx.sender, L_HASH, bytes(id_hash))
    ctx.local_put(ctx.sender, L_KYC, 0)
    ctx.local_put(ctx.sender, L_FLAGS, 0)
    ctx.local_put(ctx.sender, L_ACTIVE, 1)
    emit(ctx, "IdentityMinted", citizen=ctx.sender, identity_id=identity_id)
    return identity_id


@PROGRAM.method("verify_kyc(account,uint64)void")
def verify_kyc(ctx: AppContext, citizen: str, level: int) -> None:
    _require_authority(ctx)
    _require_active(ctx, citizen)
    require(level <= MAX_KYC_LEVEL, "kyc level out of range")
    ctx.local_put(citizen, L_KYC, level)
    emit(ctx, "KycVerified", citizen=citizen, level=level)


@PROGRAM.method("update_eligibility(account,uint64)void")
def update_eligibility(ctx: AppContext, citizen: str, flags: int) -> None:
    _require_authority(ctx)
    _require_active(ctx, citizen)
    require(flags <= MAX_FLAGS, "eligibility flags out of range")
    ctx.local_put(citizen, L_FLAGS, flags)
    emit(ctx, "EligibilityUpdated", citizen=citizen, flags=flags)


@PROGRAM.method("revoke_identity(account)void")
def revoke_identity(ctx: AppContext, citizen: str) -> None:
    _require_authority(ctx)
    _require_active(ctx, citizen)
    ctx.local_put(citizen, L_ACTIVE, 0)
    ctx.global_put(K_ACTIVE, ctx.global_get(K_ACTIVE) - 1)
    ctx.global_put(K_REVOKED, ctx.global_get(K_REVOKED) + 1)
    emit(ctx, "IdentityRevoked", citizen=citizen)
