"""
disburse.contracts.identity
===========================

Client for the identity / eligibility registry.

The national id never leaves the client in clear: ``mint_identity`` sends
only its SHA3-256 digest. Eligibility travels as :class:`~disburse.types.Eligibility`
and is packed into the 8-bit on-ledger mask only here.
"""

from __future__ import annotations

from typing import Optional

from .. import address as addrs
from ..errors import ValidationError
from ..ledger.client import state_bytes, state_int
from ..programs.identity_registry import (K_ACTIVE, K_AUTHORITY, K_REVOKED,
                                          K_TOTAL, L_ACTIVE, L_FLAGS, L_HASH,
                                          L_ID, L_KYC, L_NAME, MAX_KYC_LEVEL)
from ..storage.records import NAME_MAX_BYTES, pack_eligibility, unpack_eligibility
from ..tx.composer import ExecuteResult
from ..tx.types import ApplicationCallTxn, OnComplete
from ..types import CitizenIdentity, Eligibility, IdentityStats, KycLevel
from ..utils.hash import sha3_256
from .base import AppClient

__all__ = ["IdentityRegistryClient", "hash_national_id"]


def hash_national_id(national_id: str) -> bytes:
    """One-way digest of a national id (whitespace and case normalized)."""
    normalized = "".join(national_id.split()).upper()
    if not normalized:
        raise ValidationError("national id is required")
    return sha3_256(normalized.encode("utf-8"))


class IdentityRegistryClient(AppClient):
    PROGRAM = "identity_registry"

    def opt_in(self) -> ExecuteResult:
        if self.local_state(self.sender) is not None:
            raise ValidationError("account is already opted in to the identity registry")
        comp = self.composer()
        comp.add_transaction(
            ApplicationCallTxn(sender=self.sender, app_id=self.require_app_id(), on_complete=OnComplete.OPT_IN),
            self.signer,
        )
        return comp.execute()

    def is_opted_in(self, address: str) -> bool:
        return self.local_state(address) is not None

    def mint_identity(self, name: str, national_id: str) -> int:
        """Mint the signer's identity; returns the identity id."""
        problems = []
        if not name.strip():
            problems.append("name is required")
        elif len(name.encode("utf-8")) > NAME_MAX_BYTES:
            problems.append(f"name must be at most {NAME_MAX_BYTES} bytes")
        if not "".join(national_id.split()):
            problems.append("national id is required")
        if problems:
            raise ValidationError(problems)
        result = self.call("mint_identity(string,byte[])uint64", [name, hash_national_id(national_id)])
        return int(result.last_return)

    def verify_kyc(self, citizen: str, level: KycLevel) -> ExecuteResult:
        self._check_address(citizen)
        level = int(level)
        if not 0 <= level <= MAX_KYC_LEVEL:
            raise ValidationError(f"kyc level must be within 0..{MAX_KYC_LEVEL}")
        return self.call("verify_kyc(account,uint64)void", [citizen, level])

    def update_eligibility(self, citizen: str, eligibility: Eligibility) -> ExecuteResult:
        self._check_address(citizen)
        return self.call("update_eligibility(account,uint64)void", [citizen, pack_eligibility(eligibility)])

    def revoke_identity(self, citizen: str) -> ExecuteResult:
        self._check_address(citizen)
        return self.call("revoke_identity(account)void", [citizen])

    @staticmethod
    def _check_address(address: str) -> None:
        if not addrs.is_valid(address):
            raise ValidationError(f"invalid address: {address!r}")

    # --- reads -------------------------------------------------------------

    def get_identity(self, address: str) -> Optional[CitizenIdentity]:
        """Identity of ``address``; None when not opted in or never minted."""
        local = self.local_state(address)
        if local is None or state_int(local, L_ID) == 0:
            return None
        return CitizenIdentity(
            address=address,
            identity_id=state_int(local, L_ID),
            name=state_bytes(local, L_NAME).decode("utf-8", errors="replace"),
            id_hash=bytes(state_bytes(local, L_HASH)),
            kyc_level=KycLevel(min(state_int(local, L_KYC), MAX_KYC_LEVEL)),
            eligibility=unpack_eligibility(state_int(local, L_FLAGS)),
            is_active=state_int(local, L_ACTIVE) == 1,
        )

    def identity_stats(self) -> IdentityStats:
        g = self.global_state()
        raw_auth = state_bytes(g, K_AUTHORITY)
        return IdentityStats(
            total_identities=state_int(g, K_TOTAL),
            active_identities=state_int(g, K_ACTIVE),
            revoked_count=state_int(g, K_REVOKED),
            authority=addrs.encode(raw_auth) if len(raw_auth) == addrs.ADDRESS_LEN else "",
        )
