"""
disburse.contracts.scheme_factory
=================================

Typed client for the multi-scheme factory application.

Writes build one atomic group per operation (payments first, then the call);
every input rule the program asserts is checked locally first and reported
as a :class:`~disburse.errors.ValidationError` before anything is submitted.
Releases and settlements carry the inner-transfer fee multiplier.

Reads decode box records; a missing scheme or beneficiary reads as ``None``.

Example
-------
    factory = SchemeFactoryClient(ledger, signer, app_id=cfg.factory_app_id)
    sid = factory.create_scheme("Merit Scholarship", 1_000_000, 50_000, deadline)
    factory.fund_scheme(sid, 1_000_000)
    factory.activate_scheme(sid)
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from ..errors import NotFoundError, RecordSchemaError, ValidationError
from ..ledger.client import state_bytes, state_int
from ..logging import get_logger
from ..programs.scheme_factory import (K_AUTHORITY, K_SCHEME_COUNT,
                                       K_TOTAL_BENEFICIARIES,
                                       K_TOTAL_DISBURSED, K_TOTAL_FUNDED)
from ..storage.records import (BENEFICIARY_BOX_SIZE, NAME_MAX_BYTES,
                               SCHEME_BOX_SIZE, SCHEME_PREFIX,
                               BeneficiaryRecord, SchemeRecord, admin_key,
                               beneficiary_key, box_mbr, scheme_id_from_key,
                               scheme_key)
from ..tx.composer import ExecuteResult
from ..types import Beneficiary, FactoryStats, Scheme, SchemeConfig
from .. import address as addrs
from .base import AppClient

__all__ = ["SchemeFactoryClient", "validate_scheme_config"]

log = get_logger(__name__)

M_CREATE_SCHEME = "create_scheme(pay,string,uint64,uint64,uint64)uint64"
M_FUND_SCHEME = "fund_scheme(uint64,pay)void"
M_ACTIVATE = "activate_scheme(uint64)void"
M_PAUSE = "pause_scheme(uint64)void"
M_RESUME = "resume_scheme(uint64)void"
M_CLOSE = "close_scheme(uint64)void"
M_COMPLETE = "complete_scheme(uint64)void"
M_REGISTER = "register_beneficiary(uint64,pay)void"
M_VERIFY = "verify_beneficiary(uint64,account)void"
M_APPROVE = "approve_beneficiary(uint64,account)void"
M_REJECT = "reject_beneficiary(uint64,account)void"
M_RELEASE = "release_funds(uint64,account)void"
M_ADD_ADMIN = "add_admin(address)void"
M_REMOVE_ADMIN = "remove_admin(address)void"
M_UPDATE_AUTHORITY = "update_authority(address)void"


def validate_scheme_config(cfg: SchemeConfig, *, now: float) -> List[str]:
    """Every problem with ``cfg``; an empty list means valid."""
    problems: List[str] = []
    name = cfg.name or ""
    if not name:
        problems.append("scheme name is required")
    elif len(name) > NAME_MAX_BYTES or len(name.encode("utf-8")) > NAME_MAX_BYTES:
        problems.append(f"scheme name must be at most {NAME_MAX_BYTES} characters")
    if cfg.payout <= 0:
        problems.append("payout must be positive")
    if cfg.budget <= 0:
        problems.append("budget must be positive")
    elif cfg.payout > cfg.budget:
        problems.append("payout cannot exceed budget")
    if cfg.deadline <= now:
        problems.append("deadline must be in the future")
    return problems


class SchemeFactoryClient(AppClient):
    PROGRAM = "scheme_factory"

    # --- deployment / administration --------------------------------------

    def fund_escrow(self, amount: int) -> ExecuteResult:
        """Seed the escrow with spare balance (covers admin marker reserves)."""
        if amount <= 0:
            raise ValidationError("amount must be positive")
        comp = self.composer()
        comp.add_transaction(self.pay_arg(amount).txn, self.signer)
        return comp.execute()

    def add_admin(self, address: str) -> ExecuteResult:
        self._check_address(address)
        return self.call(M_ADD_ADMIN, [address], boxes=[(0, admin_key(address))])

    def remove_admin(self, address: str) -> ExecuteResult:
        self._check_address(address)
        return self.call(M_REMOVE_ADMIN, [address], boxes=[(0, admin_key(address))])

    def update_authority(self, address: str) -> ExecuteResult:
        self._check_address(address)
        return self.call(M_UPDATE_AUTHORITY, [address])

    # --- scheme lifecycle --------------------------------------------------

    def validate(self, cfg: SchemeConfig) -> None:
        problems = validate_scheme_config(cfg, now=self.clock())
        if problems:
            raise ValidationError(problems)

    def create_scheme(self, name: str, budget: int, payout: int, deadline: int) -> int:
        """Allocate a DRAFT scheme. Returns the new scheme id."""
        scheme_id, _ = self.create_scheme_with_result(name, budget, payout, deadline)
        return scheme_id

    def create_scheme_with_result(self, name: str, budget: int, payout: int, deadline: int) -> Tuple[int, ExecuteResult]:
        self.validate(SchemeConfig(name=name, budget=budget, payout=payout, deadline=deadline))
        reserve = self.pay_arg(box_mbr(SCHEME_BOX_SIZE))
        result = self.call(M_CREATE_SCHEME, [reserve, name, budget, payout, deadline])
        scheme_id = int(result.last_return)
        log.info("scheme created", scheme_id=scheme_id, budget=budget, payout=payout)
        return scheme_id, result

    def fund_scheme(self, scheme_id: int, amount: int) -> ExecuteResult:
        if amount <= 0:
            raise ValidationError("funding amount must be positive")
        return self.call(M_FUND_SCHEME, [scheme_id, self.pay_arg(amount)], boxes=[(0, scheme_key(scheme_id))])

    def activate_scheme(self, scheme_id: int) -> ExecuteResult:
        return self._scheme_call(M_ACTIVATE, scheme_id)

    def pause_scheme(self, scheme_id: int) -> ExecuteResult:
        return self._scheme_call(M_PAUSE, scheme_id)

    def resume_scheme(self, scheme_id: int) -> ExecuteResult:
        return self._scheme_call(M_RESUME, scheme_id)

    def close_scheme(self, scheme_id: int) -> ExecuteResult:
        return self._scheme_call(M_CLOSE, scheme_id, inner=True)

    def complete_scheme(self, scheme_id: int) -> ExecuteResult:
        return self._scheme_call(M_COMPLETE, scheme_id, inner=True)

    def _scheme_call(self, method: str, scheme_id: int, *, inner: bool = False) -> ExecuteResult:
        return self.call(method, [scheme_id], inner=inner, boxes=[(0, scheme_key(scheme_id))])

    # --- beneficiaries -----------------------------------------------------

    def register_beneficiary(self, scheme_id: int) -> ExecuteResult:
        """Self-service registration of the signer's own account."""
        reserve = self.pay_arg(box_mbr(BENEFICIARY_BOX_SIZE))
        return self.call(
            M_REGISTER,
            [scheme_id, reserve],
            boxes=[(0, scheme_key(scheme_id)), (0, beneficiary_key(scheme_id, self.sender))],
        )

    def verify_beneficiary(self, scheme_id: int, address: str) -> ExecuteResult:
        return self._beneficiary_call(M_VERIFY, scheme_id, address)

    def approve_beneficiary(self, scheme_id: int, address: str) -> ExecuteResult:
        return self._beneficiary_call(M_APPROVE, scheme_id, address)

    def reject_beneficiary(self, scheme_id: int, address: str) -> ExecuteResult:
        return self._beneficiary_call(M_REJECT, scheme_id, address)

    def release_funds(self, scheme_id: int, address: str) -> ExecuteResult:
        return self._beneficiary_call(M_RELEASE, scheme_id, address, inner=True)

    def batch_release_funds(self, scheme_id: int, addresses: Sequence[str]) -> ExecuteResult:
        """Release to several beneficiaries in one atomic group (at most 4)."""
        limit = self.config.max_release_group
        if not addresses:
            raise ValidationError("no beneficiaries given")
        if len(addresses) > limit:
            raise ValidationError(f"at most {limit} releases fit in one group, got {len(addresses)}")
        if len(set(addresses)) != len(addresses):
            raise ValidationError("duplicate beneficiary in batch")
        for a in addresses:
            self._check_address(a)
        comp = self.composer()
        for a in addresses:
            comp.add_method_call(
                app_id=self.require_app_id(),
                method=M_RELEASE,
                sender=self.sender,
                signer=self.signer,
                args=[scheme_id, a],
                fee_multiplier=self.config.fee_multiplier_inner,
                boxes=[(0, scheme_key(scheme_id)), (0, beneficiary_key(scheme_id, a))],
            )
        return comp.execute()

    def _beneficiary_call(self, method: str, scheme_id: int, address: str, *, inner: bool = False) -> ExecuteResult:
        self._check_address(address)
        return self.call(
            method,
            [scheme_id, address],
            inner=inner,
            boxes=[(0, scheme_key(scheme_id)), (0, beneficiary_key(scheme_id, address))],
        )

    @staticmethod
    def _check_address(address: str) -> None:
        if not addrs.is_valid(address):
            raise ValidationError(f"invalid address: {address!r}")

    # --- reads -------------------------------------------------------------

    def get_scheme(self, scheme_id: int) -> Optional[Scheme]:
        try:
            raw = self.ledger.app_box(self.require_app_id(), scheme_key(scheme_id))
        except NotFoundError:
            return None
        return SchemeRecord.decode(raw).to_scheme(scheme_id)

    def list_schemes(self) -> List[Scheme]:
        """All schemes, ordered by id. Records with an unknown layout are skipped."""
        app_id = self.require_app_id()
        out: List[Scheme] = []
        for key in self.ledger.app_box_names(app_id, SCHEME_PREFIX):
            try:
                scheme_id = scheme_id_from_key(key)
                out.append(SchemeRecord.decode(self.ledger.app_box(app_id, key)).to_scheme(scheme_id))
            except RecordSchemaError as e:
                log.warning("skipping unreadable scheme record", key=key, error=e.message)
            except NotFoundError:
                continue
        out.sort(key=lambda s: s.scheme_id)
        return out

    def get_beneficiary(self, scheme_id: int, address: str) -> Optional[Beneficiary]:
        try:
            raw = self.ledger.app_box(self.require_app_id(), beneficiary_key(scheme_id, address))
        except NotFoundError:
            return None
        return BeneficiaryRecord.decode(raw).to_beneficiary(scheme_id, address)

    def factory_stats(self) -> FactoryStats:
        g = self.global_state()
        raw_auth = state_bytes(g, K_AUTHORITY)
        return FactoryStats(
            authority=addrs.encode(raw_auth) if len(raw_auth) == addrs.ADDRESS_LEN else "",
            scheme_count=state_int(g, K_SCHEME_COUNT),
            total_funded=state_int(g, K_TOTAL_FUNDED),
            total_disbursed=state_int(g, K_TOTAL_DISBURSED),
            total_beneficiaries=state_int(g, K_TOTAL_BENEFICIARIES),
        )

    def is_authorized_admin(self, address: str, scheme_id: Optional[int] = None) -> bool:
        """Primary authority, a secondary admin, or (with ``scheme_id``) that scheme's authority."""
        if not addrs.is_valid(address):
            return False
        if self.factory_stats().authority == address:
            return True
        if admin_key(address) in self.ledger.app_box_names(self.require_app_id(), admin_key(address)):
            return True
        if scheme_id is not None:
            scheme = self.get_scheme(scheme_id)
            return scheme is not None and scheme.authority == address
        return False
