"""
disburse.service.scheme_service
===============================

Orchestration layer for the presentation tier.

A :class:`SchemeService` is bound to one connected signer and wraps the
contract clients with:

- uniform :class:`~disburse.service.results.OperationResult` payloads for
  every write (errors become ``success=False`` with the error code)
- progress events for the multi-step ``create_full_scheme`` workflow
- auto-chunking of large token mints into sequential 16-transaction groups
- an owned TTL read cache, invalidated by every scheme-changing write
- fail-open reads: on ledger errors they log a warning and return the last
  cached value or an empty default
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..config import DisburseConfig
from ..contracts.identity import IdentityRegistryClient
from ..contracts.milestone_treasury import MilestoneTreasuryClient
from ..contracts.scheme_factory import SchemeFactoryClient
from ..contracts.tokens import MAX_ASSET_NAME, TokenIssuer, generate_unit_name
from ..errors import DisburseError, ValidationError
from ..ledger.client import LedgerClient
from ..logging import get_logger, trace_scope
from ..metrics import METRICS, Metrics
from ..tx.composer import ExecuteResult
from ..types import (Beneficiary, Eligibility, FactoryStats, KycLevel, Scheme,
                     SchemeConfig, StudentRecord, TokenConfig)
from .cache import TTLCache
from .results import OperationResult, Progress, ProgressCallback

__all__ = ["SchemeService"]

log = get_logger(__name__)

_SCHEMES_KEY = "schemes"
_STATS_KEY = "stats"


def _scheme_key(scheme_id: int) -> Tuple[str, int]:
    return ("scheme", int(scheme_id))


def _token_name(scheme_name: str) -> str:
    name = f"{scheme_name} Token"
    raw = name.encode("utf-8")
    if len(raw) <= MAX_ASSET_NAME:
        return name
    return raw[:MAX_ASSET_NAME].decode("utf-8", errors="ignore").rstrip()


class SchemeService:
    TOTAL_STEPS = 4

    def __init__(
        self,
        ledger: LedgerClient,
        signer: Any,
        *,
        config: Optional[DisburseConfig] = None,
        clock: Callable[[], float] = time.time,
        cache: Optional[TTLCache] = None,
        metrics: Metrics = METRICS,
    ):
        self.ledger = ledger
        self.signer = signer
        self.config = config or DisburseConfig()
        self.clock = clock
        self.metrics = metrics
        self.cache = cache or TTLCache(ttl=self.config.cache_ttl_s, clock=clock, metrics=metrics)
        self.factory = self._factory(signer)
        self.treasury = MilestoneTreasuryClient(
            ledger, signer, app_id=self.config.treasury_app_id, config=self.config, metrics=metrics, clock=clock
        )
        self.identity = IdentityRegistryClient(
            ledger, signer, app_id=self.config.identity_app_id, config=self.config, metrics=metrics, clock=clock
        )
        self.tokens = self._tokens(signer)

    def _factory(self, signer: Any) -> SchemeFactoryClient:
        return SchemeFactoryClient(
            self.ledger,
            signer,
            app_id=self.config.factory_app_id,
            config=self.config,
            metrics=self.metrics,
            clock=self.clock,
        )

    def _tokens(self, signer: Any) -> TokenIssuer:
        return TokenIssuer(self.ledger, signer, config=self.config, metrics=self.metrics)

    # --- helpers -----------------------------------------------------------

    def _write(self, op: str, fn: Callable[[], ExecuteResult], *, scheme_id: Optional[int] = None, **data: Any) -> OperationResult:
        """Run one write, map errors to a failed result, drop cached scheme reads."""
        with trace_scope(op=op):
            try:
                result = fn()
            except DisburseError as e:
                log.warning("operation failed", op=op, code=e.code, reason=e.message)
                return OperationResult.fail(e)
            finally:
                self._invalidate(scheme_id)
        log.info("operation committed", op=op, round=result.confirmed_round)
        return OperationResult.ok(result.tx_ids, f"{op} confirmed in round {result.confirmed_round}", **data)

    def _invalidate(self, scheme_id: Optional[int]) -> None:
        if scheme_id is None:
            self.cache.invalidate()
            return
        self.cache.invalidate(_SCHEMES_KEY)
        self.cache.invalidate(_STATS_KEY)
        self.cache.invalidate(_scheme_key(scheme_id))

    @staticmethod
    def _progress(cb: Optional[ProgressCallback], step: int, message: str) -> None:
        if cb is not None:
            cb(Progress(step=step, total=SchemeService.TOTAL_STEPS, message=message))

    # --- scheme workflow ---------------------------------------------------

    def create_full_scheme(
        self,
        cfg: SchemeConfig,
        *,
        create_token: bool = False,
        token_supply: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> OperationResult:
        """
        Validate, create the scheme, optionally issue its token, finalize.

        Progress steps: 1 validating, 2 creating, 3 token, 4 finalizing.
        Validation failures return before any submission.
        """
        with trace_scope(op="create_full_scheme"):
            self._progress(on_progress, 1, "Validating scheme configuration...")
            try:
                self.factory.validate(cfg)
            except ValidationError as e:
                return OperationResult.fail(e)

            tx_ids: List[str] = []
            try:
                self._progress(on_progress, 2, "Creating scheme on the ledger...")
                scheme_id, created = self.factory.create_scheme_with_result(cfg.name, cfg.budget, cfg.payout, cfg.deadline)
                tx_ids.extend(created.tx_ids)

                token_asset_id = None
                if create_token:
                    self._progress(on_progress, 3, "Creating scheme token...")
                    token_cfg = TokenConfig(
                        name=_token_name(cfg.name),
                        unit_name=generate_unit_name(cfg.name, clock=self.clock) or "TKN",
                        total=token_supply or 100_000,
                    )
                    token_asset_id, token_result = self.tokens.create_token_with_result(token_cfg)
                    tx_ids.extend(token_result.tx_ids)
            except DisburseError as e:
                log.warning("create_full_scheme failed", code=e.code, reason=e.message, committed=tx_ids)
                failed = OperationResult.fail(e)
                failed.tx_ids = tx_ids
                return failed
            finally:
                self._invalidate(None)

            self._progress(on_progress, 4, "Finalizing scheme...")
            return OperationResult.ok(
                tx_ids,
                f"scheme {scheme_id} created",
                scheme_id=scheme_id,
                token_asset_id=token_asset_id,
            )

    def activate_scheme(self, scheme_id: int) -> OperationResult:
        return self._write("activate_scheme", lambda: self.factory.activate_scheme(scheme_id), scheme_id=scheme_id)

    def pause_scheme(self, scheme_id: int) -> OperationResult:
        return self._write("pause_scheme", lambda: self.factory.pause_scheme(scheme_id), scheme_id=scheme_id)

    def resume_scheme(self, scheme_id: int) -> OperationResult:
        return self._write("resume_scheme", lambda: self.factory.resume_scheme(scheme_id), scheme_id=scheme_id)

    def terminate_scheme(self, scheme_id: int) -> OperationResult:
        return self._write("terminate_scheme", lambda: self.factory.close_scheme(scheme_id), scheme_id=scheme_id)

    def complete_scheme(self, scheme_id: int) -> OperationResult:
        return self._write("complete_scheme", lambda: self.factory.complete_scheme(scheme_id), scheme_id=scheme_id)

    def add_funds(self, scheme_id: int, amount: int) -> OperationResult:
        return self._write("add_funds", lambda: self.factory.fund_scheme(scheme_id, amount), scheme_id=scheme_id, amount=amount)

    # --- applicants --------------------------------------------------------

    def register_applicant(self, scheme_id: int, applicant_signer: Any = None) -> OperationResult:
        """Self-service registration; the applicant signs (defaults to the connected signer)."""
        client = self.factory if applicant_signer is None else self._factory(applicant_signer)
        return self._write(
            "register_applicant",
            lambda: client.register_beneficiary(scheme_id),
            scheme_id=scheme_id,
            applicant=client.sender,
        )

    def verify_applicant(self, scheme_id: int, address: str) -> OperationResult:
        return self._write("verify_applicant", lambda: self.factory.verify_beneficiary(scheme_id, address), scheme_id=scheme_id)

    def approve_applicant(self, scheme_id: int, address: str) -> OperationResult:
        return self._write("approve_applicant", lambda: self.factory.approve_beneficiary(scheme_id, address), scheme_id=scheme_id)

    def reject_applicant(self, scheme_id: int, address: str) -> OperationResult:
        return self._write("reject_applicant", lambda: self.factory.reject_beneficiary(scheme_id, address), scheme_id=scheme_id)

    def disburse_funds(self, scheme_id: int, address: str) -> OperationResult:
        return self._write("disburse_funds", lambda: self.factory.release_funds(scheme_id, address), scheme_id=scheme_id)

    def batch_disburse_funds(self, scheme_id: int, addresses: Sequence[str]) -> OperationResult:
        return self._write(
            "batch_disburse_funds",
            lambda: self.factory.batch_release_funds(scheme_id, list(addresses)),
            scheme_id=scheme_id,
            count=len(addresses),
        )

    # --- tokens ------------------------------------------------------------

    def mint_tokens(self, asset_id: int, address: str, amount: int = 1) -> OperationResult:
        return self._write("mint_tokens", lambda: self.tokens.transfer(asset_id, address, amount))

    def batch_mint_tokens(self, asset_id: int, recipients: Sequence[Tuple[str, int]]) -> OperationResult:
        """
        Mint to any number of recipients in sequential atomic groups of at most
        ``max_transfer_group``. Transaction ids are concatenated in input order.
        A failing chunk stops the run; earlier chunks stay committed and their
        ids are reported in the failed result.
        """
        if not recipients:
            return OperationResult.fail(ValidationError("no recipients given"))
        size = self.config.max_transfer_group
        chunks = [list(recipients[i:i + size]) for i in range(0, len(recipients), size)]
        tx_ids: List[str] = []
        with trace_scope(op="batch_mint_tokens"):
            for n, chunk in enumerate(chunks):
                try:
                    result = self.tokens.batch_transfer(asset_id, chunk)
                except DisburseError as e:
                    log.warning("mint chunk failed", chunk=n, chunks=len(chunks), code=e.code)
                    failed = OperationResult.fail(e)
                    failed.tx_ids = tx_ids
                    failed.data["failed_chunk"] = n
                    return failed
                tx_ids.extend(result.tx_ids)
                self.metrics.record_chunks(1)
        return OperationResult.ok(tx_ids, f"minted to {len(recipients)} recipients", chunks=len(chunks))

    def opt_in_token(self, asset_id: int, holder_signer: Any = None) -> OperationResult:
        issuer = self.tokens if holder_signer is None else self._tokens(holder_signer)
        return self._write("opt_in_token", lambda: issuer.opt_in(asset_id))

    # --- reads (fail open) -------------------------------------------------

    def _read(self, key: Any, loader: Callable[[], Any], default: Any) -> Any:
        try:
            return self.cache.get_or_load(key, loader)
        except DisburseError as e:
            log.warning("ledger read failed; serving cached/default value", key=str(key), code=e.code)
            return self.cache.peek_stale(key, default)

    def list_schemes(self, *, force_refresh: bool = False) -> List[Scheme]:
        if force_refresh:
            self.cache.invalidate(_SCHEMES_KEY)
        return self._read(_SCHEMES_KEY, self.factory.list_schemes, [])

    def get_scheme(self, scheme_id: int) -> Optional[Scheme]:
        return self._read(_scheme_key(scheme_id), lambda: self.factory.get_scheme(scheme_id), None)

    def get_beneficiary(self, scheme_id: int, address: str) -> Optional[Beneficiary]:
        try:
            return self.factory.get_beneficiary(scheme_id, address)
        except DisburseError as e:
            log.warning("beneficiary read failed", scheme_id=scheme_id, code=e.code)
            return None

    def get_scheme_statistics(self) -> Dict[str, int]:
        def load() -> Dict[str, int]:
            stats: FactoryStats = self.factory.factory_stats()
            return {
                "total_schemes": stats.scheme_count,
                "total_funded": stats.total_funded,
                "total_disbursed": stats.total_disbursed,
                "total_beneficiaries": stats.total_beneficiaries,
            }

        empty = {"total_schemes": 0, "total_funded": 0, "total_disbursed": 0, "total_beneficiaries": 0}
        return self._read(_STATS_KEY, load, empty)

    def lookup_student(self, address: str) -> Optional[StudentRecord]:
        try:
            return self.treasury.student_record(address)
        except DisburseError as e:
            log.warning("student lookup failed", address=address, code=e.code)
            return None

    def count_eligible(
        self,
        addresses: Sequence[str],
        required: Eligibility = Eligibility(),
        min_kyc: KycLevel = KycLevel.NONE,
    ) -> int:
        """How many of ``addresses`` hold an active identity meeting the criteria."""
        count = 0
        for address in addresses:
            try:
                ident = self.identity.get_identity(address)
            except DisburseError as e:
                log.warning("identity read failed", address=address, code=e.code)
                continue
            if ident is None or not ident.is_active:
                continue
            if ident.kyc_level >= min_kyc and ident.eligibility.satisfies(required):
                count += 1
        return count
