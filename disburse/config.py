"""
Client configuration: ledger and signer endpoints, contract ids, fee
multipliers, group ceilings, confirmation budget, cache TTL and read retries.

- Sane defaults, overridable via environment variables (DISBURSE_*).
- Helpers for HTTP headers and the read-retry policy.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .utils.retry import ReadRetryPolicy
from .version import __version__

_DEFAULT_RPC = "http://127.0.0.1:8680"


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    return v if v not in (None, "") else default


def _opt_int(val: Optional[str]) -> Optional[int]:
    if val is None:
        return None
    return int(val, 0)


def _ensure_scheme(url: Optional[str], allowed: tuple[str, ...]) -> Optional[str]:
    if not url:
        return url
    lower = url.lower()
    if not any(lower.startswith(f"{sch}://") for sch in allowed):
        raise ValueError(f"URL must start with {allowed}, got: {url!r}")
    return url


@dataclass(slots=True)
class DisburseConfig:
    # Endpoints
    rpc_url: str = _DEFAULT_RPC
    signer_url: Optional[str] = None
    genesis_id: str = "disburse-devnet-v1"
    # Deployed programs
    factory_app_id: Optional[int] = None
    treasury_app_id: Optional[int] = None
    identity_app_id: Optional[int] = None
    # Fees: per-transaction fee = min_fee * multiplier
    fee_multiplier_ordinary: int = 1
    fee_multiplier_inner: int = 2
    # Group ceilings
    max_transfer_group: int = 16
    max_release_group: int = 4
    # Waiting / caching
    confirmation_rounds: int = 4
    cache_ttl_s: float = 60.0
    # HTTP behaviour
    request_timeout: float = 10.0
    read_retries: int = 2
    backoff_base: float = 0.2
    backoff_max: float = 2.0
    user_agent: str = field(default_factory=lambda: f"disburse-py/{__version__}")

    def __post_init__(self) -> None:
        _ensure_scheme(self.rpc_url, ("http", "https"))
        _ensure_scheme(self.signer_url, ("http", "https"))
        if self.fee_multiplier_ordinary < 1 or self.fee_multiplier_inner < 1:
            raise ValueError("fee multipliers must be >= 1")
        if not 1 <= self.max_transfer_group <= 16:
            raise ValueError("max_transfer_group must be within 1..16")
        if not 1 <= self.max_release_group <= self.max_transfer_group:
            raise ValueError("max_release_group must be within 1..max_transfer_group")
        if self.confirmation_rounds < 1:
            raise ValueError("confirmation_rounds must be >= 1")

    @classmethod
    def from_env(cls, prefix: str = "DISBURSE_") -> "DisburseConfig":
        """
        Create config from environment variables:

        DISBURSE_RPC_URL            (http/https)
        DISBURSE_SIGNER_URL         (http/https) optional
        DISBURSE_GENESIS_ID         (str)
        DISBURSE_FACTORY_APP_ID     (int) optional
        DISBURSE_TREASURY_APP_ID    (int) optional
        DISBURSE_IDENTITY_APP_ID    (int) optional
        DISBURSE_CONFIRM_ROUNDS     (int)
        DISBURSE_CACHE_TTL          (float seconds)
        DISBURSE_TIMEOUT            (float seconds, HTTP)
        DISBURSE_READ_RETRIES       (int)
        DISBURSE_BACKOFF            (float seconds, base delay)
        DISBURSE_USER_AGENT         (str)
        """
        base = cls()
        return cls(
            rpc_url=_env(f"{prefix}RPC_URL", _DEFAULT_RPC) or _DEFAULT_RPC,
            signer_url=_env(f"{prefix}SIGNER_URL"),
            genesis_id=_env(f"{prefix}GENESIS_ID", base.genesis_id) or base.genesis_id,
            factory_app_id=_opt_int(_env(f"{prefix}FACTORY_APP_ID")),
            treasury_app_id=_opt_int(_env(f"{prefix}TREASURY_APP_ID")),
            identity_app_id=_opt_int(_env(f"{prefix}IDENTITY_APP_ID")),
            confirmation_rounds=int(_env(f"{prefix}CONFIRM_ROUNDS", "4") or 4),
            cache_ttl_s=float(_env(f"{prefix}CACHE_TTL", "60") or 60),
            request_timeout=float(_env(f"{prefix}TIMEOUT", "10.0") or 10.0),
            read_retries=int(_env(f"{prefix}READ_RETRIES", "2") or 2),
            backoff_base=float(_env(f"{prefix}BACKOFF", "0.2") or 0.2),
            user_agent=_env(f"{prefix}USER_AGENT", base.user_agent) or base.user_agent,
        )

    @classmethod
    def with_overrides(cls, base: Optional["DisburseConfig"] = None, **overrides: Any) -> "DisburseConfig":
        """
        Build from an existing config plus keyword overrides.
        Unknown keys are ignored.
        """
        base = base or cls.from_env()
        data = base.to_dict()
        data.update({k: v for k, v in overrides.items() if k in data})
        return cls(**data)

    def read_retry_policy(self) -> ReadRetryPolicy:
        return ReadRetryPolicy(retries=self.read_retries, base=self.backoff_base, max_delay=self.backoff_max)

    def http_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rpc_url": self.rpc_url,
            "signer_url": self.signer_url,
            "genesis_id": self.genesis_id,
            "factory_app_id": self.factory_app_id,
            "treasury_app_id": self.treasury_app_id,
            "identity_app_id": self.identity_app_id,
            "fee_multiplier_ordinary": int(self.fee_multiplier_ordinary),
            "fee_multiplier_inner": int(self.fee_multiplier_inner),
            "max_transfer_group": int(self.max_transfer_group),
            "max_release_group": int(self.max_release_group),
            "confirmation_rounds": int(self.confirmation_rounds),
            "cache_ttl_s": float(self.cache_ttl_s),
            "request_timeout": float(self.request_timeout),
            "read_retries": int(self.read_retries),
            "backoff_base": float(self.backoff_base),
            "backoff_max": float(self.backoff_max),
            "user_agent": self.user_agent,
        }


__all__ = ["DisburseConfig"]
