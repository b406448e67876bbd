"""
Typed application clients.

- scheme_factory     : multi-scheme factory (schemes, beneficiaries, releases)
- milestone_treasury : single-scheme milestone payouts
- identity           : identity / eligibility registry
- tokens             : fungible disbursement tokens
- events             : event and history decoding
"""

from .base import AppClient
from .events import DecodedEvent, HistoryEntry, decode_logs
from .identity import IdentityRegistryClient, hash_national_id
from .milestone_treasury import MilestoneTreasuryClient
from .scheme_factory import SchemeFactoryClient, validate_scheme_config
from .tokens import TokenIssuer, generate_unit_name

__all__ = [
    "AppClient",
    "SchemeFactoryClient",
    "MilestoneTreasuryClient",
    "IdentityRegistryClient",
    "TokenIssuer",
    "DecodedEvent",
    "HistoryEntry",
    "decode_logs",
    "hash_national_id",
    "generate_unit_name",
    "validate_scheme_config",
]
