"""
disburse - public benefit disbursement ledger SDK.
Convenience exports for the most common client APIs.
"""

from .version import __version__  # noqa: F401

# Core config & errors
from .config import DisburseConfig  # noqa: F401
from .errors import (  # noqa: F401
    AuthorizationError,
    ConfirmationTimeout,
    DisburseError,
    NetworkError,
    NotFoundError,
    RecordSchemaError,
    SubmissionError,
    UserDeclinedError,
    ValidationError,
)

# Ledger access
from .ledger.client import LedgerClient  # noqa: F401
from .ledger.http import HttpLedgerClient  # noqa: F401
from .ledger.local import LocalLedger  # noqa: F401

# Signing
from .wallet.signer import RemoteSignerService, Signer, WalletSigner  # noqa: F401

# Transactions
from .tx.composer import TransactionComposer  # noqa: F401

# Contracts
from .contracts import (  # noqa: F401
    IdentityRegistryClient,
    MilestoneTreasuryClient,
    SchemeFactoryClient,
    TokenIssuer,
)

# Orchestration
from .service import OperationResult, SchemeService  # noqa: F401

# Domain types
from .types import (  # noqa: F401
    BeneficiaryStatus,
    Eligibility,
    KycLevel,
    SchemeConfig,
    SchemeStatus,
    TokenConfig,
)
