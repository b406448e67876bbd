"""
disburse.wallet
===============

Signer adapter exports. Keys live in external signer services; this package
only moves unsigned groups out and signed envelopes back.
"""

from .signer import RemoteSignerService, Signer, SignerService, SignRequest, WalletSigner

__all__ = [
    "Signer",
    "SignerService",
    "SignRequest",
    "WalletSigner",
    "RemoteSignerService",
]
