"""
Transaction building blocks.

- types    : transaction dataclasses and suggested params
- encode   : canonical CBOR, ids, group ids, signed envelopes
- composer : atomic group assembly, signing, submission (import explicitly)
- send     : bounded confirmation waiting (import explicitly)
"""

from .encode import (assign_group_id, canonical_body, decode_unsigned,
                     encode_unsigned, pack_signed, sign_bytes, tx_id,
                     unpack_signed)
from .types import (ApplicationCallTxn, AssetConfigTxn, AssetFreezeTxn,
                    AssetTransferTxn, OnComplete, PaymentTxn, SuggestedParams,
                    Transaction)

__all__ = [
    "Transaction",
    "PaymentTxn",
    "ApplicationCallTxn",
    "AssetConfigTxn",
    "AssetTransferTxn",
    "AssetFreezeTxn",
    "OnComplete",
    "SuggestedParams",
    "canonical_body",
    "encode_unsigned",
    "decode_unsigned",
    "sign_bytes",
    "tx_id",
    "assign_group_id",
    "pack_signed",
    "unpack_signed",
]
