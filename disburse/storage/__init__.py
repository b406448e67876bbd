"""Versioned box-record codecs and key helpers."""

from .records import (BeneficiaryRecord, SchemeRecord, beneficiary_key,
                      box_mbr, pack_eligibility, scheme_key,
                      unpack_eligibility)

__all__ = [
    "SchemeRecord",
    "BeneficiaryRecord",
    "scheme_key",
    "beneficiary_key",
    "box_mbr",
    "pack_eligibility",
    "unpack_eligibility",
]
