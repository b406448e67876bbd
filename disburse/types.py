"""
Domain types: lifecycle statuses, identities, eligibility and read models.

Status codes are part of the stored record format and must not be renumbered.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import IntEnum
from typing import Dict, List

__all__ = [
    "SchemeStatus",
    "BeneficiaryStatus",
    "KycLevel",
    "Eligibility",
    "ELIGIBILITY_LABELS",
    "SchemeConfig",
    "Scheme",
    "Beneficiary",
    "FactoryStats",
    "TreasuryState",
    "StudentRecord",
    "CitizenIdentity",
    "IdentityStats",
    "TokenConfig",
]


class SchemeStatus(IntEnum):
    DRAFT = 0
    ACTIVE = 1
    PAUSED = 2
    COMPLETED = 3
    CANCELLED = 4

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @property
    def is_terminal(self) -> bool:
        return self in (SchemeStatus.COMPLETED, SchemeStatus.CANCELLED)


class BeneficiaryStatus(IntEnum):
    REGISTERED = 0
    VERIFIED = 1
    APPROVED = 2
    FUNDED = 3
    REJECTED = 4

    @property
    def label(self) -> str:
        return _BENEFICIARY_LABELS[self]

    @property
    def is_terminal(self) -> bool:
        return self in (BeneficiaryStatus.FUNDED, BeneficiaryStatus.REJECTED)


_BENEFICIARY_LABELS = {
    BeneficiaryStatus.REGISTERED: "Registered",
    BeneficiaryStatus.VERIFIED: "Verified",
    BeneficiaryStatus.APPROVED: "Approved",
    BeneficiaryStatus.FUNDED: "Funded",
    BeneficiaryStatus.REJECTED: "Rejected",
}


class KycLevel(IntEnum):
    NONE = 0
    BASIC = 1
    STANDARD = 2
    ADVANCED = 3
    COMPLETE = 4

    @property
    def label(self) -> str:
        return "Not Verified" if self is KycLevel.NONE else f"{self.name.capitalize()} KYC"


ELIGIBILITY_LABELS: Dict[str, str] = {
    "sc": "Scheduled Caste (SC)",
    "st": "Scheduled Tribe (ST)",
    "obc": "Other Backward Class (OBC)",
    "minority": "Minority",
    "female": "Female",
    "disabled": "Person with Disability",
    "bpl": "Below Poverty Line (BPL)",
    "merit_qualified": "Merit Qualified",
}


@dataclass(frozen=True)
class Eligibility:
    """
    Eligibility categories of a citizen. Field order is the storage bit order
    (``sc`` is bit 0, ``merit_qualified`` is bit 7).
    """

    sc: bool = False
    st: bool = False
    obc: bool = False
    minority: bool = False
    female: bool = False
    disabled: bool = False
    bpl: bool = False
    merit_qualified: bool = False

    def active(self) -> List[str]:
        return [f.name for f in fields(self) if getattr(self, f.name)]

    def labels(self) -> List[str]:
        return [ELIGIBILITY_LABELS[n] for n in self.active()]

    def satisfies(self, required: "Eligibility") -> bool:
        """True when every category set in ``required`` is also set here."""
        return all(getattr(self, n) for n in required.active())


@dataclass(frozen=True)
class SchemeConfig:
    name: str
    budget: int
    payout: int
    deadline: int


@dataclass(frozen=True)
class Scheme:
    scheme_id: int
    name: str
    budget: int
    payout: int
    deadline: int
    status: SchemeStatus
    funded: int
    spent: int
    beneficiary_count: int
    authority: str
    created_round: int = 0

    @property
    def remaining(self) -> int:
        return self.funded - self.spent

    @property
    def utilization(self) -> int:
        """Spent share of the budget, in whole percent."""
        return round(self.spent * 100 / self.budget) if self.budget else 0

    @property
    def status_label(self) -> str:
        return self.status.label


@dataclass(frozen=True)
class Beneficiary:
    scheme_id: int
    address: str
    status: BeneficiaryStatus
    amount_received: int
    registered_round: int
    updated_round: int


@dataclass(frozen=True)
class FactoryStats:
    authority: str
    scheme_count: int
    total_funded: int
    total_disbursed: int
    total_beneficiaries: int


@dataclass(frozen=True)
class TreasuryState:
    total_budget: int
    spent_budget: int
    payout_amount: int
    scheme_active: bool
    authority: str

    @property
    def remaining(self) -> int:
        return self.total_budget - self.spent_budget


@dataclass(frozen=True)
class StudentRecord:
    address: str
    is_registered: bool
    milestone_completed: bool
    has_been_paid: bool


@dataclass(frozen=True)
class CitizenIdentity:
    address: str
    identity_id: int
    name: str
    id_hash: bytes
    kyc_level: KycLevel
    eligibility: Eligibility
    is_active: bool


@dataclass(frozen=True)
class IdentityStats:
    total_identities: int
    active_identities: int
    revoked_count: int
    authority: str


@dataclass(frozen=True)
class TokenConfig:
    name: str
    unit_name: str
    total: int
    decimals: int = 0
    url: str = ""
