from __future__ import annotations

import pytest

from disburse.contracts.identity import IdentityRegistryClient, hash_national_id
from disburse.errors import AuthorizationError, ValidationError
from disburse.types import Eligibility, KycLevel


@pytest.fixture()
def registry(ledger, authority, metrics):
    client = IdentityRegistryClient(ledger, authority, metrics=metrics)
    client.deploy()
    return client


@pytest.fixture()
def citizen(registry, make_signer):
    def _make(name: str = "Asha Rao", national_id: str = "1234 5678 9012"):
        signer = make_signer(1_000_000)
        client = IdentityRegistryClient(registry.ledger, signer, app_id=registry.app_id, metrics=registry.metrics)
        client.opt_in()
        client.mint_identity(name, national_id)
        return signer

    return _make


def test_national_id_is_normalized_then_hashed():
    assert hash_national_id("ab 12 cd") == hash_national_id("AB12CD")
    assert len(hash_national_id("AB12CD")) == 32
    with pytest.raises(ValidationError):
        hash_national_id("   ")


def test_mint_stores_only_the_digest(registry, citizen):
    c = citizen()
    ident = registry.get_identity(c.address)
    assert ident.identity_id == 1
    assert ident.name == "Asha Rao"
    assert ident.id_hash == hash_national_id("123456789012")
    assert ident.kyc_level is KycLevel.NONE
    assert ident.eligibility == Eligibility()
    assert ident.is_active


def test_identity_ids_increase(registry, citizen):
    citizen()
    second = citizen("Ravi Kumar", "X-2")
    assert registry.get_identity(second.address).identity_id == 2
    assert registry.identity_stats().total_identities == 2


def test_one_active_identity_per_citizen(registry, citizen):
    c = citizen()
    client = IdentityRegistryClient(registry.ledger, c, app_id=registry.app_id)
    with pytest.raises(AuthorizationError) as ei:
        client.mint_identity("Asha Rao", "999")
    assert ei.value.reason == "identity already active"


def test_kyc_and_eligibility(registry, citizen):
    c = citizen()
    registry.verify_kyc(c.address, KycLevel.STANDARD)
    registry.update_eligibility(c.address, Eligibility(female=True, bpl=True))

    ident = registry.get_identity(c.address)
    assert ident.kyc_level is KycLevel.STANDARD
    assert ident.kyc_level.label == "Standard KYC"
    assert ident.eligibility.active() == ["female", "bpl"]
    assert ident.eligibility.labels() == ["Female", "Below Poverty Line (BPL)"]


def test_kyc_level_range_checked_locally(registry, citizen):
    c = citizen()
    with pytest.raises(ValidationError):
        registry.verify_kyc(c.address, 5)


def test_only_authority_updates_records(registry, citizen):
    c = citizen()
    self_service = IdentityRegistryClient(registry.ledger, c, app_id=registry.app_id)
    with pytest.raises(AuthorizationError):
        self_service.verify_kyc(c.address, KycLevel.COMPLETE)


def test_revocation_is_a_soft_delete(registry, citizen):
    c = citizen()
    registry.revoke_identity(c.address)

    ident = registry.get_identity(c.address)
    assert ident is not None and not ident.is_active
    stats = registry.identity_stats()
    assert (stats.total_identities, stats.active_identities, stats.revoked_count) == (1, 0, 1)

    with pytest.raises(AuthorizationError):
        registry.verify_kyc(c.address, KycLevel.BASIC)

    # a revoked citizen may mint again
    client = IdentityRegistryClient(registry.ledger, c, app_id=registry.app_id)
    assert client.mint_identity("Asha Rao", "1234 5678 9012") == 2


def test_unknown_citizen_reads_none(registry, make_signer):
    stranger = make_signer()
    assert registry.get_identity(stranger.address) is None
    assert not registry.is_opted_in(stranger.address)


def test_mint_requires_opt_in(registry, make_signer):
    signer = make_signer()
    client = IdentityRegistryClient(registry.ledger, signer, app_id=registry.app_id)
    with pytest.raises(AuthorizationError) as ei:
        client.mint_identity("Someone", "ID-1")
    assert ei.value.reason == "not opted in"


def test_mint_input_problems(registry, make_signer):
    client = IdentityRegistryClient(registry.ledger, make_signer(), app_id=registry.app_id)
    with pytest.raises(ValidationError) as ei:
        client.mint_identity(" ", "")
    assert len(ei.value.problems) == 2
