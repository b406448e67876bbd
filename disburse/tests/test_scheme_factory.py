from __future__ import annotations

import pytest

from disburse.contracts.events import find_first_event
from disburse.contracts.scheme_factory import SchemeFactoryClient
from disburse.errors import (AuthorizationError, ConfirmationTimeout,
                             SubmissionError, ValidationError)
from disburse.types import BeneficiaryStatus, SchemeStatus

from .conftest import DAY


def _as(factory: SchemeFactoryClient, signer) -> SchemeFactoryClient:
    return SchemeFactoryClient(
        factory.ledger, signer, app_id=factory.app_id, config=factory.config, metrics=factory.metrics, clock=factory.clock
    )


@pytest.fixture()
def applicant(make_signer):
    return make_signer(1_000_000)


def _approved(factory, scheme_id, applicant):
    _as(factory, applicant).register_beneficiary(scheme_id)
    factory.approve_beneficiary(scheme_id, applicant.address)


def test_full_lifecycle_pays_exactly_once(factory, active_scheme, applicant, ledger):
    before = ledger.balance(applicant.address)
    _as(factory, applicant).register_beneficiary(active_scheme)
    factory.verify_beneficiary(active_scheme, applicant.address)
    factory.approve_beneficiary(active_scheme, applicant.address)

    result = factory.release_funds(active_scheme, applicant.address)

    # registration paid its own fee and box reserve
    assert ledger.balance(applicant.address) == before - 1000 * 2 - 15_300 + 50_000
    scheme = factory.get_scheme(active_scheme)
    assert (scheme.funded, scheme.spent, scheme.beneficiary_count) == (1_000_000, 50_000, 1)
    ben = factory.get_beneficiary(active_scheme, applicant.address)
    assert ben.status is BeneficiaryStatus.FUNDED
    assert ben.amount_received == 50_000
    ev = find_first_event(result.confirmations[-1].logs, "FundsReleased")
    assert ev is not None and ev.args["amount"] == 50_000

    with pytest.raises(AuthorizationError) as ei:
        factory.release_funds(active_scheme, applicant.address)
    assert ei.value.reason == "already funded"
    assert factory.get_scheme(active_scheme).spent == 50_000


def test_racing_releases_pay_once(factory, active_scheme, applicant, ledger):
    _approved(factory, active_scheme, applicant)
    ledger.hold_confirmations = True
    with pytest.raises(ConfirmationTimeout) as first:
        factory.release_funds(active_scheme, applicant.address)
    with pytest.raises(ConfirmationTimeout) as second:
        _as(factory, applicant).release_funds(active_scheme, applicant.address)
    ledger.hold_confirmations = False

    assert ledger.release_pending() == [first.value.tx_id]
    assert ledger.pending_info(second.value.tx_id).pool_error == "already funded"
    with pytest.raises(SubmissionError) as ei:
        ledger.await_confirmation(second.value.tx_id, 2)
    assert ei.value.reason == "already funded"

    scheme = factory.get_scheme(active_scheme)
    assert (scheme.funded, scheme.spent) == (1_000_000, 50_000)
    ben = factory.get_beneficiary(active_scheme, applicant.address)
    assert ben.status is BeneficiaryStatus.FUNDED
    assert ben.amount_received == 50_000


def test_create_returns_sequential_ids_in_draft(factory, clock):
    deadline = int(clock()) + 10 * DAY
    first = factory.create_scheme("A", 100, 10, deadline)
    second = factory.create_scheme("B", 100, 10, deadline)
    assert (first, second) == (1, 2)
    assert factory.get_scheme(first).status is SchemeStatus.DRAFT
    assert [s.scheme_id for s in factory.list_schemes()] == [1, 2]


def test_invalid_config_fails_locally(ledger, authority, clock, metrics):
    from .conftest import CountingLedger

    counting = CountingLedger(ledger)
    client = SchemeFactoryClient(counting, authority, clock=clock, metrics=metrics)
    client.deploy()
    submitted = counting.submissions

    with pytest.raises(ValidationError) as ei:
        client.create_scheme("", 100, 200, int(clock()) - 1)

    assert set(ei.value.problems) == {
        "scheme name is required",
        "payout cannot exceed budget",
        "deadline must be in the future",
    }
    assert counting.submissions == submitted


def test_funding_cannot_exceed_budget(factory, active_scheme):
    with pytest.raises(AuthorizationError) as ei:
        factory.fund_scheme(active_scheme, 1)
    assert ei.value.reason == "funding exceeds budget"


def test_release_requires_approval(factory, active_scheme, applicant):
    _as(factory, applicant).register_beneficiary(active_scheme)
    with pytest.raises(AuthorizationError) as ei:
        factory.release_funds(active_scheme, applicant.address)
    assert ei.value.reason == "beneficiary is not approved"


def test_release_limited_by_funded_amount(factory, clock, make_signer):
    sid = factory.create_scheme("Thin", 1_000_000, 50_000, int(clock()) + DAY)
    factory.fund_scheme(sid, 60_000)
    factory.activate_scheme(sid)
    a, b = make_signer(1_000_000), make_signer(1_000_000)
    _approved(factory, sid, a)
    _approved(factory, sid, b)

    factory.release_funds(sid, a.address)
    with pytest.raises(AuthorizationError) as ei:
        factory.release_funds(sid, b.address)
    assert ei.value.reason == "insufficient scheme funds"


def test_pause_blocks_release_until_resumed(factory, active_scheme, applicant):
    _approved(factory, active_scheme, applicant)
    factory.pause_scheme(active_scheme)
    assert factory.get_scheme(active_scheme).status is SchemeStatus.PAUSED

    with pytest.raises(AuthorizationError) as ei:
        factory.release_funds(active_scheme, applicant.address)
    assert ei.value.reason == "scheme is not active"

    factory.resume_scheme(active_scheme)
    factory.release_funds(active_scheme, applicant.address)
    assert factory.get_beneficiary(active_scheme, applicant.address).status is BeneficiaryStatus.FUNDED


def test_registration_closes_at_deadline(factory, active_scheme, applicant, clock):
    clock.advance(31 * DAY)
    with pytest.raises(AuthorizationError) as ei:
        _as(factory, applicant).register_beneficiary(active_scheme)
    assert ei.value.reason == "registration deadline has passed"


def test_double_registration_rejected(factory, active_scheme, applicant):
    client = _as(factory, applicant)
    client.register_beneficiary(active_scheme)
    with pytest.raises(AuthorizationError):
        client.register_beneficiary(active_scheme)


def test_beneficiary_may_pull_own_release(factory, active_scheme, applicant, ledger):
    _approved(factory, active_scheme, applicant)
    before = ledger.balance(applicant.address)
    _as(factory, applicant).release_funds(active_scheme, applicant.address)
    assert ledger.balance(applicant.address) == before - 2000 + 50_000


def test_outsider_cannot_administer(factory, active_scheme, applicant, make_signer):
    _as(factory, applicant).register_beneficiary(active_scheme)
    outsider = _as(factory, make_signer())
    for op in (
        lambda: outsider.approve_beneficiary(active_scheme, applicant.address),
        lambda: outsider.pause_scheme(active_scheme),
        lambda: outsider.close_scheme(active_scheme),
        lambda: outsider.add_admin(outsider.sender),
    ):
        with pytest.raises(AuthorizationError):
            op()
    assert factory.get_scheme(active_scheme).status is SchemeStatus.ACTIVE


def test_rejected_beneficiary_is_terminal(factory, active_scheme, applicant):
    _as(factory, applicant).register_beneficiary(active_scheme)
    factory.reject_beneficiary(active_scheme, applicant.address)
    with pytest.raises(AuthorizationError):
        factory.approve_beneficiary(active_scheme, applicant.address)
    assert factory.get_beneficiary(active_scheme, applicant.address).status is BeneficiaryStatus.REJECTED


def test_close_refunds_remainder_to_scheme_authority(factory, active_scheme, applicant, authority, ledger):
    _approved(factory, active_scheme, applicant)
    factory.release_funds(active_scheme, applicant.address)
    before = ledger.balance(authority.address)

    factory.close_scheme(active_scheme)

    assert ledger.balance(authority.address) == before - 2000 + 950_000
    assert factory.get_scheme(active_scheme).status is SchemeStatus.CANCELLED
    with pytest.raises(AuthorizationError):
        factory.fund_scheme(active_scheme, 10)
    with pytest.raises(AuthorizationError):
        factory.activate_scheme(active_scheme)


def test_complete_settles_running_scheme(factory, active_scheme, authority, ledger):
    before = ledger.balance(authority.address)
    factory.complete_scheme(active_scheme)
    assert factory.get_scheme(active_scheme).status is SchemeStatus.COMPLETED
    assert ledger.balance(authority.address) == before - 2000 + 1_000_000


def test_secondary_admin(factory, active_scheme, applicant, make_signer):
    helper = make_signer()
    assert not factory.is_authorized_admin(helper.address)
    factory.add_admin(helper.address)
    assert factory.is_authorized_admin(helper.address)

    _as(factory, applicant).register_beneficiary(active_scheme)
    _as(factory, helper).approve_beneficiary(active_scheme, applicant.address)

    factory.remove_admin(helper.address)
    assert not factory.is_authorized_admin(helper.address)
    with pytest.raises(AuthorizationError):
        _as(factory, helper).pause_scheme(active_scheme)


def test_authority_checks(factory, active_scheme, authority, applicant):
    assert factory.is_authorized_admin(authority.address)
    assert factory.is_authorized_admin(authority.address, active_scheme)
    assert not factory.is_authorized_admin(applicant.address, active_scheme)
    assert not factory.is_authorized_admin("not-an-address")


def test_batch_release_one_group(factory, active_scheme, make_signer, ledger):
    people = [make_signer(1_000_000) for _ in range(4)]
    for p in people:
        _approved(factory, active_scheme, p)

    result = factory.batch_release_funds(active_scheme, [p.address for p in people])

    assert len(result.tx_ids) == 4
    assert len({c.confirmed_round for c in result.confirmations}) == 1
    assert factory.get_scheme(active_scheme).spent == 200_000
    assert factory.factory_stats().total_disbursed == 200_000


@pytest.mark.parametrize("count", [0, 5])
def test_batch_release_bounds_checked_before_submission(ledger, authority, clock, make_signer, metrics, count):
    from .conftest import CountingLedger

    counting = CountingLedger(ledger)
    client = SchemeFactoryClient(counting, authority, clock=clock, metrics=metrics)
    client.deploy()
    submitted = counting.submissions
    addresses = [make_signer().address for _ in range(count)]

    with pytest.raises(ValidationError):
        client.batch_release_funds(1, addresses)
    assert counting.submissions == submitted


def test_batch_release_rejects_duplicates(factory, applicant):
    with pytest.raises(ValidationError):
        factory.batch_release_funds(1, [applicant.address, applicant.address])


def test_factory_totals(factory, active_scheme, applicant):
    _approved(factory, active_scheme, applicant)
    factory.release_funds(active_scheme, applicant.address)
    stats = factory.factory_stats()
    assert stats.authority == factory.sender
    assert (stats.scheme_count, stats.total_funded, stats.total_disbursed, stats.total_beneficiaries) == (
        1,
        1_000_000,
        50_000,
        1,
    )


def test_history_names_methods_and_events(factory, active_scheme, applicant):
    _approved(factory, active_scheme, applicant)
    entries = factory.poll_transactions()
    methods = [e.method for e in entries]
    assert methods[:3] == ["create", "create_scheme", "fund_scheme"]
    assert methods[-2:] == ["register_beneficiary", "approve_beneficiary"]
    created = entries[1]
    assert [ev.name for ev in created.events] == ["SchemeCreated"]
    assert created.events[0].args["scheme_id"] == active_scheme

    later = factory.poll_transactions(min_round=entries[-1].confirmed_round)
    assert [e.method for e in later] == ["approve_beneficiary"]


def test_listing_skips_malformed_scheme_keys(factory, active_scheme, ledger):
    ledger._world.apps[factory.app_id].boxes[b"scheme_bad"] = b"\x01"
    assert [s.scheme_id for s in factory.list_schemes()] == [active_scheme]


def test_blank_name_within_length_is_accepted(factory, clock):
    scheme_id = factory.create_scheme("   ", 100, 10, int(clock()) + DAY)
    assert factory.get_scheme(scheme_id).name == "   "
