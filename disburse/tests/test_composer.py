from __future__ import annotations

import pytest

from disburse.errors import (ConfirmationTimeout, NetworkError,
                             SubmissionError, UserDeclinedError,
                             ValidationError)
from disburse.tx.composer import ComposerStatus, TransactionComposer
from disburse.tx.encode import decode_unsigned
from disburse.tx.types import PaymentTxn


def _sample(metrics, outcome):
    return metrics.groups_total.labels(outcome=outcome)._value.get()


def test_each_signer_asked_once_with_whole_group(counting, wallet, make_signer, metrics):
    a, b = make_signer(), make_signer()
    comp = TransactionComposer(counting, metrics=metrics)
    comp.add_transaction(PaymentTxn(sender=a.address, receiver=b.address, amount=10), a)
    comp.add_transaction(PaymentTxn(sender=b.address, receiver=a.address, amount=20), b)
    comp.add_transaction(PaymentTxn(sender=a.address, receiver=b.address, amount=30), a)

    result = comp.execute()

    assert len(wallet.requests) == 2
    first, second = wallet.requests
    assert [r.skip for r in first] == [False, True, False]
    assert [r.skip for r in second] == [True, False, True]
    assert [decode_unsigned(r.txn).amount for r in first] == [10, 20, 30]
    assert counting.submissions == 1
    assert len(result.tx_ids) == 3
    assert result.group_id is not None
    assert comp.status is ComposerStatus.COMMITTED
    assert _sample(metrics, "committed") == 1


def test_single_transaction_has_no_group_id(ledger, make_signer, metrics):
    a, b = make_signer(), make_signer()
    comp = TransactionComposer(ledger, metrics=metrics)
    comp.add_transaction(PaymentTxn(sender=a.address, receiver=b.address, amount=1), a)
    result = comp.execute()
    assert result.group_id is None
    assert ledger.balance(b.address) == 10_000_001


def test_declined_signature_submits_nothing(counting, wallet, make_signer, metrics):
    a, b = make_signer(), make_signer()
    wallet.decline = True
    comp = TransactionComposer(counting, metrics=metrics)
    comp.add_transaction(PaymentTxn(sender=a.address, receiver=b.address, amount=5), a)

    with pytest.raises(UserDeclinedError):
        comp.execute()

    assert counting.submissions == 0
    assert counting.balance(a.address) == 10_000_000
    assert _sample(metrics, "declined") == 1


def test_group_ceiling(ledger, make_signer):
    a, b = make_signer(), make_signer()
    comp = TransactionComposer(ledger)
    for _ in range(16):
        comp.add_transaction(PaymentTxn(sender=a.address, receiver=b.address, amount=1), a)
    with pytest.raises(ValidationError):
        comp.add_transaction(PaymentTxn(sender=a.address, receiver=b.address, amount=1), a)


def test_empty_group_rejected(ledger):
    with pytest.raises(ValidationError):
        TransactionComposer(ledger).build_group()


def test_no_additions_after_build(ledger, make_signer):
    a = make_signer()
    comp = TransactionComposer(ledger)
    comp.add_transaction(PaymentTxn(sender=a.address, receiver=a.address, amount=0), a)
    comp.build_group()
    with pytest.raises(ValidationError):
        comp.add_transaction(PaymentTxn(sender=a.address, receiver=a.address, amount=0), a)


def test_submit_only_once(ledger, make_signer):
    a, b = make_signer(), make_signer()
    comp = TransactionComposer(ledger)
    comp.add_transaction(PaymentTxn(sender=a.address, receiver=b.address, amount=1), a)
    comp.submit()
    with pytest.raises(SubmissionError):
        comp.submit()


def test_underpaid_fee_rejects_whole_group(ledger, make_signer, metrics):
    a, b = make_signer(), make_signer()
    comp = TransactionComposer(ledger, metrics=metrics)
    comp.add_transaction(PaymentTxn(sender=a.address, receiver=b.address, amount=7, fee=400), a)
    comp.add_transaction(PaymentTxn(sender=b.address, receiver=a.address, amount=9, fee=400), b)

    with pytest.raises(SubmissionError) as ei:
        comp.execute()

    assert "fee too small" in ei.value.reason
    assert ledger.balance(a.address) == 10_000_000
    assert ledger.balance(b.address) == 10_000_000
    assert _sample(metrics, "rejected") == 1


def test_one_failing_member_rolls_back_the_group(ledger, make_signer):
    a, b = make_signer(), make_signer(200_000)
    comp = TransactionComposer(ledger)
    comp.add_transaction(PaymentTxn(sender=a.address, receiver=b.address, amount=1_000), a)
    comp.add_transaction(PaymentTxn(sender=b.address, receiver=a.address, amount=150_000), b)

    with pytest.raises(SubmissionError) as ei:
        comp.execute()

    assert ei.value.tx_index is None or ei.value.tx_index == 1
    assert ledger.balance(a.address) == 10_000_000
    assert ledger.balance(b.address) == 200_000


def test_stale_params_surface_as_network_error(ledger, make_signer, metrics):
    a, b = make_signer(), make_signer()
    comp = TransactionComposer(ledger, metrics=metrics)
    comp.add_transaction(PaymentTxn(sender=a.address, receiver=b.address, amount=1), a)
    comp.gather_signatures()
    ledger.status_after_round(5_000)

    with pytest.raises(NetworkError) as ei:
        comp.execute()
    assert ei.value.code == "STALE_PARAMS"
    assert _sample(metrics, "network") == 1


def test_confirmation_wait_is_bounded(ledger, make_signer, metrics):
    a, b = make_signer(), make_signer()
    ledger.hold_confirmations = True
    comp = TransactionComposer(ledger, metrics=metrics)
    comp.add_transaction(PaymentTxn(sender=a.address, receiver=b.address, amount=3), a)

    with pytest.raises(ConfirmationTimeout) as ei:
        comp.execute(max_rounds=3)

    assert ei.value.rounds == 3
    assert _sample(metrics, "timeout") == 1
    # the group may still land later; it is never resubmitted
    assert ledger.release_pending() == [ei.value.tx_id]
    assert ledger.pending_info(ei.value.tx_id).confirmed_round is not None
    assert ledger.balance(b.address) == 10_000_003
