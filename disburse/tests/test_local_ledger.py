from __future__ import annotations

import pytest

from disburse import address as addrs
from disburse.errors import NotFoundError, SubmissionError
from disburse.ledger.client import LedgerClient
from disburse.ledger.local import LocalLedger
from disburse.tx.encode import encode_unsigned, pack_signed, sign_bytes
from disburse.tx.types import PaymentTxn

from .conftest import KeyringWallet


def _signed_pay(ledger: LocalLedger, wallet: KeyringWallet, sender: str, receiver: str, amount: int, **over) -> bytes:
    txn = PaymentTxn(sender=sender, receiver=receiver, amount=amount)
    txn.apply_params(ledger.suggested_params())
    for k, v in over.items():
        setattr(txn, k, v)
    sig = wallet.keys[sender].sign(sign_bytes(txn))
    return pack_signed(encode_unsigned(txn), sig)


@pytest.fixture()
def alice(wallet, ledger):
    a = wallet.new_account()
    ledger.fund(a, 1_000_000)
    return a


def test_satisfies_client_protocol(ledger):
    assert isinstance(ledger, LedgerClient)


def test_payment_moves_value_and_charges_fee(ledger, wallet, alice):
    bob = addrs.encode(bytes([9] * 32))
    ids = ledger.send_group([_signed_pay(ledger, wallet, alice, bob, 200_000)])
    assert ledger.pending_info(ids[0]).confirmed_round == 2
    assert ledger.balance(alice) == 1_000_000 - 200_000 - 1000
    assert ledger.balance(bob) == 200_000


def test_signature_must_match_sender(ledger, wallet, alice):
    other = wallet.new_account()
    txn = PaymentTxn(sender=alice, receiver=other, amount=1)
    txn.apply_params(ledger.suggested_params())
    forged = pack_signed(encode_unsigned(txn), wallet.keys[other].sign(sign_bytes(txn)))
    with pytest.raises(SubmissionError) as ei:
        ledger.send_group([forged])
    assert ei.value.reason == "invalid signature"


def test_wrong_genesis_rejected(ledger, wallet, alice):
    blob = _signed_pay(ledger, wallet, alice, alice, 0, genesis_id="other-net")
    with pytest.raises(SubmissionError):
        ledger.send_group([blob])


def test_new_accounts_need_minimum_balance(ledger, wallet, alice):
    bob = addrs.encode(bytes([8] * 32))
    with pytest.raises(SubmissionError) as ei:
        ledger.send_group([_signed_pay(ledger, wallet, alice, bob, 99_999)])
    assert "minimum balance" in ei.value.reason
    assert ledger.balance(alice) == 1_000_000


def test_cannot_drain_below_minimum(ledger, wallet, alice):
    bob = addrs.encode(bytes([7] * 32))
    with pytest.raises(SubmissionError):
        ledger.send_group([_signed_pay(ledger, wallet, alice, bob, 1_000_000 - 1000 - 99_999)])


def test_group_size_bounds(ledger):
    with pytest.raises(SubmissionError):
        ledger.send_group([])


def test_malformed_blob(ledger):
    with pytest.raises(SubmissionError) as ei:
        ledger.send_group([b"\xa0"])
    assert ei.value.tx_index == 0


def test_unknown_objects(ledger):
    with pytest.raises(NotFoundError):
        ledger.app_global_state(4242)
    with pytest.raises(NotFoundError):
        ledger.pending_info("0xdead")
    with pytest.raises(NotFoundError):
        ledger.asset_params(1)


def test_escrow_address_is_deterministic():
    assert addrs.app_address(1001) == addrs.app_address(1001)
    assert addrs.app_address(1001) != addrs.app_address(1002)


def test_resending_a_confirmed_group_is_rejected(ledger, wallet, alice):
    bob = addrs.encode(bytes([6] * 32))
    blob = _signed_pay(ledger, wallet, alice, bob, 150_000)
    ledger.send_group([blob])

    with pytest.raises(SubmissionError) as ei:
        ledger.send_group([blob])
    assert ei.value.reason == "transaction already in ledger"
    assert ledger.balance(bob) == 150_000


def test_resending_a_queued_group_is_rejected(ledger, wallet, alice):
    bob = addrs.encode(bytes([5] * 32))
    blob = _signed_pay(ledger, wallet, alice, bob, 150_000)
    ledger.hold_confirmations = True
    ids = ledger.send_group([blob])

    with pytest.raises(SubmissionError):
        ledger.send_group([blob])
    assert ledger.release_pending() == ids
    assert ledger.balance(bob) == 150_000


def test_failed_queued_group_reports_pool_error(ledger, wallet, alice):
    bob = addrs.encode(bytes([4] * 32))
    carol = addrs.encode(bytes([3] * 32))
    ledger.hold_confirmations = True
    drain = ledger.send_group([_signed_pay(ledger, wallet, alice, bob, 800_000)])
    short = ledger.send_group([_signed_pay(ledger, wallet, alice, carol, 150_000)])
    tail = ledger.send_group([_signed_pay(ledger, wallet, alice, bob, 10_000)])

    assert ledger.release_pending() == drain + tail
    assert "minimum balance" in ledger.pending_info(short[0]).pool_error
    assert ledger.pending_info(short[0]).confirmed_round is None
    assert ledger.balance(carol) == 0
