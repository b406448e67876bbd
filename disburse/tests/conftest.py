from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from prometheus_client import CollectorRegistry

from disburse import address as addrs
from disburse.config import DisburseConfig
from disburse.errors import UserDeclinedError
from disburse.ledger.local import LocalLedger
from disburse.logging import clear_context
from disburse.metrics import Metrics
from disburse.tx.encode import SIGN_PREFIX, decode_unsigned, pack_signed
from disburse.wallet.signer import SignRequest, WalletSigner

T0 = 1_767_225_600  # 2026-01-01T00:00:00Z
DAY = 86_400


class FakeClock:
    def __init__(self, now: float = T0):
        self.now = float(now)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class KeyringWallet:
    """
    Test signer service holding Ed25519 keys in memory.

    Records every request; ``decline = True`` makes it refuse like a user
    pressing "reject" in a wallet.
    """

    def __init__(self) -> None:
        self.keys: Dict[str, Ed25519PrivateKey] = {}
        self.requests: List[List[SignRequest]] = []
        self.decline = False

    def new_account(self) -> str:
        key = Ed25519PrivateKey.generate()
        pk = key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        address = addrs.encode(pk)
        self.keys[address] = key
        return address

    def sign_transactions(self, requests: Sequence[SignRequest]) -> List[Optional[bytes]]:
        self.requests.append(list(requests))
        if self.decline:
            raise UserDeclinedError()
        out: List[Optional[bytes]] = []
        for r in requests:
            if r.skip:
                out.append(None)
                continue
            txn = decode_unsigned(r.txn)
            sig = self.keys[txn.sender].sign(SIGN_PREFIX + r.txn)
            out.append(pack_signed(r.txn, sig))
        return out


class CountingLedger:
    """Wraps a ledger and counts group submissions."""

    def __init__(self, inner: LocalLedger):
        self.inner = inner
        self.submissions = 0

    def send_group(self, signed):
        self.submissions += 1
        return self.inner.send_group(signed)

    def __getattr__(self, name):
        return getattr(self.inner, name)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def metrics() -> Metrics:
    return Metrics(registry=CollectorRegistry())


@pytest.fixture()
def ledger(clock) -> LocalLedger:
    return LocalLedger(clock=clock)


@pytest.fixture()
def counting(ledger) -> CountingLedger:
    return CountingLedger(ledger)


@pytest.fixture()
def wallet() -> KeyringWallet:
    return KeyringWallet()


@pytest.fixture()
def make_signer(wallet, ledger):
    """Create a funded account and its WalletSigner."""

    def _make(balance: int = 10_000_000) -> WalletSigner:
        address = wallet.new_account()
        ledger.fund(address, balance)
        return WalletSigner(wallet, address)

    return _make


@pytest.fixture()
def authority(make_signer) -> WalletSigner:
    return make_signer(50_000_000)


@pytest.fixture()
def config() -> DisburseConfig:
    return DisburseConfig()


@pytest.fixture()
def factory(ledger, authority, clock, metrics):
    from disburse.contracts.scheme_factory import SchemeFactoryClient

    client = SchemeFactoryClient(ledger, authority, clock=clock, metrics=metrics)
    client.deploy()
    client.fund_escrow(500_000)
    return client


@pytest.fixture()
def active_scheme(factory, clock):
    """A funded, active scheme: budget 1,000,000, payout 50,000, deadline +30 days."""
    scheme_id = factory.create_scheme("Merit Scholarship", 1_000_000, 50_000, int(clock()) + 30 * DAY)
    factory.fund_scheme(scheme_id, 1_000_000)
    factory.activate_scheme(scheme_id)
    return scheme_id


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    logger = logging.getLogger("disburse")
    for h in list(logger.handlers):
        logger.removeHandler(h)
    clear_context()
