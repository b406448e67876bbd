from __future__ import annotations

import pytest

from disburse.config import DisburseConfig
from disburse.utils.retry import ReadRetryPolicy, RetryError, backoff_delay, retry_call


def test_defaults():
    cfg = DisburseConfig()
    assert (cfg.fee_multiplier_ordinary, cfg.fee_multiplier_inner) == (1, 2)
    assert (cfg.max_transfer_group, cfg.max_release_group) == (16, 4)
    assert cfg.confirmation_rounds == 4


def test_from_env(monkeypatch):
    monkeypatch.setenv("DISBURSE_RPC_URL", "https://node.example:8680")
    monkeypatch.setenv("DISBURSE_FACTORY_APP_ID", "0x3e9")
    monkeypatch.setenv("DISBURSE_CONFIRM_ROUNDS", "8")
    monkeypatch.setenv("DISBURSE_CACHE_TTL", "5")
    cfg = DisburseConfig.from_env()
    assert cfg.rpc_url == "https://node.example:8680"
    assert cfg.factory_app_id == 1001
    assert cfg.confirmation_rounds == 8
    assert cfg.cache_ttl_s == 5.0


def test_overrides_ignore_unknown_keys():
    cfg = DisburseConfig.with_overrides(DisburseConfig(), identity_app_id=7, nonsense=1)
    assert cfg.identity_app_id == 7


@pytest.mark.parametrize(
    "kwargs",
    [
        {"rpc_url": "ftp://node"},
        {"fee_multiplier_inner": 0},
        {"max_transfer_group": 17},
        {"max_release_group": 0},
        {"confirmation_rounds": 0},
    ],
)
def test_invalid_values(kwargs):
    with pytest.raises(ValueError):
        DisburseConfig(**kwargs)


def test_retry_policy_from_config():
    policy = DisburseConfig(read_retries=5, backoff_base=0.5).read_retry_policy()
    assert isinstance(policy, ReadRetryPolicy)
    assert (policy.retries, policy.base) == (5, 0.5)


def test_backoff_is_capped():
    for attempt in range(1, 10):
        assert 0.0 <= backoff_delay(attempt, base=0.2, max_delay=1.0) <= 1.0
        assert 0.0 <= backoff_delay(attempt, base=0.2, max_delay=1.0, jitter="equal") <= 1.0


def test_retry_call_exhausts_and_chains():
    slept = []

    def always():
        raise OSError("down")

    with pytest.raises(RetryError) as ei:
        retry_call(always, retries=2, exceptions=OSError, sleep=slept.append)
    assert ei.value.attempts == 3
    assert isinstance(ei.value.last_exception, OSError)
    assert len(slept) == 2


def test_retry_call_only_catches_listed_exceptions():
    def wrong():
        raise KeyError("x")

    with pytest.raises(KeyError):
        retry_call(wrong, exceptions=OSError, sleep=lambda s: None)
