from __future__ import annotations

import pytest

from disburse.service.cache import TTLCache

from .conftest import FakeClock


@pytest.fixture()
def cache(metrics):
    return TTLCache(ttl=10, clock=FakeClock(0), metrics=metrics)


def _lookups(metrics, result):
    return metrics.cache_lookups_total.labels(result=result)._value.get()


def test_hit_and_miss(cache, metrics):
    assert cache.get("k") is None
    cache.put("k", 1)
    assert cache.get("k") == 1
    assert (cache.stats.hits, cache.stats.misses) == (1, 1)
    assert _lookups(metrics, "hit") == 1
    assert _lookups(metrics, "miss") == 1


def test_expiry_keeps_value_for_stale_reads(cache, metrics):
    cache.put("k", "v")
    cache.clock.advance(10)
    assert cache.get("k", "default") == "default"
    assert cache.peek_stale("k") == "v"
    assert cache.stats.expired == 1
    assert _lookups(metrics, "expired") == 1


def test_get_or_load_calls_loader_once_per_ttl(cache):
    calls = []

    def load():
        calls.append(1)
        return len(calls)

    assert cache.get_or_load("k", load) == 1
    assert cache.get_or_load("k", load) == 1
    cache.clock.advance(11)
    assert cache.get_or_load("k", load) == 2


def test_loader_errors_propagate_and_cache_nothing(cache):
    def boom():
        raise RuntimeError("down")

    with pytest.raises(RuntimeError):
        cache.get_or_load("k", boom)
    assert len(cache) == 0


def test_invalidate(cache):
    cache.put("a", 1)
    cache.put("b", 2)
    cache.invalidate("a")
    assert cache.get("a") is None and cache.get("b") == 2
    cache.invalidate()
    assert len(cache) == 0
    assert cache.peek_stale("b", "gone") == "gone"
    assert cache.stats.invalidations == 2


def test_ttl_must_be_positive():
    with pytest.raises(ValueError):
        TTLCache(ttl=0)


def test_cached_none_is_a_hit(cache):
    calls = []
    cache.get_or_load("none", lambda: calls.append(1))
    cache.get_or_load("none", lambda: calls.append(1))
    assert calls == [1]
