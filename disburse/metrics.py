"""
Prometheus metrics for the disbursement client.

Instruments:
  • groups_total          - transaction groups submitted, by outcome
  • confirmation_seconds  - time from submission to confirmation
  • cache_lookups_total   - service read-cache lookups, by result
  • batch_chunks_total    - sequential groups produced by auto-chunking

Label vocabularies are small and fixed; unknown values collapse to a catch-all
so cardinality stays bounded.

Usage
-----
    from disburse.metrics import METRICS

    METRICS.record_group("committed")
    with METRICS.confirmation_timer():
        ledger.await_confirmation(tx_id, 4)

Tests or embedders that need isolation construct their own ``Metrics`` with a
private ``CollectorRegistry``.
"""

from __future__ import annotations

from contextlib import contextmanager
from time import perf_counter
from typing import Iterable, Iterator

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

GROUP_OUTCOMES = (
    "committed",     # confirmed on ledger
    "rejected",      # ledger refused the group (nothing applied)
    "unauthorized",  # contract assertion failed
    "declined",      # signer declined, never submitted
    "timeout",       # bounded confirmation wait expired
    "network",       # transport failure
    "other",
)

CACHE_RESULTS = ("hit", "miss", "expired")

_CONFIRM_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0)


class Metrics:
    """
    Container for the client's Prometheus instruments.

    Args:
        namespace: metric namespace prefix.
        subsystem: metric subsystem.
        registry:  registry the instruments are registered with.
    """

    def __init__(
        self,
        *,
        namespace: str = "disburse",
        subsystem: str = "client",
        registry: CollectorRegistry = REGISTRY,
        confirm_buckets: Iterable[float] = _CONFIRM_BUCKETS,
    ) -> None:
        self.groups_total = Counter(
            "groups_total",
            "Transaction groups submitted, labeled by outcome.",
            labelnames=("outcome",),
            namespace=namespace,
            subsystem=subsystem,
            registry=registry,
        )
        self.cache_lookups_total = Counter(
            "cache_lookups_total",
            "Read-cache lookups, labeled by result.",
            labelnames=("result",),
            namespace=namespace,
            subsystem=subsystem,
            registry=registry,
        )
        self.batch_chunks_total = Counter(
            "batch_chunks_total",
            "Sequential atomic groups produced by batch chunking.",
            namespace=namespace,
            subsystem=subsystem,
            registry=registry,
        )
        self.confirmation_seconds = Histogram(
            "confirmation_seconds",
            "Time between group submission and confirmation (seconds).",
            buckets=tuple(confirm_buckets),
            namespace=namespace,
            subsystem=subsystem,
            registry=registry,
        )

    def record_group(self, outcome: str) -> None:
        if outcome not in GROUP_OUTCOMES:
            outcome = "other"
        self.groups_total.labels(outcome=outcome).inc()

    def record_cache(self, result: str) -> None:
        if result not in CACHE_RESULTS:
            result = "miss"
        self.cache_lookups_total.labels(result=result).inc()

    def record_chunks(self, n: int) -> None:
        self.batch_chunks_total.inc(n)

    @contextmanager
    def confirmation_timer(self) -> Iterator[None]:
        start = perf_counter()
        try:
            yield
        finally:
            self.confirmation_seconds.observe(perf_counter() - start)


METRICS = Metrics()

__all__ = ["Metrics", "METRICS", "GROUP_OUTCOMES", "CACHE_RESULTS"]
