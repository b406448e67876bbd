"""
Bounded retry with exponential backoff for idempotent ledger reads.

Writes are never retried here: a resubmitted group could double-apply if the
first attempt actually landed.

    policy = ReadRetryPolicy(retries=3, base=0.1)
    state = policy.call(ledger.app_global_state, app_id)
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Optional, Sequence, Tuple, Type, TypeVar, Union

__all__ = ["RetryError", "backoff_delay", "retry_call", "ReadRetryPolicy"]

T = TypeVar("T")

JitterMode = Literal["full", "equal"]
ExcSpec = Union[Type[BaseException], Sequence[Type[BaseException]]]


class RetryError(RuntimeError):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, last_exception: BaseException, attempts: int) -> None:
        super().__init__(f"exhausted after {attempts} attempts: {last_exception!r}")
        self.last_exception = last_exception
        self.attempts = attempts


def backoff_delay(
    attempt: int,
    *,
    base: float,
    max_delay: float,
    jitter: JitterMode = "full",
    rng: Optional[random.Random] = None,
) -> float:
    """Delay in seconds before retry ``attempt`` (1-based); never above ``max_delay``."""
    rnd = rng or random
    cap = min(base * (2 ** (max(1, attempt) - 1)), max_delay)
    if jitter == "full":
        return rnd.uniform(0.0, cap)
    if jitter == "equal":
        return cap * 0.5 + rnd.uniform(0.0, cap * 0.5)
    raise ValueError(f"unknown jitter mode: {jitter}")


def _exc_tuple(exceptions: ExcSpec) -> Tuple[Type[BaseException], ...]:
    if isinstance(exceptions, type):
        return (exceptions,)
    return tuple(exceptions)


def retry_call(
    fn: Callable[..., T],
    *args: Any,
    retries: int = 3,
    base: float = 0.2,
    max_delay: float = 2.0,
    jitter: JitterMode = "full",
    exceptions: ExcSpec = Exception,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> T:
    """
    Call ``fn`` up to ``retries + 1`` times.

    Exceptions outside ``exceptions`` propagate immediately. When attempts run
    out, :class:`RetryError` is raised chained to the last failure.
    """
    exc_types = _exc_tuple(exceptions)
    attempt = 0
    while True:
        attempt += 1
        try:
            return fn(*args, **kwargs)
        except exc_types as exc:
            if attempt > retries:
                raise RetryError(exc, attempts=attempt) from exc
            delay = backoff_delay(attempt, base=base, max_delay=max_delay, jitter=jitter)
            if on_retry is not None:
                on_retry(attempt, exc, delay)
            sleep(delay)


@dataclass(frozen=True)
class ReadRetryPolicy:
    """``retries=0`` disables retrying altogether."""

    retries: int = 2
    base: float = 0.2
    max_delay: float = 2.0
    jitter: JitterMode = "full"
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    def call(
        self,
        fn: Callable[..., T],
        *args: Any,
        exceptions: ExcSpec = Exception,
        on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
        **kwargs: Any,
    ) -> T:
        return retry_call(
            fn,
            *args,
            retries=self.retries,
            base=self.base,
            max_delay=self.max_delay,
            jitter=self.jitter,
            exceptions=exceptions,
            on_retry=on_retry,
            sleep=self.sleep,
            **kwargs,
        )
