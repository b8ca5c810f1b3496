"""
Bounded polling for asynchronously captured target statistics.

Query Store writes runtime statistics some time after a statement
completes. Reading them immediately after a replay usually finds nothing,
so every target-side read goes through poll_until(): an initial settle
delay, then up to max_attempts reads with exponential backoff between them.
Running out of attempts is an explicit outcome (gave_up), never an
exception.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from tenacity import (
    Retrying,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from planreplay.config import SettleConfig

T = TypeVar("T")


@dataclass(frozen=True)
class SettleResult(Generic[T]):
    """
    Outcome of a bounded poll.

    Attributes:
        value: The first non-None value read, or None.
        attempts: Number of reads performed.
    """

    value: T | None
    attempts: int

    @property
    def gave_up(self) -> bool:
        return self.value is None


def poll_until(
    fetch: Callable[[], T | None],
    settle: SettleConfig,
    sleep: Callable[[float], None] = time.sleep,
) -> SettleResult[T]:
    """
    Call fetch until it returns something other than None.

    Exceptions raised by fetch are not retried; they propagate to the
    caller unchanged.

    Args:
        fetch: Zero-argument read returning None while data is missing.
        settle: Delay and attempt bounds.
        sleep: Sleep function (injectable for tests).
    """
    attempts = 0

    def attempt() -> T | None:
        nonlocal attempts
        attempts += 1
        return fetch()

    if settle.initial_delay_seconds > 0:
        sleep(settle.initial_delay_seconds)

    retrying = Retrying(
        stop=stop_after_attempt(settle.max_attempts),
        wait=wait_exponential(
            multiplier=settle.multiplier,
            max=settle.max_delay_seconds,
        ),
        retry=retry_if_result(lambda value: value is None),
        retry_error_callback=lambda retry_state: None,
        sleep=sleep,
    )
    value = retrying(attempt)
    return SettleResult(value=value, attempts=attempts)
