"""
Exponential backoff primitives.

- `RetryPolicy`: bounded retries for a single call (attempt-indexed delays).
- `Backoff`: open-ended loop backoff that grows on failure and resets on success.

Both take an injectable `sleep` so tests can observe delays without waiting.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

Sleep = Callable[[float], Awaitable[None]]


class RetryPolicy:
    """
    Exponential backoff with a fixed attempt ceiling.

    Attempt numbers are 1-based; `delay_for_attempt(n)` is the wait *after*
    attempt n failed, i.e. base_delay * 2^(n-1), capped at max_delay.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if base_delay < 0 or max_delay < 0:
            raise ValueError("base_delay and max_delay must be >= 0")
        if base_delay > max_delay:
            raise ValueError("base_delay must be <= max_delay")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep

    def should_retry(self, attempt: int) -> bool:
        return 1 <= attempt < self.max_attempts

    def delay_for_attempt(self, attempt: int) -> float:
        if attempt < 1:
            return 0.0
        return float(min(self.base_delay * (2 ** (attempt - 1)), self.max_delay))

    async def wait_before_retry(self, attempt: int) -> None:
        delay = self.delay_for_attempt(attempt)
        if delay > 0:
            await self._sleep(delay)


class Backoff:
    """
    Loop-level backoff: `next_delay()` returns the current delay and doubles
    it for the following call (never above `cap`); `reset()` goes back to base.
    """

    def __init__(self, *, base: float, cap: float) -> None:
        if base <= 0:
            raise ValueError("base must be > 0")
        if cap < base:
            raise ValueError("cap must be >= base")
        self.base = base
        self.cap = cap
        self._current = base

    @property
    def current(self) -> float:
        return self._current

    def next_delay(self) -> float:
        delay = self._current
        self._current = min(self._current * 2, self.cap)
        return delay

    def reset(self) -> None:
        self._current = self.base
