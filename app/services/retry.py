"""Bounded retry with exponential backoff."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass
class RetryState:
    attempt: int = 1
    last_error: Optional[BaseException] = None


@dataclass(frozen=True)
class RetryPolicy:
    """Run an async operation up to ``max_attempts`` times.

    After failed attempt *k* the policy sleeps ``base_delay * 2 ** (k - 1)``
    seconds, but only when ``is_retryable(error)`` holds; every other error is
    raised immediately.
    """

    is_retryable: Callable[[BaseException], bool]
    max_attempts: int = 3
    base_delay: float = 1.0
    sleep: SleepFn = field(default=asyncio.sleep, compare=False)

    def backoff(self, attempt: int) -> float:
        return self.base_delay * 2 ** (attempt - 1)

    async def run(self, operation: Callable[[RetryState], Awaitable[T]]) -> T:
        state = RetryState()
        while True:
            try:
                return await operation(state)
            except Exception as exc:  # noqa: BLE001
                state.last_error = exc
                if not self.is_retryable(exc) or state.attempt >= self.max_attempts:
                    raise
                delay = self.backoff(state.attempt)
                logger.warning(
                    "Attempt %d/%d failed (%s); retrying in %.1fs",
                    state.attempt,
                    self.max_attempts,
                    exc,
                    delay,
                )
                await self.sleep(delay)
                state.attempt += 1
