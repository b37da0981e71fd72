"""Exponential backoff helpers."""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar


T = TypeVar("T")


def compute_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    jitter_ratio: float = 0.1,
    rand: Callable[[], float] = random.random,
) -> float:
    """Return the wait before retry number ``attempt`` (counted from zero).

    The exponential term ``base_delay * 2 ** attempt`` is topped up by up to
    ``jitter_ratio`` of itself and capped at ``max_delay``.
    """

    exponential = base_delay * (2 ** max(attempt, 0))
    jitter = exponential * jitter_ratio * rand()
    return min(max_delay, exponential + jitter)


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    max_retries: int,
    base_delay: float,
    max_delay: float,
    should_retry: Callable[[BaseException], bool],
    jitter_ratio: float = 0.1,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
) -> T:
    """Await ``fn`` with exponential backoff while ``should_retry`` allows it.

    The last observed error is re-raised once the budget is spent.
    """

    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as exc:
            if attempt >= max_retries or not should_retry(exc):
                raise
            delay = compute_delay(attempt, base_delay, max_delay, jitter_ratio)
            if on_retry is not None:
                on_retry(attempt, exc, delay)
            await sleep(delay)
            attempt += 1


__all__ = ["compute_delay", "retry_async"]
