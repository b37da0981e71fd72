"""Backpressure, circuit breaking and retry around adapter invocations."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, Optional, TypeVar

from common.backoff import retry_async

from .exceptions import (
    CircuitOpenError,
    ProfileStatsError,
    QueueFullError,
    SourceError,
    SourceErrorKind,
)
from .settings import ResilienceSettings, RetrySettings

T = TypeVar("T")

RETRYABLE_KINDS = frozenset(
    {
        SourceErrorKind.NETWORK,
        SourceErrorKind.TIMEOUT,
        SourceErrorKind.SERVER,
        SourceErrorKind.RATE_LIMITED,
    }
)


def is_retryable(error: BaseException) -> bool:
    """Return ``True`` for transient failures worth another attempt.

    Client errors other than 429/408, auth failures, not-found, parse and
    block-page errors are terminal. Pipeline rejections are never retried.
    """

    if isinstance(error, SourceError):
        status = error.status
        if status is not None:
            if status in (408, 429) or status >= 500:
                return True
            if 400 <= status < 500:
                return False
        return error.kind in RETRYABLE_KINDS
    if isinstance(error, ProfileStatsError):
        return False
    return isinstance(error, (TimeoutError, ConnectionError))


class ResilienceController:
    """Bound concurrency, trip a breaker on repeated failures and retry transients."""

    def __init__(
        self,
        name: str,
        settings: ResilienceSettings,
        retry: RetrySettings,
        now: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ):
        self.name = name
        self.settings = settings
        self.retry = retry
        self._now = now
        self._sleep = sleep
        self.logger = logger or logging.getLogger(__name__)
        self._queue: Deque[asyncio.Future[None]] = deque()
        self._in_flight = 0
        self._consecutive_failures = 0
        self._circuit_open = False
        self._circuit_reopen_at: Optional[float] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    @property
    def consecutive_failures(self) -> int:
        self._refresh_circuit()
        return self._consecutive_failures

    @property
    def circuit_open(self) -> bool:
        self._refresh_circuit()
        return self._circuit_open

    @property
    def circuit_reopen_at(self) -> Optional[float]:
        self._refresh_circuit()
        return self._circuit_reopen_at

    def stats(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "in_flight": self.in_flight,
            "queue_length": self.queue_length,
            "consecutive_failures": self.consecutive_failures,
            "circuit_open": self.circuit_open,
            "circuit_reopen_at": self.circuit_reopen_at,
        }

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        self._reject_if_open()
        await self._acquire_slot()
        try:
            self._reject_if_open()
            # One call counts once toward the breaker, however many attempts it took.
            try:
                result = await retry_async(
                    operation,
                    max_retries=self.retry.max_retries,
                    base_delay=self.retry.base_delay,
                    max_delay=self.retry.max_delay,
                    jitter_ratio=self.retry.jitter_ratio,
                    should_retry=self._should_retry,
                    sleep=self._sleep,
                    on_retry=self._log_retry,
                )
            except Exception:
                self._record_failure()
                raise
            self._record_success()
            return result
        finally:
            self._release_slot()

    def _should_retry(self, error: BaseException) -> bool:
        return is_retryable(error) and not self.circuit_open

    def _log_retry(self, attempt: int, error: BaseException, delay: float) -> None:
        self.logger.warning(
            "%s retry=%d/%d delay=%.2fs error=%s",
            self.name,
            attempt + 1,
            self.retry.max_retries,
            delay,
            error,
        )

    # ------------------------------------------------------------------
    # Circuit breaker
    # ------------------------------------------------------------------
    def _refresh_circuit(self) -> None:
        if not self._circuit_open or self._circuit_reopen_at is None:
            return
        if self._now() >= self._circuit_reopen_at:
            self._circuit_open = False
            self._circuit_reopen_at = None
            self._consecutive_failures = 0
            self.logger.info("%s circuit closed after cooldown", self.name)

    def _reject_if_open(self) -> None:
        if not self.circuit_open:
            return
        reopen_at = self._circuit_reopen_at or self._now()
        raise CircuitOpenError(
            f"Circuit open for {self.name}; try again later",
            platform=self.name,
            failures=self._consecutive_failures,
            retry_after=round(max(reopen_at - self._now(), 0.0), 3),
        )

    def _record_success(self) -> None:
        self._consecutive_failures = 0

    def _record_failure(self) -> None:
        self._refresh_circuit()
        self._consecutive_failures += 1
        if (
            not self._circuit_open
            and self._consecutive_failures >= self.settings.failure_threshold
        ):
            self._circuit_open = True
            self._circuit_reopen_at = self._now() + self.settings.cooldown_seconds
            self.logger.warning(
                "%s circuit opened failures=%d cooldown=%.1fs",
                self.name,
                self._consecutive_failures,
                self.settings.cooldown_seconds,
            )

    # ------------------------------------------------------------------
    # Backpressure
    # ------------------------------------------------------------------
    async def _acquire_slot(self) -> None:
        if self._in_flight < self.settings.max_concurrent:
            self._in_flight += 1
            return
        if len(self._queue) >= self.settings.max_queue:
            raise QueueFullError(
                f"Queue full for {self.name}; request rejected",
                platform=self.name,
                queue_length=len(self._queue),
                max_queue=self.settings.max_queue,
                in_flight=self._in_flight,
            )
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._queue.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                self._release_slot()
            else:
                with contextlib.suppress(ValueError):
                    self._queue.remove(waiter)
            raise

    def _release_slot(self) -> None:
        # A released slot passes straight to the oldest live waiter.
        while self._queue:
            waiter = self._queue.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._in_flight -= 1


class ResilienceRegistry:
    """One controller per platform so a failing source cannot stall the others."""

    def __init__(
        self,
        settings: ResilienceSettings,
        retry: RetrySettings,
        now: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.retry = retry
        self._now = now
        self._sleep = sleep
        self.logger = logger
        self._controllers: Dict[str, ResilienceController] = {}

    def for_platform(self, platform: str) -> ResilienceController:
        controller = self._controllers.get(platform)
        if controller is None:
            controller = ResilienceController(
                platform,
                self.settings,
                self.retry,
                now=self._now,
                sleep=self._sleep,
                logger=self.logger,
            )
            self._controllers[platform] = controller
        return controller

    def stats(self) -> Dict[str, Dict[str, object]]:
        return {name: controller.stats() for name, controller in self._controllers.items()}


__all__ = ["RETRYABLE_KINDS", "ResilienceController", "ResilienceRegistry", "is_retryable"]
