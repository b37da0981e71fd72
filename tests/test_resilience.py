from __future__ import annotations

import asyncio
from typing import List

import pytest

from api.profiles.exceptions import (
    CircuitOpenError,
    QueueFullError,
    SourceError,
    SourceErrorKind,
)
from api.profiles.resilience import ResilienceController, ResilienceRegistry
from api.profiles.settings import ResilienceSettings, RetrySettings


async def _no_sleep(delay: float) -> None:
    return None


def _controller(clock, **overrides) -> ResilienceController:
    settings = ResilienceSettings(**overrides)
    retry = RetrySettings(max_retries=3, base_delay=1.0, max_delay=30.0)
    return ResilienceController("codeforces", settings, retry, now=clock, sleep=_no_sleep)


def _not_found() -> SourceError:
    return SourceError(SourceErrorKind.NOT_FOUND, "User not found", status=404)


def test_circuit_opens_after_threshold_and_skips_operation(clock) -> None:
    controller = _controller(clock)
    calls: List[int] = []

    async def failing() -> None:
        calls.append(1)
        raise _not_found()

    async def scenario() -> None:
        for _ in range(5):
            with pytest.raises(SourceError):
                await controller.execute(failing)
        with pytest.raises(CircuitOpenError) as excinfo:
            await controller.execute(failing)
        assert excinfo.value.retry_after == pytest.approx(30.0)

    asyncio.run(scenario())
    assert len(calls) == 5
    assert controller.circuit_open
    assert controller.in_flight == 0


def test_circuit_closes_after_cooldown(clock) -> None:
    controller = _controller(clock)

    async def failing() -> None:
        raise _not_found()

    async def succeeding() -> str:
        return "ok"

    async def scenario() -> str:
        for _ in range(5):
            with pytest.raises(SourceError):
                await controller.execute(failing)
        clock.advance(30)
        return await controller.execute(succeeding)

    assert asyncio.run(scenario()) == "ok"
    assert not controller.circuit_open
    assert controller.consecutive_failures == 0


def test_success_resets_failure_count(clock) -> None:
    controller = _controller(clock)

    async def failing() -> None:
        raise _not_found()

    async def succeeding() -> str:
        return "ok"

    async def scenario() -> None:
        for _ in range(4):
            with pytest.raises(SourceError):
                await controller.execute(failing)
        await controller.execute(succeeding)

    asyncio.run(scenario())
    assert controller.consecutive_failures == 0
    assert not controller.circuit_open


def test_transient_failures_are_retried_then_surface_last_error(clock) -> None:
    controller = _controller(clock, failure_threshold=100)
    attempts: List[int] = []

    async def flaky() -> None:
        attempts.append(1)
        raise SourceError(SourceErrorKind.TIMEOUT, f"timeout {len(attempts)}")

    with pytest.raises(SourceError, match="timeout 4"):
        asyncio.run(controller.execute(flaky))
    assert len(attempts) == 4


def test_retried_call_counts_once_toward_breaker(clock) -> None:
    controller = _controller(clock, failure_threshold=2)
    attempts: List[int] = []

    async def flaky() -> None:
        attempts.append(1)
        raise SourceError(SourceErrorKind.NETWORK, "reset")

    async def scenario() -> None:
        with pytest.raises(SourceError):
            await controller.execute(flaky)
        assert controller.consecutive_failures == 1
        assert not controller.circuit_open
        with pytest.raises(SourceError):
            await controller.execute(flaky)

    asyncio.run(scenario())
    assert len(attempts) == 8
    assert controller.circuit_open


def test_retries_stop_once_another_call_opens_circuit(clock) -> None:
    async def yielding_sleep(delay: float) -> None:
        await asyncio.sleep(0)

    controller = ResilienceController(
        "codeforces",
        ResilienceSettings(failure_threshold=1, max_concurrent=2),
        RetrySettings(max_retries=3),
        now=clock,
        sleep=yielding_sleep,
    )
    attempts: List[int] = []

    async def flaky() -> None:
        attempts.append(1)
        raise SourceError(SourceErrorKind.TIMEOUT, "slow")

    async def failing() -> None:
        raise _not_found()

    async def scenario() -> None:
        retrying = asyncio.create_task(controller.execute(flaky))
        terminal = asyncio.create_task(controller.execute(failing))
        with pytest.raises(SourceError, match="User not found"):
            await terminal
        with pytest.raises(SourceError, match="slow"):
            await retrying

    asyncio.run(scenario())
    assert len(attempts) == 2
    assert controller.circuit_open


def test_queue_admits_waiters_in_fifo_order(clock) -> None:
    controller = _controller(clock, max_concurrent=1, max_queue=5)
    order: List[str] = []

    async def scenario() -> None:
        gate = asyncio.Event()

        async def blocker() -> None:
            await gate.wait()
            order.append("blocker")

        def job(name: str):
            async def run() -> None:
                order.append(name)

            return run

        first = asyncio.create_task(controller.execute(blocker))
        await asyncio.sleep(0)
        waiters = [asyncio.create_task(controller.execute(job(name))) for name in "abc"]
        await asyncio.sleep(0)
        assert controller.queue_length == 3
        assert controller.in_flight == 1
        gate.set()
        await asyncio.gather(first, *waiters)

    asyncio.run(scenario())
    assert order == ["blocker", "a", "b", "c"]
    assert controller.in_flight == 0
    assert controller.queue_length == 0


def test_queue_full_is_rejected_with_details(clock) -> None:
    controller = _controller(clock, max_concurrent=1, max_queue=1)

    async def scenario() -> QueueFullError:
        gate = asyncio.Event()

        async def blocker() -> None:
            await gate.wait()

        first = asyncio.create_task(controller.execute(blocker))
        await asyncio.sleep(0)
        queued = asyncio.create_task(controller.execute(blocker))
        await asyncio.sleep(0)
        try:
            with pytest.raises(QueueFullError) as excinfo:
                await controller.execute(blocker)
        finally:
            gate.set()
            await asyncio.gather(first, queued)
        return excinfo.value

    error = asyncio.run(scenario())
    assert error.details["queue_length"] == 1
    assert error.details["max_queue"] == 1
    assert controller.in_flight == 0


def test_cancelled_waiter_leaves_queue(clock) -> None:
    controller = _controller(clock, max_concurrent=1, max_queue=5)

    async def scenario() -> None:
        gate = asyncio.Event()

        async def blocker() -> None:
            await gate.wait()

        first = asyncio.create_task(controller.execute(blocker))
        await asyncio.sleep(0)
        waiter = asyncio.create_task(controller.execute(blocker))
        await asyncio.sleep(0)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert controller.queue_length == 0
        gate.set()
        await first

    asyncio.run(scenario())
    assert controller.in_flight == 0


def test_registry_isolates_platforms(clock) -> None:
    registry = ResilienceRegistry(
        ResilienceSettings(failure_threshold=1), RetrySettings(max_retries=0), now=clock
    )

    async def failing() -> None:
        raise _not_found()

    async def succeeding() -> str:
        return "ok"

    async def scenario() -> str:
        with pytest.raises(SourceError):
            await registry.for_platform("github").execute(failing)
        return await registry.for_platform("leetcode").execute(succeeding)

    assert asyncio.run(scenario()) == "ok"
    assert registry.for_platform("github").circuit_open
    assert not registry.for_platform("leetcode").circuit_open
    assert set(registry.stats()) == {"github", "leetcode"}
