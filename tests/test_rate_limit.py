from __future__ import annotations

import pytest

from api.profiles.exceptions import RateLimitedError
from api.profiles.settings import RateLimitSettings
from api.rate_limit import AdaptiveRateLimiter

IP = "203.0.113.7"


def test_allows_base_quota_then_rejects_and_raises_suspicion(clock) -> None:
    limiter = AdaptiveRateLimiter(RateLimitSettings(), now=clock)
    for _ in range(100):
        assert limiter.allow(IP)
        clock.advance(1)

    decision = limiter.check(IP)
    assert not decision.allowed
    assert decision.reason == "rate"
    assert limiter.suspicion(IP) == 1
    assert limiter.quota(IP) == 80
    assert decision.retry_after == pytest.approx(800.0)


def test_window_resets_after_expiry(clock) -> None:
    limiter = AdaptiveRateLimiter(RateLimitSettings(max_requests=2, min_requests=1), now=clock)
    assert limiter.allow(IP)
    clock.advance(2)
    assert limiter.allow(IP)
    clock.advance(2)
    assert not limiter.allow(IP)

    clock.advance(900)
    assert limiter.allow(IP)


def test_burst_adds_more_suspicion_than_violation(clock) -> None:
    limiter = AdaptiveRateLimiter(RateLimitSettings(), now=clock)
    for _ in range(5):
        assert limiter.allow(IP)

    decision = limiter.check(IP)
    assert decision.reason == "burst"
    assert limiter.suspicion(IP) == 2
    assert limiter.quota(IP) == 60


def test_repeated_bursts_block_then_auto_unblock(clock) -> None:
    limiter = AdaptiveRateLimiter(RateLimitSettings(), now=clock)
    decisions = [limiter.check(IP) for _ in range(8)]

    assert [d.allowed for d in decisions[:5]] == [True] * 5
    assert decisions[5].reason == "burst"
    assert decisions[6].reason == "burst"
    assert decisions[7].reason == "blocked"
    assert limiter.is_blocked(IP)
    assert limiter.quota(IP) == 0

    clock.advance(10)
    blocked = limiter.check(IP)
    assert blocked.reason == "blocked"
    assert blocked.retry_after == pytest.approx(3590.0)

    clock.advance(3590)
    assert not limiter.is_blocked(IP)
    assert limiter.suspicion(IP) == 0
    assert limiter.allow(IP)


def test_quota_never_drops_below_floor(clock) -> None:
    limiter = AdaptiveRateLimiter(RateLimitSettings(block_threshold=1_000), now=clock)
    for _ in range(20):
        limiter.check(IP)

    assert limiter.suspicion(IP) > 5
    assert limiter.quota(IP) == 5


def test_keys_are_tracked_independently(clock) -> None:
    limiter = AdaptiveRateLimiter(RateLimitSettings(max_requests=1, min_requests=1), now=clock)
    assert limiter.allow("a")
    assert limiter.allow("b")
    clock.advance(2)
    assert not limiter.allow("a")
    assert limiter.suspicion("b") == 0


def test_admit_raises_with_structured_details(clock) -> None:
    limiter = AdaptiveRateLimiter(RateLimitSettings(max_requests=1, min_requests=1), now=clock)
    limiter.admit(IP)
    clock.advance(2)

    with pytest.raises(RateLimitedError) as excinfo:
        limiter.admit(IP)
    details = excinfo.value.details
    assert details["reason"] == "rate"
    assert details["usage"] == 2
    assert details["limit"] == limiter.quota(IP)
    assert excinfo.value.retry_after == pytest.approx(898.0)
    assert excinfo.value.status_code == 429


def test_idle_clients_are_forgotten(clock) -> None:
    limiter = AdaptiveRateLimiter(RateLimitSettings(max_requests=1, min_requests=1), now=clock)
    for ip in ("10.0.0.1", "10.0.0.2"):
        limiter.allow(ip)
    clock.advance(2)
    assert not limiter.allow("10.0.0.1")
    assert limiter.suspicion("10.0.0.1") == 1
    assert limiter.stats()["tracked"] == 2

    clock.advance(900)
    stats = limiter.stats()
    assert stats["tracked"] == 0
    assert stats["suspicious"] == {}
    assert limiter._bursts == {}


def test_check_prunes_other_clients_once_per_window(clock) -> None:
    limiter = AdaptiveRateLimiter(RateLimitSettings(), now=clock)
    limiter.allow("10.0.0.1")
    clock.advance(900)

    assert limiter.allow("10.0.0.2")
    assert set(limiter._windows) == {"10.0.0.2"}


def test_prune_keeps_blocked_clients(clock) -> None:
    limiter = AdaptiveRateLimiter(RateLimitSettings(), now=clock)
    for _ in range(8):
        limiter.check(IP)
    clock.advance(1800)

    limiter.prune()
    assert limiter.is_blocked(IP)
    assert limiter.suspicion(IP) >= 5
