from __future__ import annotations

import logging
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional, Tuple

from api.profiles.exceptions import RateLimitedError
from api.profiles.settings import RateLimitSettings


@dataclass
class RateDecision:
    allowed: bool
    limit: int
    usage: int
    suspicion: int
    reason: Optional[str] = None
    retry_after: Optional[float] = None


class AdaptiveRateLimiter:
    """In-memory rate limiter keyed by client IP whose quota shrinks with suspicion.

    Limit violations and request bursts raise an IP's suspicion score. Past
    ``block_threshold`` the IP gets zero quota until ``block_seconds`` elapse,
    after which both the block and the score are cleared.
    """

    def __init__(
        self,
        settings: RateLimitSettings,
        now: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self._now = now
        self.logger = logger or logging.getLogger(__name__)
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._bursts: Dict[str, Deque[float]] = defaultdict(deque)
        self._suspicion: Dict[str, int] = {}
        self._blocked: Dict[str, float] = {}
        self._last_prune = now()

    def suspicion(self, key: str) -> int:
        self._expire_block(key, self._now())
        return self._suspicion.get(key, 0)

    def is_blocked(self, key: str) -> bool:
        self._expire_block(key, self._now())
        return key in self._blocked

    def quota(self, key: str) -> int:
        if self.is_blocked(key):
            return 0
        level = self._suspicion.get(key, 0)
        return max(
            self.settings.min_requests,
            self.settings.max_requests - level * self.settings.suspicion_penalty,
        )

    def check(self, key: str) -> RateDecision:
        """Count one request from ``key`` and decide whether it may proceed."""

        now = self._now()
        if now - self._last_prune >= self.settings.window_seconds:
            self.prune(now)
        self._expire_block(key, now)
        window_start, count = self._windows.get(key, (now, 0))
        if now - window_start >= self.settings.window_seconds:
            window_start, count = now, 0

        blocked_until = self._blocked.get(key)
        if blocked_until is not None:
            return RateDecision(
                allowed=False,
                limit=0,
                usage=count,
                suspicion=self._suspicion.get(key, 0),
                reason="blocked",
                retry_after=round(blocked_until - now, 3),
            )

        burst = self._bursts[key]
        while burst and now - burst[0] >= self.settings.burst_window_seconds:
            burst.popleft()
        burst.append(now)
        if len(burst) > self.settings.burst_max_requests:
            self._raise_suspicion(key, self.settings.burst_increment, now)
            return self._denied(key, "burst", count, self.settings.burst_window_seconds)

        count += 1
        self._windows[key] = (window_start, count)
        limit = self.quota(key)
        if count > limit:
            self._raise_suspicion(key, self.settings.violation_increment, now)
            retry_after = window_start + self.settings.window_seconds - now
            return self._denied(key, "rate", count, retry_after)
        return RateDecision(
            allowed=True,
            limit=limit,
            usage=count,
            suspicion=self._suspicion.get(key, 0),
        )

    def allow(self, key: str) -> bool:
        return self.check(key).allowed

    def admit(self, key: str) -> RateDecision:
        decision = self.check(key)
        if not decision.allowed:
            raise RateLimitedError(
                _REASON_MESSAGES.get(decision.reason or "", "Rate limit exceeded"),
                reason=decision.reason,
                limit=decision.limit,
                usage=decision.usage,
                retry_after=decision.retry_after,
            )
        return decision

    def prune(self, now: Optional[float] = None) -> None:
        """Forget IPs idle for a whole window; blocked IPs are kept until unblocked."""

        now = self._now() if now is None else now
        self._last_prune = now
        for key in list(self._blocked):
            self._expire_block(key, now)
        for key, (window_start, _) in list(self._windows.items()):
            if key not in self._blocked and now - window_start >= self.settings.window_seconds:
                del self._windows[key]
        for key, burst in list(self._bursts.items()):
            while burst and now - burst[0] >= self.settings.burst_window_seconds:
                burst.popleft()
            if not burst:
                del self._bursts[key]
        idle = [
            key
            for key in self._suspicion
            if key not in self._blocked and key not in self._windows and key not in self._bursts
        ]
        for key in idle:
            del self._suspicion[key]

    def stats(self) -> Dict[str, object]:
        now = self._now()
        self.prune(now)
        return {
            "tracked": len(self._windows),
            "suspicious": dict(self._suspicion),
            "blocked": {key: round(until - now, 3) for key, until in self._blocked.items()},
        }

    def _denied(self, key: str, reason: str, usage: int, retry_after: float) -> RateDecision:
        blocked_until = self._blocked.get(key)
        if blocked_until is not None:
            reason = "blocked"
            retry_after = blocked_until - self._now()
        return RateDecision(
            allowed=False,
            limit=self.quota(key),
            usage=usage,
            suspicion=self._suspicion.get(key, 0),
            reason=reason,
            retry_after=round(max(retry_after, 0.0), 3),
        )

    def _raise_suspicion(self, key: str, increment: int, now: float) -> None:
        level = self._suspicion.get(key, 0) + increment
        self._suspicion[key] = level
        if level >= self.settings.block_threshold and key not in self._blocked:
            self._blocked[key] = now + self.settings.block_seconds
            self.logger.warning(
                "Blocked %s for suspicious activity suspicion=%d for=%.0fs",
                key,
                level,
                self.settings.block_seconds,
            )

    def _expire_block(self, key: str, now: float) -> None:
        blocked_until = self._blocked.get(key)
        if blocked_until is None or now < blocked_until:
            return
        del self._blocked[key]
        self._suspicion.pop(key, None)
        self._windows.pop(key, None)
        self._bursts.pop(key, None)
        self.logger.info("Unblocked %s", key)


_REASON_MESSAGES = {
    "blocked": "Your IP has been temporarily blocked",
    "burst": "Request burst detected",
    "rate": "Rate limit exceeded",
}


__all__ = ["AdaptiveRateLimiter", "RateDecision"]
