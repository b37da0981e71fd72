from __future__ import annotations

import logging
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional, Tuple

from api.profiles.exceptions import BandwidthExceededError
from api.profiles.settings import BandwidthSettings

MINUTE = 60.0
HOUR = 3600.0


def format_bytes(value: int) -> str:
    if value < 1024:
        return f"{value}B"
    if value < 1024 * 1024:
        return f"{value / 1024:.1f}KB"
    return f"{value / (1024 * 1024):.1f}MB"


@dataclass
class BandwidthDecision:
    allowed: bool
    ceiling: Optional[str] = None
    reason: Optional[str] = None
    limit: Optional[int] = None
    usage: Optional[int] = None
    retry_after: Optional[float] = None


class BandwidthLedger:
    """Track bytes served per IP over rolling minute/hour windows plus a global hour."""

    def __init__(
        self,
        settings: BandwidthSettings,
        now: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self._now = now
        self.logger = logger or logging.getLogger(__name__)
        self._usage: Dict[str, Deque[Tuple[float, int]]] = defaultdict(deque)
        self._global: Deque[Tuple[float, int]] = deque()

    def record(self, key: str, nbytes: int) -> None:
        if nbytes <= 0:
            return
        now = self._now()
        self._usage[key].append((now, nbytes))
        self._global.append((now, nbytes))
        self._prune(now)

    def usage(self, key: str) -> Tuple[int, int]:
        """Return ``(last_minute, last_hour)`` byte totals for ``key``."""

        now = self._now()
        self._prune(now)
        entries = self._usage.get(key)
        if not entries:
            return 0, 0
        minute = sum(size for stamp, size in entries if now - stamp < MINUTE)
        hour = sum(size for _, size in entries)
        return minute, hour

    def global_usage(self) -> int:
        self._prune(self._now())
        return sum(size for _, size in self._global)

    def check(self, key: str, nbytes: int) -> BandwidthDecision:
        """Compare a prospective transfer of ``nbytes`` against all three ceilings."""

        now = self._now()
        minute, hour = self.usage(key)
        if minute + nbytes > self.settings.per_minute_bytes:
            return self._denied(
                "per_minute",
                "Per-minute bandwidth limit exceeded",
                self.settings.per_minute_bytes,
                minute,
                self._retry_after(self._usage.get(key), now, MINUTE),
            )
        if hour + nbytes > self.settings.per_hour_bytes:
            return self._denied(
                "per_hour",
                "Hourly bandwidth limit exceeded",
                self.settings.per_hour_bytes,
                hour,
                self._retry_after(self._usage.get(key), now, HOUR),
            )
        total = self.global_usage()
        if total + nbytes > self.settings.global_hour_bytes:
            return self._denied(
                "global",
                "Global bandwidth limit exceeded",
                self.settings.global_hour_bytes,
                total,
                self._retry_after(self._global, now, HOUR),
            )
        return BandwidthDecision(allowed=True)

    def admit(self, key: str, nbytes: int) -> BandwidthDecision:
        decision = self.check(key, nbytes)
        if not decision.allowed:
            raise BandwidthExceededError(
                decision.reason or "Bandwidth limit exceeded",
                ceiling=decision.ceiling,
                limit=decision.limit,
                usage=decision.usage,
                retry_after=decision.retry_after,
            )
        return decision

    def reset(self) -> None:
        self._usage.clear()
        self._global.clear()

    def stats(self) -> Dict[str, object]:
        now = self._now()
        self._prune(now)
        ranked: List[Tuple[str, int]] = sorted(
            ((key, sum(size for _, size in entries)) for key, entries in self._usage.items()),
            key=lambda item: item[1],
            reverse=True,
        )
        total = sum(size for _, size in self._global)
        return {
            "global": {
                "usage": format_bytes(total),
                "limit": format_bytes(self.settings.global_hour_bytes),
                "percentage": round(total / self.settings.global_hour_bytes * 100, 1),
            },
            "limits": {
                "per_minute": format_bytes(self.settings.per_minute_bytes),
                "per_hour": format_bytes(self.settings.per_hour_bytes),
                "global": format_bytes(self.settings.global_hour_bytes),
            },
            "top_users": [
                {"ip": key, "hourly": format_bytes(size)} for key, size in ranked[:10]
            ],
            "active_ips": len(self._usage),
        }

    def _denied(
        self, ceiling: str, reason: str, limit: int, usage: int, retry_after: float
    ) -> BandwidthDecision:
        return BandwidthDecision(
            allowed=False,
            ceiling=ceiling,
            reason=reason,
            limit=limit,
            usage=usage,
            retry_after=round(max(retry_after, 0.0), 3),
        )

    @staticmethod
    def _retry_after(
        entries: Optional[Deque[Tuple[float, int]]], now: float, window: float
    ) -> float:
        if not entries:
            return 0.0
        for stamp, _ in entries:
            if now - stamp < window:
                return stamp + window - now
        return 0.0

    def _prune(self, now: float) -> None:
        for key in list(self._usage):
            entries = self._usage[key]
            while entries and now - entries[0][0] >= HOUR:
                entries.popleft()
            if not entries:
                del self._usage[key]
        while self._global and now - self._global[0][0] >= HOUR:
            self._global.popleft()


__all__ = ["BandwidthDecision", "BandwidthLedger", "format_bytes"]
