from __future__ import annotations

import pytest

from api.bandwidth import BandwidthLedger, format_bytes
from api.profiles.exceptions import BandwidthExceededError
from api.profiles.settings import BandwidthSettings

SETTINGS = BandwidthSettings(per_minute_bytes=100, per_hour_bytes=250, global_hour_bytes=400)


def test_per_minute_ceiling_and_rolling_expiry(clock) -> None:
    ledger = BandwidthLedger(SETTINGS, now=clock)
    ledger.record("a", 80)

    decision = ledger.check("a", 30)
    assert not decision.allowed
    assert decision.ceiling == "per_minute"
    assert decision.usage == 80
    assert decision.limit == 100
    assert decision.retry_after == pytest.approx(60.0)

    clock.advance(60)
    assert ledger.check("a", 30).allowed
    assert ledger.usage("a") == (0, 80)


def test_per_hour_ceiling(clock) -> None:
    ledger = BandwidthLedger(SETTINGS, now=clock)
    for _ in range(3):
        ledger.record("a", 80)
        clock.advance(61)

    decision = ledger.check("a", 20)
    assert decision.ceiling == "per_hour"
    assert decision.usage == 240

    clock.advance(3600)
    assert ledger.check("a", 20).allowed


def test_global_ceiling_spans_all_ips(clock) -> None:
    ledger = BandwidthLedger(SETTINGS, now=clock)
    for ip in ("a", "b", "c", "d"):
        ledger.record(ip, 95)
        clock.advance(1)

    decision = ledger.check("e", 30)
    assert decision.ceiling == "global"
    assert decision.usage == 380
    assert ledger.global_usage() == 380


def test_admit_raises_and_reset_clears(clock) -> None:
    ledger = BandwidthLedger(SETTINGS, now=clock)
    ledger.record("a", 100)
    with pytest.raises(BandwidthExceededError) as excinfo:
        ledger.admit("a", 1)
    assert excinfo.value.details["ceiling"] == "per_minute"
    assert excinfo.value.status_code == 429

    ledger.reset()
    assert ledger.admit("a", 1).allowed


def test_stats_ranks_heaviest_ips(clock) -> None:
    ledger = BandwidthLedger(BandwidthSettings(), now=clock)
    ledger.record("light", 512)
    ledger.record("heavy", 3 * 1024 * 1024)
    ledger.record("ignored", 0)

    stats = ledger.stats()
    assert stats["active_ips"] == 2
    assert stats["top_users"][0] == {"ip": "heavy", "hourly": "3.0MB"}


def test_format_bytes() -> None:
    assert format_bytes(512) == "512B"
    assert format_bytes(2048) == "2.0KB"
    assert format_bytes(5 * 1024 * 1024) == "5.0MB"
