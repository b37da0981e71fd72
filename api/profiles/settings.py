from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Tuple


def _env_float(name: str, default: str) -> float:
    return float(os.environ.get(name, default))


def _env_int(name: str, default: str) -> int:
    return int(os.environ.get(name, default))


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_HEADERS: Dict[str, str] = {
    "Accept": "text/html,application/xhtml+xml,application/json;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Referer": "https://www.google.com/",
}
BLOCKED_RESOURCE_TYPES: Tuple[str, ...] = ("image", "stylesheet", "font", "media")


@dataclass(frozen=True)
class CacheSettings:
    ttl_seconds: float = 900.0
    max_entries: int = 1000


@dataclass(frozen=True)
class ResilienceSettings:
    max_concurrent: int = 10
    max_queue: int = 100
    failure_threshold: int = 5
    cooldown_seconds: float = 30.0


@dataclass(frozen=True)
class RetrySettings:
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter_ratio: float = 0.1


@dataclass(frozen=True)
class SourceSettings:
    timeout_seconds: float = 10.0
    user_agent: str = DEFAULT_USER_AGENT
    headers: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HEADERS))


@dataclass(frozen=True)
class BrowserSettings:
    max_instances: int = 2
    navigation_timeout_seconds: float = 30.0
    headless: bool = True
    blocked_resource_types: Tuple[str, ...] = BLOCKED_RESOURCE_TYPES
    launch_args: Tuple[str, ...] = (
        "--disable-blink-features=AutomationControlled",
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-dev-shm-usage",
        "--disable-gpu",
    )


@dataclass(frozen=True)
class RateLimitSettings:
    window_seconds: float = 900.0
    max_requests: int = 100
    min_requests: int = 5
    suspicion_penalty: int = 20
    burst_window_seconds: float = 1.0
    burst_max_requests: int = 5
    violation_increment: int = 1
    burst_increment: int = 2
    block_threshold: int = 5
    block_seconds: float = 3600.0


@dataclass(frozen=True)
class BandwidthSettings:
    per_minute_bytes: int = 10 * 1024 * 1024
    per_hour_bytes: int = 100 * 1024 * 1024
    global_hour_bytes: int = 1024 * 1024 * 1024
    expected_response_bytes: int = 8 * 1024


@dataclass(frozen=True)
class TracerSettings:
    retention_seconds: float = 300.0
    cleanup_interval_seconds: float = 300.0


@dataclass(frozen=True)
class PipelineSettings:
    cache: CacheSettings = field(default_factory=CacheSettings)
    resilience: ResilienceSettings = field(default_factory=ResilienceSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    source: SourceSettings = field(default_factory=SourceSettings)
    browser: BrowserSettings = field(default_factory=BrowserSettings)
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)
    bandwidth: BandwidthSettings = field(default_factory=BandwidthSettings)
    tracer: TracerSettings = field(default_factory=TracerSettings)


def load_pipeline_settings() -> PipelineSettings:
    cache = CacheSettings(
        ttl_seconds=_env_float("PROFILE_CACHE_SECONDS", "900"),
        max_entries=_env_int("PROFILE_CACHE_MAX_ENTRIES", "1000"),
    )
    resilience = ResilienceSettings(
        max_concurrent=_env_int("RESILIENCE_MAX_CONCURRENT", "10"),
        max_queue=_env_int("RESILIENCE_MAX_QUEUE", "100"),
        failure_threshold=_env_int("CIRCUIT_FAILURE_THRESHOLD", "5"),
        cooldown_seconds=_env_float("CIRCUIT_COOLDOWN_SECONDS", "30"),
    )
    retry = RetrySettings(
        max_retries=_env_int("RETRY_MAX_RETRIES", "3"),
        base_delay=_env_float("RETRY_BASE_DELAY_SECONDS", "1"),
        max_delay=_env_float("RETRY_MAX_DELAY_SECONDS", "30"),
    )
    source = SourceSettings(
        timeout_seconds=_env_float("SOURCE_TIMEOUT_SECONDS", "10"),
        user_agent=os.environ.get("SOURCE_USER_AGENT", DEFAULT_USER_AGENT),
    )
    browser = BrowserSettings(
        max_instances=_env_int("BROWSER_MAX_INSTANCES", "2"),
        navigation_timeout_seconds=_env_float("BROWSER_NAVIGATION_TIMEOUT_SECONDS", "30"),
        headless=_env_bool("BROWSER_HEADLESS", "true"),
    )
    rate_limit = RateLimitSettings(
        window_seconds=_env_float("RATE_WINDOW_SECONDS", "900"),
        max_requests=_env_int("RATE_MAX_REQUESTS", "100"),
        block_seconds=_env_float("RATE_BLOCK_SECONDS", "3600"),
    )
    bandwidth = BandwidthSettings(
        per_minute_bytes=_env_int("BANDWIDTH_PER_MINUTE_BYTES", str(10 * 1024 * 1024)),
        per_hour_bytes=_env_int("BANDWIDTH_PER_HOUR_BYTES", str(100 * 1024 * 1024)),
        global_hour_bytes=_env_int("BANDWIDTH_GLOBAL_HOUR_BYTES", str(1024 * 1024 * 1024)),
        expected_response_bytes=_env_int("BANDWIDTH_EXPECTED_RESPONSE_BYTES", str(8 * 1024)),
    )
    tracer = TracerSettings(
        retention_seconds=_env_float("TRACE_RETENTION_SECONDS", "300"),
    )
    return PipelineSettings(
        cache=cache,
        resilience=resilience,
        retry=retry,
        source=source,
        browser=browser,
        rate_limit=rate_limit,
        bandwidth=bandwidth,
        tracer=tracer,
    )
