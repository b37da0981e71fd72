"""Compose detection, governors, caching, resilience and normalization.

A lookup runs as an explicit chain of wrappers around the raw adapter call::

    with_cache(with_normalization(with_trace(with_resilience(source))))

Each wrapper adds one concern, so a stage can be exercised on its own in
tests. :meth:`ProfilePipeline.lookup` is the boundary: it converts classified
failures into a :class:`LookupResult` and lets everything else propagate.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Mapping, Optional

import requests

from api.bandwidth import BandwidthLedger
from api.rate_limit import AdaptiveRateLimiter

from .browser import BrowserPool
from .cache import ProfileCache
from .context import AdapterContext, build_session
from .detector import parse_reference
from .exceptions import ProfileStatsError
from .models import BaseProfile, LookupResult, Platform, ProfileReference, RawSourceRecord
from .normalize import normalize
from .platforms import Fetcher, get_fetcher
from .resilience import ResilienceRegistry
from .settings import PipelineSettings, load_pipeline_settings
from .tracer import Tracer


@dataclass(frozen=True)
class StageResult:
    profile: BaseProfile
    from_cache: bool = False


SourceStage = Callable[[ProfileReference, str], Awaitable[RawSourceRecord]]
ProfileStage = Callable[[ProfileReference, str], Awaitable[StageResult]]


class ProfilePipeline:
    """Fetch normalized competitive-programming profiles with caching and guards."""

    def __init__(
        self,
        settings: Optional[PipelineSettings] = None,
        *,
        fetchers: Optional[Mapping[Platform, Fetcher]] = None,
        cache: Optional[ProfileCache[BaseProfile]] = None,
        tracer: Optional[Tracer] = None,
        rate_limiter: Optional[AdaptiveRateLimiter] = None,
        bandwidth: Optional[BandwidthLedger] = None,
        browser_pool: Optional[BrowserPool] = None,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
        now: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings or load_pipeline_settings()
        self.logger = logger or logging.getLogger(__name__)
        self._fetchers: Dict[Platform, Fetcher] = dict(fetchers or {})
        if cache is None:
            cache = ProfileCache(
                self.settings.cache.ttl_seconds,
                max_entries=self.settings.cache.max_entries,
                now=now,
            )
        if tracer is None:
            tracer = Tracer(
                retention_seconds=self.settings.tracer.retention_seconds,
                cleanup_interval_seconds=self.settings.tracer.cleanup_interval_seconds,
                now=now,
                logger=self.logger,
            )
        self.cache: ProfileCache[BaseProfile] = cache
        self.tracer = tracer
        self.rate_limiter = rate_limiter or AdaptiveRateLimiter(
            self.settings.rate_limit, now=now, logger=self.logger
        )
        self.bandwidth = bandwidth or BandwidthLedger(
            self.settings.bandwidth, now=now, logger=self.logger
        )
        self.resilience = ResilienceRegistry(
            self.settings.resilience,
            self.settings.retry,
            now=now,
            sleep=sleep,
            logger=self.logger,
        )
        self.browser_pool = browser_pool or BrowserPool(
            self.settings.browser, self.settings.source, logger=self.logger
        )
        self.session = session or build_session(
            self.settings.source, pool_size=self.settings.resilience.max_concurrent
        )
        self.context = AdapterContext(
            session=self.session,
            logger=self.logger,
            now=now,
            timeout=self.settings.source.timeout_seconds,
            browser=self.settings.browser,
            browser_pool=self.browser_pool,
        )
        self._stage = self.with_cache(
            self.with_normalization(
                self.with_trace(self.with_resilience(self._fetch_source), "source.fetch")
            )
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> None:
        self.tracer.start()
        self.logger.info(
            "Profile pipeline started cache_ttl=%.0fs max_concurrent=%d",
            self.settings.cache.ttl_seconds,
            self.settings.resilience.max_concurrent,
        )

    async def stop(self) -> None:
        await self.tracer.stop()
        await self.browser_pool.stop()
        self.session.close()
        self.logger.info("Profile pipeline stopped")

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------
    def _fetcher_for(self, platform: Platform) -> Fetcher:
        fetcher = self._fetchers.get(platform)
        return fetcher if fetcher is not None else get_fetcher(platform)

    async def _fetch_source(self, reference: ProfileReference, trace_id: str) -> RawSourceRecord:
        fetcher = self._fetcher_for(reference.platform)
        return await fetcher(reference.username, self.context)

    def with_resilience(self, stage: SourceStage) -> SourceStage:
        async def guarded(reference: ProfileReference, trace_id: str) -> RawSourceRecord:
            controller = self.resilience.for_platform(reference.platform.value)
            return await controller.execute(lambda: stage(reference, trace_id))

        return guarded

    def with_trace(self, stage: SourceStage, operation: str) -> SourceStage:
        async def traced(reference: ProfileReference, trace_id: str) -> RawSourceRecord:
            metadata = {"platform": reference.platform.value, "username": reference.username}
            async with self.tracer.span(trace_id, operation, metadata) as result:
                record = await stage(reference, trace_id)
                result["detail"] = record.detail
                return record

        return traced

    def with_normalization(self, stage: SourceStage) -> ProfileStage:
        async def normalized(reference: ProfileReference, trace_id: str) -> StageResult:
            record = await stage(reference, trace_id)
            async with self.tracer.span(trace_id, "normalize"):
                profile = normalize(reference.platform, reference.username, record)
            return StageResult(profile=profile)

        return normalized

    def with_cache(self, stage: ProfileStage) -> ProfileStage:
        async def cached(reference: ProfileReference, trace_id: str) -> StageResult:
            key = reference.cache_key
            async with self.tracer.span(trace_id, "cache.get", {"key": key}) as result:
                hit = self.cache.get(key)
                result["hit"] = hit is not None
            if hit is not None:
                return StageResult(profile=hit, from_cache=True)
            fresh = await stage(reference, trace_id)
            async with self.tracer.span(trace_id, "cache.set", {"key": key}):
                self.cache.set(key, fresh.profile)
            return fresh

        return cached

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def fetch_profile(
        self, reference: object, trace_id: Optional[str] = None
    ) -> StageResult:
        """Resolve ``reference`` without the per-client governors."""

        root_span: Optional[str] = None
        if trace_id is None:
            trace_id, root_span = self.tracer.start_trace("profile.fetch")
        try:
            async with self.tracer.span(trace_id, "detect") as result:
                parsed = parse_reference(reference)
                result["platform"] = parsed.platform.value
            outcome = await self._stage(parsed, trace_id)
        finally:
            if root_span is not None:
                self.tracer.end_span(trace_id, root_span)
        return outcome

    async def lookup(self, reference: object, client_ip: Optional[str] = None) -> LookupResult:
        trace_id, root_span = self.tracer.start_trace(
            "profile.lookup", {"reference": str(reference), "clientIp": client_ip}
        )
        try:
            if client_ip:
                async with self.tracer.span(trace_id, "governors", {"clientIp": client_ip}):
                    self.rate_limiter.admit(client_ip)
                    self.bandwidth.admit(client_ip, self.settings.bandwidth.expected_response_bytes)
            outcome = await self.fetch_profile(reference, trace_id)
        except ProfileStatsError as exc:
            self.tracer.end_span(trace_id, root_span, {"status": "error", "code": exc.code})
            self.logger.warning(
                "lookup trace=%s reference=%s code=%s error=%s",
                trace_id,
                reference,
                exc.code,
                exc.message,
            )
            return LookupResult(
                success=False,
                trace_id=trace_id,
                error=exc.message,
                code=exc.code,
                status_code=exc.status_code,
                details=exc.details or None,
            )
        except Exception as exc:
            self.tracer.end_span(
                trace_id, root_span, {"status": "error", "error": type(exc).__name__}
            )
            raise

        result = LookupResult(
            success=True,
            trace_id=trace_id,
            data=outcome.profile,
            from_cache=outcome.from_cache,
        )
        if client_ip:
            self.bandwidth.record(client_ip, len(json.dumps(result.to_dict()).encode("utf-8")))
        self.tracer.end_span(
            trace_id, root_span, {"status": "ok", "fromCache": outcome.from_cache}
        )
        self.logger.info(
            "lookup trace=%s platform=%s username=%s from_cache=%s",
            trace_id,
            outcome.profile.platform,
            outcome.profile.username,
            outcome.from_cache,
        )
        return result

    def stats(self) -> Dict[str, object]:
        self.cache.sweep()
        return {
            "cache": self.cache.stats(),
            "resilience": self.resilience.stats(),
            "rateLimit": self.rate_limiter.stats(),
            "bandwidth": self.bandwidth.stats(),
            "browser": {
                "active": self.browser_pool.active,
                "available": self.browser_pool.available,
            },
            "traces": len(self.tracer),
        }


__all__ = ["ProfilePipeline", "StageResult"]
