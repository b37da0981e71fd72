"""Source adapter for sites without an API, driven by a headless browser."""

from __future__ import annotations

import asyncio
from typing import Optional, Sequence
from urllib.parse import quote

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..browser import BrowserPool
from ..context import AdapterContext
from ..exceptions import SourceError, SourceErrorKind
from ..models import RawSourceRecord
from ..utils import log_fetch_attempt
from .heuristics import FieldRule, extract_fields

DEFAULT_BLOCKED_TITLES = ("403 forbidden", "access denied", "attention required")
DEFAULT_NOT_FOUND_MARKERS = ("this link is broken", "broken link", "page not found", "user not found")

# Extra time allowed on top of navigation for title/content reads.
RENDER_GRACE_SECONDS = 5.0


class BrowserAdapter:
    """Render a profile page and read fields through heuristic chains."""

    def __init__(
        self,
        platform: str,
        url_template: str,
        rules: Sequence[FieldRule],
        blocked_titles: Sequence[str] = DEFAULT_BLOCKED_TITLES,
        not_found_markers: Sequence[str] = DEFAULT_NOT_FOUND_MARKERS,
        wait_until: str = "domcontentloaded",
    ):
        self.platform = platform
        self.url_template = url_template
        self.rules = tuple(rules)
        self.blocked_titles = tuple(marker.lower() for marker in blocked_titles)
        self.not_found_markers = tuple(marker.lower() for marker in not_found_markers)
        self.wait_until = wait_until

    def url_for(self, username: str) -> str:
        return self.url_template.format(username=quote(username, safe=""))

    async def fetch(self, username: str, context: AdapterContext) -> RawSourceRecord:
        if context.browser_pool is None:
            raise RuntimeError(f"{self.platform} adapter requires a browser pool")
        url = self.url_for(username)
        budget = context.browser.navigation_timeout_seconds + RENDER_GRACE_SECONDS
        try:
            status, title, content = await asyncio.wait_for(
                self._render(url, context.browser_pool), timeout=budget
            )
        except asyncio.TimeoutError as exc:
            raise SourceError(
                SourceErrorKind.TIMEOUT,
                f"{self.platform} page did not render within {budget:.0f}s",
                platform=self.platform,
                url=url,
            ) from exc
        record = self.parse(status, title, content)
        log_fetch_attempt(
            context.logger, self.platform, username, "render", record.detail or "", True
        )
        return record

    async def _render(self, url: str, pool: BrowserPool) -> tuple[Optional[int], str, str]:
        async with pool.acquire() as page:
            try:
                response = await page.goto(url, wait_until=self.wait_until)
            except PlaywrightTimeoutError as exc:
                raise SourceError(
                    SourceErrorKind.TIMEOUT,
                    f"{self.platform} navigation timed out",
                    platform=self.platform,
                    url=url,
                ) from exc
            except PlaywrightError as exc:
                raise SourceError(
                    SourceErrorKind.NETWORK,
                    f"{self.platform} navigation failed: {exc}",
                    platform=self.platform,
                    url=url,
                ) from exc
            status = response.status if response is not None else None
            title = await page.title()
            content = await page.content()
        return status, title, content

    def inspect(self, status: Optional[int], title: str, content: str) -> None:
        """Raise for block pages, missing profiles and upstream failures."""

        lowered_title = (title or "").lower()
        if status == 403 or any(marker in lowered_title for marker in self.blocked_titles):
            raise SourceError(
                SourceErrorKind.BLOCKED,
                f"{self.platform} blocked the request",
                platform=self.platform,
                title=title,
            )
        lowered = (content or "").lower()
        if status == 404 or any(marker in lowered for marker in self.not_found_markers):
            raise SourceError(
                SourceErrorKind.NOT_FOUND,
                "User not found",
                platform=self.platform,
            )
        if status is not None and status >= 400:
            raise SourceError.from_status(status, self.platform)

    def parse(self, status: Optional[int], title: str, content: str) -> RawSourceRecord:
        self.inspect(status, title, content)
        extraction = extract_fields(content or "", self.rules)
        return RawSourceRecord(fields=extraction.fields, detail=f"render:{extraction.detail}")


__all__ = ["BrowserAdapter"]
