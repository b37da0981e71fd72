"""Bounded pool of headless rendering surfaces backed by Playwright."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from .exceptions import PoolExhaustedError
from .settings import BrowserSettings, SourceSettings

HIDE_WEBDRIVER_JS = "Object.defineProperty(navigator, 'webdriver', {get: () => undefined})"

Launcher = Callable[[], Awaitable[Any]]


class BrowserPool:
    """Hand out at most ``max_instances`` rendering surfaces at a time.

    ``acquire`` fails fast with :class:`PoolExhaustedError` when every slot is
    taken. Each surface is a fresh browser context with spoofed headers and
    heavy resources blocked; it is closed and its slot returned on every exit.
    """

    def __init__(
        self,
        settings: BrowserSettings,
        source: SourceSettings,
        launcher: Optional[Launcher] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.source = source
        self.logger = logger or logging.getLogger(__name__)
        self._launcher = launcher or self._launch_chromium
        self._browser: Any = None
        self._playwright: Any = None
        self._launch_lock = asyncio.Lock()
        self._active = 0

    @property
    def active(self) -> int:
        return self._active

    @property
    def available(self) -> int:
        return max(self.settings.max_instances - self._active, 0)

    async def start(self) -> None:
        await self._ensure_browser()

    async def stop(self) -> None:
        browser, self._browser = self._browser, None
        playwright, self._playwright = self._playwright, None
        if browser is not None:
            try:
                await browser.close()
            except PlaywrightError as exc:
                self.logger.warning("Failed to close browser: %s", exc)
        if playwright is not None:
            await playwright.stop()

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[Any]:
        if self._active >= self.settings.max_instances:
            raise PoolExhaustedError(
                "Browser pool exhausted",
                active=self._active,
                max_instances=self.settings.max_instances,
            )
        self._active += 1
        context = None
        try:
            browser = await self._ensure_browser()
            context = await browser.new_context(
                user_agent=self.source.user_agent,
                extra_http_headers=dict(self.source.headers),
                viewport={"width": 1366, "height": 768},
                locale="en-US",
            )
            await context.add_init_script(HIDE_WEBDRIVER_JS)
            await context.route("**/*", self._route)
            page = await context.new_page()
            timeout_ms = self.settings.navigation_timeout_seconds * 1000
            page.set_default_navigation_timeout(timeout_ms)
            page.set_default_timeout(timeout_ms)
            yield page
        finally:
            try:
                if context is not None:
                    await self._close_context(context)
            finally:
                self._active -= 1

    async def _close_context(self, context: Any) -> None:
        try:
            await context.close()
        except PlaywrightError as exc:
            self.logger.warning("Failed to close browser context: %s", exc)

    async def _route(self, route: Any) -> None:
        if route.request.resource_type in self.settings.blocked_resource_types:
            await route.abort()
        else:
            await route.continue_()

    async def _ensure_browser(self) -> Any:
        if self._browser is not None:
            return self._browser
        async with self._launch_lock:
            if self._browser is None:
                self._browser = await self._launcher()
                self.logger.info(
                    "Browser launched max_instances=%d headless=%s",
                    self.settings.max_instances,
                    self.settings.headless,
                )
        return self._browser

    async def _launch_chromium(self) -> Any:
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        return await self._playwright.chromium.launch(
            headless=self.settings.headless,
            args=list(self.settings.launch_args),
            ignore_default_args=["--enable-automation"],
        )


__all__ = ["BrowserPool"]
