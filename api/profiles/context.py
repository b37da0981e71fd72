from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Collection, Dict, Optional

import requests
from requests import Response, Session
from requests.adapters import HTTPAdapter

from .browser import BrowserPool
from .exceptions import SourceError, SourceErrorKind
from .settings import BrowserSettings, SourceSettings


def build_session(settings: SourceSettings, pool_size: int = 10) -> Session:
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({"User-Agent": settings.user_agent, **settings.headers})
    session.trust_env = True
    return session


@dataclass
class AdapterContext:
    """Collaborators handed to every source adapter."""

    session: Session
    logger: logging.Logger
    now: Callable[[], float]
    timeout: float
    browser: BrowserSettings
    browser_pool: Optional[BrowserPool] = None

    async def get(
        self,
        url: str,
        platform: str,
        username: str,
        attempt: str,
        headers: Optional[Dict[str, str]] = None,
        allow_statuses: Collection[int] = (),
    ) -> Response:
        """Issue a GET without blocking the event loop and classify failures."""

        start = time.perf_counter()
        try:
            response = await asyncio.to_thread(
                self.session.get, url, timeout=self.timeout, headers=headers
            )
        except requests.Timeout as exc:
            self._log_error(platform, username, attempt, url, exc, start)
            raise SourceError(
                SourceErrorKind.TIMEOUT,
                f"{platform} request timed out after {self.timeout:.0f}s",
                platform=platform,
                url=url,
            ) from exc
        except requests.RequestException as exc:
            self._log_error(platform, username, attempt, url, exc, start)
            raise SourceError(
                SourceErrorKind.NETWORK,
                f"{platform} request failed: {exc}",
                platform=platform,
                url=url,
            ) from exc
        self.logger.info(
            "%s username=%s attempt=%s url=%s status=%s elapsed=%.2fs",
            platform,
            username,
            attempt,
            url,
            response.status_code,
            time.perf_counter() - start,
        )
        if not response.ok and response.status_code not in allow_statuses:
            raise SourceError.from_status(response.status_code, platform, url)
        return response

    async def get_json(
        self,
        url: str,
        platform: str,
        username: str,
        attempt: str,
        headers: Optional[Dict[str, str]] = None,
        allow_statuses: Collection[int] = (),
    ) -> object:
        response = await self.get(url, platform, username, attempt, headers, allow_statuses)
        return decode_json(response, platform, url)

    def _log_error(
        self,
        platform: str,
        username: str,
        attempt: str,
        url: str,
        exc: Exception,
        start: float,
    ) -> None:
        self.logger.info(
            "%s username=%s attempt=%s url=%s error=%s elapsed=%.2fs",
            platform,
            username,
            attempt,
            url,
            exc,
            time.perf_counter() - start,
        )


def decode_json(response: Response, platform: str, url: Optional[str] = None) -> object:
    try:
        return response.json()
    except ValueError as exc:
        raise SourceError(
            SourceErrorKind.PARSE,
            f"{platform} returned malformed JSON",
            platform=platform,
            status=response.status_code,
            url=url,
        ) from exc
