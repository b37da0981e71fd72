from __future__ import annotations

from typing import Awaitable, Callable, Dict, Union

from ..context import AdapterContext
from ..exceptions import UnsupportedPlatformError
from ..models import Platform, RawSourceRecord
from . import atcoder, codechef, codeforces, github, hackerearth, hackerrank, leetcode

Fetcher = Callable[[str, AdapterContext], Awaitable[RawSourceRecord]]

_FETCHERS: Dict[Platform, Fetcher] = {
    Platform.LEETCODE: leetcode.fetch,
    Platform.CODEFORCES: codeforces.fetch,
    Platform.GITHUB: github.fetch,
    Platform.CODECHEF: codechef.fetch,
    Platform.ATCODER: atcoder.fetch,
    Platform.HACKEREARTH: hackerearth.fetch,
    Platform.HACKERRANK: hackerrank.fetch,
}

# Sources that render pages in a browser and need the shared pool.
BROWSER_PLATFORMS = frozenset(
    {Platform.ATCODER, Platform.HACKEREARTH, Platform.HACKERRANK}
)


def get_fetcher(platform: Union[Platform, str]) -> Fetcher:
    try:
        return _FETCHERS[Platform(platform)]
    except (KeyError, ValueError) as exc:
        raise UnsupportedPlatformError(f"Unsupported platform: {platform}") from exc


def supported_platforms() -> set[str]:
    return {platform.value for platform in _FETCHERS}


__all__ = ["BROWSER_PLATFORMS", "Fetcher", "get_fetcher", "supported_platforms"]
