"""Map profile URLs and loose references onto ``ProfileReference`` values."""

from __future__ import annotations

import re
from typing import Mapping, Sequence, Tuple

from .exceptions import InvalidReferenceError, UnsupportedPlatformError
from .models import Platform, ProfileReference

# Checked in order; the first matching domain wins.
PLATFORM_MARKERS: Sequence[Tuple[Platform, str, Tuple[str, ...]]] = (
    (Platform.LEETCODE, "leetcode.com", ("leetcode.com/u/", "leetcode.com/")),
    (Platform.CODEFORCES, "codeforces.com", ("profile/",)),
    (Platform.GITHUB, "github.com", ("github.com/",)),
    (Platform.CODECHEF, "codechef.com", ("users/",)),
    (Platform.ATCODER, "atcoder.jp", ("users/",)),
)

_SEGMENT_END_RE = re.compile(r"[/?#]")


def detect(reference: object) -> ProfileReference:
    """Return the platform and username encoded in a profile URL."""

    if not isinstance(reference, str) or not reference.strip():
        raise InvalidReferenceError("Profile reference must be a non-empty string")
    url = reference.strip().lower()
    for platform, domain, markers in PLATFORM_MARKERS:
        if domain not in url:
            continue
        return ProfileReference(platform=platform, username=_extract_username(url, markers))
    raise UnsupportedPlatformError(f"Unsupported platform: {reference}")


def _extract_username(url: str, markers: Tuple[str, ...]) -> str:
    for marker in markers:
        index = url.find(marker)
        if index == -1:
            continue
        remainder = url[index + len(marker):]
        username = _SEGMENT_END_RE.split(remainder, maxsplit=1)[0].strip()
        if not username:
            break
        return username
    raise InvalidReferenceError(f"No username found in profile reference: {url}")


def parse_platform(value: object) -> Platform:
    if isinstance(value, Platform):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidReferenceError("Platform must be a non-empty string")
    try:
        return Platform(value.strip().lower())
    except ValueError as exc:
        raise UnsupportedPlatformError(f"Unsupported platform: {value}") from exc


def parse_reference(value: object) -> ProfileReference:
    """Accept a URL, a ``ProfileReference`` or a ``{platform, username}`` mapping."""

    if isinstance(value, ProfileReference):
        return value
    if isinstance(value, Mapping):
        username = value.get("username")
        if not isinstance(username, str) or not username.strip():
            raise InvalidReferenceError("Profile reference requires a username")
        return ProfileReference(
            platform=parse_platform(value.get("platform")),
            username=username.strip(),
        )
    return detect(value)


__all__ = ["PLATFORM_MARKERS", "detect", "parse_platform", "parse_reference"]
