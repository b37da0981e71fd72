from __future__ import annotations

import pytest

from api.profiles.detector import detect, parse_reference
from api.profiles.exceptions import InvalidReferenceError, UnsupportedPlatformError
from api.profiles.models import Platform, ProfileReference


@pytest.mark.parametrize(
    ("url", "platform", "username"),
    [
        ("https://leetcode.com/u/alice/", Platform.LEETCODE, "alice"),
        ("https://leetcode.com/alice", Platform.LEETCODE, "alice"),
        ("https://codeforces.com/profile/tourist", Platform.CODEFORCES, "tourist"),
        ("https://github.com/octocat/repos", Platform.GITHUB, "octocat"),
        ("https://www.codechef.com/users/gennady?tab=stats", Platform.CODECHEF, "gennady"),
        ("https://atcoder.jp/users/tourist#history", Platform.ATCODER, "tourist"),
    ],
)
def test_detect_supported_domains(url: str, platform: Platform, username: str) -> None:
    assert detect(url) == ProfileReference(platform=platform, username=username)


def test_detect_truncates_at_first_slash_after_marker() -> None:
    reference = detect("https://codeforces.com/profile/tourist/extra/segments")
    assert reference.username == "tourist"


def test_detect_is_case_insensitive() -> None:
    reference = detect("HTTPS://CodeForces.com/Profile/Tourist")
    assert reference == ProfileReference(Platform.CODEFORCES, "tourist")


def test_detect_rejects_unknown_domain() -> None:
    with pytest.raises(UnsupportedPlatformError):
        detect("https://example.com/users/someone")


@pytest.mark.parametrize("value", ["", "   ", None, 42])
def test_detect_rejects_non_string_or_empty(value: object) -> None:
    with pytest.raises(InvalidReferenceError):
        detect(value)


@pytest.mark.parametrize(
    "url",
    [
        "https://codeforces.com/profile/",
        "https://atcoder.jp/users/",
        "https://codeforces.com/contests",
    ],
)
def test_detect_requires_username_after_marker(url: str) -> None:
    with pytest.raises(InvalidReferenceError):
        detect(url)


def test_parse_reference_accepts_mapping_and_reference() -> None:
    reference = parse_reference({"platform": "HackerEarth", "username": " coder "})
    assert reference == ProfileReference(Platform.HACKEREARTH, "coder")
    assert parse_reference(reference) is reference
    hackerrank = parse_reference({"platform": "hackerrank", "username": "coder"})
    assert hackerrank == ProfileReference(Platform.HACKERRANK, "coder")


def test_parse_reference_rejects_unknown_platform_and_missing_username() -> None:
    with pytest.raises(UnsupportedPlatformError):
        parse_reference({"platform": "topcoder", "username": "x"})
    with pytest.raises(InvalidReferenceError):
        parse_reference({"platform": "github", "username": ""})


def test_cache_key_is_case_insensitive() -> None:
    assert ProfileReference(Platform.GITHUB, "OctoCat").cache_key == "github:octocat"
