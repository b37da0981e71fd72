"""Convert raw adapter payloads into the canonical profile schema.

Every platform shares the same base computation (``rating``, ``totalSolved``
and ``rank`` resolved through fallback chains) and appends its own extension
fields. Missing optional fields resolve to documented defaults; only a missing
``username`` or ``data`` is an error.
"""

from __future__ import annotations

from typing import Callable, Dict, Mapping, Union

from .exceptions import InvalidInputError
from .models import (
    AtCoderProfile,
    BaseProfile,
    CodeChefProfile,
    CodeforcesProfile,
    DifficultyBreakdown,
    GitHubProfile,
    HackerEarthProfile,
    HackerRankProfile,
    LeetCodeProfile,
    Platform,
    RawSourceRecord,
)
from .utils import coerce_non_negative_float, coerce_non_negative_int, first_present

RawData = Union[RawSourceRecord, Mapping[str, object]]


def _int_field(data: Mapping[str, object], *keys: str) -> int:
    value = coerce_non_negative_int(first_present(data, *keys))
    return value if value is not None else 0


def _rank_field(data: Mapping[str, object], *keys: str) -> Union[int, str, None]:
    value = first_present(data, *keys)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, str)):
        return value.strip() if isinstance(value, str) else value
    if isinstance(value, float):
        return int(value)
    return None


def base_fields(username: str, data: Mapping[str, object]) -> Dict[str, object]:
    return {
        "username": username,
        "rating": _int_field(data, "rating"),
        "total_solved": _int_field(data, "totalSolved", "problemsSolved"),
        "rank": _rank_field(data, "rank", "globalRank"),
    }


def _leetcode(username: str, data: Mapping[str, object]) -> LeetCodeProfile:
    fields = base_fields(username, data)
    fields["rank"] = _rank_field(data, "rank", "globalRank", "ranking")
    acceptance = coerce_non_negative_float(data.get("acceptanceRate"))
    return LeetCodeProfile(
        **fields,
        difficulty=DifficultyBreakdown(
            easy=_int_field(data, "easySolved"),
            medium=_int_field(data, "mediumSolved"),
            hard=_int_field(data, "hardSolved"),
        ),
        reputation=_int_field(data, "reputation"),
        acceptance_rate=acceptance if acceptance is not None else 0.0,
    )


def _codeforces(username: str, data: Mapping[str, object]) -> CodeforcesProfile:
    return CodeforcesProfile(
        **base_fields(username, data),
        max_rating=_int_field(data, "maxRating"),
    )


def _github(username: str, data: Mapping[str, object]) -> GitHubProfile:
    return GitHubProfile(
        **base_fields(username, data),
        total_events=_int_field(data, "totalEvents"),
        recent_activity_count=_int_field(data, "recentActivityCount"),
    )


def _codechef(username: str, data: Mapping[str, object]) -> CodeChefProfile:
    return CodeChefProfile(
        **base_fields(username, data),
        max_rating=_int_field(data, "maxRating", "highestRating"),
        stars=_int_field(data, "stars"),
        country_rank=_rank_field(data, "countryRank"),
    )


def _atcoder(username: str, data: Mapping[str, object]) -> AtCoderProfile:
    return AtCoderProfile(
        **base_fields(username, data),
        max_rating=_int_field(data, "maxRating", "highestRating"),
        rated_matches=_int_field(data, "ratedMatches"),
    )


def _hackerearth(username: str, data: Mapping[str, object]) -> HackerEarthProfile:
    fields = base_fields(username, data)
    fields["total_solved"] = _int_field(data, "totalSolved", "problemsSolved", "solved")
    return HackerEarthProfile(
        **fields,
        badges=_int_field(data, "badges"),
        recent_activity=_int_field(data, "recentActivity", "activity"),
    )


def _hackerrank(username: str, data: Mapping[str, object]) -> HackerRankProfile:
    return HackerRankProfile(
        **base_fields(username, data),
        badges=_int_field(data, "badges"),
        total_stars=_int_field(data, "totalStars"),
    )


NORMALIZERS: Dict[Platform, Callable[[str, Mapping[str, object]], BaseProfile]] = {
    Platform.LEETCODE: _leetcode,
    Platform.CODEFORCES: _codeforces,
    Platform.GITHUB: _github,
    Platform.CODECHEF: _codechef,
    Platform.ATCODER: _atcoder,
    Platform.HACKEREARTH: _hackerearth,
    Platform.HACKERRANK: _hackerrank,
}


def normalize(platform: Platform, username: object, data: RawData | None) -> BaseProfile:
    """Return the canonical profile for ``platform`` built from ``data``."""

    if not isinstance(username, str) or not username.strip():
        raise InvalidInputError("Normalizer requires a username", field="username")
    if data is None:
        raise InvalidInputError("Normalizer requires data", field="data")
    fields = data.fields if isinstance(data, RawSourceRecord) else data
    if not isinstance(fields, Mapping):
        raise InvalidInputError("Normalizer data must be a mapping", field="data")
    try:
        normalizer = NORMALIZERS[Platform(platform)]
    except (KeyError, ValueError) as exc:
        raise InvalidInputError(f"No normalizer for platform: {platform}") from exc
    return normalizer(username.strip(), fields)


__all__ = ["NORMALIZERS", "base_fields", "normalize"]
