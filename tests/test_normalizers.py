from __future__ import annotations

import pytest

from api.profiles.exceptions import InvalidInputError
from api.profiles.models import Platform, RawSourceRecord
from api.profiles.normalize import normalize


def test_codeforces_profile_matches_canonical_shape() -> None:
    profile = normalize(
        Platform.CODEFORCES,
        "tourist",
        {"rating": 3979, "maxRating": 4009, "rank": "legendary grandmaster"},
    )
    assert profile.to_dict() == {
        "platform": "codeforces",
        "username": "tourist",
        "rating": 3979,
        "totalSolved": 0,
        "rank": "legendary grandmaster",
        "maxRating": 4009,
    }


def test_leetcode_profile_reads_difficulty_and_ranking() -> None:
    record = RawSourceRecord(
        fields={
            "totalSolved": 320,
            "easySolved": 150,
            "mediumSolved": 140,
            "hardSolved": 30,
            "acceptanceRate": "61.5",
            "reputation": 12,
            "ranking": 45_210,
        }
    )
    payload = normalize(Platform.LEETCODE, "alice", record).to_dict()
    assert payload["totalSolved"] == 320
    assert payload["difficulty"] == {"easy": 150, "medium": 140, "hard": 30}
    assert payload["acceptanceRate"] == pytest.approx(61.5)
    assert payload["rank"] == 45_210
    assert payload["rating"] == 0


def test_missing_optional_fields_use_defaults() -> None:
    payload = normalize(Platform.CODECHEF, "chef", {}).to_dict()
    assert payload == {
        "platform": "codechef",
        "username": "chef",
        "rating": 0,
        "totalSolved": 0,
        "rank": None,
        "maxRating": 0,
        "stars": 0,
        "countryRank": None,
    }


def test_loose_values_are_coerced() -> None:
    payload = normalize(
        Platform.ATCODER,
        "tourist",
        {"rating": "3,858", "highestRating": 4229.0, "rank": "1", "ratedMatches": -3},
    ).to_dict()
    assert payload["rating"] == 3858
    assert payload["maxRating"] == 4229
    assert payload["rank"] == "1"
    assert payload["ratedMatches"] == 0


def test_badge_platform_and_github_extensions() -> None:
    hackerearth = normalize(
        Platform.HACKEREARTH, "coder", {"rating": 1500, "problemsSolved": 42, "badges": 3}
    ).to_dict()
    assert hackerearth["totalSolved"] == 42
    assert hackerearth["badges"] == 3
    assert hackerearth["recentActivity"] == 0

    hackerrank = normalize(
        Platform.HACKERRANK, "coder", {"problemsSolved": 7, "badges": 3, "totalStars": "8"}
    ).to_dict()
    assert hackerrank["totalSolved"] == 7
    assert hackerrank["badges"] == 3
    assert hackerrank["totalStars"] == 8
    assert normalize(Platform.HACKERRANK, "coder", {}).to_dict()["totalStars"] == 0

    github = normalize(
        Platform.GITHUB, "octocat", {"totalEvents": 30, "recentActivityCount": 4}
    ).to_dict()
    assert github["totalEvents"] == 30
    assert github["recentActivityCount"] == 4


def test_every_platform_shares_base_fields() -> None:
    for platform in Platform:
        payload = normalize(platform, "someone", {}).to_dict()
        assert {"platform", "username", "rating", "totalSolved", "rank"} <= set(payload)
        assert payload["platform"] == platform.value


@pytest.mark.parametrize("username", [None, "", "   "])
def test_missing_username_is_rejected(username: object) -> None:
    with pytest.raises(InvalidInputError):
        normalize(Platform.GITHUB, username, {})


def test_missing_or_malformed_data_is_rejected() -> None:
    with pytest.raises(InvalidInputError):
        normalize(Platform.GITHUB, "octocat", None)
    with pytest.raises(InvalidInputError):
        normalize(Platform.GITHUB, "octocat", ["not", "a", "mapping"])  # type: ignore[arg-type]
