from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Dict, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Platform(str, Enum):
    LEETCODE = "leetcode"
    CODEFORCES = "codeforces"
    GITHUB = "github"
    CODECHEF = "codechef"
    ATCODER = "atcoder"
    HACKEREARTH = "hackerearth"
    HACKERRANK = "hackerrank"


@dataclass(frozen=True)
class ProfileReference:
    platform: Platform
    username: str

    @property
    def cache_key(self) -> str:
        return f"{self.platform.value}:{self.username.lower()}"


@dataclass
class RawSourceRecord:
    """Unnormalized fields returned by a source adapter."""

    fields: Dict[str, object] = field(default_factory=dict)
    status: Literal["success", "fail"] = "success"
    detail: Optional[str] = None

    def get(self, key: str, default: object = None) -> object:
        return self.fields.get(key, default)


class BaseProfile(BaseModel):
    """Fields shared by every normalized profile."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    platform: str
    username: str = Field(..., min_length=1)
    rating: int = Field(default=0, ge=0)
    total_solved: int = Field(default=0, ge=0, alias="totalSolved")
    rank: Union[int, str, None] = None

    def to_dict(self) -> Dict[str, object]:
        return self.model_dump(by_alias=True)


class DifficultyBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    easy: int = Field(default=0, ge=0)
    medium: int = Field(default=0, ge=0)
    hard: int = Field(default=0, ge=0)


class LeetCodeProfile(BaseProfile):
    platform: Literal["leetcode"] = "leetcode"
    difficulty: DifficultyBreakdown = Field(default_factory=DifficultyBreakdown)
    reputation: int = Field(default=0, ge=0)
    acceptance_rate: float = Field(default=0.0, ge=0.0, alias="acceptanceRate")


class CodeforcesProfile(BaseProfile):
    platform: Literal["codeforces"] = "codeforces"
    max_rating: int = Field(default=0, ge=0, alias="maxRating")


class GitHubProfile(BaseProfile):
    platform: Literal["github"] = "github"
    total_events: int = Field(default=0, ge=0, alias="totalEvents")
    recent_activity_count: int = Field(default=0, ge=0, alias="recentActivityCount")


class CodeChefProfile(BaseProfile):
    platform: Literal["codechef"] = "codechef"
    max_rating: int = Field(default=0, ge=0, alias="maxRating")
    stars: int = Field(default=0, ge=0)
    country_rank: Union[int, str, None] = Field(default=None, alias="countryRank")


class AtCoderProfile(BaseProfile):
    platform: Literal["atcoder"] = "atcoder"
    max_rating: int = Field(default=0, ge=0, alias="maxRating")
    rated_matches: int = Field(default=0, ge=0, alias="ratedMatches")


class HackerEarthProfile(BaseProfile):
    platform: Literal["hackerearth"] = "hackerearth"
    badges: int = Field(default=0, ge=0)
    recent_activity: int = Field(default=0, ge=0, alias="recentActivity")


class HackerRankProfile(BaseProfile):
    platform: Literal["hackerrank"] = "hackerrank"
    badges: int = Field(default=0, ge=0)
    total_stars: int = Field(default=0, ge=0, alias="totalStars")


NormalizedProfile = Annotated[
    Union[
        LeetCodeProfile,
        CodeforcesProfile,
        GitHubProfile,
        CodeChefProfile,
        AtCoderProfile,
        HackerEarthProfile,
        HackerRankProfile,
    ],
    Field(discriminator="platform"),
]


@dataclass
class LookupResult:
    """Boundary response returned to the transport layer."""

    success: bool
    trace_id: str
    data: Optional[BaseProfile] = None
    from_cache: bool = False
    error: Optional[str] = None
    code: Optional[str] = None
    status_code: int = 200
    details: Optional[Mapping[str, object]] = None

    @property
    def retry_after(self) -> Optional[float]:
        if not self.details:
            return None
        value = self.details.get("retry_after")
        return float(value) if isinstance(value, (int, float)) else None

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"success": self.success, "traceId": self.trace_id}
        if self.success and self.data is not None:
            payload["data"] = self.data.to_dict()
            payload["fromCache"] = self.from_cache
        else:
            payload["error"] = self.error
            payload["code"] = self.code
            if self.details:
                payload["details"] = dict(self.details)
        return payload


__all__ = [
    "AtCoderProfile",
    "BaseProfile",
    "CodeChefProfile",
    "CodeforcesProfile",
    "DifficultyBreakdown",
    "GitHubProfile",
    "HackerEarthProfile",
    "HackerRankProfile",
    "LeetCodeProfile",
    "LookupResult",
    "NormalizedProfile",
    "Platform",
    "ProfileReference",
    "RawSourceRecord",
]
