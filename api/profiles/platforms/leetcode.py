from __future__ import annotations

from urllib.parse import quote

from ..context import AdapterContext
from ..exceptions import SourceError, SourceErrorKind
from ..models import RawSourceRecord
from ..utils import log_fetch_attempt

STATS_URL = "https://leetcode-stats.tashif.codes/{username}"

PASSTHROUGH_KEYS = (
    "totalSolved",
    "easySolved",
    "mediumSolved",
    "hardSolved",
    "acceptanceRate",
    "reputation",
    "ranking",
    "contributionPoints",
)


async def fetch(username: str, context: AdapterContext) -> RawSourceRecord:
    url = STATS_URL.format(username=quote(username, safe=""))
    payload = await context.get_json(url, "leetcode", username, "api")
    if not isinstance(payload, dict):
        raise SourceError(
            SourceErrorKind.PARSE,
            "Invalid response from LeetCode stats API",
            platform="leetcode",
            url=url,
        )
    message = str(payload.get("message") or "").lower()
    if "not found" in message or "does not exist" in message:
        raise SourceError(SourceErrorKind.NOT_FOUND, "User not found", platform="leetcode")
    if payload.get("totalSolved") is None:
        raise SourceError(
            SourceErrorKind.PARSE,
            "LeetCode stats API response is missing required fields",
            platform="leetcode",
            url=url,
        )
    fields = {key: payload.get(key) for key in PASSTHROUGH_KEYS}
    fields["rank"] = payload.get("ranking")
    log_fetch_attempt(context.logger, "leetcode", username, "api", "stats", True)
    return RawSourceRecord(fields=fields, detail="api:stats")
