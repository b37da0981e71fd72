from __future__ import annotations

import os
from datetime import datetime
from typing import Dict, Iterable, Optional
from urllib.parse import quote

from ..context import AdapterContext, decode_json
from ..exceptions import SourceError, SourceErrorKind
from ..models import RawSourceRecord
from ..utils import log_fetch_attempt

EVENTS_URL = "https://api.github.com/users/{username}/events/public?per_page=100"
RECENT_WINDOW_SECONDS = 7 * 24 * 60 * 60


def _parse_timestamp(value: object) -> Optional[float]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


def count_recent(events: Iterable[object], now: float) -> int:
    recent = 0
    for event in events:
        if not isinstance(event, dict):
            continue
        created = _parse_timestamp(event.get("created_at"))
        if created is not None and now - created <= RECENT_WINDOW_SECONDS:
            recent += 1
    return recent


def _headers() -> Dict[str, str]:
    headers = {"Accept": "application/vnd.github+json"}
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


async def fetch(username: str, context: AdapterContext) -> RawSourceRecord:
    url = EVENTS_URL.format(username=quote(username, safe=""))
    response = await context.get(
        url, "github", username, "events", headers=_headers(), allow_statuses=(403,)
    )
    if response.status_code == 403:
        if response.headers.get("X-RateLimit-Remaining") == "0":
            reset = response.headers.get("X-RateLimit-Reset")
            retry_after = None
            if reset and reset.isdigit():
                retry_after = max(int(reset) - context.now(), 0.0)
            raise SourceError(
                SourceErrorKind.RATE_LIMITED,
                "GitHub API rate limit exhausted",
                platform="github",
                upstream_status=403,
                retry_after=retry_after,
            )
        raise SourceError.from_status(403, "github", url)
    events = decode_json(response, "github", url)
    if not isinstance(events, list):
        raise SourceError(
            SourceErrorKind.PARSE,
            "GitHub events payload is not a list",
            platform="github",
            url=url,
        )
    fields = {
        "totalEvents": len(events),
        "recentActivityCount": count_recent(events, context.now()),
    }
    log_fetch_attempt(context.logger, "github", username, "api", "events", True)
    return RawSourceRecord(fields=fields, detail="api:events")
