from __future__ import annotations

from typing import Dict, Iterable, Set, Tuple
from urllib.parse import quote

from ..context import AdapterContext
from ..exceptions import SourceError, SourceErrorKind
from ..models import RawSourceRecord
from ..utils import log_fetch_attempt

API_ROOT = "https://codeforces.com/api"
USER_INFO_URL = API_ROOT + "/user.info?handles={username}"
USER_STATUS_URL = API_ROOT + "/user.status?handle={username}"


def _unwrap(payload: object, url: str) -> object:
    """Return ``result`` from a Codeforces envelope or raise a classified error."""

    if not isinstance(payload, dict):
        raise SourceError(
            SourceErrorKind.PARSE,
            "Invalid response from Codeforces API",
            platform="codeforces",
            url=url,
        )
    if payload.get("status") == "OK":
        return payload.get("result")
    comment = str(payload.get("comment") or "API returned error status")
    lowered = comment.lower()
    if "not found" in lowered:
        kind = SourceErrorKind.NOT_FOUND
    elif "call limit" in lowered:
        kind = SourceErrorKind.RATE_LIMITED
    else:
        kind = SourceErrorKind.PARSE
    raise SourceError(kind, comment, platform="codeforces", url=url)


def count_solved(submissions: Iterable[object]) -> int:
    solved: Set[Tuple[str, str]] = set()
    for submission in submissions:
        if not isinstance(submission, dict) or submission.get("verdict") != "OK":
            continue
        problem = submission.get("problem")
        if not isinstance(problem, dict):
            continue
        group = problem.get("contestId") or problem.get("problemsetName") or ""
        solved.add((str(group), str(problem.get("index") or problem.get("name") or "")))
    return len(solved)


async def fetch(username: str, context: AdapterContext) -> RawSourceRecord:
    handle = quote(username, safe="")

    info_url = USER_INFO_URL.format(username=handle)
    info = _unwrap(
        await context.get_json(info_url, "codeforces", username, "user.info", allow_statuses=(400,)),
        info_url,
    )
    if not isinstance(info, list) or not info or not isinstance(info[0], dict):
        raise SourceError(SourceErrorKind.NOT_FOUND, "User not found", platform="codeforces")
    user: Dict[str, object] = info[0]

    status_url = USER_STATUS_URL.format(username=handle)
    submissions = _unwrap(
        await context.get_json(
            status_url, "codeforces", username, "user.status", allow_statuses=(400,)
        ),
        status_url,
    )
    if not isinstance(submissions, list):
        raise SourceError(
            SourceErrorKind.PARSE,
            "Codeforces submissions payload is not a list",
            platform="codeforces",
            url=status_url,
        )

    fields = {
        "rating": user.get("rating"),
        "maxRating": user.get("maxRating"),
        "rank": user.get("rank"),
        "maxRank": user.get("maxRank"),
        "totalSolved": count_solved(submissions),
    }
    log_fetch_attempt(context.logger, "codeforces", username, "api", "user.info+user.status", True)
    return RawSourceRecord(fields=fields, detail="api:user.info+user.status")
