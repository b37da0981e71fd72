from __future__ import annotations

import re
from urllib.parse import quote

from ..context import AdapterContext
from ..exceptions import SourceError, SourceErrorKind
from ..models import RawSourceRecord
from ..utils import log_fetch_attempt
from .heuristics import FieldRule, extract_fields, labelled_number, marker

API_URL = "https://codechef-api.vercel.app/handle/{username}"
PROFILE_URL = "https://www.codechef.com/users/{username}"

NOT_FOUND_MARKERS = ("page not found", "user does not exist")
API_NOT_FOUND_RE = re.compile(
    r"not\s+found|does\s*n[o']t\s+exist|no\s+such\s+user", re.IGNORECASE
)

PROFILE_RULES = (
    FieldRule(
        "rating",
        (
            ("rating-number", marker(r"class=\"rating-number\"[^>]*>\s*([\d,]+)")),
            ("rating-label", labelled_number("Rating")),
        ),
    ),
    FieldRule(
        "highestRating",
        (
            ("highest-rating", marker(r"Highest Rating\s*\(?\s*([\d,]+)")),
        ),
    ),
    FieldRule(
        "totalSolved",
        (
            (
                "fully-solved",
                marker(r"Fully Solved[^<]*</h5>\s*<p[^>]*>\s*\(?\s*([\d,]+)"),
            ),
            ("problems-solved", labelled_number("Total Problems Solved")),
        ),
    ),
    FieldRule(
        "globalRank",
        (
            ("global-rank", marker(r"Global Rank\s*(?:</[^>]+>\s*)*(?:<[^>]+>\s*)*([\d,]+)")),
        ),
        default=None,
    ),
    FieldRule(
        "countryRank",
        (
            ("country-rank", marker(r"Country Rank\s*(?:</[^>]+>\s*)*(?:<[^>]+>\s*)*([\d,]+)")),
        ),
        default=None,
    ),
    FieldRule(
        "stars",
        (
            ("rating-star", marker(r"class=\"rating-star\"[^>]*>\s*(\d)")),
            ("star-glyph", marker(r"(\d)\s*(?:&#9733;|★)")),
        ),
    ),
)


async def _fetch_api(username: str, context: AdapterContext) -> RawSourceRecord:
    url = API_URL.format(username=quote(username, safe=""))
    payload = await context.get_json(url, "codechef", username, "api")
    if not isinstance(payload, dict):
        raise SourceError(
            SourceErrorKind.PARSE,
            "Invalid response from CodeChef API",
            platform="codechef",
            url=url,
        )
    if payload.get("success") is False or "error" in payload:
        message = str(
            payload.get("error") or payload.get("message") or "CodeChef API reported a failure"
        )
        # Only an explicit missing-user answer is terminal; other failures fall back to HTML.
        kind = (
            SourceErrorKind.NOT_FOUND
            if API_NOT_FOUND_RE.search(message)
            else SourceErrorKind.PARSE
        )
        raise SourceError(kind, message, platform="codechef", url=url)
    fields = {
        "rating": payload.get("currentRating", payload.get("rating")),
        "highestRating": payload.get("highestRating", payload.get("highest_rating")),
        "globalRank": payload.get("globalRank", payload.get("global_rank")),
        "countryRank": payload.get("countryRank", payload.get("country_rank")),
        "stars": payload.get("stars"),
        "totalSolved": payload.get("problemsSolved", payload.get("problem_fully_solved")),
    }
    log_fetch_attempt(context.logger, "codechef", username, "api", "handle", True)
    return RawSourceRecord(fields=fields, detail="api:handle")


def parse_profile_page(content: str) -> RawSourceRecord:
    lowered = content.lower()
    if any(marker_text in lowered for marker_text in NOT_FOUND_MARKERS):
        raise SourceError(SourceErrorKind.NOT_FOUND, "User not found", platform="codechef")
    extraction = extract_fields(content, PROFILE_RULES)
    if not extraction.matched:
        raise SourceError(
            SourceErrorKind.PARSE,
            "CodeChef profile page did not contain any known fields",
            platform="codechef",
        )
    return RawSourceRecord(fields=extraction.fields, detail=f"html:{extraction.detail}")


async def _fetch_html(username: str, context: AdapterContext) -> RawSourceRecord:
    url = PROFILE_URL.format(username=quote(username, safe=""))
    response = await context.get(url, "codechef", username, "html")
    record = parse_profile_page(response.text or "")
    log_fetch_attempt(context.logger, "codechef", username, "html", record.detail or "", True)
    return record


async def fetch(username: str, context: AdapterContext) -> RawSourceRecord:
    """Try the community API first, then the public profile page."""

    try:
        return await _fetch_api(username, context)
    except SourceError as exc:
        if exc.kind is SourceErrorKind.NOT_FOUND:
            raise
        log_fetch_attempt(context.logger, "codechef", username, "api", exc.code, False)
    return await _fetch_html(username, context)
