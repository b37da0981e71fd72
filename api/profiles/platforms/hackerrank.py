"""HackerRank profile page plus its public submission-history endpoint.

Badges are read from ``hacker-badge`` elements on the rendered profile; each
badge's tier class maps to a star count. The solved total is the sum of the
per-day counts from ``/rest/hackers/{username}/submission_histories`` when that
endpoint answers, and the profile text otherwise.
"""

from __future__ import annotations

import re
from typing import List, Optional
from urllib.parse import quote

from ..context import AdapterContext
from ..exceptions import SourceError
from ..models import RawSourceRecord
from ..utils import coerce_non_negative_int
from .heuristics import FieldRule, labelled_number
from .rendered import BrowserAdapter

PROFILE_URL = "https://www.hackerrank.com/profile/{username}"
HISTORY_URL = "https://www.hackerrank.com/rest/hackers/{username}/submission_histories"

STAR_TIERS = (("level-gold", 5), ("level-silver", 3), ("level-bronze", 1))
DEFAULT_BADGE_STARS = 3
# Markup after the last badge is cut off here so unrelated page content is not scanned.
MAX_BADGE_MARKUP = 2000

_BADGE_START_RE = re.compile(r"<[a-z]+[^>]*class=\"[^\"]*\bhacker-badge\b", re.IGNORECASE)
_STAR_RE = re.compile(r"class=\"[^\"]*star[^\"]*\"", re.IGNORECASE)


def badge_blocks(markup: str) -> List[str]:
    starts = [match.start() for match in _BADGE_START_RE.finditer(markup)]
    blocks = []
    for index, start in enumerate(starts):
        end = starts[index + 1] if index + 1 < len(starts) else start + MAX_BADGE_MARKUP
        blocks.append(markup[start:end])
    return blocks


def badge_stars(block: str) -> int:
    for tier, stars in STAR_TIERS:
        if tier in block:
            return stars
    counted = len(_STAR_RE.findall(block))
    return counted or DEFAULT_BADGE_STARS


def count_badges(markup: str) -> Optional[int]:
    return len(badge_blocks(markup)) or None


def total_stars(markup: str) -> Optional[int]:
    blocks = badge_blocks(markup)
    if not blocks:
        return None
    return sum(badge_stars(block) for block in blocks)


def sum_submission_history(payload: object) -> Optional[int]:
    if not isinstance(payload, dict):
        return None
    total = 0
    for value in payload.values():
        count = coerce_non_negative_int(value)
        if count is not None:
            total += count
    return total


RULES = (
    FieldRule(
        "problemsSolved",
        (
            ("text", labelled_number("Problems Solved")),
            ("solved", labelled_number("Solved")),
        ),
    ),
    FieldRule(
        "badges",
        (
            ("hacker-badge", count_badges),
            ("text", labelled_number("Badges")),
        ),
    ),
    FieldRule("totalStars", (("badge-tiers", total_stars),)),
)


class HackerRankAdapter(BrowserAdapter):
    async def fetch(self, username: str, context: AdapterContext) -> RawSourceRecord:
        record = await super().fetch(username, context)
        solved = await self.submission_total(username, context)
        if solved is not None:
            record.fields["problemsSolved"] = solved
            record.detail = f"{record.detail},problemsSolved=history"
        return record

    async def submission_total(self, username: str, context: AdapterContext) -> Optional[int]:
        url = HISTORY_URL.format(username=quote(username, safe=""))
        try:
            payload = await context.get_json(url, self.platform, username, "history")
        except SourceError as exc:
            context.logger.info(
                "%s username=%s history unavailable error=%s", self.platform, username, exc
            )
            return None
        return sum_submission_history(payload)


ADAPTER = HackerRankAdapter(
    "hackerrank",
    PROFILE_URL,
    RULES,
    not_found_markers=("page not found", "user not found"),
    wait_until="networkidle",
)

fetch = ADAPTER.fetch
