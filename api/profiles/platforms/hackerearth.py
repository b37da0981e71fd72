from __future__ import annotations

from .heuristics import FieldRule, labelled_number, marker
from .rendered import BrowserAdapter

PROFILE_URL = "https://www.hackerearth.com/@{username}"

RULES = (
    FieldRule(
        "rating",
        (
            ("rating-count", marker(r"class=\"[^\"]*rating-count[^\"]*\"[^>]*>\s*([\d,]+)")),
            ("rating-class", marker(r"class=\"rating\"[^>]*>\s*([\d,]+)")),
            ("text", labelled_number("Rating")),
        ),
    ),
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
            ("badges-count", marker(r"class=\"[^\"]*badges-count[^\"]*\"[^>]*>\s*([\d,]+)")),
            ("text", labelled_number("Badges")),
        ),
    ),
    FieldRule(
        "recentActivity",
        (
            ("text", labelled_number("Activity")),
        ),
    ),
)

ADAPTER = BrowserAdapter(
    "hackerearth",
    PROFILE_URL,
    RULES,
    not_found_markers=("this link is broken", "page not found"),
    wait_until="networkidle",
)

fetch = ADAPTER.fetch
