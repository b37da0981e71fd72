from __future__ import annotations

from .heuristics import FieldRule, labelled_number, marker, table_cell
from .rendered import BrowserAdapter

PROFILE_URL = "https://atcoder.jp/users/{username}"

RULES = (
    FieldRule(
        "rating",
        (
            (
                "user-rating",
                marker(r"class=\"[^\"]*user-rating[^\"]*\"[^>]*>\s*(?:<[^>]+>\s*)*([\d,]+)"),
            ),
            ("table", table_cell("Rating")),
            ("text", labelled_number("Rating")),
        ),
    ),
    FieldRule(
        "highestRating",
        (
            ("table", table_cell("Highest Rating")),
            ("text", labelled_number("Highest Rating")),
        ),
    ),
    FieldRule(
        "rank",
        (
            # Ordinal text such as "1st" or "1,024th".
            (
                "user-rank",
                marker(r"class=\"[^\"]*user-rank[^\"]*\"[^>]*>\s*(?:<[^>]+>\s*)*(\d[\d,]*)"),
            ),
            ("table", table_cell("Rank")),
        ),
        default=None,
    ),
    FieldRule(
        "ratedMatches",
        (
            ("table", table_cell("Rated Matches")),
            ("text", labelled_number("Rated Matches")),
        ),
    ),
)

ADAPTER = BrowserAdapter(
    "atcoder",
    PROFILE_URL,
    RULES,
    not_found_markers=("404 not found", "page not found", "user not found"),
)

fetch = ADAPTER.fetch
