"""Prioritized extractor chains for pulling numbers out of profile markup.

Each field is read by trying a list of extractors in order (a specific marker,
then a generic one, then a free-text "label followed by a number" search) so a
single markup change degrades to the next heuristic instead of failing.
"""

from __future__ import annotations

import html as html_lib
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Sequence, Tuple

from ..utils import parse_number

Extractor = Callable[[str], Optional[object]]

_TAG_RE = re.compile(r"<[^>]+>")
_SCRIPT_RE = re.compile(r"<(script|style)[^>]*>.*?</\1>", re.DOTALL | re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class FieldRule:
    name: str
    extractors: Sequence[Tuple[str, Extractor]]
    default: object = 0


@dataclass
class Extraction:
    fields: Dict[str, object] = field(default_factory=dict)
    hits: Dict[str, str] = field(default_factory=dict)

    @property
    def matched(self) -> int:
        return sum(1 for source in self.hits.values() if source != "default")

    @property
    def detail(self) -> str:
        return ",".join(f"{name}={source}" for name, source in self.hits.items())


def visible_text(markup: str) -> str:
    """Strip scripts, styles and tags, returning whitespace-collapsed text."""

    without_scripts = _SCRIPT_RE.sub(" ", markup)
    text = html_lib.unescape(_TAG_RE.sub(" ", without_scripts))
    return _WHITESPACE_RE.sub(" ", text).strip()


def marker(pattern: str, convert: Callable[[str], Optional[object]] = parse_number) -> Extractor:
    """Match ``pattern`` against the raw markup and convert its first group."""

    regex = re.compile(pattern, re.IGNORECASE | re.DOTALL)

    def extract(markup: str) -> Optional[object]:
        match = regex.search(markup)
        if not match:
            return None
        return convert(match.group(1))

    return extract


def labelled_number(label: str) -> Extractor:
    """Find ``label`` in the visible text followed by a number."""

    regex = re.compile(
        rf"\b{re.escape(label)}\b\s*[:#]?\s*([0-9][0-9,]*)", re.IGNORECASE
    )

    def extract(markup: str) -> Optional[object]:
        match = regex.search(visible_text(markup))
        if not match:
            return None
        return parse_number(match.group(1))

    return extract


def table_cell(label: str) -> Extractor:
    """Read the number in the ``<td>`` that follows a ``<th>label</th>`` header."""

    return marker(
        rf"<th[^>]*>\s*{re.escape(label)}\s*(?:<[^>]+>\s*)*</th>\s*<td[^>]*>(.*?)</td>",
        lambda cell: parse_number(visible_text(cell)),
    )


def stripped_text(value: str) -> Optional[str]:
    text = visible_text(value)
    return text or None


def extract_fields(markup: str, rules: Sequence[FieldRule]) -> Extraction:
    extraction = Extraction()
    for rule in rules:
        for source, extractor in rule.extractors:
            value = extractor(markup)
            if value is not None:
                extraction.fields[rule.name] = value
                extraction.hits[rule.name] = source
                break
        else:
            extraction.fields[rule.name] = rule.default
            extraction.hits[rule.name] = "default"
    return extraction


__all__ = [
    "Extraction",
    "Extractor",
    "FieldRule",
    "extract_fields",
    "labelled_number",
    "marker",
    "stripped_text",
    "table_cell",
    "visible_text",
]
