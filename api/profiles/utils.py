from __future__ import annotations

import logging
import math
import re
from typing import Mapping, Optional

_NUMBER_RE = re.compile(r"-?[0-9][0-9, ]*")


def parse_number(text: object) -> Optional[int]:
    """Return the first integer in ``text``, accepting thousands separators."""

    if text is None:
        return None
    match = _NUMBER_RE.search(str(text))
    if not match:
        return None
    digits = re.sub(r"[^0-9-]", "", match.group(0))
    try:
        return int(digits)
    except ValueError:
        return None


def coerce_non_negative_int(value: object) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float):
        if math.isfinite(value) and value >= 0:
            return int(round(value))
        return None
    if isinstance(value, str):
        numeric = parse_number(value)
        if numeric is not None and numeric >= 0:
            return numeric
        return None
    return None


def coerce_non_negative_float(value: object) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value.strip().rstrip("%"))
        except ValueError:
            return None
    else:
        return None
    if math.isfinite(numeric) and numeric >= 0:
        return numeric
    return None


def first_present(data: Mapping[str, object], *keys: str) -> object:
    """Return the first value under ``keys`` that is neither missing nor blank."""

    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def log_fetch_attempt(
    logger: logging.Logger,
    platform: str,
    username: str,
    attempt: str,
    detail: str,
    success: bool,
) -> None:
    logger.info(
        "%s username=%s attempt=%s detail=%s success=%s",
        platform,
        username,
        attempt,
        detail,
        success,
    )
