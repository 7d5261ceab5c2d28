"""Parsing of user-supplied page selections like "1-3, 5"."""

import math
import re
from typing import List, Optional, Tuple

from app.core.errors import ApiError

_RANGE = re.compile(r"^(\d+)\s*-\s*(\d+)$")


def _parse_token(token: str, page_count: int) -> Tuple[int, int]:
    """Return 1-based inclusive (start, end) for one comma-separated token."""
    trimmed = token.strip()
    match = _RANGE.match(trimmed)
    if match:
        start, end = int(match.group(1)), int(match.group(2))
        if start < 1 or end < 1 or start > end or end > page_count:
            raise ApiError(f'Invalid page range "{token}".', 400)
        return start, end

    try:
        page = int(trimmed)
    except ValueError:
        raise ApiError(f'Invalid page number "{token}".', 400)
    if page < 1 or page > page_count:
        raise ApiError(f'Invalid page number "{token}".', 400)
    return page, page


def _tokens(value: str) -> List[str]:
    return [token.strip() for token in value.split(",") if token.strip()]


def parse_page_selection(value: Optional[str], page_count: int) -> List[int]:
    """Sorted, de-duplicated 0-based page indexes. Empty or "all" selects every page."""
    if not value or not value.strip() or value.strip().lower() == "all":
        return list(range(page_count))

    tokens = _tokens(value)
    if not tokens:
        raise ApiError("Page selection cannot be empty.", 400)

    indexes = set()
    for token in tokens:
        start, end = _parse_token(token, page_count)
        indexes.update(range(start - 1, end))
    return sorted(indexes)


def parse_split_range_groups(value: Optional[str], page_count: int) -> List[List[int]]:
    """One group of 0-based indexes per token; no ranges means one group per page."""
    if not value or not value.strip():
        return [[index] for index in range(page_count)]

    tokens = _tokens(value)
    if not tokens:
        raise ApiError("Split range cannot be empty.", 400)

    groups = []
    for token in tokens:
        start, end = _parse_token(token, page_count)
        groups.append(list(range(start - 1, end)))
    return groups


def to_positive_number(value: Optional[str], fallback: float, minimum: float = 0) -> float:
    if not value:
        return fallback
    try:
        parsed = float(value)
    except ValueError:
        return fallback
    if not math.isfinite(parsed) or parsed < minimum:
        return fallback
    return parsed
