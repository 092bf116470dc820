"""Expiry date helpers."""
from __future__ import annotations

import datetime as dt
import re
from typing import Iterable, Optional, Tuple

from .patterns import LABELED_DATE_RE, MONTH_NAME_DATE_RE, NUMERIC_DATE_RE

_MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}


def _expand_year(raw: str) -> int:
    year = int(raw)
    if len(raw) == 2:
        year += 2000
    return year


def _is_month(value: int) -> bool:
    return 1 <= value <= 12


def _is_day(value: int) -> bool:
    return 1 <= value <= 31


def _month_day(first: int, second: int) -> Optional[Tuple[int, int]]:
    """Read ``first/second`` as month/day, swapping when only day/month fits."""

    if _is_month(first) and _is_day(second):
        return first, second
    if _is_month(second) and _is_day(first):
        return second, first
    return None


def _to_iso(year: int, month: int, day: int) -> Optional[str]:
    try:
        return dt.date(year, month, day).isoformat()
    except ValueError:
        return None


DateFields = Tuple[int, int, int]


def _first_numeric(matches: Iterable[re.Match]) -> Optional[DateFields]:
    for match in matches:
        fields = _month_day(int(match.group(1)), int(match.group(2)))
        if fields is None:
            continue
        month, day = fields
        return _expand_year(match.group(3)), month, day
    return None


def _first_month_name(text: str) -> Optional[DateFields]:
    for match in MONTH_NAME_DATE_RE.finditer(text):
        day = int(match.group(2))
        if not _is_day(day):
            continue
        return _expand_year(match.group(3)), _MONTHS[match.group(1)[:3].lower()], day
    return None


def extract_expiry(text: str) -> Optional[str]:
    """Return the coupon expiry as ``YYYY-MM-DD`` or ``None``.

    Labelled dates ("Expires 12/31/26") win over bare numeric dates, which win
    over month-name dates.  A match that names an impossible calendar day
    ("02/30/2026") resolves to ``None`` instead of falling through.
    """

    if not text:
        return None
    stages = (
        lambda: _first_numeric(LABELED_DATE_RE.finditer(text)),
        lambda: _first_numeric(NUMERIC_DATE_RE.finditer(text)),
        lambda: _first_month_name(text),
    )
    for stage in stages:
        fields = stage()
        if fields is not None:
            return _to_iso(*fields)
    return None


__all__ = ["extract_expiry"]
