"""Discount detection and coupon title synthesis."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from .patterns import BOGO_RE, MONEY_RE, PERCENT_MAX, PERCENT_MIN, PERCENT_RE

BOGO_TITLE = "BOGO"


@dataclass(frozen=True)
class AmountMatch:
    value: float
    raw_text: str


def best_percent(text: str) -> Optional[int]:
    """Largest percentage in ``[5, 100]``; fine print tends to repeat smaller numbers."""

    best: Optional[int] = None
    for match in PERCENT_RE.finditer(text or ""):
        value = int(match.group(1))
        if PERCENT_MIN <= value <= PERCENT_MAX and (best is None or value > best):
            best = value
    return best


def best_amount(text: str) -> Optional[AmountMatch]:
    best: Optional[AmountMatch] = None
    for match in MONEY_RE.finditer(text or ""):
        raw = match.group(1)
        try:
            value = float(raw)
        except ValueError:
            continue
        if not math.isfinite(value) or value <= 0:
            continue
        if best is None or value > best.value:
            best = AmountMatch(value=value, raw_text=raw)
    return best


def has_bogo(text: str) -> bool:
    return BOGO_RE.search(text or "") is not None


def derive_title(text: str) -> Optional[str]:
    """Summarise the headline discount: percent, then amount, then BOGO."""

    percent = best_percent(text)
    if percent is not None:
        return f"{percent}% off"
    amount = best_amount(text)
    if amount is not None:
        return f"${amount.raw_text} off"
    if has_bogo(text):
        return BOGO_TITLE
    return None


__all__ = ["AmountMatch", "BOGO_TITLE", "best_amount", "best_percent", "derive_title", "has_bogo"]
