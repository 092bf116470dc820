"""Address and phone extraction with optional geocode validation."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from .models import GeoPoint, OcrLine, ScoredCandidate
from .patterns import OFFER_LANGUAGE_RE, count_digits, find_phones, has_digits, has_phone, has_street_token, has_zip

LOGGER = logging.getLogger(__name__)

EXCLUDED_SCORE = -999.0
MAX_ADDRESS_CANDIDATES = 6
DEFAULT_GEOCODE_TIMEOUT = 4.0

MIN_ADDRESS_LENGTH = 8
MAX_ADDRESS_LENGTH = 90

Geocoder = Callable[[str], Awaitable[Sequence[Any]]]


@dataclass
class AddressPick:
    address: Optional[str]
    geo: Optional[GeoPoint] = None
    score: float = 0.0


def score_address_candidate(line: str, index: int) -> float:
    raw = line.strip()
    if not raw or OFFER_LANGUAGE_RE.search(raw):
        return EXCLUDED_SCORE

    score = 0.0
    if has_street_token(raw):
        score += 2.5
    if has_zip(raw):
        score += 1.5
    if has_phone(raw):
        score += 0.6
    if has_digits(raw):
        score += 0.4

    score += max(0.0, 0.8 - index * 0.05)

    if len(raw) < MIN_ADDRESS_LENGTH or len(raw) > MAX_ADDRESS_LENGTH:
        score -= 0.5
    return score


def rank_address_candidates(
    lines: Sequence[OcrLine],
    limit: int = MAX_ADDRESS_CANDIDATES,
) -> List[ScoredCandidate]:
    """Score every line and keep the best ``limit`` candidates.

    Offer language is dropped outright; every other line stays in the pool.
    """

    scored = [
        ScoredCandidate(text=line.text, bbox=line.bbox, score=score_address_candidate(line.text, index), index=index)
        for index, line in enumerate(lines)
    ]
    plausible = [c for c in scored if c.score > EXCLUDED_SCORE]
    plausible.sort(key=lambda candidate: candidate.score, reverse=True)
    return plausible[:limit]


def geocode_bonus(text: str) -> float:
    bonus = 2.0
    if has_zip(text):
        bonus += 0.3
    if has_street_token(text):
        bonus += 0.2
    return bonus


def _coerce_point(raw: Any) -> Optional[GeoPoint]:
    if isinstance(raw, GeoPoint):
        return raw
    if isinstance(raw, dict):
        try:
            return GeoPoint(latitude=float(raw["latitude"]), longitude=float(raw["longitude"]))
        except (KeyError, TypeError, ValueError):
            return None
    return None


async def _geocode_first(geocoder: Geocoder, text: str, timeout: float) -> Optional[GeoPoint]:
    try:
        results = await asyncio.wait_for(geocoder(text), timeout=timeout)
    except asyncio.TimeoutError:
        LOGGER.debug("geocode_timeout: %r", text)
        return None
    except Exception as exc:  # collaborator failures only exclude the candidate
        LOGGER.debug("geocode_failed: %r error=%s", text, exc)
        return None
    if not results:
        return None
    if not isinstance(results, (list, tuple)):
        LOGGER.debug("geocode_unexpected_result: %r type=%s", text, type(results).__name__)
        return None
    for raw in results:
        point = _coerce_point(raw)
        if point is not None:
            return point
    return None


async def pick_address(
    candidates: Sequence[ScoredCandidate],
    geocoder: Optional[Geocoder] = None,
    timeout: float = DEFAULT_GEOCODE_TIMEOUT,
) -> AddressPick:
    """Choose the address, preferring candidates the geocoder can resolve.

    Lookups run one after another in ranked order.  When nothing resolves (or
    no geocoder is given) the top heuristic candidate wins without a point.
    """

    if not candidates:
        return AddressPick(address=None)

    best: Optional[AddressPick] = None
    if geocoder is not None:
        for candidate in candidates:
            point = await _geocode_first(geocoder, candidate.text, timeout)
            if point is None:
                continue
            total = candidate.score + geocode_bonus(candidate.text)
            if best is None or total > best.score:
                best = AddressPick(address=candidate.text, geo=point, score=total)

    if best is not None:
        return best
    top = candidates[0]
    return AddressPick(address=top.text, score=top.score)


def pick_phone(text: str) -> Optional[str]:
    """Return the phone match with the most digits (first one on ties)."""

    best: Optional[str] = None
    best_digits = -1
    for match in find_phones(text):
        digits = count_digits(match)
        if digits > best_digits:
            best = match.strip()
            best_digits = digits
    return best


__all__ = [
    "AddressPick",
    "EXCLUDED_SCORE",
    "Geocoder",
    "geocode_bonus",
    "pick_address",
    "pick_phone",
    "rank_address_candidates",
    "score_address_candidate",
]
