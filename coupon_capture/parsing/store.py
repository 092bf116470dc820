"""Store-name scoring and ranking.

Every line of the coupon competes for the store name.  Two synthetic
candidates join the pool: a title stitched together from the short lines at
the top of the image (stacked logos such as "MELTING" / "POT") and a brand
guessed from a printed website domain.
"""
from __future__ import annotations

from typing import List, Optional, Sequence

from .models import BBox, OcrLine, ScoredCandidate
from .patterns import (
    STITCH_EXCLUDE_RE,
    caps_ratio,
    guess_brand_from_url,
    has_digits,
    looks_like_address,
    normalize_name,
    title_case,
)

EXCLUDED_SCORE = -999.0

STITCHED_TITLE_BONUS = 1.0
URL_BRAND_BONUS = 1.2

STITCH_SCAN_LINES = 5
STITCH_MAX_PARTS = 3
STITCH_MAX_LENGTH = 14

LONG_LINE_LENGTH = 40


def token_similarity(left: str, right: str) -> float:
    """Word-set overlap between two names (1.0 equal, 0.85 substring)."""

    a = left.lower().strip()
    b = right.lower().strip()
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    if a in b or b in a:
        return 0.85
    left_tokens = set(a.split())
    right_tokens = set(b.split())
    return len(left_tokens & right_tokens) / max(len(left_tokens), len(right_tokens))


def _brand_bonus(line: str, brands: Sequence[str]) -> float:
    normalised_line = normalize_name(line)
    for brand in brands:
        normalised_brand = normalize_name(brand)
        if not normalised_brand or not normalised_line:
            continue
        if (
            normalised_line == normalised_brand
            or normalised_brand in normalised_line
            or normalised_line in normalised_brand
        ):
            return 2.5

    best = max((token_similarity(line, brand) for brand in brands), default=0.0)
    if best >= 0.8:
        return 2.0
    if best >= 0.6:
        return 1.0
    return 0.0


def _layout_bonus(bbox: BBox) -> float:
    bonus = max(0.0, 1.2 * (1.0 - bbox.y))  # top of the image
    bonus += min(1.0, max(0.0, bbox.h) * 10)  # headline-sized text
    if abs(bbox.center_x - 0.5) < 0.15:
        bonus += 0.2
    return bonus


def score_store_candidate(
    line: str,
    bbox: Optional[BBox] = None,
    brands: Optional[Sequence[str]] = None,
) -> float:
    if not line.strip():
        return EXCLUDED_SCORE

    score = caps_ratio(line) * 2
    if not has_digits(line):
        score += 0.5
    if not looks_like_address(line):
        score += 0.8
    if brands:
        score += _brand_bonus(line, brands)
    if bbox is not None:
        score += _layout_bonus(bbox)
    if len(line) > LONG_LINE_LENGTH:
        score -= 0.5
    return score


def stitch_top_title(lines: Sequence[OcrLine]) -> Optional[str]:
    """Join the 2-3 short lines at the very top into one title-cased name."""

    ordered = sorted(lines, key=lambda line: line.bbox.y if line.bbox else 0.0)
    picks: List[str] = []
    for line in ordered[:STITCH_SCAN_LINES]:
        text = line.text.strip()
        if not text or has_digits(text) or len(text) > STITCH_MAX_LENGTH:
            break
        if STITCH_EXCLUDE_RE.search(text):
            break
        picks.append(text)
        if len(picks) >= STITCH_MAX_PARTS:
            break
    if len(picks) >= 2:
        return title_case(" ".join(picks))
    return None


def build_store_candidates(
    lines: Sequence[OcrLine],
    brands: Optional[Sequence[str]] = None,
) -> List[ScoredCandidate]:
    candidates = [
        ScoredCandidate(text=line.text, bbox=line.bbox, score=score_store_candidate(line.text, line.bbox, brands))
        for line in lines
    ]

    stitched = stitch_top_title(lines)
    if stitched:
        candidates.append(
            ScoredCandidate(text=stitched, score=score_store_candidate(stitched, None, brands) + STITCHED_TITLE_BONUS)
        )

    url_brand = guess_brand_from_url(" ".join(line.text for line in lines))
    if url_brand:
        candidates.append(
            ScoredCandidate(text=url_brand, score=score_store_candidate(url_brand, None, brands) + URL_BRAND_BONUS)
        )

    for index, candidate in enumerate(candidates):
        candidate.index = index
    return candidates


def rank_store_candidates(
    lines: Sequence[OcrLine],
    brands: Optional[Sequence[str]] = None,
    limit: int = 6,
) -> List[ScoredCandidate]:
    candidates = [c for c in build_store_candidates(lines, brands) if c.score > EXCLUDED_SCORE]
    # sorted() is stable, so equal scores keep their original order.
    candidates = sorted(candidates, key=lambda candidate: candidate.score, reverse=True)
    return candidates[:limit]


def pick_store(lines: Sequence[OcrLine], brands: Optional[Sequence[str]] = None) -> Optional[str]:
    ranked = rank_store_candidates(lines, brands, limit=1)
    return ranked[0].text if ranked else None


__all__ = [
    "EXCLUDED_SCORE",
    "build_store_candidates",
    "pick_store",
    "rank_store_candidates",
    "score_store_candidate",
    "stitch_top_title",
    "token_similarity",
]
