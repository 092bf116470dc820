"""Coupon field extraction entry points.

``extract_coupon_fields`` turns OCR output (a text blob plus optional
positioned blocks) into a :class:`ParsedCoupon`.  It never raises for fields
it cannot determine; those are simply left empty for the user to fill in.
The only suspending step is the optional address geocoding.
"""
from __future__ import annotations

from typing import Iterable, Optional, Sequence

from .address import DEFAULT_GEOCODE_TIMEOUT, Geocoder, pick_address, pick_phone, rank_address_candidates
from .discount import derive_title
from .expiry import extract_expiry
from .models import OcrLine, ParsedCoupon
from .normalize import BlockLike, collapse_whitespace, flatten_blocks, normalize_text
from .patterns import LOCATION_NOTE_RE, TERMS_ANCHOR_RE, detect_mode
from .store import pick_store

PARSER_VERSION = 2

TERMS_MAX_LENGTH = 400
TERMS_TAIL_LENGTH = 300
LOCATION_NOTE_MAX_LENGTH = 120


def extract_terms(text: str) -> Optional[str]:
    flat = collapse_whitespace(text)
    if not flat:
        return None
    match = TERMS_ANCHOR_RE.search(flat)
    if match:
        return flat[match.start():][:TERMS_MAX_LENGTH]
    return flat[-TERMS_TAIL_LENGTH:]


def extract_location_note(lines: Iterable[str]) -> Optional[str]:
    for line in lines:
        if LOCATION_NOTE_RE.search(line):
            return line[:LOCATION_NOTE_MAX_LENGTH]
    return None


def extract_text_fields(text: str) -> ParsedCoupon:
    """Text-only pass: everything except store, address and geo."""

    normalised = normalize_text(text)
    return ParsedCoupon(
        phone=pick_phone(normalised),
        mode=detect_mode(normalised),
        location_note=extract_location_note(normalised.splitlines()),
        terms=extract_terms(text),
        title=derive_title(normalised),
        expires_at=extract_expiry(collapse_whitespace(text)),
    )


async def extract_coupon_fields(
    text: str,
    blocks: Optional[Iterable[BlockLike]] = None,
    *,
    brands: Optional[Sequence[str]] = None,
    try_geocode: bool = True,
    geocoder: Optional[Geocoder] = None,
    geocode_timeout: float = DEFAULT_GEOCODE_TIMEOUT,
) -> ParsedCoupon:
    """Extract every coupon field from OCR text and optional layout blocks.

    Parameters
    ----------
    text:
        Full recognised text of the coupon.
    blocks:
        Optional OCR blocks (``OcrLine`` or ``{"text", "bbox"}`` mappings with
        bboxes normalised to the image).  Without them store and address
        scoring run on text lines alone.
    brands:
        Known merchant names used to bias store-name scoring.
    try_geocode, geocoder:
        Address candidates are validated through ``geocoder`` when both are
        set.  Lookup failures only drop the failing candidate.
    """

    if not isinstance(text, str):
        raise TypeError(f"text must be str, not {type(text).__name__}")

    parsed = extract_text_fields(text)
    lines: Sequence[OcrLine] = flatten_blocks(blocks, text)

    parsed.store = pick_store(lines, brands)
    if parsed.phone is None:
        parsed.phone = pick_phone("\n".join(line.text for line in lines))

    candidates = rank_address_candidates(lines)
    picked = await pick_address(
        candidates,
        geocoder if try_geocode else None,
        timeout=geocode_timeout,
    )
    parsed.address = picked.address
    parsed.geo = picked.geo
    return parsed


__all__ = [
    "PARSER_VERSION",
    "extract_coupon_fields",
    "extract_location_note",
    "extract_terms",
    "extract_text_fields",
]
