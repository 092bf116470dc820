"""Regular expressions and predicates shared by the coupon heuristics."""
from __future__ import annotations

import re
from typing import List, Optional

from .models import MODE_DINE_IN, MODE_PICKUP, Mode

PATTERNS_VERSION = "v2"

# Phones: optional +1, optional area code, 7-10 digits. Bullets show up on
# printed coupons as "365 • 0055".
_PHONE_SEP = r"[\t .\-•·]"
PHONE_RE = re.compile(
    rf"(?<!\d)(?:\+?1{_PHONE_SEP}*)?(?:\(?\d{{3}}\)?{_PHONE_SEP}*)?\d{{3}}{_PHONE_SEP}{{1,3}}\d{{4}}(?!\d)"
)

PERCENT_RE = re.compile(r"(\d{1,3})\s*%")
PERCENT_MIN = 5
PERCENT_MAX = 100

MONEY_RE = re.compile(r"(?:\$|USD\s*)\s*(\d+(?:\.\d{2})?)\s*(?:off|discount|save)?", re.IGNORECASE)

BOGO_RE = re.compile(
    r"\b(?:bogo|buy\s*(?:1|one)\s*,?\s*get\s*(?:1|one))\b",
    re.IGNORECASE,
)

STREET_SUFFIXES = (
    "ST",
    "STREET",
    "AVE",
    "AVENUE",
    "RD",
    "ROAD",
    "BLVD",
    "BOULEVARD",
    "DR",
    "DRIVE",
    "HWY",
    "HIGHWAY",
    "LN",
    "LANE",
    "CT",
    "COURT",
    "PL",
    "PLACE",
    "PKWY",
    "PARKWAY",
    "WAY",
    "TER",
    "TERRACE",
    "CIR",
    "CIRCLE",
)
ADDRESS_HINTS = STREET_SUFFIXES + ("STE", "SUITE", "#")

ZIP_RE = re.compile(r"\b\d{5}(?:-\d{4})?\b")

# Marketing lines are never addresses, even when they carry digits.
OFFER_LANGUAGE_RE = re.compile(
    r"%|\b(?:buy\s*(?:\d|one)|free|percent|off|save|coupon|offer|valid only|customer must)\b",
    re.IGNORECASE,
)

MODE_RE = re.compile(r"\b(dine[\s-]?in|pickup|pick[\s-]?up)\b", re.IGNORECASE)

URL_RE = re.compile(
    r"\b((?:https?://)?(?:www\.)?([a-z0-9\-]+)\.(?:com|net|org|co|us|edu))\b",
    re.IGNORECASE,
)

TERMS_ANCHOR_RE = re.compile(
    r"\b(terms|conditions|valid|offer valid|not valid|exclusions|present|only)\b",
    re.IGNORECASE,
)

LOCATION_NOTE_RE = re.compile(
    r"\b(participating\s+locations?|locations?\s+only|at\s+this\s+location|valid\s+(?:only\s+)?at)\b",
    re.IGNORECASE,
)

# Lines that look like fine print rather than part of a stacked logo.
STITCH_EXCLUDE_RE = re.compile(
    r"\b(www|valid|location|only|excludes|expires|offer|coupon)\b",
    re.IGNORECASE,
)

# Only long lowercase runs ("meltingpot") are split into two pseudo-words.
STUCK_WORD_MIN_LENGTH = 10

_DATE_NUMERIC = r"(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4}|\d{2})"
LABELED_DATE_RE = re.compile(
    rf"\b(?:expires?|exp\.?|valid\s+(?:thru|through|until))[:\s]+{_DATE_NUMERIC}\b",
    re.IGNORECASE,
)
NUMERIC_DATE_RE = re.compile(rf"\b{_DATE_NUMERIC}\b")
MONTH_NAME_DATE_RE = re.compile(
    r"\b(Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|Jun(?:e)?|Jul(?:y)?|Aug(?:ust)?"
    r"|Sep(?:t|tember)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4}|\d{2})\b",
    re.IGNORECASE,
)

_DIGIT_RE = re.compile(r"\d")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def count_digits(text: str) -> int:
    return len(_DIGIT_RE.findall(text))


def has_digits(text: str) -> bool:
    return _DIGIT_RE.search(text) is not None


def find_phones(text: str) -> List[str]:
    return [match.group(0) for match in PHONE_RE.finditer(text or "")]


def has_phone(text: str) -> bool:
    return PHONE_RE.search(text) is not None


def has_zip(text: str) -> bool:
    return ZIP_RE.search(text) is not None


def has_street_token(text: str) -> bool:
    """Whole-word street suffix or unit marker, with "ST." read as "ST"."""

    padded = re.sub(r"[.,]", " ", f" {text.upper()} ")
    return any(f" {token} " in padded for token in ADDRESS_HINTS)


def looks_like_address(text: str) -> bool:
    return has_street_token(text) or has_zip(text)


def caps_ratio(text: str) -> float:
    letters = [char for char in text if char.isascii() and char.isalpha()]
    if not letters:
        return 0.0
    upper = sum(1 for char in letters if char.isupper())
    return upper / len(letters)


def normalize_name(text: str) -> str:
    """Lowercase alphanumerics only, for brand comparisons ("Chick-fil-A®" -> "chickfila")."""

    return _NON_ALNUM_RE.sub("", text.lower())


def title_case(text: str) -> str:
    return re.sub(r"\w\S*", lambda match: match.group(0)[0].upper() + match.group(0)[1:].lower(), text)


def _split_stuck_words(word: str) -> str:
    if len(word) < STUCK_WORD_MIN_LENGTH or not word.islower():
        return word
    return re.sub(r"([a-z]{3,})([a-z]{3,})", r"\1 \2", word)


def brand_from_domain(label: str) -> str:
    """Turn a domain label into a brand guess ("meltingpot" -> "Melting Pot")."""

    spaced = label.replace("-", " ")
    spaced = re.sub(r"([a-z])([A-Z])", r"\1 \2", spaced)
    spaced = " ".join(_split_stuck_words(word) for word in spaced.split())
    return title_case(spaced)


def guess_brand_from_url(text: str) -> Optional[str]:
    match = URL_RE.search(text or "")
    if not match or not match.group(2):
        return None
    return brand_from_domain(match.group(2))


def detect_mode(text: str) -> Mode:
    match = MODE_RE.search(text or "")
    if not match:
        return ""
    return MODE_DINE_IN if "dine" in match.group(1).lower() else MODE_PICKUP


__all__ = [
    "ADDRESS_HINTS",
    "BOGO_RE",
    "LABELED_DATE_RE",
    "LOCATION_NOTE_RE",
    "MODE_RE",
    "MONEY_RE",
    "MONTH_NAME_DATE_RE",
    "NUMERIC_DATE_RE",
    "OFFER_LANGUAGE_RE",
    "PATTERNS_VERSION",
    "PERCENT_MAX",
    "PERCENT_MIN",
    "PERCENT_RE",
    "PHONE_RE",
    "STITCH_EXCLUDE_RE",
    "STREET_SUFFIXES",
    "TERMS_ANCHOR_RE",
    "URL_RE",
    "ZIP_RE",
    "brand_from_domain",
    "caps_ratio",
    "count_digits",
    "detect_mode",
    "find_phones",
    "guess_brand_from_url",
    "has_digits",
    "has_phone",
    "has_street_token",
    "has_zip",
    "looks_like_address",
    "normalize_name",
    "title_case",
]
