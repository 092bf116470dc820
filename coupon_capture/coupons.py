"""Coupon persistence: record building and the ``coupons`` table."""
from __future__ import annotations

import datetime as dt
import logging
import re
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from . import backend_client
from .parsing import PARSER_VERSION, ParsedCoupon
from .settings import Settings

LOGGER = logging.getLogger(__name__)

COUPONS_TABLE = "coupons"
SAVES_TABLE = "coupon_saves"

SAVED_COUPON_COLUMNS = "id,created_at,coupon:coupons(id,store,title,terms,expires_at,visibility,created_at)"
PUBLICATION_SUGGESTION_LIMIT = 50

Visibility = Literal["private", "public"]
Category = Literal["food", "retail", "grocery", "other"]


class CouponRow(BaseModel):
    """A row of the ``coupons`` table as returned by the backend."""

    id: str
    owner_id: str
    store: Optional[str] = None
    title: Optional[str] = None
    terms: Optional[str] = None
    expires_at: Optional[str] = None
    image_url: Optional[str] = None
    stable_id: Optional[str] = None
    attrs: Optional[Dict[str, Any]] = None
    created_at: Optional[str] = None
    visibility: Visibility = "private"
    category: Category = "other"
    publication: Optional[str] = None
    saves_count: Optional[int] = None


class CouponSave(BaseModel):
    """A row of the ``coupon_saves`` table."""

    id: str
    user_id: str
    coupon_id: str
    created_at: Optional[str] = None


class SavedCouponSummary(BaseModel):
    id: str
    store: Optional[str] = None
    title: Optional[str] = None
    terms: Optional[str] = None
    expires_at: Optional[str] = None
    visibility: Visibility = "private"
    created_at: Optional[str] = None


class SavedCoupon(BaseModel):
    """A save joined with the coupon it points at (``None`` once the coupon is gone)."""

    id: str
    created_at: Optional[str] = None
    coupon: Optional[SavedCouponSummary] = None


class CouponRowError(RuntimeError):
    """Raised when the backend returns a row that does not match ``CouponRow``."""


RowT = TypeVar("RowT", bound=BaseModel)


def _clean(value: Optional[str]) -> Optional[str]:
    text = (value or "").strip()
    return text or None


def expiry_timestamp(expires_at: Optional[str]) -> Optional[str]:
    """``YYYY-MM-DD`` to a midnight UTC ISO timestamp; anything else to ``None``."""

    if not expires_at:
        return None
    try:
        day = dt.date.fromisoformat(expires_at)
    except ValueError:
        return None
    return dt.datetime(day.year, day.month, day.day, tzinfo=dt.timezone.utc).isoformat()


def stable_id(store: Optional[str], title: Optional[str]) -> Optional[str]:
    if not store or not title:
        return None
    slug = re.sub(r"[^a-z0-9]+", "-", f"{store}-{title}".lower()).strip("-")
    return slug or None


def build_coupon_record(
    owner_id: str,
    parsed: ParsedCoupon,
    *,
    raw_text: Optional[str] = None,
    visibility: Visibility = "private",
    category: Category = "other",
    publication: Optional[str] = None,
    image_url: Optional[str] = None,
) -> Dict[str, Any]:
    store = _clean(parsed.store)
    title = _clean(parsed.title)
    attrs: Dict[str, Any] = {
        "ocr": raw_text is not None,
        "parser_version": PARSER_VERSION,
        "ocr_text": raw_text or None,
        "address": _clean(parsed.address),
        "phone": _clean(parsed.phone),
        "mode": parsed.mode or None,
        "location_note": _clean(parsed.location_note),
    }
    if parsed.geo is not None:
        attrs["geo"] = {"lat": parsed.geo.latitude, "lng": parsed.geo.longitude}

    return {
        "owner_id": owner_id,
        "store": store,
        "title": title,
        "terms": _clean(parsed.terms),
        "expires_at": expiry_timestamp(parsed.expires_at),
        "image_url": image_url,
        "stable_id": stable_id(store, title),
        "attrs": attrs,
        "visibility": visibility,
        "category": category,
        "publication": _clean(publication),
    }


def _to_row(raw: Dict[str, Any], model: Type[RowT]) -> RowT:
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        LOGGER.error("Unexpected %s row shape: %s", model.__name__, exc)
        raise CouponRowError("invalid_coupon_row") from exc


def add_coupon(record: Dict[str, Any], *, settings: Optional[Settings] = None) -> CouponRow:
    created = backend_client.backend_insert(COUPONS_TABLE, record, settings=settings)
    row = _to_row(created, CouponRow)
    LOGGER.info("Stored coupon id=%s owner=%s", row.id, row.owner_id)
    return row


def list_owner_coupons(owner_id: str, *, settings: Optional[Settings] = None) -> List[CouponRow]:
    rows = backend_client.backend_select(
        COUPONS_TABLE,
        filters={"owner_id": backend_client.eq(owner_id)},
        order="created_at.desc",
        settings=settings,
    )
    return [_to_row(row, CouponRow) for row in rows]


def delete_coupon(coupon_id: str, owner_id: str, *, settings: Optional[Settings] = None) -> int:
    deleted = backend_client.backend_delete(
        COUPONS_TABLE,
        filters={"id": backend_client.eq(coupon_id), "owner_id": backend_client.eq(owner_id)},
        settings=settings,
    )
    return len(deleted)


def save_coupon(coupon_id: str, user_id: str, *, settings: Optional[Settings] = None) -> CouponSave:
    created = backend_client.backend_insert(
        SAVES_TABLE,
        {"user_id": user_id, "coupon_id": coupon_id},
        settings=settings,
    )
    save = _to_row(created, CouponSave)
    LOGGER.info("Saved coupon id=%s user=%s", coupon_id, user_id)
    return save


def unsave_coupon(coupon_id: str, user_id: str, *, settings: Optional[Settings] = None) -> int:
    deleted = backend_client.backend_delete(
        SAVES_TABLE,
        filters={"user_id": backend_client.eq(user_id), "coupon_id": backend_client.eq(coupon_id)},
        settings=settings,
    )
    return len(deleted)


def list_saved_coupons(user_id: str, *, settings: Optional[Settings] = None) -> List[SavedCoupon]:
    """The user's saves joined with their coupons, newest save first."""

    rows = backend_client.backend_select(
        SAVES_TABLE,
        filters={"user_id": backend_client.eq(user_id)},
        columns=SAVED_COUPON_COLUMNS,
        order="created_at.desc",
        settings=settings,
    )
    return [_to_row(row, SavedCoupon) for row in rows]


def publication_suggestions(
    limit: int = PUBLICATION_SUGGESTION_LIMIT,
    *,
    settings: Optional[Settings] = None,
) -> List[str]:
    """Distinct publication names already in use, for autocomplete."""

    rows = backend_client.backend_select(
        COUPONS_TABLE,
        filters={"publication": "not.is.null"},
        columns="publication",
        order="publication.asc",
        limit=limit,
        settings=settings,
    )
    suggestions: List[str] = []
    for row in rows:
        name = _clean(row.get("publication"))
        if name and name not in suggestions:
            suggestions.append(name)
    return suggestions


__all__ = [
    "COUPONS_TABLE",
    "Category",
    "CouponRow",
    "CouponRowError",
    "CouponSave",
    "SAVES_TABLE",
    "SavedCoupon",
    "SavedCouponSummary",
    "Visibility",
    "add_coupon",
    "build_coupon_record",
    "delete_coupon",
    "expiry_timestamp",
    "list_owner_coupons",
    "list_saved_coupons",
    "publication_suggestions",
    "save_coupon",
    "stable_id",
    "unsave_coupon",
]
