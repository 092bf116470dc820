"""Value types shared by the coupon field extraction engine."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

Mode = str  # one of "", "dine-in", "pickup"

MODE_DINE_IN = "dine-in"
MODE_PICKUP = "pickup"


@dataclass(frozen=True)
class BBox:
    """Bounding box normalised to the image size (0..1 on both axes)."""

    x: float
    y: float
    w: float
    h: float

    @property
    def center_x(self) -> float:
        return self.x + self.w / 2

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "BBox":
        return cls(
            x=float(raw.get("x") or 0.0),
            y=float(raw.get("y") or 0.0),
            w=float(raw.get("w") or 0.0),
            h=float(raw.get("h") or 0.0),
        )


@dataclass(frozen=True)
class OcrLine:
    text: str
    bbox: Optional[BBox] = None


@dataclass
class ScoredCandidate:
    text: str
    score: float
    bbox: Optional[BBox] = None
    index: int = 0


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float


@dataclass
class ParsedCoupon:
    store: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    mode: Mode = ""
    location_note: Optional[str] = None
    terms: Optional[str] = None
    title: Optional[str] = None
    expires_at: Optional[str] = None
    geo: Optional[GeoPoint] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "store": self.store,
            "address": self.address,
            "phone": self.phone,
            "mode": self.mode,
            "location_note": self.location_note,
            "terms": self.terms,
            "title": self.title,
            "expires_at": self.expires_at,
        }
        if self.geo is not None:
            payload["geo"] = {"lat": self.geo.latitude, "lng": self.geo.longitude}
        return payload


__all__ = [
    "BBox",
    "GeoPoint",
    "MODE_DINE_IN",
    "MODE_PICKUP",
    "Mode",
    "OcrLine",
    "ParsedCoupon",
    "ScoredCandidate",
]
