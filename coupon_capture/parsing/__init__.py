"""Heuristic coupon field extraction from OCR output."""
from .extractor import PARSER_VERSION, extract_coupon_fields, extract_text_fields
from .models import BBox, GeoPoint, OcrLine, ParsedCoupon

__all__ = [
    "BBox",
    "GeoPoint",
    "OcrLine",
    "PARSER_VERSION",
    "ParsedCoupon",
    "extract_coupon_fields",
    "extract_text_fields",
]
