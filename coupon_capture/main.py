"""FastAPI router definitions for the coupon capture service."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal, Optional, Union

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile, status
from pydantic import BaseModel, Field

from . import coupons
from .backend_client import BackendAPIError
from .geocode import build_geocoder
from .ocr_extract import ImageFetchError, OCRDecodeError, OCRServiceError, extract_ocr
from .parsing import GeoPoint, OcrLine, ParsedCoupon, extract_coupon_fields
from .parsing.models import BBox
from .settings import Settings, get_settings

LOGGER = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

app = FastAPI(title="Coupon Capture Service")

MAX_UPLOAD_SIZE = 15 * 1024 * 1024
ALLOWED_MIME_TYPES = {
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/heic",
    "image/webp",
}


class BBoxModel(BaseModel):
    x: float = Field(ge=0.0, le=1.0)
    y: float = Field(ge=0.0, le=1.0)
    w: float = Field(ge=0.0, le=1.0)
    h: float = Field(ge=0.0, le=1.0)


class BlockModel(BaseModel):
    text: str
    bbox: Optional[BBoxModel] = None


class GeoModel(BaseModel):
    lat: float
    lng: float


class ParsedCouponModel(BaseModel):
    store: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    mode: Literal["", "dine-in", "pickup"] = ""
    location_note: Optional[str] = None
    terms: Optional[str] = None
    title: Optional[str] = None
    expires_at: Optional[str] = None
    geo: Optional[GeoModel] = None


class ParseRequest(BaseModel):
    text: str
    blocks: Optional[List[BlockModel]] = None
    brands: Optional[List[str]] = None
    try_geocode: bool = True


class ScanResponse(BaseModel):
    raw_text: str
    blocks: List[BlockModel]
    parsed: ParsedCouponModel
    ocr_confidence: Optional[float] = None


class CouponCreateRequest(BaseModel):
    owner_id: str = Field(min_length=1)
    parsed: ParsedCouponModel
    raw_text: Optional[str] = None
    visibility: coupons.Visibility = "private"
    category: coupons.Category = "other"
    publication: Optional[str] = None
    image_url: Optional[str] = None


def _to_lines(blocks: Optional[List[BlockModel]]) -> Optional[List[OcrLine]]:
    if blocks is None:
        return None
    return [
        OcrLine(text=block.text, bbox=BBox(**block.bbox.model_dump()) if block.bbox else None)
        for block in blocks
    ]


def _to_parsed(model: ParsedCouponModel) -> ParsedCoupon:
    data = model.model_dump(exclude={"geo"})
    geo = GeoPoint(latitude=model.geo.lat, longitude=model.geo.lng) if model.geo else None
    return ParsedCoupon(geo=geo, **data)


async def _parse(
    text: str,
    blocks: Optional[List[OcrLine]],
    brands: Optional[List[str]],
    try_geocode: bool,
    settings: Settings,
) -> ParsedCouponModel:
    parsed = await extract_coupon_fields(
        text,
        blocks,
        brands=brands if brands is not None else list(settings.brand_hints),
        try_geocode=try_geocode,
        geocoder=build_geocoder(settings),
        geocode_timeout=settings.geocode_timeout,
    )
    return ParsedCouponModel(**parsed.to_dict())


async def _read_upload(file: UploadFile) -> bytes:
    data = await file.read()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="empty_file")
    if len(data) > MAX_UPLOAD_SIZE:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="file_too_large")
    if file.content_type not in ALLOWED_MIME_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="unsupported_mime")
    return data


@app.post("/parse", response_model=ParsedCouponModel)
async def parse(payload: ParseRequest, settings: Settings = Depends(get_settings)) -> ParsedCouponModel:
    return await _parse(payload.text, _to_lines(payload.blocks), payload.brands, payload.try_geocode, settings)


@app.post("/scan", response_model=ScanResponse)
async def scan(
    settings: Settings = Depends(get_settings),
    file: Optional[UploadFile] = File(None),
    image_url: Optional[str] = Form(None),
    brands: Optional[str] = Form(None),
    try_geocode: bool = Form(True),
) -> ScanResponse:
    """OCR an uploaded image, or one given by URL or base64 payload, then parse it."""

    image: Union[bytes, str]
    if file is not None:
        image = await _read_upload(file)
    elif image_url and image_url.strip():
        image = image_url.strip()
    else:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing_image")

    try:
        ocr_result = extract_ocr(image, engine=settings.ocr_engine, language=settings.ocr_language)
    except ImageFetchError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="image_fetch_failed") from exc
    except OCRDecodeError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="ocr_decode_failed") from exc
    except OCRServiceError as exc:
        LOGGER.exception("OCR service error: %s", exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="ocr_service_error") from exc

    brand_list = [name.strip() for name in brands.split(",") if name.strip()] if brands else None
    parsed = await _parse(ocr_result.text, ocr_result.blocks, brand_list, try_geocode, settings)
    return ScanResponse(
        raw_text=ocr_result.text,
        blocks=[BlockModel(**block) for block in ocr_result.blocks_as_dicts()],
        parsed=parsed,
        ocr_confidence=ocr_result.confidence,
    )


@app.post("/coupons", response_model=coupons.CouponRow)
async def create_coupon(
    payload: CouponCreateRequest,
    settings: Settings = Depends(get_settings),
) -> coupons.CouponRow:
    record = coupons.build_coupon_record(
        payload.owner_id,
        _to_parsed(payload.parsed),
        raw_text=payload.raw_text,
        visibility=payload.visibility,
        category=payload.category,
        publication=payload.publication,
        image_url=payload.image_url,
    )
    try:
        return coupons.add_coupon(record, settings=settings)
    except BackendAPIError as exc:
        LOGGER.error("Failed to write coupon: %s", exc)
        raise HTTPException(status_code=status.HTTP_424_FAILED_DEPENDENCY, detail="backend_write_failed") from exc
    except coupons.CouponRowError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="invalid_coupon_row") from exc


@app.get("/coupons", response_model=List[coupons.CouponRow])
async def list_coupons(owner_id: str, settings: Settings = Depends(get_settings)) -> List[coupons.CouponRow]:
    try:
        return coupons.list_owner_coupons(owner_id, settings=settings)
    except BackendAPIError as exc:
        LOGGER.error("Failed to list coupons: %s", exc)
        raise HTTPException(status_code=status.HTTP_424_FAILED_DEPENDENCY, detail="backend_read_failed") from exc
    except coupons.CouponRowError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="invalid_coupon_row") from exc


@app.delete("/coupons/{coupon_id}")
async def remove_coupon(
    coupon_id: str,
    owner_id: str,
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    try:
        deleted = coupons.delete_coupon(coupon_id, owner_id, settings=settings)
    except BackendAPIError as exc:
        LOGGER.error("Failed to delete coupon %s: %s", coupon_id, exc)
        raise HTTPException(status_code=status.HTTP_424_FAILED_DEPENDENCY, detail="backend_delete_failed") from exc
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="coupon_not_found")
    return {"ok": True}


@app.post("/coupons/{coupon_id}/save", response_model=coupons.CouponSave)
async def save_coupon(
    coupon_id: str,
    user_id: str,
    settings: Settings = Depends(get_settings),
) -> coupons.CouponSave:
    try:
        return coupons.save_coupon(coupon_id, user_id, settings=settings)
    except BackendAPIError as exc:
        LOGGER.error("Failed to save coupon %s: %s", coupon_id, exc)
        raise HTTPException(status_code=status.HTTP_424_FAILED_DEPENDENCY, detail="backend_write_failed") from exc
    except coupons.CouponRowError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="invalid_coupon_row") from exc


@app.delete("/coupons/{coupon_id}/save")
async def unsave_coupon(
    coupon_id: str,
    user_id: str,
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    try:
        coupons.unsave_coupon(coupon_id, user_id, settings=settings)
    except BackendAPIError as exc:
        LOGGER.error("Failed to unsave coupon %s: %s", coupon_id, exc)
        raise HTTPException(status_code=status.HTTP_424_FAILED_DEPENDENCY, detail="backend_delete_failed") from exc
    return {"ok": True}


@app.get("/saves", response_model=List[coupons.SavedCoupon])
async def list_saves(user_id: str, settings: Settings = Depends(get_settings)) -> List[coupons.SavedCoupon]:
    try:
        return coupons.list_saved_coupons(user_id, settings=settings)
    except BackendAPIError as exc:
        LOGGER.error("Failed to list saved coupons: %s", exc)
        raise HTTPException(status_code=status.HTTP_424_FAILED_DEPENDENCY, detail="backend_read_failed") from exc
    except coupons.CouponRowError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="invalid_coupon_row") from exc


@app.get("/publications", response_model=List[str])
async def list_publications(
    limit: int = coupons.PUBLICATION_SUGGESTION_LIMIT,
    settings: Settings = Depends(get_settings),
) -> List[str]:
    try:
        return coupons.publication_suggestions(limit, settings=settings)
    except BackendAPIError as exc:
        LOGGER.error("Failed to load publication suggestions: %s", exc)
        raise HTTPException(status_code=status.HTTP_424_FAILED_DEPENDENCY, detail="backend_read_failed") from exc


__all__ = ["app"]
