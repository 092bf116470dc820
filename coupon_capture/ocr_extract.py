"""Coupon OCR helpers.

Turns a coupon photo into the text blob and positioned line blocks consumed
by :mod:`coupon_capture.parsing`.  Bounding boxes are normalised to the image
size so the layout heuristics do not depend on camera resolution.

RapidOCR is used by default; the local Tesseract backend serves as the
fallback and can be selected directly with ``OCR_ENGINE=local``.
"""
from __future__ import annotations

import base64
import importlib.util
import logging
import os
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import requests
from PIL import Image, UnidentifiedImageError

from .parsing.models import BBox, OcrLine
from .parsing.normalize import normalize_lines

_PYTESSERACT_AVAILABLE = importlib.util.find_spec("pytesseract") is not None
if _PYTESSERACT_AVAILABLE:
    import pytesseract
else:  # pragma: no cover - pytesseract missing in runtime environment
    pytesseract = None  # type: ignore[assignment]

_RAPIDOCR_AVAILABLE = importlib.util.find_spec("rapidocr_onnxruntime") is not None
if _RAPIDOCR_AVAILABLE:
    from rapidocr_onnxruntime import RapidOCR  # type: ignore
else:  # pragma: no cover - rapidocr missing in runtime environment
    RapidOCR = None  # type: ignore[assignment]

_NUMPY_AVAILABLE = importlib.util.find_spec("numpy") is not None
if _NUMPY_AVAILABLE:
    import numpy as np
else:  # pragma: no cover - numpy missing in runtime environment
    np = None  # type: ignore[assignment]

LOGGER = logging.getLogger(__name__)

FETCH_TIMEOUT = 30

_RAPIDOCR_ENGINE: Optional[Any] = None


class ImageFetchError(RuntimeError):
    """Raised when the input image cannot be retrieved."""


class OCRServiceError(RuntimeError):
    """Raised when the OCR engine is missing or fails."""


class OCRDecodeError(RuntimeError):
    """Raised when the image or the OCR output cannot be interpreted."""


@dataclass
class OcrResult:
    text: str
    blocks: List[OcrLine] = field(default_factory=list)
    confidence: Optional[float] = None

    def blocks_as_dicts(self) -> List[Dict[str, Any]]:
        payload: List[Dict[str, Any]] = []
        for block in self.blocks:
            entry: Dict[str, Any] = {"text": block.text}
            if block.bbox is not None:
                entry["bbox"] = {"x": block.bbox.x, "y": block.bbox.y, "w": block.bbox.w, "h": block.bbox.h}
            payload.append(entry)
        return payload


def extract_ocr(
    image_input: Union[str, bytes],
    *,
    engine: Optional[str] = None,
    language: Optional[str] = None,
) -> OcrResult:
    """Recognise the text of a coupon image.

    Parameters
    ----------
    image_input:
        Raw image bytes, an ``http(s)`` URL, or a base64 encoded payload.
    engine:
        ``rapidocr`` or ``local``; defaults to ``OCR_ENGINE``.
    language:
        Tesseract language code; defaults to ``OCR_LANGUAGE``.
    """

    binary, _ = _load_bytes(image_input)
    result = _perform_ocr(binary, engine=engine, language=language)
    if not result.text.strip():
        raise OCRDecodeError("empty_ocr_text")
    return result


def _load_bytes(image_input: Union[str, bytes]) -> Tuple[bytes, str]:
    if isinstance(image_input, (bytes, bytearray)):
        return bytes(image_input), "bytes"

    if isinstance(image_input, str):
        trimmed = image_input.strip()
        if trimmed.startswith("http://") or trimmed.startswith("https://"):
            try:
                response = requests.get(trimmed, timeout=FETCH_TIMEOUT)
                response.raise_for_status()
            except requests.RequestException as exc:
                raise ImageFetchError("fetch_failed") from exc
            return response.content, trimmed

        try:
            return base64.b64decode(trimmed, validate=True), "base64"
        except ValueError as exc:
            raise OCRDecodeError("invalid_base64") from exc

    raise OCRDecodeError("unsupported_input_type")


def _perform_ocr(binary: bytes, *, engine: Optional[str] = None, language: Optional[str] = None) -> OcrResult:
    selected = (engine or os.getenv("OCR_ENGINE", "rapidocr")).strip().lower() or "rapidocr"
    if selected == "rapidocr":
        try:
            return _ocr_rapidocr(binary)
        except (OCRServiceError, OCRDecodeError) as exc:
            LOGGER.warning(
                "rapidocr_failed_falling_back: %s",
                exc,
                exc_info=LOGGER.isEnabledFor(logging.DEBUG),
            )
            return _ocr_local(binary, language=language)
    if selected == "local":
        return _ocr_local(binary, language=language)
    raise OCRServiceError(f"unknown_ocr_engine:{selected}")


def _clamp(value: float, upper: float) -> float:
    return min(max(value, 0.0), upper)


def _normalised_bbox(left: float, top: float, right: float, bottom: float, size: Tuple[int, int]) -> BBox:
    """Pixel box to image-relative box; parts outside the image are cut off."""

    width, height = size
    width = width or 1
    height = height or 1
    left, right = _clamp(left, width), _clamp(right, width)
    top, bottom = _clamp(top, height), _clamp(bottom, height)
    return BBox(
        x=left / width,
        y=top / height,
        w=max(0.0, (right - left) / width),
        h=max(0.0, (bottom - top) / height),
    )


def _result_from_lines(entries: Sequence[Tuple[str, BBox, Optional[float]]]) -> OcrResult:
    blocks: List[OcrLine] = []
    scores: List[float] = []
    for text, bbox, score in entries:
        for line in normalize_lines(text):
            blocks.append(OcrLine(text=line, bbox=bbox))
        if score is not None:
            scores.append(score)
    confidence = sum(scores) / len(scores) if scores else None
    return OcrResult(text="\n".join(block.text for block in blocks), blocks=blocks, confidence=confidence)


def _ocr_local(binary: bytes, *, language: Optional[str] = None) -> OcrResult:
    if not _PYTESSERACT_AVAILABLE or pytesseract is None:
        raise OCRServiceError("pytesseract_not_installed")
    image = _image_from_bytes(binary)
    lang = (language or os.getenv("OCR_LANGUAGE", "eng")).strip() or "eng"
    try:
        data = pytesseract.image_to_data(image, lang=lang, output_type=pytesseract.Output.DICT)
    except pytesseract.TesseractNotFoundError as exc:
        raise OCRServiceError("tesseract_not_found") from exc
    except pytesseract.TesseractError as exc:
        raise OCRServiceError(f"tesseract_error:{exc}") from exc

    # Tesseract reports words; group them back into lines.
    grouped: Dict[Tuple[int, int, int], Dict[str, Any]] = {}
    for index, word in enumerate(data.get("text", [])):
        word = (word or "").strip()
        if not word:
            continue
        key = (int(data["block_num"][index]), int(data["par_num"][index]), int(data["line_num"][index]))
        left = float(data["left"][index])
        top = float(data["top"][index])
        right = left + float(data["width"][index])
        bottom = top + float(data["height"][index])
        entry = grouped.setdefault(
            key, {"words": [], "box": [left, top, right, bottom], "conf": []}
        )
        entry["words"].append(word)
        box = entry["box"]
        entry["box"] = [min(box[0], left), min(box[1], top), max(box[2], right), max(box[3], bottom)]
        conf = float(data["conf"][index])
        if conf >= 0:
            entry["conf"].append(conf / 100.0)

    lines: List[Tuple[str, BBox, Optional[float]]] = []
    for entry in grouped.values():
        conf_values = entry["conf"]
        lines.append(
            (
                " ".join(entry["words"]),
                _normalised_bbox(*entry["box"], size=image.size),
                sum(conf_values) / len(conf_values) if conf_values else None,
            )
        )
    return _result_from_lines(lines)


def _ocr_rapidocr(binary: bytes) -> OcrResult:
    if not _RAPIDOCR_AVAILABLE or RapidOCR is None:
        raise OCRServiceError("rapidocr_not_installed")
    if not _NUMPY_AVAILABLE or np is None:
        raise OCRServiceError("rapidocr_numpy_missing")
    image = _image_from_bytes(binary)
    engine = _get_rapidocr()
    try:
        result, _ = engine(np.array(image))
    except Exception as exc:  # pragma: no cover - rapidocr runtime failure
        raise OCRServiceError("rapidocr_execution_failed") from exc
    if not result:
        raise OCRDecodeError("rapidocr_empty_result")

    lines: List[Tuple[str, BBox, Optional[float]]] = []
    for entry in result:
        # Each entry is [quadrilateral, text, score].
        if not isinstance(entry, (list, tuple)) or len(entry) < 2:
            continue
        box, text = entry[0], entry[1]
        if not isinstance(text, str) or not text.strip():
            continue
        xs = [float(point[0]) for point in box]
        ys = [float(point[1]) for point in box]
        score = float(entry[2]) if len(entry) > 2 and entry[2] is not None else None
        lines.append((text, _normalised_bbox(min(xs), min(ys), max(xs), max(ys), size=image.size), score))
    if not lines:
        raise OCRDecodeError("rapidocr_no_text")
    return _result_from_lines(lines)


def _get_rapidocr() -> Any:
    global _RAPIDOCR_ENGINE
    if _RAPIDOCR_ENGINE is None:
        _RAPIDOCR_ENGINE = RapidOCR(det_use_cuda=False, rec_use_cuda=False, cls_use_cuda=False)
    return _RAPIDOCR_ENGINE


def _image_from_bytes(binary: bytes) -> Image.Image:
    try:
        image = Image.open(BytesIO(binary))
        image.load()
    except UnidentifiedImageError as exc:
        raise OCRDecodeError("unsupported_image_format") from exc
    except OSError as exc:  # pragma: no cover - truncated or corrupt files
        raise OCRDecodeError("image_open_failed") from exc
    return image.convert("RGB")


__all__ = [
    "ImageFetchError",
    "OCRDecodeError",
    "OCRServiceError",
    "OcrResult",
    "extract_ocr",
]
