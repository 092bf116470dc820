from __future__ import annotations

import base64
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest

from coupon_capture import ocr_extract
from coupon_capture.ocr_extract import OCRDecodeError, OCRServiceError, OcrResult
from coupon_capture.parsing.models import BBox, OcrLine


class FakeImage:
    mode = "L"
    size = (200, 100)

    def __init__(self, captured: Dict[str, Any]) -> None:
        self._captured = captured

    def load(self) -> None:
        self._captured["loaded"] = True

    def convert(self, mode: str) -> "FakeImage":
        self._captured["converted_to"] = mode
        self.mode = mode
        return self


def _patch_image(monkeypatch: pytest.MonkeyPatch, captured: Dict[str, Any]) -> None:
    class FakeImageModule:
        Image = FakeImage

        @staticmethod
        def open(_: Any) -> FakeImage:
            captured["opened"] = True
            return FakeImage(captured)

    monkeypatch.setattr(ocr_extract, "Image", FakeImageModule)


def _fake_pytesseract(captured: Dict[str, Any]) -> SimpleNamespace:
    words = {
        "text": ["HOT", "DEAL", "", "20%", "OFF"],
        "block_num": [1, 1, 1, 1, 1],
        "par_num": [1, 1, 1, 1, 1],
        "line_num": [1, 1, 1, 2, 2],
        "left": [10, 55, 0, 20, 70],
        "top": [5, 7, 0, 50, 50],
        "width": [40, 55, 0, 30, 50],
        "height": [20, 18, 0, 10, 10],
        "conf": ["90", "80", "-1", "70", "60"],
    }

    def image_to_data(image: Any, lang: str, output_type: str) -> Dict[str, List[Any]]:
        captured["lang"] = lang
        captured["output_type"] = output_type
        return words

    class TesseractError(Exception):
        pass

    class TesseractNotFoundError(Exception):
        pass

    return SimpleNamespace(
        Output=SimpleNamespace(DICT="dict"),
        image_to_data=image_to_data,
        TesseractError=TesseractError,
        TesseractNotFoundError=TesseractNotFoundError,
    )


def _patch_tesseract(monkeypatch: pytest.MonkeyPatch, captured: Dict[str, Any]) -> None:
    monkeypatch.setattr(ocr_extract, "pytesseract", _fake_pytesseract(captured))
    monkeypatch.setattr(ocr_extract, "_PYTESSERACT_AVAILABLE", True)


def _box(line: OcrLine) -> tuple:
    assert line.bbox is not None
    return (line.bbox.x, line.bbox.y, line.bbox.w, line.bbox.h)


def _patch_rapidocr(monkeypatch: pytest.MonkeyPatch, result: Any) -> None:
    monkeypatch.setattr(ocr_extract, "_RAPIDOCR_AVAILABLE", True)
    monkeypatch.setattr(ocr_extract, "_NUMPY_AVAILABLE", True)
    monkeypatch.setattr(ocr_extract, "RapidOCR", object)
    monkeypatch.setattr(ocr_extract, "np", SimpleNamespace(array=lambda image: image))
    monkeypatch.setattr(ocr_extract, "_get_rapidocr", lambda: (lambda _: (result, 0.1)))


def test_local_engine_groups_words_into_lines(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: Dict[str, Any] = {}
    _patch_image(monkeypatch, captured)
    _patch_tesseract(monkeypatch, captured)

    result = ocr_extract.extract_ocr(b"binary", engine="local", language="eng")

    assert captured["opened"] is True
    assert captured["converted_to"] == "RGB"
    assert captured["lang"] == "eng"
    assert captured["output_type"] == "dict"
    assert result.text == "HOT DEAL\n20% OFF"

    first, second = result.blocks
    assert first.text == "HOT DEAL"
    assert _box(first) == pytest.approx((0.05, 0.05, 0.5, 0.2))
    assert second.text == "20% OFF"
    assert _box(second) == pytest.approx((0.1, 0.5, 0.5, 0.1))
    # line confidences 0.85 and 0.65; the "-1" separator row is ignored
    assert result.confidence == pytest.approx(0.75)


def test_local_engine_language_falls_back_to_env(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: Dict[str, Any] = {}
    _patch_image(monkeypatch, captured)
    _patch_tesseract(monkeypatch, captured)
    monkeypatch.setenv("OCR_LANGUAGE", "spa")

    ocr_extract.extract_ocr(b"binary", engine="local")

    assert captured["lang"] == "spa"


def test_local_engine_missing_binary(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: Dict[str, Any] = {}
    _patch_image(monkeypatch, captured)
    fake = _fake_pytesseract(captured)

    def missing(*args: Any, **kwargs: Any) -> None:
        raise fake.TesseractNotFoundError()

    fake.image_to_data = missing
    monkeypatch.setattr(ocr_extract, "pytesseract", fake)
    monkeypatch.setattr(ocr_extract, "_PYTESSERACT_AVAILABLE", True)

    with pytest.raises(OCRServiceError, match="tesseract_not_found"):
        ocr_extract.extract_ocr(b"binary", engine="local")


def test_rapidocr_boxes_are_normalised(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: Dict[str, Any] = {}
    _patch_image(monkeypatch, captured)
    _patch_rapidocr(
        monkeypatch,
        [
            [[[20, 10], [180, 10], [180, 30], [20, 30]], "BURGER BARN", 0.9],
            [[[40, 60], [120, 60], [120, 70], [40, 70]], "$5 OFF", 0.7],
            [[[0, 0], [1, 0], [1, 1], [0, 1]], "   ", 0.1],
        ],
    )

    result = ocr_extract.extract_ocr(b"binary", engine="rapidocr")

    assert result.text == "BURGER BARN\n$5 OFF"
    assert _box(result.blocks[0]) == pytest.approx((0.1, 0.1, 0.8, 0.2))
    assert result.confidence == pytest.approx(0.8)


def test_rapidocr_failure_falls_back_to_local(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: Dict[str, Any] = {}
    _patch_image(monkeypatch, captured)
    _patch_tesseract(monkeypatch, captured)
    _patch_rapidocr(monkeypatch, [])

    result = ocr_extract.extract_ocr(b"binary", engine="rapidocr")

    assert result.text == "HOT DEAL\n20% OFF"


def test_unknown_engine_is_rejected() -> None:
    with pytest.raises(OCRServiceError, match="unknown_ocr_engine:paddle"):
        ocr_extract.extract_ocr(b"binary", engine="paddle")


def test_empty_text_is_an_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(ocr_extract, "_perform_ocr", lambda binary, **_: OcrResult(text="  "))

    with pytest.raises(OCRDecodeError, match="empty_ocr_text"):
        ocr_extract.extract_ocr(b"binary")


def test_invalid_image_bytes() -> None:
    with pytest.raises(OCRDecodeError, match="unsupported_image_format"):
        ocr_extract._image_from_bytes(b"definitely not an image")


def test_load_bytes_accepts_base64() -> None:
    encoded = base64.b64encode(b"coupon-bytes").decode("ascii")
    assert ocr_extract._load_bytes(encoded) == (b"coupon-bytes", "base64")
    assert ocr_extract._load_bytes(b"raw") == (b"raw", "bytes")

    with pytest.raises(OCRDecodeError, match="invalid_base64"):
        ocr_extract._load_bytes("not base64!!")


def test_blocks_as_dicts() -> None:
    result = OcrResult(
        text="A\nB",
        blocks=[OcrLine(text="A", bbox=BBox(0.1, 0.2, 0.3, 0.4)), OcrLine(text="B")],
    )
    assert result.blocks_as_dicts() == [
        {"text": "A", "bbox": {"x": 0.1, "y": 0.2, "w": 0.3, "h": 0.4}},
        {"text": "B"},
    ]


def test_rapidocr_boxes_past_the_edge_are_clipped(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: Dict[str, Any] = {}
    _patch_image(monkeypatch, captured)
    _patch_rapidocr(
        monkeypatch,
        [[[[-10, -5], [230, -5], [230, 120], [-10, 120]], "HUGE BANNER", 0.9]],
    )

    result = ocr_extract.extract_ocr(b"binary", engine="rapidocr")

    assert _box(result.blocks[0]) == pytest.approx((0.0, 0.0, 1.0, 1.0))


def test_load_bytes_fetches_urls(monkeypatch: pytest.MonkeyPatch) -> None:
    class FakeResponse:
        content = b"remote-bytes"

        def raise_for_status(self) -> None:
            return None

    seen: Dict[str, Any] = {}

    def fake_get(url: str, timeout: int) -> FakeResponse:
        seen["url"] = url
        return FakeResponse()

    monkeypatch.setattr(ocr_extract.requests, "get", fake_get)

    url = "https://cdn.example.com/coupon.png"
    assert ocr_extract._load_bytes(f" {url} ") == (b"remote-bytes", url)
    assert seen["url"] == url


def test_load_bytes_fetch_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    def offline(url: str, timeout: int) -> None:
        raise ocr_extract.requests.ConnectionError("offline")

    monkeypatch.setattr(ocr_extract.requests, "get", offline)

    with pytest.raises(ocr_extract.ImageFetchError, match="fetch_failed"):
        ocr_extract._load_bytes("https://cdn.example.com/coupon.png")
