"""Application settings management for the coupon capture service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

DEFAULT_GEOCODE_TIMEOUT = 4.0
_OCR_ENGINES = ("rapidocr", "local")


@dataclass(frozen=True)
class Settings:
    backend_api_base: str
    backend_api_key: str
    ocr_engine: str = "rapidocr"
    ocr_language: str = "eng"
    geocode_api_key: Optional[str] = None
    geocode_timeout: float = DEFAULT_GEOCODE_TIMEOUT
    brand_hints: Tuple[str, ...] = field(default_factory=tuple)
    timezone: Optional[str] = None

    @staticmethod
    def _require_env(name: str) -> str:
        value = os.getenv(name)
        if value is None or not value.strip():
            raise RuntimeError(f"Environment variable {name} is required")
        return value.strip()

    @staticmethod
    def _optional_env(name: str) -> Optional[str]:
        value = os.getenv(name)
        if value is None or not value.strip():
            return None
        return value.strip()

    @classmethod
    def load(cls) -> "Settings":
        _ensure_env_file_loaded()
        raw_base = cls._require_env("BACKEND_API_BASE")
        if not raw_base.startswith("https://"):
            raise RuntimeError("BACKEND_API_BASE must start with https://")
        # Accept either the project root or the `/rest/v1` root; the client
        # always appends `/rest/v1` itself.
        base = raw_base.rstrip("/")
        if base.endswith("/rest/v1"):
            base = base[: -len("/rest/v1")]
        backend_api_base = base.rstrip("/")

        api_key = cls._require_env("BACKEND_API_KEY")

        ocr_engine = (cls._optional_env("OCR_ENGINE") or "rapidocr").lower()
        if ocr_engine not in _OCR_ENGINES:
            raise RuntimeError(f"OCR_ENGINE must be one of {', '.join(_OCR_ENGINES)}")
        ocr_language = cls._optional_env("OCR_LANGUAGE") or "eng"

        raw_timeout = cls._optional_env("GEOCODE_TIMEOUT")
        try:
            geocode_timeout = float(raw_timeout) if raw_timeout else DEFAULT_GEOCODE_TIMEOUT
        except ValueError as exc:
            raise RuntimeError("GEOCODE_TIMEOUT must be a number of seconds") from exc
        if geocode_timeout <= 0:
            raise RuntimeError("GEOCODE_TIMEOUT must be positive")

        raw_brands = cls._optional_env("BRAND_HINTS") or ""
        brand_hints = tuple(name.strip() for name in raw_brands.split(",") if name.strip())

        return cls(
            backend_api_base=backend_api_base,
            backend_api_key=api_key,
            ocr_engine=ocr_engine,
            ocr_language=ocr_language,
            geocode_api_key=cls._optional_env("GEOCODE_API_KEY"),
            geocode_timeout=geocode_timeout,
            brand_hints=brand_hints,
            timezone=cls._optional_env("TZ"),
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings.load()


def reset_settings_state() -> None:
    """Reset cached settings and environment file state (for tests)."""
    global _ENV_FILE_LOADED
    _ENV_FILE_LOADED = False
    get_settings.cache_clear()


_ENV_FILE_LOADED = False


def _ensure_env_file_loaded() -> None:
    global _ENV_FILE_LOADED
    if _ENV_FILE_LOADED:
        return
    candidates = [Path.cwd() / ".env", Path(__file__).resolve().parent.parent / ".env"]
    loaded = False
    for env_path in candidates:
        if env_path.exists():
            load_dotenv(dotenv_path=env_path, override=False)
            loaded = True
    if not loaded:
        load_dotenv(override=False)
    _ENV_FILE_LOADED = True


__all__ = ["Settings", "get_settings", "reset_settings_state"]
