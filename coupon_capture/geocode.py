"""Google Geocoding API client used to validate address candidates."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import requests

from .parsing.models import GeoPoint
from .settings import Settings

LOGGER = logging.getLogger(__name__)

GEOCODE_API_URL = "https://maps.googleapis.com/maps/api/geocode/json"


class GeocodeError(RuntimeError):
    """Raised when the geocoding service cannot answer a lookup."""

    def __init__(self, message: str, *, status: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status


def _parse_results(data: Dict[str, Any]) -> List[GeoPoint]:
    points: List[GeoPoint] = []
    for result in data.get("results") or []:
        if not isinstance(result, dict):
            continue
        location = (result.get("geometry") or {}).get("location") or {}
        try:
            points.append(GeoPoint(latitude=float(location["lat"]), longitude=float(location["lng"])))
        except (KeyError, TypeError, ValueError):
            continue
    return points


class GoogleGeocoder:
    """Resolve free-text addresses to coordinates.

    Instances are awaitable callables so they plug straight into
    :func:`coupon_capture.parsing.extract_coupon_fields`; the blocking HTTP
    call runs in a worker thread.
    """

    def __init__(self, api_key: str, *, timeout: float = 4.0, url: str = GEOCODE_API_URL) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._url = url

    def lookup(self, address: str) -> List[GeoPoint]:
        params = {"address": address, "key": self._api_key}
        try:
            response = requests.get(self._url, params=params, timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise GeocodeError("geocode_request_failed") from exc
        try:
            data = response.json()
        except ValueError as exc:
            raise GeocodeError("geocode_invalid_json") from exc

        status = data.get("status")
        if status == "ZERO_RESULTS":
            return []
        if status != "OK":
            LOGGER.warning("Geocoding API returned status=%s message=%s", status, data.get("error_message"))
            raise GeocodeError("geocode_status_error", status=status)
        return _parse_results(data)

    async def __call__(self, address: str) -> List[GeoPoint]:
        return await asyncio.to_thread(self.lookup, address)


def build_geocoder(settings: Settings) -> Optional[GoogleGeocoder]:
    if not settings.geocode_api_key:
        return None
    return GoogleGeocoder(settings.geocode_api_key, timeout=settings.geocode_timeout)


__all__ = ["GEOCODE_API_URL", "GeocodeError", "GoogleGeocoder", "build_geocoder"]
