"""REST table client for the coupon backend (PostgREST-style API)."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

import requests
from requests import Response

from .settings import Settings, get_settings

LOGGER = logging.getLogger(__name__)

JsonDict = Dict[str, Any]
Rows = List[JsonDict]


class BackendAPIError(RuntimeError):
    """Raised when backend table operations fail."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, response_text: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text


def _build_base_url(settings: Settings) -> str:
    base = settings.backend_api_base.rstrip("/")
    return f"{base}/rest/v1"


def _headers(settings: Settings) -> Dict[str, str]:
    return {
        "apikey": settings.backend_api_key,
        "Authorization": f"Bearer {settings.backend_api_key}",
        "Content-Type": "application/json",
        "Prefer": "return=representation",
    }


def _handle_response(response: Response) -> Rows:
    try:
        response.raise_for_status()
    except requests.HTTPError as exc:
        LOGGER.error(
            "Backend API error: status=%s body=%s", response.status_code, response.text.strip()
        )
        raise BackendAPIError(
            "backend_api_error",
            status_code=response.status_code,
            response_text=response.text,
        ) from exc
    if not response.content:
        return []
    try:
        payload = response.json()
    except ValueError as exc:
        raise BackendAPIError("invalid_json_response", response_text=response.text) from exc
    if isinstance(payload, dict):
        return [payload]
    if isinstance(payload, list):
        return [row for row in payload if isinstance(row, dict)]
    raise BackendAPIError("unexpected_response_shape", response_text=response.text)


def _request(
    method: str,
    table: str,
    *,
    params: Optional[Mapping[str, Any]] = None,
    json_body: Optional[Any] = None,
    settings: Optional[Settings] = None,
    timeout: int = 30,
) -> Rows:
    settings = settings or get_settings()
    url = f"{_build_base_url(settings)}/{table.lstrip('/')}"
    try:
        response = requests.request(
            method,
            url,
            headers=_headers(settings),
            params=params,
            json=json_body,
            timeout=timeout,
        )
    except requests.RequestException as exc:
        LOGGER.error("Backend API request failure: %s", exc)
        raise BackendAPIError("request_failed") from exc
    return _handle_response(response)


def eq(value: Any) -> str:
    """PostgREST equality filter value."""

    return f"eq.{value}"


def backend_insert(table: str, payload: Mapping[str, Any], *, settings: Optional[Settings] = None) -> JsonDict:
    rows = _request("POST", table, json_body=dict(payload), settings=settings)
    if not rows:
        raise BackendAPIError("missing_inserted_row")
    return rows[0]


def backend_select(
    table: str,
    *,
    filters: Optional[Mapping[str, str]] = None,
    columns: str = "*",
    order: Optional[str] = None,
    limit: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> Rows:
    params: Dict[str, Any] = {"select": columns}
    params.update(filters or {})
    if order:
        params["order"] = order
    if limit is not None:
        params["limit"] = limit
    return _request("GET", table, params=params, settings=settings)


def backend_delete(table: str, *, filters: Mapping[str, str], settings: Optional[Settings] = None) -> Rows:
    if not filters:
        raise ValueError("backend_delete requires at least one filter")
    return _request("DELETE", table, params=dict(filters), settings=settings)


__all__ = [
    "BackendAPIError",
    "backend_delete",
    "backend_insert",
    "backend_select",
    "eq",
]
