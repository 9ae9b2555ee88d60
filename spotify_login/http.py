from __future__ import annotations

import json

import httpx

from .constants import LOGGER

OAUTH_ERROR = "oauth_error"
API_ERROR = "api_error"
HTTP_ERROR = "http_error"


def classify_error_body(status_code: int, body: str) -> tuple[str, str]:
    """Map a failed token endpoint response to ``(kind, message)``.

    Spotify answers token requests with the OAuth error shape
    (``error`` + ``error_description``) but some edge proxies use the Web API
    shape (``{"error": {"status": ..., "message": ...}}``). Anything that is
    not JSON is reported verbatim.
    """
    generic = (HTTP_ERROR, f"HTTP {status_code} - {body}")
    try:
        payload = json.loads(body)
    except ValueError:
        return generic
    if not isinstance(payload, dict):
        return generic

    if "error_description" in payload:
        description = payload["error_description"]
        if not isinstance(description, str):
            description = "Unknown error"
        return OAUTH_ERROR, f"Spotify OAuth error: {description}"

    if "error" in payload:
        error = payload["error"]
        if isinstance(error, dict) and "message" in error:
            message = error["message"]
            if not isinstance(message, str):
                message = "Unknown error"
            return API_ERROR, f"Spotify API error: {message}"
        if not isinstance(error, str):
            error = "Unknown error"
        return API_ERROR, f"Spotify error: {error}"

    return generic


async def describe_error_response(response: httpx.Response) -> tuple[str, str]:
    body = (await response.aread()).decode("utf-8", errors="replace")
    kind, message = classify_error_body(response.status_code, body)

    LOGGER.warning(
        "Token endpoint error status=%s endpoint=%s kind=%s",
        response.status_code,
        response.request.url,
        kind,
    )
    return kind, message
