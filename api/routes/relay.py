"""
Model relay endpoint.

/api/relay - Forward a chat request to the model provider.

The relay is thin. It attaches a credential (the server key in
"managed" mode, the caller's key in "byok" mode) and pins max_tokens. It
forwards the optional output_config and passes the provider's status and
body back untouched. It never retries, caches or rate-limits.

Every response carries permissive CORS headers.
"""
import json
import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from config.settings import settings

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["relay"])

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

# Optional transport override (tests inject httpx.MockTransport here)
_upstream_transport: Optional[httpx.AsyncBaseTransport] = None


def cors_headers() -> dict:
    """Headers attached to every relay response."""
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
        "Content-Type": "application/json",
    }


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code, headers=cors_headers())


def get_upstream_client() -> httpx.AsyncClient:
    """HTTP client for the provider call."""
    return httpx.AsyncClient(timeout=settings.request_timeout, transport=_upstream_transport)


STRING_FIELDS = ("mode", "apiKey", "model")


def invalid_field(payload: dict) -> Optional[str]:
    """Name of the first optional string field holding a non-string value, if any."""
    for name in STRING_FIELDS:
        value = payload.get(name)
        if value is not None and not isinstance(value, str):
            return name
    return None


def build_upstream_request(payload: dict) -> tuple[dict, dict]:
    """
    Turn a relay payload into provider headers and body.

    Returns:
        (headers, body)
    """
    mode = payload.get("mode")
    api_key = payload.get("apiKey")
    key = api_key if mode == "byok" and api_key else settings.anthropic_api_key

    body = {
        "model": payload.get("model") or settings.model,
        "max_tokens": settings.relay_max_tokens,
        "messages": payload.get("messages"),
    }
    if payload.get("output_config"):
        body["output_config"] = payload["output_config"]

    headers = {
        "x-api-key": key,
        "content-type": "application/json",
        "anthropic-version": settings.anthropic_version,
    }
    return headers, body


@router.api_route("/relay", methods=ALL_METHODS)
async def relay(request: Request) -> Response:
    """
    **Relay a chat request** to the model provider.

    Request body:
    `{mode: "managed"|"byok", apiKey?, messages: [{role, content}], model, output_config?}`

    The response is the provider's status and body, verbatim.
    """
    if request.method == "OPTIONS":
        return Response(status_code=204, headers=cors_headers())

    if request.method != "POST":
        return _error("Method not allowed", 405)

    try:
        payload = json.loads(await request.body())
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error("Invalid JSON body", 400)
    if not isinstance(payload, dict):
        return _error("Invalid JSON body", 400)

    bad_field = invalid_field(payload)
    if bad_field:
        return _error(f"Field '{bad_field}' must be a string", 400)

    headers, body = build_upstream_request(payload)
    logger.debug(f"Relaying {payload.get('mode') or 'managed'} request for model {body['model']}")

    try:
        async with get_upstream_client() as client:
            upstream = await client.post(settings.upstream_url, headers=headers, json=body)
    except httpx.HTTPError as e:
        logger.error(f"Upstream request failed: {e}")
        return _error("Upstream request failed", 502)

    if upstream.status_code >= 400:
        logger.warning(f"Upstream returned HTTP {upstream.status_code}")

    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        headers=cors_headers(),
    )
