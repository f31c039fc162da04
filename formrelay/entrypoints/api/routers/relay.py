# formrelay/entrypoints/api/routers/relay.py
from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import parse_qsl

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ....domain.phone import is_valid_phone, normalize_phone
from ....domain.request import determine_source, extract_domain_from_referer, extract_verification_key
from ....domain.types import VERIFICATION_SOURCES, Source, VerificationEvent
from ....errors import ErrorCode, InvalidRequestError, RelayError, StoreConnectionError, error_body
from ....service_layer.intake import handle_submission
from ....service_layer.verification import handle_verification
from ..deps import get_manager

log = logging.getLogger(__name__)

router = APIRouter(tags=["relay"])


async def _parse_request(request: Request) -> tuple[str | None, str, dict[str, Any]]:
    """
    Returns (phone, source, form data).
    GET is the Telegram bot callback; POST is either the form or WhatsApp.
    """
    if request.method == "GET":
        return request.query_params.get("phone"), Source.telegram.value, {}

    raw = await request.body()
    content_type = request.headers.get("content-type")
    if not content_type:
        log.warning("No content-type header provided")

    try:
        text = raw.decode("utf-8")
        if content_type and "application/json" in content_type:
            data = json.loads(text) if text else {}
        else:
            data = dict(parse_qsl(text, keep_blank_values=True))
    except ValueError as e:
        log.error("Request parsing failed: %r", e)
        raise InvalidRequestError("Invalid request data format") from e

    if not isinstance(data, dict):
        raise InvalidRequestError("Invalid request data format")

    phone = data.get("Phone") or data.get("phone")
    return phone, determine_source(data, request.headers), data


async def _handle(request: Request, session: AsyncSession) -> dict[str, Any]:
    key = extract_verification_key(request.query_params, request.headers)
    phone, source, data = await _parse_request(request)

    normalized = normalize_phone(phone)
    if not is_valid_phone(normalized):
        log.error("Invalid phone format: %r", phone)
        raise InvalidRequestError("Invalid phone format")
    assert normalized is not None
    log.info("Processing %s request for phone %s", source, normalized)

    if source in VERIFICATION_SOURCES:
        result = await handle_verification(
            session,
            VerificationEvent(phone=normalized, source=source, key=key),
            transport=request.app.state.webhook_transport,
        )
        return result.to_body()

    if source == Source.tilda.value:
        return await handle_submission(
            session,
            phone=normalized,
            payload=data,
            verification_key=key,
            source_domain=extract_domain_from_referer(request.headers),
        )

    raise InvalidRequestError(f"Unsupported source: {source}")


@router.options("/")
def preflight() -> Response:
    # bare OPTIONS without CORS preflight headers; real preflights never get here
    return Response(status_code=204)


@router.api_route("/", methods=["GET", "POST"])
async def relay(request: Request) -> JSONResponse:
    manager = get_manager(request)
    log.info("Incoming %s %s (query=%s)", request.method, request.url.path, dict(request.query_params))

    try:
        # opening the session acquires the store: no store, no service,
        # before the request body is touched
        async with manager.session() as session:
            body = await _handle(request, session)
        return JSONResponse(body)

    except StoreConnectionError as e:
        log.error("Store unavailable: %s", e)
        return JSONResponse(
            status_code=503,
            content=error_body(ErrorCode.SERVICE_UNAVAILABLE, "Service temporarily unavailable", retryable=True),
        )
    except RelayError as e:
        log.error("Request failed: %s", e)
        return JSONResponse(
            status_code=200,
            content=error_body(ErrorCode.PROCESSING_ERROR, str(e) or "Request processing error"),
        )
