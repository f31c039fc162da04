# formrelay/entrypoints/api/routers/endpoints.py
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ....adapters.repos.submissions import SubmissionStore
from ....domain.types import EndpointRecord
from ....schemas import WebhookEndpointCreate, WebhookEndpointOut, WebhookEndpointUpdate
from ..deps import get_session, require_api_key

router = APIRouter(tags=["webhook-endpoints"], dependencies=[Depends(require_api_key)])


def _out(e: EndpointRecord) -> WebhookEndpointOut:
    return WebhookEndpointOut(key=e.key, endpoint_url=e.endpoint_url, enabled=e.enabled)


@router.post("/webhook-endpoints", response_model=WebhookEndpointOut)
async def create_webhook_endpoint(
    body: WebhookEndpointCreate,
    session: AsyncSession = Depends(get_session),
) -> WebhookEndpointOut:
    store = SubmissionStore(session)
    key = body.key or uuid.uuid4().hex

    if await store.find_webhook_endpoint(key) is not None:
        raise HTTPException(
            status_code=409,
            detail="Webhook endpoint key already exists. Use PATCH to update/disable.",
        )

    endpoint = await store.create_webhook_endpoint(key, body.endpoint_url, enabled=body.enabled)
    await store.commit()
    return _out(endpoint)


@router.patch("/webhook-endpoints/{key}", response_model=WebhookEndpointOut)
async def update_webhook_endpoint(
    key: str,
    body: WebhookEndpointUpdate,
    session: AsyncSession = Depends(get_session),
) -> WebhookEndpointOut:
    store = SubmissionStore(session)
    endpoint = await store.update_webhook_endpoint(key, enabled=body.enabled, endpoint_url=body.endpoint_url)
    if endpoint is None:
        raise HTTPException(status_code=404, detail="Webhook endpoint not found")

    await store.commit()
    return _out(endpoint)


@router.get("/webhook-endpoints", response_model=list[WebhookEndpointOut])
async def list_webhook_endpoints(
    session: AsyncSession = Depends(get_session),
) -> list[WebhookEndpointOut]:
    return [_out(e) for e in await SubmissionStore(session).list_webhook_endpoints()]
