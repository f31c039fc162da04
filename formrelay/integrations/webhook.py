# formrelay/integrations/webhook.py
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

import httpx

from ..adapters.repos.submissions import SubmissionStore
from ..config import settings
from ..errors import DeliveryError, EndpointDisabledError, EndpointNotFoundError
from .base import DeliveryResult

log = logging.getLogger(__name__)

_BODY_PREVIEW = 500


def build_payload(raw: dict[str, Any], *, phone: str, source: str, now: datetime) -> dict[str, Any]:
    """
    Everything the form sent (COOKIES included) plus the verification fields.
    Verification fields win on key collision.
    """
    return {
        **raw,
        "verification_phone": phone,
        "verification_source": source,
        "verification_timestamp": now.isoformat(timespec="milliseconds") + "Z",
        "verified": True,
    }


class WebhookDispatcher:
    """
    Resolves the client's endpoint for a verification key and makes exactly
    one POST to it. No retries: a failed delivery is the caller's to record.
    """

    def __init__(
        self,
        store: SubmissionStore,
        *,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.store = store
        self.timeout_s = timeout_s or settings.WEBHOOK_TIMEOUT_S
        self._transport = transport

    async def resolve_endpoint(self, key: str | None) -> str:
        if not key:
            log.error("No verification key provided")
            raise EndpointNotFoundError(key)

        endpoint = await self.store.find_webhook_endpoint(key)
        if endpoint is None:
            log.error("No webhook endpoint found for key %s", key)
            raise EndpointNotFoundError(key)
        if not endpoint.enabled:
            log.error("Webhook endpoint disabled for key %s", key)
            raise EndpointDisabledError(key)

        return endpoint.endpoint_url

    async def deliver(self, url: str, payload: dict[str, Any], cookies: str | None = None) -> DeliveryResult:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if cookies:
            # session continuity with the client's site
            headers["Cookie"] = cookies

        log.info("Sending webhook to %s (cookies=%s, fields=%d)", url, bool(cookies), len(payload))

        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                r = await client.post(url, content=body, headers=headers)
        except httpx.TimeoutException as e:
            log.error("Webhook request to %s timed out", url)
            raise DeliveryError("Request timeout") from e
        except httpx.HTTPError as e:
            log.error("Webhook request to %s failed: %r", url, e)
            raise DeliveryError(f"Request failed: {e}") from e

        text = r.text[:_BODY_PREVIEW]
        if 200 <= r.status_code < 300:
            log.info("Webhook delivered to %s: HTTP %d", url, r.status_code)
            return DeliveryResult(ok=True, status_code=r.status_code, body=text)

        log.error("Webhook %s responded with status %d", url, r.status_code)
        raise DeliveryError(f"Webhook responded with status {r.status_code}", status_code=r.status_code, body=text)
