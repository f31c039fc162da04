# formrelay/service_layer/verification.py
from __future__ import annotations

import logging
from datetime import datetime

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from ..adapters.repos.submissions import SubmissionStore
from ..domain.types import MatchResult, MatchState, VerificationEvent, VerificationResult
from ..errors import DeliveryError, EndpointUnavailableError
from ..integrations.webhook import WebhookDispatcher, build_payload
from ..models import utcnow
from .audit import TIMEOUT_STATUS, AuditLogger
from .matcher import VerificationMatcher

log = logging.getLogger(__name__)


async def handle_verification(
    session: AsyncSession,
    event: VerificationEvent,
    *,
    now: datetime | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> VerificationResult:
    """
    Bot callback -> match -> audit -> (matched only) one webhook POST -> flags.

    Store errors propagate (including a failed audit insert). Endpoint
    lookups that come back empty/disabled and failed deliveries do not:
    they end as verified-but-not-delivered.
    """
    now = now or utcnow()
    store = SubmissionStore(session)
    audit = AuditLogger(store)

    match = await VerificationMatcher(store).resolve(event, now=now)

    if match.state is MatchState.unmatched:
        await audit.record(event.phone, event.source, found_in_submissions=False)
        return VerificationResult(
            status="success",
            message="Phone not found in forms",
            phone=event.phone,
            verified=False,
        )

    if match.state is MatchState.expired:
        await audit.record(event.phone, event.source, found_in_submissions=True, status=TIMEOUT_STATUS)
        return VerificationResult(
            status="timeout",
            message="Verification window expired",
            phone=event.phone,
            verified=False,
        )

    await audit.record(event.phone, event.source, found_in_submissions=True)
    return await _dispatch(store, match, event, now, WebhookDispatcher(store, transport=transport))


async def _dispatch(
    store: SubmissionStore,
    match: MatchResult,
    event: VerificationEvent,
    now: datetime,
    dispatcher: WebhookDispatcher,
) -> VerificationResult:
    submission = match.submission
    assert submission is not None

    try:
        url = await dispatcher.resolve_endpoint(match.effective_key)
    except EndpointUnavailableError as e:
        log.warning("Verified %s without delivery: %s", event.phone, e)
        await _persist_flags(store, event.phone, webhook_sent=False, key=match.effective_key)
        return VerificationResult(
            status="success",
            message="Phone verified, webhook not sent",
            phone=event.phone,
            verified=True,
            webhook_sent=False,
            error=str(e),
        )

    payload = build_payload(submission.raw_data, phone=event.phone, source=event.source, now=now)
    cookies = submission.cookies

    delivery_error: DeliveryError | None = None
    try:
        await dispatcher.deliver(url, payload, cookies)
    except DeliveryError as e:
        delivery_error = e
        log.error("Webhook failed for %s: %s (status=%s)", event.phone, e, e.status_code)

    await _persist_flags(store, event.phone, webhook_sent=delivery_error is None, key=match.effective_key)

    if delivery_error is not None:
        return VerificationResult(
            status="error",
            message="Verification completed but webhook failed",
            phone=event.phone,
            verified=True,
            webhook_sent=False,
            error=str(delivery_error),
        )

    return VerificationResult(
        status="success",
        message="Phone verified successfully",
        phone=event.phone,
        verified=True,
        webhook_sent=True,
        cookies_included=cookies is not None,
    )


async def _persist_flags(store: SubmissionStore, phone: str, *, webhook_sent: bool, key: str | None) -> None:
    # exactly one flag write per dispatched event
    await store.update_verification_flags(phone, verified=True, webhook_sent=webhook_sent, verification_key=key)
    await store.commit()
