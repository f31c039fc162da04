# formrelay/adapters/repos/submissions.py
from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from datetime import datetime
from typing import Any, Awaitable, TypeVar

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, DisconnectionError, InterfaceError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import settings
from ...domain.types import EndpointRecord, SubmissionRecord
from ...errors import StoreConnectionError, StoreError
from ...models import RawSubmission, VerificationAttempt, WebhookEndpoint, utcnow

log = logging.getLogger(__name__)

T = TypeVar("T")


def new_record_id() -> str:
    # ms timestamp keeps ids roughly sortable; suffix keeps concurrent inserts apart
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def _is_disconnect(e: SQLAlchemyError) -> bool:
    if isinstance(e, (DisconnectionError, InterfaceError)):
        return True
    return isinstance(e, DBAPIError) and bool(e.connection_invalidated)


def _decode_raw(raw: str | None, submission_id: str) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        log.error("Failed to parse raw_data for submission %s", submission_id)
        return {}
    return data if isinstance(data, dict) else {}


def _to_record(row: RawSubmission) -> SubmissionRecord:
    return SubmissionRecord(
        id=row.id,
        timestamp=row.timestamp,
        phone=row.phone,
        source=row.source,
        raw_data=_decode_raw(row.raw_data, row.id),
        verification_key=row.verification_key,
        phone_verified=bool(row.phone_verified),
        webhook_sent=bool(row.webhook_sent),
    )


class SubmissionStore:
    """
    Typed queries over raw_submissions / incoming_verification_attempts /
    webhook_endpoints.

    - Statements only; values always travel as bound parameters.
    - Flushes but does NOT commit (caller controls transaction boundaries).
    - Every call is bounded by DB_QUERY_TIMEOUT_S.
    - Connectivity failures surface as StoreConnectionError, everything else
      as StoreError.
    """

    def __init__(self, session: AsyncSession, timeout_s: float | None = None) -> None:
        self.session = session
        self.timeout_s = timeout_s or settings.DB_QUERY_TIMEOUT_S

    async def _run(self, op: str, aw: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(aw, timeout=self.timeout_s)
        except asyncio.TimeoutError as e:
            log.error("Store operation %s timed out after %.1fs", op, self.timeout_s)
            raise StoreError(f"{op} timed out") from e
        except SQLAlchemyError as e:
            log.error("Store operation %s failed: %r", op, e)
            if _is_disconnect(e):
                raise StoreConnectionError(f"{op}: connection lost") from e
            raise StoreError(f"{op} failed: {e}") from e

    # --- raw submissions ---

    async def insert_raw_submission(self, submission: SubmissionRecord) -> SubmissionRecord:
        row = RawSubmission(
            id=submission.id,
            timestamp=submission.timestamp,
            phone=submission.phone,
            source=submission.source,
            raw_data=json.dumps(submission.raw_data, ensure_ascii=False),
            verification_key=submission.verification_key,
            phone_verified=submission.phone_verified,
            webhook_sent=submission.webhook_sent,
        )
        self.session.add(row)
        await self._run("insert_raw_submission", self.session.flush())
        return submission

    async def find_latest_by_phone(self, phone: str) -> SubmissionRecord | None:
        if not phone:
            return None

        stmt = (
            select(RawSubmission)
            .where(RawSubmission.phone == phone)
            .order_by(RawSubmission.timestamp.desc())
            .limit(1)
        )
        result = await self._run("find_latest_by_phone", self.session.execute(stmt))
        row = result.scalars().first()
        return _to_record(row) if row is not None else None

    async def update_verification_flags(
        self,
        phone: str,
        *,
        verified: bool,
        webhook_sent: bool,
        verification_key: str | None = None,
    ) -> int:
        """
        Sets the flags on every submission for the phone. Plain assignment,
        so repeating the call with the same values changes nothing.
        """
        values: dict[str, Any] = {"phone_verified": verified, "webhook_sent": webhook_sent}
        if verification_key is not None:
            values["verification_key"] = verification_key

        stmt = update(RawSubmission).where(RawSubmission.phone == phone).values(**values)
        result = await self._run("update_verification_flags", self.session.execute(stmt))
        return int(result.rowcount or 0)

    # --- verification attempts ---

    async def insert_verification_attempt(
        self,
        *,
        phone: str,
        source: str,
        verified: bool,
        found_in_submissions: bool,
        status: str | None = None,
        attempt_id: str | None = None,
        timestamp: datetime | None = None,
    ) -> str:
        attempt_id = attempt_id or new_record_id()
        self.session.add(
            VerificationAttempt(
                id=attempt_id,
                timestamp=timestamp or utcnow(),
                phone=phone,
                source=source,
                verified=verified,
                found_in_submissions=found_in_submissions,
                status=status,
            )
        )
        await self._run("insert_verification_attempt", self.session.flush())
        return attempt_id

    # --- webhook endpoints ---

    async def find_webhook_endpoint(self, key: str | None) -> EndpointRecord | None:
        if not key:
            return None

        stmt = select(WebhookEndpoint).where(WebhookEndpoint.key == key).limit(1)
        result = await self._run("find_webhook_endpoint", self.session.execute(stmt))
        row = result.scalars().first()
        if row is None:
            return None
        return EndpointRecord(key=row.key, endpoint_url=row.endpoint_url, enabled=bool(row.enabled))

    async def create_webhook_endpoint(self, key: str, endpoint_url: str, enabled: bool = False) -> EndpointRecord:
        self.session.add(WebhookEndpoint(key=key, endpoint_url=endpoint_url, enabled=enabled))
        await self._run("create_webhook_endpoint", self.session.flush())
        return EndpointRecord(key=key, endpoint_url=endpoint_url, enabled=enabled)

    async def update_webhook_endpoint(
        self,
        key: str,
        *,
        enabled: bool | None = None,
        endpoint_url: str | None = None,
    ) -> EndpointRecord | None:
        stmt = select(WebhookEndpoint).where(WebhookEndpoint.key == key)
        row = (await self._run("update_webhook_endpoint", self.session.execute(stmt))).scalars().first()
        if row is None:
            return None

        if enabled is not None:
            row.enabled = bool(enabled)
        if endpoint_url is not None:
            row.endpoint_url = endpoint_url
        await self._run("update_webhook_endpoint", self.session.flush())
        return EndpointRecord(key=row.key, endpoint_url=row.endpoint_url, enabled=bool(row.enabled))

    async def list_webhook_endpoints(self) -> list[EndpointRecord]:
        stmt = select(WebhookEndpoint).order_by(WebhookEndpoint.created_at.asc())
        rows = (await self._run("list_webhook_endpoints", self.session.execute(stmt))).scalars().all()
        return [EndpointRecord(key=r.key, endpoint_url=r.endpoint_url, enabled=bool(r.enabled)) for r in rows]

    async def commit(self) -> None:
        await self._run("commit", self.session.commit())

    async def rollback(self) -> None:
        await self.session.rollback()
