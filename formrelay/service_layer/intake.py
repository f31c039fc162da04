# formrelay/service_layer/intake.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from ..adapters.repos.submissions import SubmissionStore, new_record_id
from ..domain.types import Source, SubmissionRecord
from ..models import utcnow

log = logging.getLogger(__name__)


async def handle_submission(
    session: AsyncSession,
    *,
    phone: str,
    payload: dict[str, Any],
    verification_key: str | None = None,
    source_domain: str | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Persist the whole form payload as received. Nothing is verified here;
    the bot callback comes later and matches by phone.
    """
    submission = SubmissionRecord(
        id=new_record_id(),
        timestamp=now or utcnow(),
        phone=phone,
        source=source_domain or Source.tilda.value,
        raw_data=dict(payload),
        verification_key=verification_key,
    )

    store = SubmissionStore(session)
    await store.insert_raw_submission(submission)
    await store.commit()

    log.info(
        "Stored submission %s: phone=%s source=%s key=%s",
        submission.id,
        phone,
        submission.source,
        verification_key,
    )
    return {
        "status": "success",
        "message": "Form data saved successfully",
        "submission_id": submission.id,
        "phone": phone,
        "verification_key": verification_key,
    }
