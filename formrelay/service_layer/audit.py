# formrelay/service_layer/audit.py
from __future__ import annotations

import logging

from ..adapters.repos.submissions import SubmissionStore

log = logging.getLogger(__name__)

TIMEOUT_STATUS = "timeout"


class AuditLogger:
    """
    One incoming_verification_attempts row per verification event.

    `verified` is always written as False: the row captures what we knew
    before dispatch. Delivery outcome lives on raw_submissions.
    Store failures propagate; an incomplete audit trail must be visible.
    """

    def __init__(self, store: SubmissionStore) -> None:
        self.store = store

    async def record(
        self,
        phone: str,
        source: str,
        *,
        found_in_submissions: bool,
        status: str | None = None,
    ) -> str:
        attempt_id = await self.store.insert_verification_attempt(
            phone=phone,
            source=source,
            verified=False,
            found_in_submissions=found_in_submissions,
            status=status,
        )
        await self.store.commit()
        log.info(
            "Verification attempt %s recorded: phone=%s source=%s found=%s status=%s",
            attempt_id,
            phone,
            source,
            found_in_submissions,
            status,
        )
        return attempt_id
