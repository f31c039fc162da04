# formrelay/service_layer/matcher.py
from __future__ import annotations

import logging
from datetime import datetime

from ..adapters.repos.submissions import SubmissionStore
from ..config import settings
from ..domain.policies import elapsed_seconds, within_window
from ..domain.types import MatchResult, MatchState, VerificationEvent
from ..models import utcnow

log = logging.getLogger(__name__)


class VerificationMatcher:
    """
    received -> unmatched                      (no submission for the phone)
    received -> matched -> expired             (latest submission too old)
    received -> matched -> within window       (dispatch with effective key)
    """

    def __init__(self, store: SubmissionStore, window_s: float | None = None) -> None:
        self.store = store
        self.window_s = settings.VERIFICATION_WINDOW_S if window_s is None else window_s

    async def resolve(self, event: VerificationEvent, now: datetime | None = None) -> MatchResult:
        now = now or utcnow()

        submission = await self.store.find_latest_by_phone(event.phone)
        if submission is None:
            log.info("No submission found for phone %s", event.phone)
            return MatchResult(state=MatchState.unmatched)

        elapsed = elapsed_seconds(submission.timestamp, now)
        if not within_window(submission.timestamp, now, self.window_s):
            log.info(
                "Verification window expired for phone %s (submission %s, %.0fs old)",
                event.phone,
                submission.id,
                elapsed,
            )
            return MatchResult(state=MatchState.expired, submission=submission, elapsed_s=elapsed)

        effective_key = event.key or submission.verification_key
        log.info(
            "Matched phone %s to submission %s (%.0fs old, key=%s)",
            event.phone,
            submission.id,
            elapsed,
            effective_key,
        )
        return MatchResult(
            state=MatchState.matched,
            submission=submission,
            effective_key=effective_key,
            elapsed_s=elapsed,
        )
