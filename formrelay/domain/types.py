# formrelay/domain/types.py
from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any


class Source(str, enum.Enum):
    telegram = "telegram"
    whatsapp = "whatsapp"
    tilda = "tilda"
    unknown = "unknown"


VERIFICATION_SOURCES = {Source.telegram.value, Source.whatsapp.value}


class MatchState(str, enum.Enum):
    unmatched = "unmatched"
    expired = "expired"
    matched = "matched"


@dataclass(frozen=True)
class SubmissionRecord:
    id: str
    timestamp: datetime
    phone: str
    source: str
    raw_data: dict[str, Any]
    verification_key: str | None = None
    phone_verified: bool = False
    webhook_sent: bool = False

    @property
    def cookies(self) -> str | None:
        value = self.raw_data.get("COOKIES")
        if isinstance(value, str) and value:
            return value
        return None


@dataclass(frozen=True)
class EndpointRecord:
    key: str
    endpoint_url: str
    enabled: bool


@dataclass(frozen=True)
class VerificationEvent:
    phone: str
    source: str
    key: str | None = None


@dataclass(frozen=True)
class MatchResult:
    state: MatchState
    submission: SubmissionRecord | None = None
    effective_key: str | None = None
    elapsed_s: float | None = None


@dataclass
class VerificationResult:
    """
    What the core hands back to the HTTP boundary.
    status: success | timeout | error
    """
    status: str
    message: str
    phone: str
    verified: bool
    webhook_sent: bool | None = None
    cookies_included: bool | None = None
    error: str | None = None

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "status": self.status,
            "message": self.message,
            "phone": self.phone,
            "verified": self.verified,
        }
        if self.webhook_sent is not None:
            body["webhook_sent"] = self.webhook_sent
        if self.cookies_included is not None:
            body["cookies_included"] = self.cookies_included
        if self.error is not None:
            body["error"] = self.error
        return body
