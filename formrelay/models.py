# formrelay/models.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    # naive UTC everywhere; sqlite drops tzinfo on the way back anyway
    return datetime.utcnow()


class RawSubmission(Base):
    """
    Full page-builder form payload, stored as received.
    Only the dispatch step touches it afterwards (flags + key).
    """
    __tablename__ = "raw_submissions"
    __table_args__ = (Index("ix_raw_submissions_phone_ts", "phone", "timestamp"),)

    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    phone: Mapped[str] = mapped_column(String(20))
    source: Mapped[str] = mapped_column(String(255), default="tilda")

    raw_data: Mapped[str] = mapped_column(Text, default="{}")
    verification_key: Mapped[str | None] = mapped_column(String(64), nullable=True)

    phone_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    webhook_sent: Mapped[bool] = mapped_column(Boolean, default=False)


class VerificationAttempt(Base):
    __tablename__ = "incoming_verification_attempts"

    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

    phone: Mapped[str] = mapped_column(String(20), index=True)
    source: Mapped[str] = mapped_column(String(40))

    verified: Mapped[bool] = mapped_column(Boolean, default=False)
    found_in_submissions: Mapped[bool] = mapped_column(Boolean, default=False)

    # "timeout" when the submission was found but the window had closed
    status: Mapped[str | None] = mapped_column(String(20), nullable=True)


class WebhookEndpoint(Base):
    __tablename__ = "webhook_endpoints"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    endpoint_url: Mapped[str] = mapped_column(Text)

    # QUIET BY DEFAULT
    enabled: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
