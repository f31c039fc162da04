# formrelay/errors.py
from __future__ import annotations

import enum


class ErrorCode(str, enum.Enum):
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    PROCESSING_ERROR = "PROCESSING_ERROR"


class RelayError(Exception):
    """Base for everything the relay raises on purpose."""


class InvalidRequestError(RelayError):
    pass


class StoreConnectionError(RelayError):
    """
    Backing store unreachable (connect retries exhausted, or the connection
    dropped mid-query). Retryable by the caller; rendered as 503.
    """


class StoreError(RelayError):
    """Query failed for a reason other than connectivity. Not retried."""


class EndpointUnavailableError(RelayError):
    def __init__(self, key: str | None, message: str) -> None:
        super().__init__(message)
        self.key = key


class EndpointNotFoundError(EndpointUnavailableError):
    def __init__(self, key: str | None) -> None:
        super().__init__(key, f"Webhook endpoint not found for key {key!r}")


class EndpointDisabledError(EndpointUnavailableError):
    def __init__(self, key: str | None) -> None:
        super().__init__(key, f"Webhook endpoint disabled for key {key!r}")


class DeliveryError(RelayError):
    def __init__(self, message: str, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def error_body(code: ErrorCode, message: str, **extra: object) -> dict:
    return {"status": "error", "message": message, "code": code.value, **extra}
