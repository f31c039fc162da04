from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class DeliveryResult:
    ok: bool
    status_code: int | None = None
    body: str | None = None
