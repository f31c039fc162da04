# formrelay/domain/policies.py
from __future__ import annotations

from datetime import datetime


def elapsed_seconds(submitted_at: datetime, now: datetime) -> float:
    return (now - submitted_at).total_seconds()


def within_window(submitted_at: datetime, now: datetime, window_s: float) -> bool:
    """
    Inclusive upper bound: exactly window_s old still counts.
    There is no way back in once this returns False.
    """
    return elapsed_seconds(submitted_at, now) <= window_s
