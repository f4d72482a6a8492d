"""Delay schedules used between retried upstream calls."""
from __future__ import annotations

from typing import Optional


def exponential_backoff(attempt: int, base_seconds: float = 0.2, max_seconds: Optional[float] = None) -> float:
    """Return ``base_seconds * 2 ** (attempt - 1)`` for a 1-based retry attempt."""
    if attempt < 1:
        raise ValueError("attempt is 1-based")
    delay = base_seconds * (2 ** (attempt - 1))
    if max_seconds is not None:
        delay = min(delay, max_seconds)
    return delay


def fixed_delay(_attempt: int, seconds: float = 0.1) -> float:
    return seconds
