from __future__ import annotations

"""
Time & status calculator.

Entitlement status is never stored. It is recomputed from the end date on every
read so that stored state cannot drift from the calendar:

- days_remaining = ceil((end_date at midnight - now) / 1 day), clamped to 0
- expired   when days_remaining == 0
- expiring  when 0 < days_remaining <= threshold (7 by default)
- active    otherwise

All dates are civil dates normalized to midnight; `now` is always passed in.
"""

import math
from datetime import date, datetime, time
from typing import Optional

EXPIRED = "expired"
EXPIRING = "expiring"
ACTIVE = "active"

DEFAULT_EXPIRING_THRESHOLD = 7

_SECONDS_PER_DAY = 24 * 60 * 60


def midnight(d: date) -> datetime:
    return datetime.combine(d, time.min)


def days_remaining(end_date: Optional[date], now: datetime) -> int:
    if end_date is None:
        return 0
    seconds = (midnight(end_date) - now).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / _SECONDS_PER_DAY)


def classify(days: int, threshold: int = DEFAULT_EXPIRING_THRESHOLD) -> str:
    if days <= 0:
        return EXPIRED
    if days <= threshold:
        return EXPIRING
    return ACTIVE


def status_for(end_date: Optional[date], now: datetime, threshold: int = DEFAULT_EXPIRING_THRESHOLD) -> str:
    return classify(days_remaining(end_date, now), threshold)


def is_past(end_date: Optional[date], now: datetime) -> bool:
    """True once `now` has reached the end date's midnight."""
    if end_date is None:
        return False
    return midnight(end_date) <= now
