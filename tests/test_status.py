from __future__ import annotations

from datetime import date, datetime

from gym_admin.status import ACTIVE, EXPIRED, EXPIRING, classify, days_remaining, is_past, status_for


def test_days_remaining_rounds_partial_days_up() -> None:
    now = datetime(2025, 3, 10, 10, 0)
    # 2025-03-17 00:00 is 6 days 14 hours away
    assert days_remaining(date(2025, 3, 17), now) == 7


def test_days_remaining_clamps_past_dates_to_zero() -> None:
    now = datetime(2025, 3, 10, 10, 0)
    assert days_remaining(date(2025, 3, 1), now) == 0
    assert days_remaining(date(2025, 3, 10), now) == 0
    assert days_remaining(None, now) == 0


def test_end_date_at_exact_midnight_is_expired() -> None:
    now = datetime(2025, 3, 10, 0, 0)
    assert days_remaining(date(2025, 3, 10), now) == 0
    assert status_for(date(2025, 3, 10), now) == EXPIRED
    assert is_past(date(2025, 3, 10), now)


def test_classify_threshold_boundaries() -> None:
    assert classify(0) == EXPIRED
    assert classify(1) == EXPIRING
    assert classify(7) == EXPIRING
    assert classify(8) == ACTIVE
    assert classify(3, threshold=2) == ACTIVE


def test_status_for_membership_window() -> None:
    now = datetime(2025, 3, 10, 9, 30)
    assert status_for(date(2025, 6, 8), now) == ACTIVE
    assert status_for(date(2025, 3, 14), now) == EXPIRING
    assert status_for(date(2025, 3, 9), now) == EXPIRED


def test_is_past_before_end_midnight() -> None:
    assert not is_past(date(2025, 3, 11), datetime(2025, 3, 10, 23, 59))
    assert not is_past(None, datetime(2025, 3, 10))
