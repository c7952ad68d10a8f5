from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import select

from conftest import make_member, make_trainer
from gym_admin import entitlements, scheduling
from gym_admin.errors import (
    Conflict,
    InsufficientBalance,
    InvalidTransition,
    NotFound,
    SlotConflict,
    ValidationError,
)
from gym_admin.models import Schedule, Ticket, Trainer
from gym_admin.plans import get_catalog


SLOT_DATE = date(2026, 2, 1)


def test_double_booking_conflicts_until_cancelled(db) -> None:
    make_member(db, "m1")
    make_member(db, "m2", name="김철수")
    make_trainer(db, "T1")

    first = scheduling.book(db, "m1", "T1", SLOT_DATE, "09:00")
    db.commit()

    with pytest.raises(SlotConflict):
        scheduling.book(db, "m2", "T1", SLOT_DATE, "09:00")
    db.rollback()

    scheduling.cancel(db, first.id)
    db.commit()
    second = scheduling.book(db, "m2", "T1", SLOT_DATE, "09:00")
    db.commit()

    assert second.status == scheduling.SCHEDULED
    live = scheduling.list_schedules(db, slot_date=SLOT_DATE, status=scheduling.SCHEDULED)
    assert [s.id for s in live] == [second.id]


def test_slot_conflict_is_a_conflict() -> None:
    assert issubclass(SlotConflict, Conflict)
    assert SlotConflict("x").status_code == 409


def test_other_trainer_or_hour_does_not_conflict(db) -> None:
    make_member(db, "m1")
    make_trainer(db, "T1")
    make_trainer(db, "T2", name="이트레이너")

    scheduling.book(db, "m1", "T1", SLOT_DATE, "09:00")
    scheduling.book(db, "m1", "T2", SLOT_DATE, "09:00")
    scheduling.book(db, "m1", "T1", SLOT_DATE, "10:00")
    db.commit()

    assert len(scheduling.list_schedules(db, slot_date=SLOT_DATE)) == 3


def test_book_validates_slot_and_parties(db) -> None:
    make_member(db, "m1")
    make_trainer(db, "T1")
    with pytest.raises(ValidationError):
        scheduling.book(db, "m1", "T1", SLOT_DATE, "08:30")
    with pytest.raises(NotFound):
        scheduling.book(db, "ghost", "T1", SLOT_DATE, "09:00")
    with pytest.raises(NotFound):
        scheduling.book(db, "m1", "ghost", SLOT_DATE, "09:00")


def test_cancel_twice_is_noop_and_completed_cannot_cancel(db) -> None:
    make_member(db, "m1")
    make_trainer(db, "T1")
    booking = scheduling.book(db, "m1", "T1", SLOT_DATE, "11:00")
    db.commit()

    scheduling.cancel(db, booking.id)
    db.commit()
    again = scheduling.cancel(db, booking.id)
    assert again.status == scheduling.CANCELLED

    other = scheduling.book(db, "m1", "T1", SLOT_DATE, "12:00")
    db.commit()
    scheduling.complete(db, other.id)
    db.commit()
    with pytest.raises(InvalidTransition):
        scheduling.cancel(db, other.id)


def test_complete_with_pack_consumes_one_session(db, now) -> None:
    make_member(db, "m1")
    make_trainer(db, "T1")
    pack = entitlements.issue_ticket(db, "m1", get_catalog().get("pt-10"), now.date(), "card", now=now)
    booking = scheduling.book(db, "m1", "T1", SLOT_DATE, "13:00")
    db.commit()

    done = scheduling.complete(db, booking.id, ticket_id=pack.id)
    db.commit()

    assert done.status == scheduling.COMPLETED
    assert db.get(Ticket, pack.id, populate_existing=True).used_sessions == 1
    with pytest.raises(InvalidTransition):
        scheduling.complete(db, booking.id, ticket_id=pack.id)


def test_complete_with_empty_pack_leaves_booking_scheduled(db, now) -> None:
    make_member(db, "m1")
    make_trainer(db, "T1")
    pack = entitlements.issue_ticket(db, "m1", get_catalog().get("pt-10"), now.date(), "card", now=now)
    db.flush()
    pack.used_sessions = 10
    pack.remaining = 0
    booking = scheduling.book(db, "m1", "T1", SLOT_DATE, "14:00")
    db.commit()

    with pytest.raises(InsufficientBalance):
        scheduling.complete(db, booking.id, ticket_id=pack.id)
    db.rollback()

    assert db.get(Schedule, booking.id, populate_existing=True).status == scheduling.SCHEDULED


def test_complete_rejects_another_members_pack(db, now) -> None:
    make_member(db, "m1")
    make_member(db, "m2", name="김철수")
    make_trainer(db, "T1")
    pack = entitlements.issue_ticket(db, "m2", get_catalog().get("pt-10"), now.date(), "card", now=now)
    booking = scheduling.book(db, "m1", "T1", SLOT_DATE, "15:00")
    db.commit()

    with pytest.raises(ValidationError):
        scheduling.complete(db, booking.id, ticket_id=pack.id)


def test_assign_trainer_and_stats(db, now) -> None:
    make_member(db, "m1")
    make_trainer(db, "T1")
    pack = entitlements.issue_ticket(db, "m1", get_catalog().get("pt-20"), now.date(), "card", now=now)
    db.commit()

    ticket = scheduling.assign_trainer(db, pack.id, "T1")
    booking = scheduling.book(db, "m1", "T1", SLOT_DATE, "16:00")
    scheduling.complete(db, booking.id, ticket_id=pack.id)
    db.commit()

    assert ticket.trainer_id == "T1"
    stats = scheduling.trainer_stats(db, "T1", "2026-02")
    assert stats["assigned_packs"] == 1
    assert stats["completed_sessions"] == 1
    assert scheduling.trainer_stats(db, "T1", "2026-03")["completed_sessions"] == 0
    with pytest.raises(ValidationError):
        scheduling.trainer_stats(db, "T1", "Feb 2026")


def test_pt_summary_totals(db, now) -> None:
    make_member(db, "m1")
    make_member(db, "m2", name="김철수")
    a = entitlements.issue_ticket(db, "m1", get_catalog().get("pt-10"), now.date(), "card", now=now)
    entitlements.issue_ticket(db, "m2", get_catalog().get("pt-20"), now.date(), "card", now=now)
    db.commit()
    entitlements.consume_session(db, a.id)
    db.commit()

    summary = scheduling.pt_summary(db)
    assert summary == {
        "packs": 2,
        "total_sessions": 30,
        "used_sessions": 1,
        "remaining_sessions": 29,
        "members_with_balance": 2,
    }


def test_delete_trainer_refused_with_upcoming_bookings(db, now) -> None:
    make_member(db, "m1")
    make_trainer(db, "T1")
    booking = scheduling.book(db, "m1", "T1", SLOT_DATE, "17:00")
    db.commit()

    with pytest.raises(Conflict):
        scheduling.delete_trainer(db, "T1", now.date())
    db.rollback()

    scheduling.cancel(db, booking.id)
    db.commit()
    scheduling.delete_trainer(db, "T1", now.date())
    db.commit()
    assert db.execute(select(Trainer)).scalars().all() == []
