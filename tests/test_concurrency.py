from __future__ import annotations

"""
Two sessions racing on the same scarce resource. The first writer commits;
the second one read before that commit and must lose cleanly.
"""

from datetime import date, timedelta
from typing import Iterator

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from conftest import make_member, make_trainer
from gym_admin import attendance, entitlements, lockers, scheduling
from gym_admin.database import SessionLocal
from gym_admin.errors import Conflict, InsufficientBalance, SlotConflict
from gym_admin.models import AttendanceRecord, Locker, Schedule, Ticket
from gym_admin.plans import get_catalog


SLOT_DATE = date(2026, 2, 1)


@pytest.fixture()
def other() -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


def test_locker_insert_race_loser_gets_conflict(db, other, now, monkeypatch) -> None:
    make_member(db, "m1")
    make_member(db, "m2", name="김철수")

    lockers.assign(other, 5, "m2", 30, now)
    other.commit()

    # m1's desk read locker 5 before the row existed
    monkeypatch.setattr(lockers, "_find", lambda session, number: None)
    with pytest.raises(Conflict):
        lockers.assign(db, 5, "m1", 30, now)

    row = db.execute(select(Locker).where(Locker.number == 5)).scalars().one()
    assert row.member_id == "m2"
    assert len(db.execute(select(Locker)).scalars().all()) == 1


def test_locker_update_race_loser_gets_conflict(db, other, now, monkeypatch) -> None:
    make_member(db, "m1")
    make_member(db, "m2", name="김철수")
    lockers.set_maintenance(db, 8, True, now)
    lockers.set_maintenance(db, 8, False, now)
    db.commit()
    stale = lockers._find(db, 8)
    assert stale.status == lockers.AVAILABLE

    lockers.assign(other, 8, "m2", 30, now)
    other.commit()

    monkeypatch.setattr(lockers, "_find", lambda session, number: stale)
    with pytest.raises(Conflict):
        lockers.assign(db, 8, "m1", 30, now)
    db.rollback()

    row = db.execute(select(Locker).where(Locker.number == 8)).scalars().one()
    assert row.member_id == "m2"
    assert row.status == lockers.OCCUPIED


def test_slot_insert_race_loser_gets_slot_conflict(db, other, monkeypatch) -> None:
    make_member(db, "m1")
    make_member(db, "m2", name="김철수")
    make_trainer(db, "T1")

    scheduling.book(other, "m2", "T1", SLOT_DATE, "09:00")
    other.commit()

    monkeypatch.setattr(scheduling, "_live_booking", lambda *args: None)
    with pytest.raises(SlotConflict):
        scheduling.book(db, "m1", "T1", SLOT_DATE, "09:00")

    rows = db.execute(select(Schedule)).scalars().all()
    assert [r.member_id for r in rows] == ["m2"]


def test_live_slot_index_rejects_duplicate_rows(db) -> None:
    make_member(db, "m1")
    make_trainer(db, "T1")
    db.add(Schedule(id="s1", member_id="m1", trainer_id="T1", slot_date=SLOT_DATE, slot_time="10:00", status="cancelled"))
    db.add(Schedule(id="s2", member_id="m1", trainer_id="T1", slot_date=SLOT_DATE, slot_time="10:00", status="scheduled"))
    db.commit()

    db.add(Schedule(id="s3", member_id="m1", trainer_id="T1", slot_date=SLOT_DATE, slot_time="10:00", status="scheduled"))
    with pytest.raises(IntegrityError):
        db.flush()
    db.rollback()

    assert {s.id for s in db.execute(select(Schedule)).scalars().all()} == {"s1", "s2"}


def test_check_in_race_loser_gets_conflict(db, other, now, monkeypatch) -> None:
    make_member(db, "m1")

    attendance.check_in(other, "m1", now)
    other.commit()

    monkeypatch.setattr(attendance, "_open_record", lambda session, member_id: None)
    with pytest.raises(Conflict):
        attendance.check_in(db, "m1", now + timedelta(seconds=1))

    assert len(db.execute(select(AttendanceRecord)).scalars().all()) == 1


def test_last_session_race_loser_gets_insufficient_balance(db, other, now) -> None:
    make_member(db, "m1")
    pack = entitlements.issue_ticket(db, "m1", get_catalog().get("pt-10"), now.date(), "card", now=now)
    db.flush()
    pack.used_sessions = 9
    pack.remaining = 1
    db.commit()

    # both desks see one session left
    assert db.get(Ticket, pack.id).remaining_sessions == 1
    assert other.get(Ticket, pack.id).remaining_sessions == 1

    entitlements.consume_session(other, pack.id)
    other.commit()

    with pytest.raises(InsufficientBalance):
        entitlements.consume_session(db, pack.id)
    db.rollback()

    assert db.get(Ticket, pack.id, populate_existing=True).used_sessions == 10
