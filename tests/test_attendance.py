from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import make_member
from gym_admin import attendance
from gym_admin.errors import AlreadyClosed, Conflict, NotFound, ValidationError


def test_check_in_then_out_computes_duration(db, now) -> None:
    make_member(db, "m1")
    record = attendance.check_in(db, "m1", now)
    db.commit()
    assert record.check_out_at is None
    assert record.duration_minutes is None

    closed = attendance.check_out(db, record.id, now + timedelta(minutes=95))
    db.commit()
    assert closed.check_out_at == now + timedelta(minutes=95)
    assert closed.duration_minutes == 95


def test_second_check_in_conflicts_while_open(db, now) -> None:
    make_member(db, "m1")
    attendance.check_in(db, "m1", now)
    db.commit()

    with pytest.raises(Conflict):
        attendance.check_in(db, "m1", now + timedelta(minutes=5))
    db.rollback()

    attendance.check_out_member(db, "m1", now + timedelta(hours=1))
    db.commit()
    again = attendance.check_in(db, "m1", now + timedelta(hours=2))
    db.commit()
    assert again.check_out_at is None


def test_check_out_twice_is_already_closed(db, now) -> None:
    make_member(db, "m1")
    record = attendance.check_in(db, "m1", now)
    db.commit()
    attendance.check_out(db, record.id, now + timedelta(minutes=30))
    db.commit()

    with pytest.raises(AlreadyClosed):
        attendance.check_out(db, record.id, now + timedelta(minutes=40))


def test_check_out_before_check_in_is_rejected(db, now) -> None:
    make_member(db, "m1")
    record = attendance.check_in(db, "m1", now)
    db.commit()
    with pytest.raises(ValidationError):
        attendance.check_out(db, record.id, now - timedelta(minutes=1))


def test_unknown_member_and_record(db, now) -> None:
    with pytest.raises(NotFound):
        attendance.check_in(db, "ghost", now)
    with pytest.raises(NotFound):
        attendance.check_out(db, "missing", now)
    make_member(db, "m1")
    with pytest.raises(NotFound):
        attendance.check_out_member(db, "m1", now)


def test_currently_in_and_history(db, now) -> None:
    make_member(db, "m1")
    make_member(db, "m2", name="김철수")
    yesterday = now - timedelta(days=1)
    old = attendance.check_in(db, "m1", yesterday)
    attendance.check_out(db, old.id, yesterday + timedelta(hours=1))
    attendance.check_in(db, "m1", now)
    m2 = attendance.check_in(db, "m2", now + timedelta(minutes=10))
    attendance.check_out(db, m2.id, now + timedelta(minutes=50))
    db.commit()

    current = attendance.currently_in(db, now + timedelta(hours=1))
    assert [r.member_id for r in current] == ["m1"]

    history = attendance.history(db, member_id="m1")
    assert len(history) == 2
    assert history[0].check_in_at == now
    assert len(attendance.history(db, day=yesterday.date())) == 1
