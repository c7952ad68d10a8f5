from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import select

from conftest import make_member
from gym_admin import lockers
from gym_admin.errors import Conflict, InvalidTransition, ValidationError
from gym_admin.models import Locker, Member, SystemLog


def test_assign_then_assign_again_conflicts_until_released(db, now) -> None:
    make_member(db, "m1")
    make_member(db, "m2", name="김철수")

    view = lockers.assign(db, 5, "m1", 30, now)
    db.commit()
    assert view.status == lockers.OCCUPIED
    assert view.member_id == "m1"
    assert view.end_date == now.date() + timedelta(days=30)

    with pytest.raises(Conflict):
        lockers.assign(db, 5, "m2", 30, now)
    db.rollback()

    lockers.release(db, 5, now)
    db.commit()
    view = lockers.assign(db, 5, "m2", 30, now)
    db.commit()

    assert view.member_id == "m2"
    m1 = db.get(Member, "m1", populate_existing=True)
    m2 = db.get(Member, "m2", populate_existing=True)
    assert m1.has_locker is False
    assert m1.locker_number is None
    assert m2.has_locker is True
    assert m2.locker_number == 5


def test_assign_release_round_trip_restores_available(db, now) -> None:
    make_member(db, "m1")
    lockers.assign(db, 12, "m1", 90, now)
    db.commit()

    view = lockers.release(db, 12, now)
    db.commit()

    assert view.status == lockers.AVAILABLE
    assert view.member_id is None
    assert view.end_date is None
    member = db.get(Member, "m1", populate_existing=True)
    assert member.has_locker is False
    actions = [log.action for log in db.execute(select(SystemLog)).scalars().all()]
    assert actions.count("locker.assign") == 1
    assert actions.count("locker.release") == 1


def test_occupied_locker_reads_expired_after_end_date(db, now) -> None:
    make_member(db, "m1")
    lockers.assign(db, 3, "m1", 30, now)
    db.commit()

    later = now + timedelta(days=31)
    assert lockers.get_locker(db, 3, later).status == lockers.EXPIRED
    # the stored row is untouched; expiry is derived on read
    assert db.execute(select(Locker).where(Locker.number == 3)).scalars().one().status == lockers.OCCUPIED


def test_expired_locker_can_be_reassigned(db, now) -> None:
    make_member(db, "m1")
    make_member(db, "m2", name="김철수")
    lockers.assign(db, 7, "m1", 30, now)
    db.commit()

    later = now + timedelta(days=30)
    view = lockers.assign(db, 7, "m2", 30, later)
    db.commit()

    assert view.member_id == "m2"
    assert db.get(Member, "m1", populate_existing=True).has_locker is False


def test_release_of_unknown_or_free_locker_is_noop(db, now) -> None:
    view = lockers.release(db, 42, now)
    assert view.status == lockers.AVAILABLE
    assert db.execute(select(Locker)).scalars().all() == []


def test_locker_numbers_outside_pool_are_rejected(db, now) -> None:
    make_member(db, "m1")
    with pytest.raises(ValidationError):
        lockers.assign(db, 0, "m1", 30, now)
    with pytest.raises(ValidationError):
        lockers.get_locker(db, 201, now)


def test_assign_requires_positive_duration(db, now) -> None:
    make_member(db, "m1")
    with pytest.raises(ValidationError):
        lockers.assign(db, 1, "m1", 0, now)


def test_maintenance_blocks_assignment_and_restores_state(db, now) -> None:
    make_member(db, "m1")
    make_member(db, "m2", name="김철수")
    lockers.assign(db, 9, "m1", 30, now)
    db.commit()

    view = lockers.set_maintenance(db, 9, True, now)
    db.commit()
    assert view.status == lockers.MAINTENANCE

    with pytest.raises(Conflict):
        lockers.assign(db, 9, "m2", 30, now)
    db.rollback()
    with pytest.raises(InvalidTransition):
        lockers.release(db, 9, now)
    db.rollback()

    view = lockers.set_maintenance(db, 9, False, now)
    db.commit()
    assert view.status == lockers.OCCUPIED
    assert view.member_id == "m1"

    with pytest.raises(InvalidTransition):
        lockers.set_maintenance(db, 9, False, now)


def test_maintenance_on_untouched_locker(db, now) -> None:
    view = lockers.set_maintenance(db, 20, True, now)
    db.commit()
    assert view.status == lockers.MAINTENANCE

    view = lockers.set_maintenance(db, 20, False, now)
    db.commit()
    assert view.status == lockers.AVAILABLE


def test_summary_and_first_free_number(db, now) -> None:
    make_member(db, "m1")
    make_member(db, "m2", name="김철수")
    lockers.assign(db, 1, "m1", 30, now)
    lockers.assign(db, 2, "m2", 1, now)
    lockers.set_maintenance(db, 3, True, now)
    db.commit()

    later = datetime.combine(now.date() + timedelta(days=1), datetime.min.time())
    counts = lockers.summary(db, later)

    assert counts["total"] == 200
    assert counts["occupied"] == 1
    assert counts["expired"] == 1
    assert counts["maintenance"] == 1
    assert counts["available"] == 197
    # locker 2 lapsed, so it is the lowest reusable number
    assert lockers.first_free_number(db, later) == 2


def test_list_lockers_synthesizes_pool(db, now) -> None:
    views = lockers.list_lockers(db, now)
    assert len(views) == 200
    assert all(v.status == lockers.AVAILABLE for v in views)
    assert [v.number for v in views[:3]] == [1, 2, 3]


def test_locker_for_member(db, now) -> None:
    make_member(db, "m1")
    assert lockers.locker_for_member(db, "m1", now) is None
    lockers.assign(db, 11, "m1", 30, now)
    db.commit()
    view = lockers.locker_for_member(db, "m1", now)
    assert view.number == 11
    assert view.member_name == "홍길동"
    assert view.days_remaining == 30
    assert view.start_date == date(2025, 3, 10)


def test_member_holds_one_live_locker_at_a_time(db, now) -> None:
    make_member(db, "m1")
    lockers.assign(db, 3, "m1", 30, now)
    db.commit()

    with pytest.raises(Conflict):
        lockers.assign(db, 5, "m1", 30, now)
    db.rollback()

    m1 = db.get(Member, "m1", populate_existing=True)
    assert m1.has_locker is True
    assert m1.locker_number == 3
    assert lockers.get_locker(db, 5, now).status == lockers.AVAILABLE

    # releasing a locker the member never got leaves locker 3 alone
    lockers.release(db, 5, now)
    db.commit()
    m1 = db.get(Member, "m1", populate_existing=True)
    assert m1.locker_number == 3
    assert lockers.locker_for_member(db, "m1", now).number == 3

    lockers.release(db, 3, now)
    db.commit()
    view = lockers.assign(db, 5, "m1", 30, now)
    db.commit()
    assert view.member_id == "m1"
    assert db.get(Member, "m1", populate_existing=True).locker_number == 5


def test_lapsed_locker_does_not_block_a_new_one(db, now) -> None:
    make_member(db, "m1")
    lockers.assign(db, 3, "m1", 30, now)
    db.commit()

    later = now + timedelta(days=31)
    view = lockers.assign(db, 7, "m1", 30, later)
    db.commit()

    assert view.status == lockers.OCCUPIED
    assert db.get(Member, "m1", populate_existing=True).locker_number == 7
    assert lockers.get_locker(db, 3, later).status == lockers.EXPIRED
