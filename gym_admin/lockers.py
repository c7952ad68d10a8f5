from __future__ import annotations

"""
Locker allocator.

A fixed pool of numbered lockers (1..locker_pool_size). Numbers that were never
assigned have no row and read as available. Status is partly derived: a row
stored as `occupied` whose end date has passed reads as `expired` and may be
reassigned without an explicit release.

    available   -> occupied      assign
    occupied    -> expired       lazily, on read
    occupied    -> available     release (expired too)
    available   -> maintenance   set_maintenance(on=True) (occupied too)
    maintenance -> previous      set_maintenance(on=False)

Every state change is a conditional write, and the member's `has_locker` /
`locker_number` fields change in the same transaction.
A member holds at most one live locker at a time.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import and_, case, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import audit
from .config import get_settings
from .errors import Conflict, InvalidTransition, NotFound, ValidationError
from .models import Locker, Member
from .status import days_remaining, is_past


logger = logging.getLogger("lockers")

AVAILABLE = "available"
OCCUPIED = "occupied"
EXPIRED = "expired"
MAINTENANCE = "maintenance"
STATUSES = (AVAILABLE, OCCUPIED, EXPIRED, MAINTENANCE)


@dataclass
class LockerView:
    number: int
    status: str
    member_id: Optional[str] = None
    member_name: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    days_remaining: int = 0


def effective_status(locker: Optional[Locker], now: datetime) -> str:
    if locker is None:
        return AVAILABLE
    if locker.status == OCCUPIED and is_past(locker.end_date, now):
        return EXPIRED
    return locker.status


def to_view(number: int, locker: Optional[Locker], now: datetime) -> LockerView:
    if locker is None:
        return LockerView(number=number, status=AVAILABLE)
    return LockerView(
        number=locker.number,
        status=effective_status(locker, now),
        member_id=locker.member_id,
        member_name=locker.member.name if locker.member else None,
        start_date=locker.start_date,
        end_date=locker.end_date,
        days_remaining=days_remaining(locker.end_date, now),
    )


def _check_number(number: int) -> None:
    pool_size = get_settings().locker_pool_size
    if number < 1 or number > pool_size:
        raise ValidationError(f"Locker number must be between 1 and {pool_size}")


def _find(db: Session, number: int) -> Optional[Locker]:
    return db.execute(select(Locker).where(Locker.number == number)).scalars().first()


def _live_locker_of(db: Session, member_id: str, today: date, exclude: Optional[int] = None) -> Optional[Locker]:
    """A locker the member still holds: occupied and not yet lapsed, or held under maintenance."""
    stmt = select(Locker).where(
        Locker.member_id == member_id,
        or_(
            and_(Locker.status == OCCUPIED, Locker.end_date > today),
            Locker.status == MAINTENANCE,
        ),
    )
    if exclude is not None:
        stmt = stmt.where(Locker.number != exclude)
    return db.execute(stmt).scalars().first()


def _clear_member_flag(db: Session, member_id: str, number: int) -> None:
    # Only clear when the member still points at this locker
    db.execute(
        update(Member)
        .where(
            Member.id == member_id,
            or_(Member.locker_number == number, Member.locker_number.is_(None)),
        )
        .values(has_locker=False, locker_number=None)
        .execution_options(synchronize_session=False)
    )


def get_locker(db: Session, number: int, now: datetime) -> LockerView:
    _check_number(number)
    return to_view(number, _find(db, number), now)


def list_lockers(db: Session, now: datetime, status: Optional[str] = None) -> List[LockerView]:
    """The whole pool, with never-used numbers synthesized as available."""
    pool_size = get_settings().locker_pool_size
    rows: Dict[int, Locker] = {
        locker.number: locker for locker in db.execute(select(Locker)).scalars().unique().all()
    }
    views = [to_view(n, rows.get(n), now) for n in range(1, pool_size + 1)]
    if status:
        views = [v for v in views if v.status == status]
    return views


def summary(db: Session, now: datetime) -> Dict[str, int]:
    counts = {s: 0 for s in STATUSES}
    for view in list_lockers(db, now):
        counts[view.status] += 1
    counts["total"] = get_settings().locker_pool_size
    return counts


def first_free_number(db: Session, now: datetime) -> int:
    for view in list_lockers(db, now):
        if view.status in (AVAILABLE, EXPIRED):
            return view.number
    raise Conflict("No free locker in the pool")


def locker_for_member(db: Session, member_id: str, now: datetime) -> Optional[LockerView]:
    locker = db.execute(
        select(Locker)
        .where(Locker.member_id == member_id, Locker.status.in_([OCCUPIED, MAINTENANCE]))
        .order_by(Locker.end_date.desc())
    ).scalars().first()
    if locker is None:
        return None
    return to_view(locker.number, locker, now)


def assign(
    db: Session,
    number: int,
    member_id: str,
    duration_days: int,
    now: datetime,
    actor: Optional[str] = "admin",
) -> LockerView:
    """Give locker `number` to a member for `duration_days` starting today.

    Raises Conflict when the locker is live-occupied or under maintenance, or
    when the member already holds another live locker.
    A lazily expired locker is reassigned and its previous holder's flag cleared.
    """
    _check_number(number)
    if duration_days is None or duration_days <= 0:
        raise ValidationError("duration_days must be positive")
    member = db.get(Member, member_id)
    if not member:
        raise NotFound(f"Member {member_id} not found")

    start = now.date()
    end = start + timedelta(days=duration_days)
    held = _live_locker_of(db, member_id, start, exclude=number)
    if held is not None:
        logger.warning("locker assign refused number=%s member=%s holds=%s", number, member_id, held.number)
        raise Conflict(f"Member {member_id} already holds locker {held.number}")
    existing = _find(db, number)

    if existing is None:
        locker = Locker(
            id=str(uuid.uuid4()),
            number=number,
            status=OCCUPIED,
            member_id=member_id,
            start_date=start,
            end_date=end,
        )
        db.add(locker)
        try:
            db.flush()
        except IntegrityError:
            # another writer created the row first
            db.rollback()
            logger.warning("locker assign lost insert race number=%s member=%s", number, member_id)
            raise Conflict(f"Locker {number} is already assigned")
        locker_id = locker.id
        previous_member_id = None
    else:
        locker_id = existing.id
        previous_member_id = existing.member_id
        result = db.execute(
            update(Locker)
            .where(
                Locker.id == existing.id,
                or_(
                    Locker.status.in_([AVAILABLE, EXPIRED]),
                    and_(Locker.status == OCCUPIED, Locker.end_date <= start),
                ),
            )
            .values(status=OCCUPIED, member_id=member_id, start_date=start, end_date=end)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning("locker assign refused number=%s member=%s", number, member_id)
            raise Conflict(f"Locker {number} is not available")
        if previous_member_id and previous_member_id != member_id:
            _clear_member_flag(db, previous_member_id, number)

    member.has_locker = True
    member.locker_number = number
    audit.record(db, "locker.assign", "locker", number, actor=actor, message=f"member={member_id} until={end}")
    db.flush()

    locker = db.get(Locker, locker_id, populate_existing=True)
    if previous_member_id and previous_member_id != member_id:
        db.get(Member, previous_member_id, populate_existing=True)
    logger.info(
        "locker assigned number=%s member=%s until=%s previous=%s", number, member_id, end, previous_member_id
    )
    return to_view(number, locker, now)


def release(db: Session, number: int, now: datetime, actor: Optional[str] = "admin") -> LockerView:
    """Return a locker to the pool and clear its holder's reciprocal flag."""
    _check_number(number)
    existing = _find(db, number)
    if existing is None or existing.status == AVAILABLE:
        return to_view(number, existing, now)
    if existing.status == MAINTENANCE:
        raise InvalidTransition(f"Locker {number} is under maintenance")

    previous_member_id = existing.member_id
    holder = (
        Locker.member_id.is_(None) if previous_member_id is None else Locker.member_id == previous_member_id
    )
    result = db.execute(
        update(Locker)
        .where(Locker.id == existing.id, Locker.status.in_([OCCUPIED, EXPIRED]), holder)
        .values(status=AVAILABLE, member_id=None, start_date=None, end_date=None)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        # changed underneath us; the caller may re-read and retry
        raise Conflict(f"Locker {number} changed concurrently")
    if previous_member_id:
        _clear_member_flag(db, previous_member_id, number)
    audit.record(db, "locker.release", "locker", number, actor=actor, message=f"member={previous_member_id}")
    db.flush()

    locker = db.get(Locker, existing.id, populate_existing=True)
    if previous_member_id:
        db.get(Member, previous_member_id, populate_existing=True)
    logger.info("locker released number=%s member=%s", number, previous_member_id)
    return to_view(number, locker, now)


def set_maintenance(
    db: Session, number: int, on: bool, now: datetime, actor: Optional[str] = "admin"
) -> LockerView:
    _check_number(number)
    existing = _find(db, number)

    if on:
        if existing is None:
            locker = Locker(id=str(uuid.uuid4()), number=number, status=MAINTENANCE)
            db.add(locker)
            try:
                db.flush()
            except IntegrityError:
                db.rollback()
                raise Conflict(f"Locker {number} changed concurrently")
            locker_id = locker.id
        else:
            result = db.execute(
                update(Locker)
                .where(Locker.id == existing.id, Locker.status != MAINTENANCE)
                .values(status=MAINTENANCE)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise InvalidTransition(f"Locker {number} is already under maintenance")
            locker_id = existing.id
    else:
        if existing is None:
            raise InvalidTransition(f"Locker {number} is not under maintenance")
        result = db.execute(
            update(Locker)
            .where(Locker.id == existing.id, Locker.status == MAINTENANCE)
            .values(status=case((Locker.member_id.is_not(None), OCCUPIED), else_=AVAILABLE))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InvalidTransition(f"Locker {number} is not under maintenance")
        locker_id = existing.id

    audit.record(db, "locker.maintenance", "locker", number, actor=actor, message="on" if on else "off")
    db.flush()
    locker = db.get(Locker, locker_id, populate_existing=True)
    logger.info("locker maintenance number=%s on=%s", number, on)
    return to_view(number, locker, now)
