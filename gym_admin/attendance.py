from __future__ import annotations

"""
Attendance tracker: per-member check-in/check-out.

    none -> checked-in -> checked-out

A member has at most one open record (no check-out). The rule is enforced by a
partial unique index; a second check-in raises Conflict until the first visit
is closed. Duration is computed from the two timestamps, never stored.
"""

import logging
import uuid
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import AlreadyClosed, Conflict, NotFound, ValidationError
from .models import AttendanceRecord, Member


logger = logging.getLogger("attendance")


def _open_record(db: Session, member_id: str) -> Optional[AttendanceRecord]:
    return db.execute(
        select(AttendanceRecord)
        .where(AttendanceRecord.member_id == member_id, AttendanceRecord.check_out_at.is_(None))
        .order_by(AttendanceRecord.check_in_at.desc())
    ).scalars().first()


def check_in(db: Session, member_id: str, now: datetime) -> AttendanceRecord:
    if not db.get(Member, member_id):
        raise NotFound(f"Member {member_id} not found")
    if _open_record(db, member_id):
        raise Conflict(f"Member {member_id} is already checked in")

    record = AttendanceRecord(id=str(uuid.uuid4()), member_id=member_id, check_in_at=now)
    db.add(record)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise Conflict(f"Member {member_id} is already checked in")
    logger.info("check-in member=%s record=%s", member_id, record.id)
    return record


def check_out(db: Session, record_id: str, now: datetime) -> AttendanceRecord:
    record = db.get(AttendanceRecord, record_id)
    if not record:
        raise NotFound(f"Attendance record {record_id} not found")
    if record.check_out_at is not None:
        raise AlreadyClosed(f"Attendance record {record_id} is already checked out")
    if now < record.check_in_at:
        raise ValidationError("check-out cannot precede check-in")

    result = db.execute(
        update(AttendanceRecord)
        .where(AttendanceRecord.id == record_id, AttendanceRecord.check_out_at.is_(None))
        .values(check_out_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise AlreadyClosed(f"Attendance record {record_id} is already checked out")
    db.flush()
    record = db.get(AttendanceRecord, record_id, populate_existing=True)
    logger.info("check-out member=%s record=%s minutes=%s", record.member_id, record_id, record.duration_minutes)
    return record


def check_out_member(db: Session, member_id: str, now: datetime) -> AttendanceRecord:
    """Close the member's most recent open visit."""
    record = _open_record(db, member_id)
    if not record:
        raise NotFound(f"Member {member_id} has no open visit")
    return check_out(db, record.id, now)


def _day_bounds(day: date):
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def currently_in(db: Session, now: datetime) -> List[AttendanceRecord]:
    """Today's visits without a check-out."""
    start, end = _day_bounds(now.date())
    stmt = (
        select(AttendanceRecord)
        .where(
            AttendanceRecord.check_in_at >= start,
            AttendanceRecord.check_in_at < end,
            AttendanceRecord.check_out_at.is_(None),
        )
        .order_by(AttendanceRecord.check_in_at.desc())
    )
    return list(db.execute(stmt).scalars().unique().all())


def history(db: Session, member_id: Optional[str] = None, day: Optional[date] = None) -> List[AttendanceRecord]:
    stmt = select(AttendanceRecord)
    if member_id:
        stmt = stmt.where(AttendanceRecord.member_id == member_id)
    if day:
        start, end = _day_bounds(day)
        stmt = stmt.where(AttendanceRecord.check_in_at >= start, AttendanceRecord.check_in_at < end)
    return list(db.execute(stmt.order_by(AttendanceRecord.check_in_at.desc())).scalars().unique().all())
