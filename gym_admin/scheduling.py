from __future__ import annotations

"""
PT scheduler: trainer time-slot bookings and PT pack consumption.

The slot rule (one non-cancelled booking per trainer, date and hour) is held by
a partial unique index, so the insert itself is the check. Booking never
touches a pack; sessions are consumed when a visit is recorded.
"""

import logging
import uuid
from datetime import date, datetime
from typing import Dict, List, Optional

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import audit
from .entitlements import consume_session, get_ticket
from .errors import Conflict, InvalidTransition, NotFound, SlotConflict, ValidationError
from .models import Member, Schedule, Ticket, Trainer


logger = logging.getLogger("scheduling")

SCHEDULED = "scheduled"
COMPLETED = "completed"
CANCELLED = "cancelled"

TIME_SLOTS = (
    "09:00", "10:00", "11:00", "12:00", "13:00", "14:00",
    "15:00", "16:00", "17:00", "18:00", "19:00", "20:00", "21:00",
)


def _live_booking(db: Session, trainer_id: str, slot_date: date, slot_time: str) -> Optional[Schedule]:
    return db.execute(
        select(Schedule).where(
            Schedule.trainer_id == trainer_id,
            Schedule.slot_date == slot_date,
            Schedule.slot_time == slot_time,
            Schedule.status != CANCELLED,
        )
    ).scalars().first()


def get_schedule(db: Session, schedule_id: str) -> Schedule:
    schedule = db.get(Schedule, schedule_id)
    if not schedule:
        raise NotFound(f"Schedule {schedule_id} not found")
    return schedule


def book(db: Session, member_id: str, trainer_id: str, slot_date: date, slot_time: str) -> Schedule:
    if slot_time not in TIME_SLOTS:
        raise ValidationError(f"Unknown time slot {slot_time!r}")
    if not db.get(Member, member_id):
        raise NotFound(f"Member {member_id} not found")
    if not db.get(Trainer, trainer_id):
        raise NotFound(f"Trainer {trainer_id} not found")

    if _live_booking(db, trainer_id, slot_date, slot_time):
        logger.warning("slot taken trainer=%s date=%s time=%s", trainer_id, slot_date, slot_time)
        raise SlotConflict(f"Trainer already booked on {slot_date} at {slot_time}")

    schedule = Schedule(
        id=str(uuid.uuid4()),
        member_id=member_id,
        trainer_id=trainer_id,
        slot_date=slot_date,
        slot_time=slot_time,
        status=SCHEDULED,
    )
    db.add(schedule)
    try:
        db.flush()
    except IntegrityError:
        # a concurrent booking won the slot between our read and insert
        db.rollback()
        logger.warning("slot insert race lost trainer=%s date=%s time=%s", trainer_id, slot_date, slot_time)
        raise SlotConflict(f"Trainer already booked on {slot_date} at {slot_time}")
    logger.info("booked schedule=%s trainer=%s date=%s time=%s", schedule.id, trainer_id, slot_date, slot_time)
    return schedule


def cancel(db: Session, schedule_id: str) -> Schedule:
    """Cancel a booking and free its slot. Cancelling twice is a no-op."""
    schedule = get_schedule(db, schedule_id)
    if schedule.status == CANCELLED:
        return schedule
    result = db.execute(
        update(Schedule)
        .where(Schedule.id == schedule_id, Schedule.status == SCHEDULED)
        .values(status=CANCELLED)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise InvalidTransition(f"Schedule {schedule_id} is already {schedule.status}")
    audit.record(db, "schedule.cancel", "schedule", schedule_id)
    db.flush()
    logger.info("cancelled schedule=%s", schedule_id)
    return db.get(Schedule, schedule_id, populate_existing=True)


def complete(db: Session, schedule_id: str, ticket_id: Optional[str] = None) -> Schedule:
    """Mark a booking delivered; with a pack, use one of its sessions in the same transaction."""
    schedule = get_schedule(db, schedule_id)
    if schedule.status != SCHEDULED:
        raise InvalidTransition(f"Schedule {schedule_id} is already {schedule.status}")
    if ticket_id:
        ticket = get_ticket(db, ticket_id)
        if ticket.member_id != schedule.member_id:
            raise ValidationError("Ticket belongs to a different member")
        consume_session(db, ticket_id)

    result = db.execute(
        update(Schedule)
        .where(Schedule.id == schedule_id, Schedule.status == SCHEDULED)
        .values(status=COMPLETED)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        # lost a race after the session was consumed; undo both
        db.rollback()
        raise InvalidTransition(f"Schedule {schedule_id} changed concurrently")
    audit.record(db, "schedule.complete", "schedule", schedule_id, message=f"ticket={ticket_id}")
    db.flush()
    logger.info("completed schedule=%s ticket=%s", schedule_id, ticket_id)
    return db.get(Schedule, schedule_id, populate_existing=True)


def record_session(db: Session, ticket_id: str) -> Ticket:
    """An administrator marks one PT visit as delivered, booked or not."""
    return consume_session(db, ticket_id)


def assign_trainer(db: Session, ticket_id: str, trainer_id: Optional[str]) -> Ticket:
    ticket = get_ticket(db, ticket_id)
    if trainer_id and not db.get(Trainer, trainer_id):
        raise NotFound(f"Trainer {trainer_id} not found")
    ticket.trainer_id = trainer_id
    audit.record(db, "ticket.assign_trainer", "ticket", ticket_id, message=f"trainer={trainer_id}")
    db.flush()
    db.refresh(ticket)
    return ticket


def list_schedules(
    db: Session,
    slot_date: Optional[date] = None,
    trainer_id: Optional[str] = None,
    member_id: Optional[str] = None,
    status: Optional[str] = None,
) -> List[Schedule]:
    stmt = select(Schedule)
    if slot_date:
        stmt = stmt.where(Schedule.slot_date == slot_date)
    if trainer_id:
        stmt = stmt.where(Schedule.trainer_id == trainer_id)
    if member_id:
        stmt = stmt.where(Schedule.member_id == member_id)
    if status:
        stmt = stmt.where(Schedule.status == status)
    stmt = stmt.order_by(Schedule.slot_date, Schedule.slot_time)
    return list(db.execute(stmt).scalars().unique().all())


def has_live_bookings(db: Session, trainer_id: str, today: date) -> bool:
    count = db.execute(
        select(func.count()).select_from(Schedule).where(
            and_(
                Schedule.trainer_id == trainer_id,
                Schedule.status == SCHEDULED,
                Schedule.slot_date >= today,
            )
        )
    ).scalar_one()
    return count > 0


def pt_summary(db: Session) -> Dict[str, int]:
    packs = db.execute(select(Ticket).where(Ticket.total_sessions.is_not(None))).scalars().unique().all()
    return {
        "packs": len(packs),
        "total_sessions": sum(p.total_sessions or 0 for p in packs),
        "used_sessions": sum(p.used_sessions or 0 for p in packs),
        "remaining_sessions": sum(p.remaining_sessions or 0 for p in packs),
        "members_with_balance": len({p.member_id for p in packs if (p.remaining_sessions or 0) > 0}),
    }


def trainer_stats(db: Session, trainer_id: str, month: str) -> Dict[str, object]:
    """Assigned packs and completed bookings for `month` (YYYY-MM)."""
    if not db.get(Trainer, trainer_id):
        raise NotFound(f"Trainer {trainer_id} not found")
    try:
        first = datetime.strptime(month, "%Y-%m").date()
    except ValueError:
        raise ValidationError("month must look like YYYY-MM")
    if first.month == 12:
        next_first = first.replace(year=first.year + 1, month=1)
    else:
        next_first = first.replace(month=first.month + 1)

    assigned = db.execute(
        select(func.count()).select_from(Ticket).where(Ticket.trainer_id == trainer_id)
    ).scalar_one()
    completed = db.execute(
        select(func.count()).select_from(Schedule).where(
            and_(
                Schedule.trainer_id == trainer_id,
                Schedule.status == COMPLETED,
                Schedule.slot_date >= first,
                Schedule.slot_date < next_first,
            )
        )
    ).scalar_one()
    return {"trainer_id": trainer_id, "month": month, "assigned_packs": int(assigned), "completed_sessions": int(completed)}


def create_trainer(
    db: Session, name: str, specialty: str, phone: Optional[str] = None, color: str = "blue"
) -> Trainer:
    if not name or not name.strip():
        raise ValidationError("name is required")
    trainer = Trainer(id=str(uuid.uuid4()), name=name.strip(), specialty=specialty, phone=phone, color=color or "blue")
    db.add(trainer)
    db.flush()
    logger.info("trainer created id=%s name=%s", trainer.id, trainer.name)
    return trainer


def update_trainer(db: Session, trainer_id: str, **changes) -> Trainer:
    trainer = db.get(Trainer, trainer_id)
    if not trainer:
        raise NotFound(f"Trainer {trainer_id} not found")
    for key in ("name", "specialty", "phone", "color"):
        value = changes.get(key)
        if value is not None:
            setattr(trainer, key, value)
    db.flush()
    return trainer


def delete_trainer(db: Session, trainer_id: str, today: date) -> None:
    """Remove a trainer. Refused while the trainer has upcoming scheduled bookings."""
    trainer = db.get(Trainer, trainer_id)
    if not trainer:
        raise NotFound(f"Trainer {trainer_id} not found")
    if has_live_bookings(db, trainer_id, today):
        raise Conflict(f"Trainer {trainer_id} has upcoming bookings")
    db.execute(
        update(Ticket)
        .where(Ticket.trainer_id == trainer_id)
        .values(trainer_id=None)
        .execution_options(synchronize_session=False)
    )
    db.delete(trainer)
    audit.record(db, "trainer.delete", "trainer", trainer_id)
    db.flush()
    logger.info("trainer deleted id=%s", trainer_id)


def list_trainers(db: Session) -> List[Trainer]:
    return list(db.execute(select(Trainer).order_by(Trainer.name)).scalars().all())
