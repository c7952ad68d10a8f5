from __future__ import annotations

"""
Trainers, PT bookings and PT pack consumption.
"""

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import scheduling
from ..deps import get_db, get_now, require_admin
from ..schemas import (
    APIResponse,
    AssignTrainer,
    PTSummary,
    ScheduleAction,
    ScheduleComplete,
    ScheduleCreate,
    ScheduleOut,
    SchedulesListResponse,
    TicketAction,
    TicketOut,
    TrainerAction,
    TrainerCreate,
    TrainerOut,
    TrainersListResponse,
    TrainerStats,
    TrainerUpdate,
)
from .tickets import ticket_out


router = APIRouter(prefix="/api", tags=["pt"], dependencies=[Depends(require_admin)])


@router.post("/trainers.create", response_model=TrainerOut)
def trainers_create(payload: TrainerCreate, db: Session = Depends(get_db)):
    trainer = scheduling.create_trainer(db, payload.name, payload.specialty, payload.phone, payload.color)
    db.commit()
    db.refresh(trainer)
    return trainer


@router.post("/trainers.update", response_model=TrainerOut)
def trainers_update(payload: TrainerUpdate, db: Session = Depends(get_db)):
    trainer = scheduling.update_trainer(db, payload.id, **payload.model_dump(exclude={"id"}))
    db.commit()
    db.refresh(trainer)
    return trainer


@router.post("/trainers.delete", response_model=APIResponse)
def trainers_delete(payload: TrainerAction, db: Session = Depends(get_db), now: datetime = Depends(get_now)):
    scheduling.delete_trainer(db, payload.id, now.date())
    db.commit()
    return APIResponse(ok=True, message="deleted")


@router.get("/trainers.list", response_model=TrainersListResponse)
def trainers_list(db: Session = Depends(get_db)):
    items = scheduling.list_trainers(db)
    return {"items": items, "total": len(items)}


@router.get("/pt.slots")
def pt_slots():
    return {"items": list(scheduling.TIME_SLOTS)}


@router.post("/pt.book", response_model=ScheduleOut)
def pt_book(payload: ScheduleCreate, db: Session = Depends(get_db)):
    schedule = scheduling.book(db, payload.member_id, payload.trainer_id, payload.slot_date, payload.slot_time)
    db.commit()
    db.refresh(schedule)
    return schedule


@router.post("/pt.cancel", response_model=ScheduleOut)
def pt_cancel(payload: ScheduleAction, db: Session = Depends(get_db)):
    schedule = scheduling.cancel(db, payload.id)
    db.commit()
    db.refresh(schedule)
    return schedule


@router.post("/pt.complete", response_model=ScheduleOut)
def pt_complete(payload: ScheduleComplete, db: Session = Depends(get_db)):
    schedule = scheduling.complete(db, payload.id, ticket_id=payload.ticket_id)
    db.commit()
    db.refresh(schedule)
    return schedule


@router.post("/pt.record_session", response_model=TicketOut)
def pt_record_session(payload: TicketAction, db: Session = Depends(get_db), now: datetime = Depends(get_now)):
    ticket = scheduling.record_session(db, payload.id)
    db.commit()
    db.refresh(ticket)
    return ticket_out(ticket, now)


@router.post("/pt.assign_trainer", response_model=TicketOut)
def pt_assign_trainer(payload: AssignTrainer, db: Session = Depends(get_db), now: datetime = Depends(get_now)):
    ticket = scheduling.assign_trainer(db, payload.ticket_id, payload.trainer_id)
    db.commit()
    db.refresh(ticket)
    return ticket_out(ticket, now)


@router.get("/pt.schedules", response_model=SchedulesListResponse)
def pt_schedules(
    db: Session = Depends(get_db),
    slot_date: Optional[date] = Query(default=None),
    trainer_id: Optional[str] = None,
    member_id: Optional[str] = None,
    status: Optional[str] = None,
):
    items = scheduling.list_schedules(db, slot_date=slot_date, trainer_id=trainer_id, member_id=member_id, status=status)
    return {"items": items, "total": len(items)}


@router.get("/pt.summary", response_model=PTSummary)
def pt_summary(db: Session = Depends(get_db)):
    return scheduling.pt_summary(db)


@router.get("/pt.trainer_stats", response_model=TrainerStats)
def pt_trainer_stats(trainer_id: str, month: str, db: Session = Depends(get_db)):
    return scheduling.trainer_stats(db, trainer_id, month)
