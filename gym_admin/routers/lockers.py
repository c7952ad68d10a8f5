from __future__ import annotations

"""
Locker desk endpoints. Status is derived on every read, so an occupied locker
past its end date shows as expired without any sweep.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import entitlements, lockers
from ..deps import Caller, get_db, get_now, require_admin
from ..errors import ValidationError
from ..plans import LOCKER, get_catalog
from ..schemas import (
    LockerAction,
    LockerAssign,
    LockerAssignResponse,
    LockerMaintenance,
    LockerOut,
    LockersListResponse,
)
from .tickets import ticket_out


router = APIRouter(prefix="/api", tags=["lockers"], dependencies=[Depends(require_admin)])


@router.get("/lockers.list", response_model=LockersListResponse)
def lockers_list(
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    status: Optional[str] = Query(default=None),
):
    if status and status not in lockers.STATUSES:
        raise ValidationError(f"Unknown locker status {status!r}")
    items = lockers.list_lockers(db, now, status=status)
    return {"items": items, "total": len(items)}


@router.get("/lockers.summary")
def lockers_summary(db: Session = Depends(get_db), now: datetime = Depends(get_now)):
    return lockers.summary(db, now)


@router.get("/lockers.get", response_model=LockerOut)
def lockers_get(number: int, db: Session = Depends(get_db), now: datetime = Depends(get_now)):
    return lockers.get_locker(db, number, now)


@router.post("/lockers.assign", response_model=LockerAssignResponse)
def lockers_assign(
    payload: LockerAssign,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    caller: Caller = Depends(require_admin),
):
    # a locker plan sets the duration and bills the rental in the same transaction
    plan = None
    duration = payload.duration_days
    if payload.plan_id:
        plan = get_catalog().get(payload.plan_id)
        if plan is None or plan.category != LOCKER:
            raise ValidationError(f"{payload.plan_id!r} is not a locker plan")
        duration = plan.duration_days
    if not duration:
        raise ValidationError("duration_days or plan_id is required")

    view = lockers.assign(db, payload.number, payload.member_id, duration, now, actor=caller.role)
    ticket = None
    if plan is not None:
        ticket = entitlements.issue_ticket(db, payload.member_id, plan, now.date(), payload.payment_method, now=now)
    db.commit()
    return {"locker": view, "ticket": ticket_out(ticket, now) if ticket else None}


@router.post("/lockers.release", response_model=LockerOut)
def lockers_release(
    payload: LockerAction,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    caller: Caller = Depends(require_admin),
):
    view = lockers.release(db, payload.number, now, actor=caller.role)
    db.commit()
    return view


@router.post("/lockers.maintenance", response_model=LockerOut)
def lockers_maintenance(
    payload: LockerMaintenance,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    caller: Caller = Depends(require_admin),
):
    view = lockers.set_maintenance(db, payload.number, payload.on, now, actor=caller.role)
    db.commit()
    return view
