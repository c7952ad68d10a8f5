from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import attendance
from ..deps import get_db, get_now, require_admin
from ..errors import ValidationError
from ..schemas import AttendanceListResponse, AttendanceOut, CheckIn, CheckOut


router = APIRouter(prefix="/api", tags=["attendance"], dependencies=[Depends(require_admin)])


@router.post("/attendance.check_in", response_model=AttendanceOut)
def attendance_check_in(payload: CheckIn, db: Session = Depends(get_db), now: datetime = Depends(get_now)):
    record = attendance.check_in(db, payload.member_id, now)
    db.commit()
    db.refresh(record)
    return record


@router.post("/attendance.check_out", response_model=AttendanceOut)
def attendance_check_out(payload: CheckOut, db: Session = Depends(get_db), now: datetime = Depends(get_now)):
    if payload.id:
        record = attendance.check_out(db, payload.id, now)
    elif payload.member_id:
        record = attendance.check_out_member(db, payload.member_id, now)
    else:
        raise ValidationError("id or member_id is required")
    db.commit()
    db.refresh(record)
    return record


@router.get("/attendance.current", response_model=AttendanceListResponse)
def attendance_current(db: Session = Depends(get_db), now: datetime = Depends(get_now)):
    items = attendance.currently_in(db, now)
    return {"items": items, "total": len(items)}


@router.get("/attendance.list", response_model=AttendanceListResponse)
def attendance_list(
    db: Session = Depends(get_db),
    member_id: Optional[str] = None,
    day: Optional[date] = None,
):
    items = attendance.history(db, member_id=member_id, day=day)
    return {"items": items, "total": len(items)}
