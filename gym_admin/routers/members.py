from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from .. import attendance, entitlements, lockers
from ..deps import Caller, get_db, get_now, require_admin, require_member
from ..errors import NotFound
from ..models import Member
from ..registration import register_member
from ..schemas import (
    AttendanceListResponse,
    LockerOut,
    MemberDashboard,
    MemberOut,
    MemberRegister,
    MembersListResponse,
    RegistrationOut,
)
from .tickets import ticket_out


router = APIRouter(prefix="/api", tags=["members"])


@router.post("/members.register", response_model=RegistrationOut, dependencies=[Depends(require_admin)])
def members_register(payload: MemberRegister, db: Session = Depends(get_db), now: datetime = Depends(get_now)):
    result = register_member(db, now, **payload.model_dump())
    db.commit()
    db.refresh(result.member)
    return {
        "member": MemberOut.model_validate(result.member),
        "tickets": [ticket_out(t, now) for t in result.tickets],
        "locker": LockerOut.model_validate(result.locker) if result.locker else None,
    }


@router.get("/members.get", response_model=MemberOut, dependencies=[Depends(require_admin)])
def members_get(id: str, db: Session = Depends(get_db)):
    member = db.get(Member, id)
    if not member:
        raise NotFound(f"Member {id} not found")
    return member


@router.get("/members.list", response_model=MembersListResponse, dependencies=[Depends(require_admin)])
def members_list(
    db: Session = Depends(get_db),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
    q: Optional[str] = None,
    has_locker: Optional[bool] = None,
):
    stmt = select(Member)
    if q:
        stmt = stmt.where(or_(Member.name.ilike(f"%{q}%"), Member.phone.ilike(f"%{q}%"), Member.email.ilike(f"%{q}%")))
    if has_locker is not None:
        stmt = stmt.where(Member.has_locker == has_locker)

    total = db.execute(stmt.order_by(Member.created_at.desc())).scalars().all()
    items = total[(page - 1) * page_size : page * page_size]
    return {"items": items, "total": len(total)}


@router.get("/me.dashboard", response_model=MemberDashboard)
def me_dashboard(
    caller: Caller = Depends(require_member),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    member = db.get(Member, caller.member_id)
    view = lockers.locker_for_member(db, member.id, now)
    open_visits = [r for r in attendance.history(db, member_id=member.id) if r.check_out_at is None]
    return {
        "member": MemberOut.model_validate(member),
        "tickets": [ticket_out(t, now) for t in entitlements.list_tickets(db, member_id=member.id)],
        "locker": LockerOut.model_validate(view) if view else None,
        "checked_in": bool(open_visits),
    }


@router.get("/me.attendance", response_model=AttendanceListResponse)
def me_attendance(caller: Caller = Depends(require_member), db: Session = Depends(get_db)):
    items = attendance.history(db, member_id=caller.member_id)
    return {"items": items, "total": len(items)}
