from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from .. import entitlements
from ..config import get_settings
from ..deps import get_db, get_now, require_admin
from ..errors import ValidationError
from ..models import Sale, Ticket
from ..plans import get_catalog
from ..schemas import (
    FixDatesResponse,
    SalesListResponse,
    TicketIssue,
    TicketOut,
    TicketsListResponse,
)
from ..status import days_remaining


router = APIRouter(prefix="/api", tags=["tickets"], dependencies=[Depends(require_admin)])


def ticket_out(t: Ticket, now: datetime) -> TicketOut:
    return TicketOut(
        id=t.id,
        member_id=t.member_id,
        plan_id=t.plan_id,
        plan_name=t.plan_name,
        category=t.category,
        start_date=t.start_date,
        end_date=t.end_date,
        remaining=t.remaining,
        total_sessions=t.total_sessions,
        used_sessions=t.used_sessions,
        remaining_sessions=t.remaining_sessions,
        trainer_id=t.trainer_id,
        price=t.price,
        payment_method=t.payment_method,
        created_at=t.created_at,
        status=entitlements.recompute_status(t, now),
        days_remaining=days_remaining(t.end_date, now),
    )


@router.post("/tickets.issue", response_model=TicketOut)
def tickets_issue(payload: TicketIssue, db: Session = Depends(get_db), now: datetime = Depends(get_now)):
    plan = get_catalog().get(payload.plan_id)
    if plan is None:
        raise ValidationError(f"Unknown plan {payload.plan_id!r}")
    ticket = entitlements.issue_ticket(
        db,
        payload.member_id,
        plan,
        payload.start_date or now.date(),
        payload.payment_method,
        now=now,
    )
    db.commit()
    db.refresh(ticket)
    return ticket_out(ticket, now)


@router.get("/tickets.get", response_model=TicketOut)
def tickets_get(id: str, db: Session = Depends(get_db), now: datetime = Depends(get_now)):
    return ticket_out(entitlements.get_ticket(db, id), now)


@router.get("/tickets.list", response_model=TicketsListResponse)
def tickets_list(
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
    member_id: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
):
    rows = [ticket_out(t, now) for t in entitlements.list_tickets(db, member_id=member_id, category=category)]
    if status:
        rows = [t for t in rows if t.status == status]
    items = rows[(page - 1) * page_size : page * page_size]
    return {"items": items, "total": len(rows)}


@router.post("/tickets.fix_dates", response_model=FixDatesResponse)
def tickets_fix_dates(db: Session = Depends(get_db), now: datetime = Depends(get_now)):
    settings = get_settings()
    table = get_catalog().duration_table(settings.pt_validity_days)
    fixed = entitlements.repair_degenerate_windows(db, table, settings.degenerate_default_days)
    db.commit()
    return {"fixed": len(fixed), "items": [ticket_out(t, now) for t in fixed]}


@router.get("/tickets.audit", response_model=TicketsListResponse)
def tickets_audit(db: Session = Depends(get_db), now: datetime = Depends(get_now)):
    rows = entitlements.tickets_without_sale(db)
    return {"items": [ticket_out(t, now) for t in rows], "total": len(rows)}


@router.get("/sales.list", response_model=SalesListResponse)
def sales_list(
    db: Session = Depends(get_db),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
    member_id: Optional[str] = None,
    category: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
):
    stmt = select(Sale)
    if member_id:
        stmt = stmt.where(Sale.member_id == member_id)
    if category:
        stmt = stmt.where(Sale.category == category)
    if date_from:
        stmt = stmt.where(Sale.sale_date >= date_from)
    if date_to:
        stmt = stmt.where(Sale.sale_date <= date_to)

    rows = db.execute(stmt.order_by(Sale.created_at.desc())).scalars().all()
    total_amount = sum(s.amount for s in rows)
    items = rows[(page - 1) * page_size : page * page_size]
    return {"items": items, "total": len(rows), "total_amount": total_amount}
