from __future__ import annotations

"""
Member requests: members submit purchase, pause and refund requests for
themselves; administrators list and decide them.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import workflow
from ..deps import Caller, get_db, get_now, require_admin, require_member
from ..schemas import (
    ApproveResponse,
    MemberRequestOut,
    MemberRequestsListResponse,
    PauseRequestCreate,
    PurchaseRequestCreate,
    RefundRequestCreate,
    RequestAction,
)
from .tickets import ticket_out


router = APIRouter(prefix="/api", tags=["requests"])


@router.post("/requests.purchase", response_model=MemberRequestOut)
def requests_purchase(
    payload: PurchaseRequestCreate,
    caller: Caller = Depends(require_member),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    req = workflow.submit_purchase(
        db, caller.member_id, payload.plan_id, now, amount=payload.amount, payment_method=payload.payment_method
    )
    db.commit()
    db.refresh(req)
    return req


@router.post("/requests.pause", response_model=MemberRequestOut)
def requests_pause(
    payload: PauseRequestCreate,
    caller: Caller = Depends(require_member),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    req = workflow.submit_pause(db, caller.member_id, payload.pause_start, payload.pause_end, payload.reason, now)
    db.commit()
    db.refresh(req)
    return req


@router.post("/requests.refund", response_model=MemberRequestOut)
def requests_refund(
    payload: RefundRequestCreate,
    caller: Caller = Depends(require_member),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    req = workflow.submit_refund(db, caller.member_id, payload.reason, payload.bank, payload.account, now)
    db.commit()
    db.refresh(req)
    return req


@router.get("/me.requests", response_model=MemberRequestsListResponse)
def me_requests(caller: Caller = Depends(require_member), db: Session = Depends(get_db)):
    items = workflow.list_requests(db, member_id=caller.member_id)
    return {"items": items, "total": len(items)}


@router.get("/requests.list", response_model=MemberRequestsListResponse, dependencies=[Depends(require_admin)])
def requests_list(
    db: Session = Depends(get_db),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
    status: Optional[str] = None,
    type: Optional[str] = None,
    member_id: Optional[str] = None,
):
    rows = workflow.list_requests(db, status=status, type_=type, member_id=member_id)
    items = rows[(page - 1) * page_size : page * page_size]
    return {"items": items, "total": len(rows)}


@router.post("/requests.approve", response_model=ApproveResponse)
def requests_approve(
    payload: RequestAction,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    req, ticket = workflow.approve(db, payload.id, now, decided_by=caller.role)
    db.commit()
    return {
        "request": MemberRequestOut.model_validate(req),
        "ticket": ticket_out(ticket, now) if ticket else None,
    }


@router.post("/requests.reject", response_model=MemberRequestOut)
def requests_reject(
    payload: RequestAction,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    req = workflow.reject(db, payload.id, now, decided_by=caller.role)
    db.commit()
    db.refresh(req)
    return req
