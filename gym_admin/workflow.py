from __future__ import annotations

"""
Request workflow: member-initiated purchase, pause and refund requests.

    pending -> approved | rejected      (terminal, decided once by an administrator)

Approving a purchase issues the ticket and its sale in the same transaction as
the status flip, and the ticket records the request id (unique), so one request
can never yield two tickets.

Approving a pause or refund only flips the status. Nothing moves the ticket's
window or records a negative sale yet; that follow-up is pending a product
decision on how pauses extend memberships and how refunds are booked.
"""

import logging
import uuid
from datetime import date, datetime
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from . import audit
from .entitlements import issue_ticket
from .errors import EngineError, InvalidTransition, NotFound, ValidationError
from .models import Member, MemberRequest, Ticket
from .plans import get_catalog


logger = logging.getLogger("workflow")

PURCHASE = "purchase"
PAUSE = "pause"
REFUND = "refund"

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"


def _require_member(db: Session, member_id: str) -> None:
    if not db.get(Member, member_id):
        raise NotFound(f"Member {member_id} not found")


def submit_purchase(
    db: Session,
    member_id: str,
    plan_id: str,
    now: datetime,
    amount: Optional[int] = None,
    payment_method: Optional[str] = None,
) -> MemberRequest:
    _require_member(db, member_id)
    plan = get_catalog().get(plan_id)
    if plan is None:
        raise ValidationError(f"Unknown plan {plan_id!r}")
    price = plan.price if amount is None else amount
    if price <= 0:
        raise ValidationError("amount must be positive")
    req = MemberRequest(
        id=str(uuid.uuid4()),
        member_id=member_id,
        type=PURCHASE,
        status=PENDING,
        plan_id=plan.id,
        plan_name=plan.name,
        category=plan.category,
        amount=price,
        payment_method=payment_method or "pending",
        created_at=now,
    )
    db.add(req)
    db.flush()
    logger.info("purchase requested id=%s member=%s plan=%s", req.id, member_id, plan.id)
    return req


def submit_pause(
    db: Session, member_id: str, pause_start: date, pause_end: date, reason: Optional[str], now: datetime
) -> MemberRequest:
    _require_member(db, member_id)
    if pause_start is None or pause_end is None:
        raise ValidationError("pause_start and pause_end are required")
    if pause_end <= pause_start:
        raise ValidationError("pause_end must be after pause_start")
    req = MemberRequest(
        id=str(uuid.uuid4()),
        member_id=member_id,
        type=PAUSE,
        status=PENDING,
        pause_start=pause_start,
        pause_end=pause_end,
        reason=reason,
        created_at=now,
    )
    db.add(req)
    db.flush()
    logger.info("pause requested id=%s member=%s %s..%s", req.id, member_id, pause_start, pause_end)
    return req


def submit_refund(
    db: Session, member_id: str, reason: str, bank: str, account: str, now: datetime
) -> MemberRequest:
    _require_member(db, member_id)
    missing = [name for name, value in (("reason", reason), ("bank", bank), ("account", account)) if not value]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")
    req = MemberRequest(
        id=str(uuid.uuid4()),
        member_id=member_id,
        type=REFUND,
        status=PENDING,
        reason=reason,
        bank=bank,
        account=account,
        created_at=now,
    )
    db.add(req)
    db.flush()
    logger.info("refund requested id=%s member=%s", req.id, member_id)
    return req


def get_request(db: Session, request_id: str) -> MemberRequest:
    req = db.get(MemberRequest, request_id)
    if not req:
        raise NotFound(f"Request {request_id} not found")
    return req


def _decide(db: Session, req: MemberRequest, status: str, now: datetime, decided_by: Optional[str]) -> None:
    result = db.execute(
        update(MemberRequest)
        .where(MemberRequest.id == req.id, MemberRequest.status == PENDING)
        .values(status=status, decided_at=now, decided_by=decided_by)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise InvalidTransition(f"Request {req.id} is already decided")


def approve(
    db: Session, request_id: str, now: datetime, decided_by: Optional[str] = "admin"
) -> Tuple[MemberRequest, Optional[Ticket]]:
    req = get_request(db, request_id)
    if req.status != PENDING:
        raise InvalidTransition(f"Request {request_id} is already {req.status}")

    plan = None
    if req.type == PURCHASE:
        plan = get_catalog().find(req.plan_id, req.plan_name)
        if plan is None:
            raise ValidationError(f"Request {request_id} references an unknown plan")

    _decide(db, req, APPROVED, now, decided_by)
    audit.record(db, "request.approve", "member_request", req.id, actor=decided_by, message=req.type)
    ticket = None
    if plan is not None:
        try:
            ticket = issue_ticket(
                db,
                req.member_id,
                plan,
                now.date(),
                req.payment_method or "pending",
                now=now,
                amount=req.amount,
                source_request_id=req.id,
            )
        except EngineError:
            # keep the request pending when the ticket cannot be issued
            db.rollback()
            raise
    db.flush()
    req = db.get(MemberRequest, request_id, populate_existing=True)
    logger.info("request approved id=%s type=%s ticket=%s", request_id, req.type, ticket.id if ticket else None)
    if req.type in (PAUSE, REFUND):
        logger.warning("request %s approved as %s; ticket window and ledger left unchanged", request_id, req.type)
    return req, ticket


def reject(db: Session, request_id: str, now: datetime, decided_by: Optional[str] = "admin") -> MemberRequest:
    req = get_request(db, request_id)
    if req.status != PENDING:
        raise InvalidTransition(f"Request {request_id} is already {req.status}")
    _decide(db, req, REJECTED, now, decided_by)
    audit.record(db, "request.reject", "member_request", req.id, actor=decided_by, message=req.type)
    db.flush()
    logger.info("request rejected id=%s type=%s", request_id, req.type)
    return db.get(MemberRequest, request_id, populate_existing=True)


def list_requests(
    db: Session,
    status: Optional[str] = None,
    type_: Optional[str] = None,
    member_id: Optional[str] = None,
) -> List[MemberRequest]:
    stmt = select(MemberRequest)
    if status:
        stmt = stmt.where(MemberRequest.status == status)
    if type_:
        stmt = stmt.where(MemberRequest.type == type_)
    if member_id:
        stmt = stmt.where(MemberRequest.member_id == member_id)
    return list(db.execute(stmt.order_by(MemberRequest.created_at.desc())).scalars().all())
