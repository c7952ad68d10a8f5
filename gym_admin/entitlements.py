from __future__ import annotations

"""
Entitlement store: tickets (membership, PT pack, locker rental) and the sales
ledger that accompanies every issued ticket.

Functions here never commit. They add and flush inside the caller's session so
that a ticket and its sale (or a whole registration) land in one transaction;
routers commit once the full unit has succeeded.
"""

import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from . import audit
from .config import get_settings
from .errors import InsufficientBalance, NotFound, ValidationError
from .models import Member, Sale, Ticket
from .plans import Plan
from .status import status_for


logger = logging.getLogger("entitlements")


def validity_days(plan: Plan, pt_validity_days: Optional[int] = None) -> int:
    """Length of the ticket window: the plan's duration, or the nominal PT window."""
    if plan.is_session_based:
        return pt_validity_days if pt_validity_days is not None else get_settings().pt_validity_days
    return int(plan.duration_days or 0)


def issue_ticket(
    db: Session,
    member_id: str,
    plan: Plan,
    start_date: date,
    payment_method: Optional[str],
    now: datetime,
    amount: Optional[int] = None,
    source_request_id: Optional[str] = None,
) -> Ticket:
    """Create a ticket and its sale as one unit (flushed, not committed)."""
    if not db.get(Member, member_id):
        raise NotFound(f"Member {member_id} not found")
    if start_date is None:
        raise ValidationError("start_date is required")

    days = validity_days(plan)
    if days <= 0:
        raise ValidationError(f"Plan {plan.id} has a non-positive duration")
    end_date = start_date + timedelta(days=days)
    if end_date <= start_date:
        raise ValidationError("end_date must be after start_date")

    sale_amount = plan.price if amount is None else amount
    if sale_amount < 0:
        raise ValidationError("amount must not be negative")

    ticket = Ticket(
        id=str(uuid.uuid4()),
        member_id=member_id,
        plan_id=plan.id,
        plan_name=plan.name,
        category=plan.category,
        start_date=start_date,
        end_date=end_date,
        remaining=plan.session_count if plan.is_session_based else days,
        total_sessions=plan.session_count if plan.is_session_based else None,
        used_sessions=0 if plan.is_session_based else None,
        price=sale_amount,
        payment_method=payment_method,
        source_request_id=source_request_id,
        created_at=now,
    )
    sale = Sale(
        id=str(uuid.uuid4()),
        member_id=member_id,
        ticket=ticket,
        category=plan.category,
        plan_name=plan.name,
        amount=sale_amount,
        payment_method=payment_method,
        sale_date=now.date(),
        created_at=now,
    )
    db.add(ticket)
    db.add(sale)
    db.flush()
    logger.info(
        "ticket issued id=%s member=%s plan=%s window=%s..%s amount=%s",
        ticket.id,
        member_id,
        plan.id,
        start_date,
        end_date,
        sale_amount,
    )
    return ticket


def get_ticket(db: Session, ticket_id: str) -> Ticket:
    ticket = db.get(Ticket, ticket_id)
    if not ticket:
        raise NotFound(f"Ticket {ticket_id} not found")
    return ticket


def consume_session(db: Session, ticket_id: str, actor: Optional[str] = "admin") -> Ticket:
    """Use one PT session.

    The balance check and the increment are a single conditional UPDATE, so two
    racing callers on a pack with one session left cannot both succeed.
    """
    stmt = (
        update(Ticket)
        .where(
            Ticket.id == ticket_id,
            Ticket.total_sessions.is_not(None),
            Ticket.used_sessions < Ticket.total_sessions,
        )
        .values(
            used_sessions=Ticket.used_sessions + 1,
            remaining=Ticket.total_sessions - (Ticket.used_sessions + 1),
        )
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    if result.rowcount == 0:
        ticket = get_ticket(db, ticket_id)
        if ticket.total_sessions is None:
            raise ValidationError(f"Ticket {ticket_id} is not a session pack")
        logger.warning("session refused ticket=%s used=%s total=%s", ticket_id, ticket.used_sessions, ticket.total_sessions)
        raise InsufficientBalance(f"Ticket {ticket_id} has no remaining sessions")

    ticket = db.get(Ticket, ticket_id, populate_existing=True)
    audit.record(db, "session.consume", "ticket", ticket_id, actor=actor, message=f"used={ticket.used_sessions}")
    logger.info("session consumed ticket=%s used=%s/%s", ticket_id, ticket.used_sessions, ticket.total_sessions)
    return ticket


def recompute_status(ticket: Ticket, now: datetime, threshold: Optional[int] = None) -> str:
    if threshold is None:
        threshold = get_settings().expiring_threshold_days
    return status_for(ticket.end_date, now, threshold)


def fix_degenerate_window(ticket: Ticket, plan_durations: Dict[str, int], default_days: int = 365) -> bool:
    """Repair a ticket whose window collapsed to a single day (start == end).

    Only end_date changes. Returns False (and touches nothing) when the window
    is already sound, which makes repeated runs no-ops.
    """
    if ticket.start_date is None or ticket.end_date is None:
        return False
    if ticket.start_date != ticket.end_date:
        return False
    duration = plan_durations.get(ticket.plan_name, default_days)
    if duration is None or duration <= 0:
        raise ValidationError(f"No positive duration for plan {ticket.plan_name!r}")
    ticket.end_date = ticket.start_date + timedelta(days=duration)
    return True


def repair_degenerate_windows(
    db: Session, plan_durations: Dict[str, int], default_days: int = 365
) -> List[Ticket]:
    candidates = db.execute(select(Ticket).where(Ticket.start_date == Ticket.end_date)).scalars().all()
    fixed: List[Ticket] = []
    for ticket in candidates:
        if fix_degenerate_window(ticket, plan_durations, default_days):
            fixed.append(ticket)
            audit.record(
                db,
                "ticket.fix_window",
                "ticket",
                ticket.id,
                message=f"{ticket.plan_name}: {ticket.start_date}..{ticket.end_date}",
            )
    db.flush()
    if fixed:
        logger.info("repaired %s degenerate ticket windows", len(fixed))
    return fixed


def tickets_without_sale(db: Session) -> List[Ticket]:
    """Tickets with no ledger row; should always be empty."""
    stmt = (
        select(Ticket)
        .outerjoin(Sale, Sale.ticket_id == Ticket.id)
        .where(Sale.id.is_(None))
        .order_by(Ticket.created_at)
    )
    return list(db.execute(stmt).scalars().unique().all())


def list_tickets(
    db: Session, member_id: Optional[str] = None, category: Optional[str] = None
) -> List[Ticket]:
    stmt = select(Ticket)
    if member_id:
        stmt = stmt.where(Ticket.member_id == member_id)
    if category:
        stmt = stmt.where(Ticket.category == category)
    return list(db.execute(stmt.order_by(Ticket.created_at.desc())).scalars().unique().all())
