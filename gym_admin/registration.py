from __future__ import annotations

"""
Front-desk registration: a new member plus any membership, PT pack and locker
rental bought on the spot, written as one transaction.

The locker is taken through the allocator (an explicit number, or the lowest
free one), so registration honors the same exclusivity check as the locker
desk.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from . import audit, lockers
from .entitlements import issue_ticket
from .errors import EngineError, ValidationError
from .models import Member, Ticket
from .plans import LOCKER, MEMBERSHIP, PT, get_catalog


logger = logging.getLogger("registration")


@dataclass
class Registration:
    member: Member
    tickets: List[Ticket] = field(default_factory=list)
    locker: Optional[lockers.LockerView] = None


def _plan(plan_id: Optional[str], category: str):
    if not plan_id:
        return None
    plan = get_catalog().get(plan_id)
    if plan is None or plan.category != category:
        raise ValidationError(f"{plan_id!r} is not a {category} plan")
    return plan


def register_member(
    db: Session,
    now: datetime,
    name: str,
    phone: Optional[str] = None,
    email: Optional[str] = None,
    gender: Optional[str] = None,
    birth_date: Optional[date] = None,
    address: Optional[str] = None,
    emergency_contact: Optional[str] = None,
    memo: Optional[str] = None,
    staff: Optional[str] = None,
    membership_plan_id: Optional[str] = None,
    pt_plan_id: Optional[str] = None,
    locker_plan_id: Optional[str] = None,
    locker_number: Optional[int] = None,
    start_date: Optional[date] = None,
    payment_method: Optional[str] = None,
) -> Registration:
    if not name or not name.strip():
        raise ValidationError("name is required")
    membership = _plan(membership_plan_id, MEMBERSHIP)
    pt = _plan(pt_plan_id, PT)
    locker_plan = _plan(locker_plan_id, LOCKER)
    if locker_number is not None and locker_plan is None:
        raise ValidationError("locker_number requires a locker plan")
    start = start_date or now.date()

    member = Member(
        id=str(uuid.uuid4()),
        name=name.strip(),
        phone=phone,
        email=email,
        gender=gender,
        birth_date=birth_date,
        address=address,
        emergency_contact=emergency_contact,
        memo=memo,
        staff=staff,
        created_at=now,
    )
    db.add(member)
    db.flush()

    result = Registration(member=member)
    for plan in (membership, pt):
        if plan is not None:
            result.tickets.append(issue_ticket(db, member.id, plan, start, payment_method, now=now))

    if locker_plan is not None:
        try:
            number = locker_number if locker_number is not None else lockers.first_free_number(db, now)
            # allocator raises Conflict before the rental is billed
            result.locker = lockers.assign(db, number, member.id, int(locker_plan.duration_days), now)
        except EngineError:
            db.rollback()
            raise
        result.tickets.append(issue_ticket(db, member.id, locker_plan, now.date(), payment_method, now=now))

    audit.record(db, "member.register", "member", member.id, actor=staff or "admin")
    db.flush()
    logger.info(
        "registered member=%s tickets=%s locker=%s",
        member.id,
        len(result.tickets),
        result.locker.number if result.locker else None,
    )
    return result
