from __future__ import annotations

"""
Relational schema for members, entitlements (tickets), lockers, PT scheduling,
attendance, member requests and the sales ledger.

Status columns on tickets do not exist: entitlement status is derived from
dates on read (see status.py). Exclusivity rules live in the schema where the
database can enforce them atomically (unique locker numbers, partial unique
indexes for live PT slots and open attendance sessions).
"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


class Member(Base):
    __tablename__ = "members"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    gender: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    birth_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    emergency_contact: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    memo: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    staff: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    # Reciprocal side of Locker.member_id; kept in step by the locker allocator
    has_locker: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    locker_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class Trainer(Base):
    __tablename__ = "trainers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    specialty: Mapped[str] = mapped_column(String(255), nullable=False)
    color: Mapped[str] = mapped_column(String(16), default="blue", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class Ticket(Base):
    """
    A purchased entitlement: membership, PT session pack or locker rental.
    `remaining` holds days for day-counted plans and sessions for PT packs.
    """
    __tablename__ = "tickets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    member_id: Mapped[str] = mapped_column(String(36), ForeignKey("members.id", ondelete="CASCADE"), index=True)
    plan_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    plan_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(16), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    remaining: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_sessions: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    used_sessions: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    trainer_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("trainers.id", ondelete="SET NULL"), nullable=True)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_method: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    source_request_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    member: Mapped[Member] = relationship(Member, lazy="joined")
    trainer: Mapped[Optional[Trainer]] = relationship(Trainer, lazy="joined")

    __table_args__ = (
        CheckConstraint("used_sessions IS NULL OR used_sessions >= 0", name="ck_ticket_used_non_negative"),
        CheckConstraint(
            "used_sessions IS NULL OR total_sessions IS NULL OR used_sessions <= total_sessions",
            name="ck_ticket_used_within_total",
        ),
        Index("ix_tickets_category", "category"),
        Index("ix_tickets_end_date", "end_date"),
    )

    @property
    def remaining_sessions(self) -> Optional[int]:
        if self.total_sessions is None:
            return None
        return self.total_sessions - (self.used_sessions or 0)


class Sale(Base):
    """Append-only sales ledger; one row per issued ticket."""
    __tablename__ = "sales"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    member_id: Mapped[str] = mapped_column(String(36), ForeignKey("members.id", ondelete="CASCADE"), index=True)
    ticket_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("tickets.id"), nullable=True, index=True)
    category: Mapped[str] = mapped_column(String(16), nullable=False)
    plan_name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_method: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    sale_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    # lets the unit of work insert the ticket before its sale
    ticket: Mapped[Optional[Ticket]] = relationship(Ticket)

    __table_args__ = (
        Index("ix_sales_sale_date", "sale_date"),
    )


class Locker(Base):
    """
    One row per locker number that has ever been touched. Numbers without a row
    are available. Stored `occupied` past its end date reads as `expired`.
    """
    __tablename__ = "lockers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    number: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(16), default="available", nullable=False)
    member_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("members.id", ondelete="SET NULL"), nullable=True, index=True)
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    member: Mapped[Optional[Member]] = relationship(Member, lazy="joined")

    __table_args__ = (
        CheckConstraint(
            "status IN ('available', 'occupied', 'expired', 'maintenance')", name="ck_locker_status"
        ),
    )


class Schedule(Base):
    """PT bookings. At most one non-cancelled booking per (trainer, date, time)."""
    __tablename__ = "pt_schedules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    member_id: Mapped[str] = mapped_column(String(36), ForeignKey("members.id", ondelete="CASCADE"), index=True)
    trainer_id: Mapped[str] = mapped_column(String(36), ForeignKey("trainers.id", ondelete="CASCADE"), index=True)
    slot_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    slot_time: Mapped[str] = mapped_column("time", String(5), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="scheduled", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    member: Mapped[Member] = relationship(Member, lazy="joined")
    trainer: Mapped[Trainer] = relationship(Trainer, lazy="joined")

    __table_args__ = (
        Index(
            "uq_pt_schedules_live_slot",
            "trainer_id",
            "date",
            "time",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
        Index("ix_pt_schedules_date", "date"),
    )


class AttendanceRecord(Base):
    """Check-in/check-out rows. At most one open (no check-out) row per member."""
    __tablename__ = "attendance"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    member_id: Mapped[str] = mapped_column(String(36), ForeignKey("members.id", ondelete="CASCADE"), index=True)
    check_in_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    check_out_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    member: Mapped[Member] = relationship(Member, lazy="joined")

    __table_args__ = (
        Index(
            "uq_attendance_open_member",
            "member_id",
            unique=True,
            sqlite_where=text("check_out_at IS NULL"),
            postgresql_where=text("check_out_at IS NULL"),
        ),
        Index("ix_attendance_check_in_at", "check_in_at"),
    )

    @property
    def duration_minutes(self) -> Optional[int]:
        if self.check_out_at is None:
            return None
        return int((self.check_out_at - self.check_in_at).total_seconds() // 60)


class MemberRequest(Base):
    """Member-initiated purchase/pause/refund requests awaiting an administrator."""
    __tablename__ = "member_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    member_id: Mapped[str] = mapped_column(String(36), ForeignKey("members.id", ondelete="CASCADE"), index=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="pending", nullable=False)
    # purchase
    plan_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    plan_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    payment_method: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    # pause
    pause_start: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    pause_end: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    # refund
    bank: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    account: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    decided_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        CheckConstraint("type IN ('purchase', 'pause', 'refund')", name="ck_request_type"),
        CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="ck_request_status"),
        Index("ix_member_requests_status", "status"),
    )


class PaymentEvent(Base):
    """Raw payment-gateway confirmations. Informational only; never issues tickets."""
    __tablename__ = "payment_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ts: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    event_type: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    member_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    session_ref: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    payload: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class SystemLog(Base):
    """Append-only audit trail of administrative actions."""
    __tablename__ = "system_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ts: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    actor: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    entity: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
