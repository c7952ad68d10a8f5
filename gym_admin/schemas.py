from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class APIResponse(BaseModel):
    ok: bool = True
    message: Optional[str] = None


# Plans
class PlanOut(BaseModel):
    id: str
    name: str
    category: str
    price: int
    duration_days: Optional[int] = None
    session_count: Optional[int] = None

    model_config = dict(from_attributes=True)


class PlansListResponse(BaseModel):
    items: List[PlanOut]
    total: int


# Members
class MemberRegister(BaseModel):
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    gender: Optional[str] = None
    birth_date: Optional[date] = None
    address: Optional[str] = None
    emergency_contact: Optional[str] = None
    memo: Optional[str] = None
    staff: Optional[str] = None
    membership_plan_id: Optional[str] = None
    pt_plan_id: Optional[str] = None
    locker_plan_id: Optional[str] = None
    locker_number: Optional[int] = None
    start_date: Optional[date] = None
    payment_method: Optional[str] = Field(default="card")


class MemberOut(BaseModel):
    id: str
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    gender: Optional[str] = None
    birth_date: Optional[date] = None
    address: Optional[str] = None
    emergency_contact: Optional[str] = None
    memo: Optional[str] = None
    staff: Optional[str] = None
    has_locker: bool
    locker_number: Optional[int] = None
    created_at: datetime

    model_config = dict(from_attributes=True)


class MembersListResponse(BaseModel):
    items: List[MemberOut]
    total: int


# Tickets & sales
class TicketIssue(BaseModel):
    member_id: str
    plan_id: str
    start_date: Optional[date] = None
    payment_method: Optional[str] = Field(default="card")


class TicketAction(BaseModel):
    id: str


class TicketOut(BaseModel):
    id: str
    member_id: str
    plan_id: Optional[str]
    plan_name: str
    category: str
    start_date: date
    end_date: date
    remaining: int
    total_sessions: Optional[int]
    used_sessions: Optional[int]
    remaining_sessions: Optional[int]
    trainer_id: Optional[str]
    price: int
    payment_method: Optional[str]
    created_at: datetime
    # derived on read
    status: str
    days_remaining: int


class TicketsListResponse(BaseModel):
    items: List[TicketOut]
    total: int


class FixDatesResponse(BaseModel):
    fixed: int
    items: List[TicketOut]


class SaleOut(BaseModel):
    id: str
    member_id: str
    ticket_id: Optional[str]
    category: str
    plan_name: str
    amount: int
    payment_method: Optional[str]
    sale_date: date
    created_at: datetime

    model_config = dict(from_attributes=True)


class SalesListResponse(BaseModel):
    items: List[SaleOut]
    total: int
    total_amount: int


class RegistrationOut(BaseModel):
    member: MemberOut
    tickets: List[TicketOut]
    locker: Optional["LockerOut"] = None


# Lockers
class LockerAssign(BaseModel):
    number: int
    member_id: str
    duration_days: Optional[int] = Field(default=None, gt=0)
    plan_id: Optional[str] = None
    payment_method: Optional[str] = None


class LockerAction(BaseModel):
    number: int


class LockerMaintenance(BaseModel):
    number: int
    on: bool = True


class LockerOut(BaseModel):
    number: int
    status: str
    member_id: Optional[str] = None
    member_name: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    days_remaining: int = 0

    model_config = dict(from_attributes=True)


class LockersListResponse(BaseModel):
    items: List[LockerOut]
    total: int


class LockerAssignResponse(BaseModel):
    locker: LockerOut
    ticket: Optional[TicketOut] = None


# Trainers & PT
class TrainerCreate(BaseModel):
    name: str
    specialty: str
    phone: Optional[str] = None
    color: str = Field(default="blue")


class TrainerUpdate(BaseModel):
    id: str
    name: Optional[str] = None
    specialty: Optional[str] = None
    phone: Optional[str] = None
    color: Optional[str] = None


class TrainerAction(BaseModel):
    id: str


class TrainerOut(BaseModel):
    id: str
    name: str
    phone: Optional[str]
    specialty: str
    color: str

    model_config = dict(from_attributes=True)


class TrainersListResponse(BaseModel):
    items: List[TrainerOut]
    total: int


class ScheduleCreate(BaseModel):
    member_id: str
    trainer_id: str
    slot_date: date
    slot_time: str


class ScheduleAction(BaseModel):
    id: str


class ScheduleComplete(BaseModel):
    id: str
    ticket_id: Optional[str] = None


class ScheduleOut(BaseModel):
    id: str
    member_id: str
    trainer_id: str
    slot_date: date
    slot_time: str
    status: str
    created_at: datetime

    model_config = dict(from_attributes=True)


class SchedulesListResponse(BaseModel):
    items: List[ScheduleOut]
    total: int


class AssignTrainer(BaseModel):
    ticket_id: str
    trainer_id: Optional[str] = None


class PTSummary(BaseModel):
    packs: int
    total_sessions: int
    used_sessions: int
    remaining_sessions: int
    members_with_balance: int


class TrainerStats(BaseModel):
    trainer_id: str
    month: str
    assigned_packs: int
    completed_sessions: int


# Attendance
class CheckIn(BaseModel):
    member_id: str


class CheckOut(BaseModel):
    id: Optional[str] = None
    member_id: Optional[str] = None


class AttendanceOut(BaseModel):
    id: str
    member_id: str
    check_in_at: datetime
    check_out_at: Optional[datetime]
    duration_minutes: Optional[int]

    model_config = dict(from_attributes=True)


class AttendanceListResponse(BaseModel):
    items: List[AttendanceOut]
    total: int


# Member requests
class PurchaseRequestCreate(BaseModel):
    plan_id: str
    amount: Optional[int] = None
    payment_method: Optional[str] = None


class PauseRequestCreate(BaseModel):
    pause_start: date
    pause_end: date
    reason: Optional[str] = None


class RefundRequestCreate(BaseModel):
    reason: str
    bank: str
    account: str


class RequestAction(BaseModel):
    id: str


class MemberRequestOut(BaseModel):
    id: str
    member_id: str
    type: Literal["purchase", "pause", "refund"]
    status: str
    plan_id: Optional[str] = None
    plan_name: Optional[str] = None
    category: Optional[str] = None
    amount: Optional[int] = None
    payment_method: Optional[str] = None
    pause_start: Optional[date] = None
    pause_end: Optional[date] = None
    bank: Optional[str] = None
    account: Optional[str] = None
    reason: Optional[str] = None
    created_at: datetime
    decided_at: Optional[datetime] = None
    decided_by: Optional[str] = None

    model_config = dict(from_attributes=True)


class MemberRequestsListResponse(BaseModel):
    items: List[MemberRequestOut]
    total: int


class ApproveResponse(BaseModel):
    request: MemberRequestOut
    ticket: Optional[TicketOut] = None


# Payment events
class PaymentEventOut(BaseModel):
    id: int
    ts: datetime
    event_type: Optional[str]
    member_id: Optional[str]
    session_ref: Optional[str]

    model_config = dict(from_attributes=True)


class PaymentEventsListResponse(BaseModel):
    items: List[PaymentEventOut]
    total: int


# Member self-service
class MemberDashboard(BaseModel):
    member: MemberOut
    tickets: List[TicketOut]
    locker: Optional[LockerOut] = None
    checked_in: bool


RegistrationOut.model_rebuild()
