"""Pydantic documents persisted by the workflow repositories."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, Field

from .state import BudgetStep


class BudgetRole(str, Enum):
    """Channels a budget request posts into, in display order."""

    ORIGIN = "origin"
    PARTNER = "partner"
    REVIEWER = "reviewer"
    APPROVER = "approver"
    FINANCE = "finance"


class BudgetRequest(BaseModel):
    id: str = ""
    team_id: str | None = None
    current_step: BudgetStep = BudgetStep.CREATED
    channels: Dict[BudgetRole, str] = Field(default_factory=dict)
    messages: Dict[BudgetRole, str] = Field(default_factory=dict)

    created_by: str
    name: str
    partner: str
    amount: Decimal
    purpose: str
    deadline: date

    content_by: str | None = None
    post_content: str | None = None
    post_link: str | None = None
    page_link: str | None = None
    content_at: datetime | None = None

    reviewer_id: str | None = None
    confirmed_at: datetime | None = None
    returned_by: str | None = None
    return_reason: str | None = None

    payment_by: str | None = None
    recipient_name: str | None = None
    bank_account: str | None = None
    bank_name: str | None = None
    payment_amount: Decimal | None = None
    payment_at: datetime | None = None

    approver_id: str | None = None
    approved_at: datetime | None = None

    finance_by: str | None = None
    transaction_ref: str | None = None
    bill_ref: str | None = None
    completed_at: datetime | None = None

    rejected_by: str | None = None
    rejected_at: datetime | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = Field(0, exclude=True)

    def handle(self, role: BudgetRole) -> str | None:
        return self.messages.get(role) or None

    @property
    def outcome(self) -> str:
        if self.rejected_at is not None:
            return "rejected"
        if self.current_step is BudgetStep.COMPLETED:
            return "completed"
        return "in_progress"


class LeaveType(str, Enum):
    LEAVE = "leave"
    EMERGENCY = "emergency"
    SICK = "sick"
    LATE_ARRIVAL = "late_arrival"
    EARLY_DEPARTURE = "early_departure"

    @property
    def label(self) -> str:
        return _LEAVE_LABELS[self]

    @property
    def is_partial_day(self) -> bool:
        return self in (LeaveType.LATE_ARRIVAL, LeaveType.EARLY_DEPARTURE)


_LEAVE_LABELS = {
    LeaveType.LEAVE: "Annual leave",
    LeaveType.EMERGENCY: "Emergency leave",
    LeaveType.SICK: "Sick leave",
    LeaveType.LATE_ARRIVAL: "Late arrival",
    LeaveType.EARLY_DEPARTURE: "Early departure",
}


class LeaveStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class LeaveRequest(BaseModel):
    id: str = ""
    user_id: str
    username: str
    team_id: str | None = None
    channel_id: str
    approval_channel_id: str
    leave_type: LeaveType
    dates: List[date]
    expected_time: str | None = None
    reason: str
    status: LeaveStatus = LeaveStatus.PENDING
    decided_by: str | None = None
    decided_by_name: str | None = None
    decided_at: datetime | None = None
    reject_reason: str | None = None
    info_message_ts: str | None = None
    approval_message_ts: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = Field(0, exclude=True)


class AttendanceStatus(str, Enum):
    WORKING = "working"
    ON_BREAK = "break"
    COMPLETED = "completed"


class BreakInterval(BaseModel):
    start: datetime
    end: datetime | None = None
    reason: str = ""

    def duration(self, now: datetime | None = None) -> timedelta:
        """Length of the break; an open break only counts up to *now* when given."""

        end = self.end or now
        if end is None:
            return timedelta(0)
        return max(end - self.start, timedelta(0))


class AttendanceRecord(BaseModel):
    id: str = ""
    user_id: str
    username: str
    team_id: str | None = None
    channel_id: str
    day: date
    check_in: datetime
    breaks: List[BreakInterval] = Field(default_factory=list)
    check_out: datetime | None = None
    status: AttendanceStatus = AttendanceStatus.WORKING
    photo_url: str | None = None
    message_ts: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = Field(0, exclude=True)

    @property
    def natural_key(self) -> str:
        return attendance_key(self.user_id, self.day)

    @property
    def open_break(self) -> BreakInterval | None:
        for interval in reversed(self.breaks):
            if interval.end is None:
                return interval
        return None


def attendance_key(user_id: str, day: date) -> str:
    return f"{user_id}:{day.isoformat()}"
