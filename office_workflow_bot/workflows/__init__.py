"""Budget, leave and attendance workflows."""

from .attendance import AttendanceService, AttendanceSummary, summarize, total_break_time
from .budget import BudgetWorkflow, EditEverywhere, ThreadReply, UpsertView
from .channels import ChannelDirectory, ChannelInfo
from .documents import (
    AttendanceRecord,
    AttendanceStatus,
    BreakInterval,
    BudgetRequest,
    BudgetRole,
    LeaveRequest,
    LeaveStatus,
    LeaveType,
)
from .leave import LeaveService, validate_dates
from .notifications import NotificationGateway, TransitionResult
from .state import BudgetOperation, BudgetStep
from .storage import DocumentRepository, attendance_repository, budget_repository, leave_repository

__all__ = [
    "AttendanceRecord",
    "AttendanceService",
    "AttendanceStatus",
    "AttendanceSummary",
    "BreakInterval",
    "BudgetOperation",
    "BudgetRequest",
    "BudgetRole",
    "BudgetStep",
    "BudgetWorkflow",
    "ChannelDirectory",
    "ChannelInfo",
    "DocumentRepository",
    "EditEverywhere",
    "LeaveRequest",
    "LeaveService",
    "LeaveStatus",
    "LeaveType",
    "NotificationGateway",
    "ThreadReply",
    "TransitionResult",
    "UpsertView",
    "attendance_repository",
    "budget_repository",
    "leave_repository",
    "summarize",
    "total_break_time",
    "validate_dates",
]
