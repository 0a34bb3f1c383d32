"""Validators and helpers for Slack slash commands."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List

from office_workflow_bot.models import InvalidInputError

from .channels import LEAVE_APPROVAL_CHANNEL, ORIGIN_CHANNEL, is_channel_family

ATTENDANCE_CHECK_IN_ACTION_ID = "attendance_check_in"
ATTENDANCE_BREAK_START_ACTION_ID = "attendance_break_start"
ATTENDANCE_BREAK_END_ACTION_ID = "attendance_break_end"
ATTENDANCE_CHECK_OUT_ACTION_ID = "attendance_check_out"
LEAVE_OPEN_ACTION_ID = "leave_open"

_MENU = (
    (ATTENDANCE_CHECK_IN_ACTION_ID, "Check in", "primary"),
    (ATTENDANCE_BREAK_START_ACTION_ID, "Start break", None),
    (ATTENDANCE_BREAK_END_ACTION_ID, "End break", None),
    (ATTENDANCE_CHECK_OUT_ACTION_ID, "Check out", "danger"),
    (LEAVE_OPEN_ACTION_ID, "Request leave", None),
)


@dataclass
class BudgetCommand:
    action: str
    request_id: str | None = None


@dataclass
class AttendanceCommand:
    action: str
    from_day: date | None = None
    to_day: date | None = None


def is_budget_origin_channel(channel_name: str | None, prefix: str) -> bool:
    return is_channel_family(channel_name, ORIGIN_CHANNEL.format(prefix=prefix))


def is_attendance_channel(channel_name: str | None, prefix: str) -> bool:
    """True for ``attendance[-env]`` but not for its approval channel."""

    if is_channel_family(channel_name, LEAVE_APPROVAL_CHANNEL.format(prefix=prefix, suffix="")):
        return False
    return is_channel_family(channel_name, prefix)


def parse_budget_command(text: str) -> BudgetCommand:
    parts = (text or "").split()
    if not parts:
        return BudgetCommand(action="create")
    if parts[0].lower() == "status" and len(parts) == 2:
        return BudgetCommand(action="status", request_id=parts[1])
    raise InvalidInputError("Usage: /budget or /budget status <request id>")


def _parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise InvalidInputError(f"`{value}` is not a date in YYYY-MM-DD format.") from exc


def parse_attendance_command(text: str, *, today: date) -> AttendanceCommand:
    """Parse ``/attendance [leaves | report [from [to]]]``; a missing range means *today*."""

    parts = (text or "").split()
    if not parts:
        return AttendanceCommand(action="menu")

    if parts[0].lower() == "leaves" and len(parts) == 1:
        return AttendanceCommand(action="leaves")
    if parts[0].lower() != "report" or len(parts) > 3:
        raise InvalidInputError(
            "Usage: /attendance, /attendance leaves or /attendance report [YYYY-MM-DD [YYYY-MM-DD]]"
        )

    from_day = _parse_day(parts[1]) if len(parts) > 1 else today
    to_day = _parse_day(parts[2]) if len(parts) > 2 else from_day
    return AttendanceCommand(action="report", from_day=from_day, to_day=to_day)


def build_attendance_menu(*, channel_id: str) -> List[Dict[str, Any]]:
    elements = []
    for action_id, label, style in _MENU:
        element: Dict[str, Any] = {
            "type": "button",
            "text": {"type": "plain_text", "text": label, "emoji": True},
            "action_id": action_id,
            "value": channel_id,
        }
        if style:
            element["style"] = style
        elements.append(element)
    return [
        {"type": "section", "text": {"type": "mrkdwn", "text": "What would you like to do?"}},
        {"type": "actions", "block_id": "attendance_menu", "elements": elements},
    ]
