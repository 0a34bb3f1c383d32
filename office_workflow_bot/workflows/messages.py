"""Block Kit views for workflow messages.

Every function here is pure: it takes an entity snapshot and returns the
payload to post or edit. Nothing in this module talks to Slack.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from office_workflow_bot.actions import encode_action_value

from .documents import AttendanceRecord, BudgetRequest, LeaveRequest, LeaveStatus
from .state import BudgetStep

BUDGET_WORKFLOW = "budget"
LEAVE_WORKFLOW = "leave"

BUDGET_FILL_CONTENT_ACTION_ID = "budget_fill_content"
BUDGET_CONFIRM_ACTION_ID = "budget_confirm"
BUDGET_RETURN_ACTION_ID = "budget_return"
BUDGET_FILL_PAYMENT_ACTION_ID = "budget_fill_payment"
BUDGET_APPROVE_ACTION_ID = "budget_approve"
BUDGET_REJECT_ACTION_ID = "budget_reject"
BUDGET_COMPLETE_ACTION_ID = "budget_complete"
LEAVE_APPROVE_ACTION_ID = "leave_approve"
LEAVE_REJECT_ACTION_ID = "leave_reject"

_MISSING_VALUE = "_Not provided_"
MAX_SECTION_TEXT_LENGTH = 3000
MAX_MESSAGE_BLOCKS = 50


@dataclass(frozen=True)
class Button:
    action_id: str
    label: str
    style: str | None = None
    confirm: str | None = None


@dataclass(frozen=True)
class MessageView:
    text: str
    blocks: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def has_actions(self) -> bool:
        return any(block.get("type") == "actions" for block in self.blocks)


FILL_CONTENT = Button(BUDGET_FILL_CONTENT_ACTION_ID, "Fill content", style="primary")
CONFIRM_CONTENT = Button(BUDGET_CONFIRM_ACTION_ID, "Confirm", style="primary")
RETURN_CONTENT = Button(BUDGET_RETURN_ACTION_ID, "Return to partner")
FILL_PAYMENT = Button(BUDGET_FILL_PAYMENT_ACTION_ID, "Fill payment info", style="primary")
APPROVE_BUDGET = Button(BUDGET_APPROVE_ACTION_ID, "Approve", style="primary")
REJECT_BUDGET = Button(
    BUDGET_REJECT_ACTION_ID,
    "Reject",
    style="danger",
    confirm="Are you sure you want to reject this budget request?",
)
COMPLETE_BUDGET = Button(BUDGET_COMPLETE_ACTION_ID, "Complete", style="primary")
APPROVE_LEAVE = Button(LEAVE_APPROVE_ACTION_ID, "Approve", style="primary")
REJECT_LEAVE = Button(LEAVE_REJECT_ACTION_ID, "Reject", style="danger")

_STEP_STATUS = {
    BudgetStep.CREATED: "Waiting for partner content",
    BudgetStep.CONTENT_SUBMITTED: "Content submitted, waiting for review",
    BudgetStep.CONFIRMED: "Content confirmed, waiting for payment details",
    BudgetStep.PAYMENT_SUBMITTED: "Payment details submitted, waiting for approval",
    BudgetStep.APPROVED: "Approved, waiting for finance",
    BudgetStep.COMPLETED: "Completed",
}


def mention(user_id: str | None) -> str:
    return f"<@{user_id}>" if user_id else "@channel"


def _format_field(label: str, value: Any) -> str:
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return f"*{label}:* {_MISSING_VALUE}"
    return f"*{label}:* {value}"


def _section(lines: Iterable[str]) -> Dict[str, Any]:
    return {"type": "section", "text": {"type": "mrkdwn", "text": "\n".join(lines) or _MISSING_VALUE}}


def _context(text: str) -> Dict[str, Any]:
    return {"type": "context", "elements": [{"type": "mrkdwn", "text": text}]}


def _actions_block(request_id: str, workflow: str, buttons: Sequence[Button]) -> Dict[str, Any]:
    value = encode_action_value(request_id=request_id, workflow=workflow)
    elements = []
    for button in buttons:
        element: Dict[str, Any] = {
            "type": "button",
            "text": {"type": "plain_text", "text": button.label, "emoji": True},
            "action_id": button.action_id,
            "value": value,
        }
        if button.style:
            element["style"] = button.style
        if button.confirm:
            element["confirm"] = {
                "title": {"type": "plain_text", "text": button.label},
                "text": {"type": "mrkdwn", "text": button.confirm},
                "confirm": {"type": "plain_text", "text": button.label},
                "deny": {"type": "plain_text", "text": "Cancel"},
            }
        elements.append(element)
    return {"type": "actions", "block_id": f"{workflow}_actions", "elements": elements}


def budget_status_label(request: BudgetRequest) -> str:
    if request.rejected_at is not None:
        return f"Rejected at step {int(request.current_step)} by {mention(request.rejected_by)}"
    if request.current_step is BudgetStep.CREATED and request.returned_by:
        return "Returned to partner for rework"
    return _STEP_STATUS[request.current_step]


def _budget_summary(request: BudgetRequest) -> List[str]:
    return [
        _format_field("Name", request.name),
        _format_field("Partner", request.partner),
        _format_field("Amount", request.amount),
        _format_field("Purpose", request.purpose),
        _format_field("Deadline", request.deadline.isoformat()),
    ]


def _content_lines(request: BudgetRequest) -> List[str]:
    return [
        _format_field("Post content", request.post_content),
        _format_field("Post link", request.post_link),
        _format_field("Page link", request.page_link),
    ]


def _payment_lines(request: BudgetRequest) -> List[str]:
    return [
        _format_field("Recipient", request.recipient_name),
        _format_field("Bank account", request.bank_account),
        _format_field("Bank", request.bank_name),
        _format_field("Payment amount", request.payment_amount),
    ]


def _completion_lines(request: BudgetRequest) -> List[str]:
    lines = [_format_field("Transaction", request.transaction_ref)]
    if request.bill_ref:
        lines.append(_format_field("Bill", request.bill_ref))
    return lines


def render_budget_view(
    request: BudgetRequest,
    *,
    status: str | None = None,
    details: Sequence[List[str]] = (),
    buttons: Sequence[Button] = (),
) -> MessageView:
    """Render the shared budget request card.

    The card is identical in every channel apart from *details* (extra field
    sections) and *buttons*; an empty *buttons* removes any previous actions
    when the view is used for an edit.
    """

    status_text = status or budget_status_label(request)
    blocks: List[Dict[str, Any]] = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": f"Budget request: {request.name}"[:150], "emoji": True},
        },
        _section(_budget_summary(request)),
    ]
    blocks.extend(_section(lines) for lines in details if lines)
    blocks.append(_context(f"*Status:* {status_text} · Request ID: `{request.id}`"))
    if buttons:
        blocks.append(_actions_block(request.id, BUDGET_WORKFLOW, buttons))

    return MessageView(text=f"Budget request {request.name}: {status_text}", blocks=blocks)


def render_partner_content(request: BudgetRequest, *, buttons: Sequence[Button] = ()) -> MessageView:
    return render_budget_view(request, details=[_content_lines(request)], buttons=buttons)


def render_partner_payment(request: BudgetRequest) -> MessageView:
    return render_budget_view(request, details=[_payment_lines(request)])


def render_approval_view(request: BudgetRequest, *, buttons: Sequence[Button] = ()) -> MessageView:
    return render_budget_view(request, details=[_content_lines(request), _payment_lines(request)], buttons=buttons)


def render_finance_view(request: BudgetRequest, *, buttons: Sequence[Button] = ()) -> MessageView:
    return render_budget_view(request, details=[_payment_lines(request)], buttons=buttons)


def render_budget_returned(request: BudgetRequest) -> MessageView:
    status = f"Returned for rework by {mention(request.returned_by)}: {request.return_reason}"
    return render_budget_view(request, status=status)


def render_budget_completed(request: BudgetRequest) -> MessageView:
    return render_budget_view(request, status="Completed", details=[_completion_lines(request)])


def render_budget_rejected(request: BudgetRequest) -> MessageView:
    return render_budget_view(request)


def resubmitted_reply(request: BudgetRequest) -> str:
    return f"{mention(request.returned_by or request.reviewer_id)} the partner resubmitted content for review."


def fill_payment_reply(partner_user: str | None) -> str:
    return f"{mention(partner_user)} content was confirmed. Please fill in the payment details."


def returned_reply(partner_user: str | None, reason: str) -> str:
    return f"{mention(partner_user)} content was returned for rework. Reason: {reason}"


_LEAVE_STATUS = {
    LeaveStatus.PENDING: ":hourglass_flowing_sand: Pending",
    LeaveStatus.APPROVED: ":white_check_mark: Approved",
    LeaveStatus.REJECTED: ":no_entry_sign: Rejected",
}


def _leave_lines(leave: LeaveRequest) -> List[str]:
    dates = ", ".join(day.isoformat() for day in leave.dates)
    lines = [_format_field("User", mention(leave.user_id)), _format_field("Type", leave.leave_type.label)]
    if leave.leave_type.is_partial_day:
        lines.append(_format_field("Date", dates))
        lines.append(_format_field("Expected time", leave.expected_time))
    else:
        lines.append(_format_field("Dates", dates))
    lines.append(_format_field("Reason", leave.reason))
    status = _LEAVE_STATUS[leave.status]
    if leave.decided_by:
        status = f"{status} by {mention(leave.decided_by)}"
    lines.append(_format_field("Status", status))
    if leave.reject_reason:
        lines.append(_format_field("Rejection reason", leave.reject_reason))
    return lines


def render_leave_view(leave: LeaveRequest, *, buttons: Sequence[Button] = ()) -> MessageView:
    blocks: List[Dict[str, Any]] = [
        {"type": "header", "text": {"type": "plain_text", "text": f"{leave.leave_type.label} request", "emoji": True}},
        _section(_leave_lines(leave)),
        _context(f"Request ID: `{leave.id}`"),
    ]
    if buttons:
        blocks.append(_actions_block(leave.id, LEAVE_WORKFLOW, buttons))
    return MessageView(
        text=f"{leave.leave_type.label} request from {leave.username}: {leave.status.value}",
        blocks=blocks,
    )


def leave_decision_reply(leave: LeaveRequest) -> str:
    text = f"{mention(leave.user_id)} your request was {leave.status.value} by {leave.decided_by_name or mention(leave.decided_by)}."
    if leave.reject_reason:
        text = f"{text} Reason: {leave.reject_reason}"
    return text


def _clock(value) -> str:
    return value.strftime("%H:%M")


def format_duration(value: timedelta) -> str:
    minutes = int(value.total_seconds() // 60)
    hours, minutes = divmod(max(minutes, 0), 60)
    return f"{hours}h{minutes:02d}m"


def render_check_in(record: AttendanceRecord, local_time) -> MessageView:
    text = f"{mention(record.user_id)} checked in at {_clock(local_time)}"
    blocks: List[Dict[str, Any]] = [_section([text])]
    if record.photo_url:
        blocks.append({"type": "image", "image_url": record.photo_url, "alt_text": "check-in photo"})
    return MessageView(text=text, blocks=blocks)


def break_start_text(record: AttendanceRecord, local_time, reason: str) -> str:
    text = f"{mention(record.user_id)} started a break at {_clock(local_time)}"
    return f"{text}: {reason}" if reason else text


def break_end_text(record: AttendanceRecord, local_time) -> str:
    return f"{mention(record.user_id)} ended the break at {_clock(local_time)}"


def check_out_text(record: AttendanceRecord, local_time, worked: timedelta, on_break: timedelta) -> str:
    return (
        f"{mention(record.user_id)} checked out at {_clock(local_time)} · "
        f"worked {format_duration(worked)}, breaks {format_duration(on_break)}"
    )


def _report_line(row: Tuple[str, str, str, str, str, str]) -> str:
    day, user, check_in, check_out, worked, breaks = row
    return f"{day} · {user} · in {check_in} · out {check_out} · worked {worked} · breaks {breaks}"


def _chunk_lines(lines: Sequence[str], limit: int) -> List[List[str]]:
    chunks: List[List[str]] = []
    current: List[str] = []
    size = 0
    for line in lines:
        line = line[:limit]
        added = len(line) + (1 if current else 0)
        if current and size + added > limit:
            chunks.append(current)
            current, size = [], 0
            added = len(line)
        current.append(line)
        size += added
    if current:
        chunks.append(current)
    return chunks


def render_attendance_report(rows: Sequence[Tuple[str, str, str, str, str, str]]) -> MessageView:
    """Render ``(day, user, check-in, check-out, worked, breaks)`` rows.

    Rows are split across section blocks so no section exceeds Slack's text
    limit; past the block limit the report is cut and a footer says so.
    """

    if not rows:
        return MessageView(text="No attendance records found.", blocks=[_section(["No attendance records found."])])

    lines = ["*Attendance report*", *(_report_line(row) for row in rows)]
    chunks = _chunk_lines(lines, MAX_SECTION_TEXT_LENGTH)
    # One block is kept free for the truncation footer.
    kept = chunks[: MAX_MESSAGE_BLOCKS - 1]
    blocks = [_section(chunk) for chunk in kept]
    shown = sum(len(chunk) for chunk in kept) - 1
    if shown < len(rows):
        blocks.append(_context(f"Report truncated: showing {shown} of {len(rows)} rows. Narrow the date range."))
    return MessageView(text="Attendance report", blocks=blocks)


def render_leave_list(leaves: Sequence[LeaveRequest]) -> MessageView:
    if not leaves:
        return MessageView(text="You have no leave requests.", blocks=[_section(["You have no leave requests."])])

    lines = ["*Your leave requests*"]
    for leave in leaves:
        dates = ", ".join(day.isoformat() for day in leave.dates)
        lines.append(f"{dates} · {leave.leave_type.label} · {_LEAVE_STATUS[leave.status]}")
    chunks = _chunk_lines(lines, MAX_SECTION_TEXT_LENGTH)[:MAX_MESSAGE_BLOCKS]
    return MessageView(text="Your leave requests", blocks=[_section(chunk) for chunk in chunks])
