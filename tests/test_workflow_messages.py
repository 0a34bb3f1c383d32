"""Tests for Block Kit rendering."""

from __future__ import annotations

import json
from datetime import UTC, date, datetime, timedelta

from office_workflow_bot.workflows import BudgetRequest, BudgetStep, LeaveRequest, LeaveStatus, LeaveType
from office_workflow_bot.workflows.messages import (
    APPROVE_BUDGET,
    REJECT_BUDGET,
    budget_status_label,
    format_duration,
    render_attendance_report,
    render_budget_view,
    render_leave_list,
    render_leave_view,
    render_partner_content,
    resubmitted_reply,
)


def _request(**overrides) -> BudgetRequest:
    data = {
        "id": "a" * 32,
        "created_by": "U1",
        "name": "Q3 promo",
        "partner": "acme",
        "amount": "500",
        "purpose": "ads",
        "deadline": "2025-01-01",
    }
    data.update(overrides)
    return BudgetRequest(**data)


def test_budget_view_has_summary_and_status():
    view = render_budget_view(_request())

    assert view.text == "Budget request Q3 promo: Waiting for partner content"
    assert view.blocks[0]["type"] == "header"
    summary = view.blocks[1]["text"]["text"]
    assert "*Amount:* 500" in summary
    assert "*Deadline:* 2025-01-01" in summary
    assert not view.has_actions


def test_buttons_carry_request_context():
    view = render_budget_view(_request(), buttons=[APPROVE_BUDGET, REJECT_BUDGET])

    actions = view.blocks[-1]
    assert view.has_actions
    assert [element["action_id"] for element in actions["elements"]] == ["budget_approve", "budget_reject"]
    assert json.loads(actions["elements"][0]["value"]) == {"request_id": "a" * 32, "workflow": "budget"}
    assert "confirm" in actions["elements"][1]


def test_missing_content_fields_show_placeholder():
    view = render_partner_content(_request(post_content="hello"))

    content = view.blocks[2]["text"]["text"]
    assert "*Post content:* hello" in content
    assert "*Post link:* _Not provided_" in content


def test_status_labels_cover_rework_and_rejection():
    returned = _request(returned_by="U3", return_reason="needs a link")
    rejected = _request(current_step=BudgetStep.CONFIRMED, rejected_by="U4", rejected_at=datetime(2025, 1, 1, tzinfo=UTC))

    assert budget_status_label(returned) == "Returned to partner for rework"
    assert budget_status_label(rejected) == "Rejected at step 3 by <@U4>"


def test_resubmitted_reply_mentions_reviewer():
    assert resubmitted_reply(_request(returned_by="U3")).startswith("<@U3>")


def test_leave_view_shows_partial_day_time():
    leave = LeaveRequest(
        id="b" * 32,
        user_id="U1",
        username="Ann",
        channel_id="CATT",
        approval_channel_id="CAPP",
        leave_type=LeaveType.LATE_ARRIVAL,
        dates=[date(2025, 3, 4)],
        expected_time="10:00",
        reason="dentist",
        status=LeaveStatus.APPROVED,
        decided_by="U2",
    )

    view = render_leave_view(leave)
    body = view.blocks[1]["text"]["text"]

    assert view.text == "Late arrival request from Ann: approved"
    assert "*Expected time:* 10:00" in body
    assert "Approved by <@U2>" in body


def test_format_duration():
    assert format_duration(timedelta(hours=1, minutes=15)) == "1h15m"
    assert format_duration(timedelta(seconds=-5)) == "0h00m"


def test_empty_report():
    assert render_attendance_report([]).text == "No attendance records found."


def _report_rows(count: int):
    return [
        (f"2025-01-{day % 28 + 1:02d}", f"user{index:02d}", "09:00", "18:00", "8h00m", "0h45m")
        for index, day in enumerate(range(count))
    ]


def test_long_report_is_split_into_sections_under_the_limit():
    rows = _report_rows(60)

    view = render_attendance_report(rows)

    sections = [block for block in view.blocks if block["type"] == "section"]
    assert len(sections) > 1
    assert all(len(block["text"]["text"]) <= 3000 for block in sections)
    body = "\n".join(block["text"]["text"] for block in sections)
    assert body.count(" · worked ") == 60
    assert view.blocks[-1]["type"] == "section"


def test_report_beyond_block_limit_is_truncated_with_footer():
    rows = _report_rows(5000)

    view = render_attendance_report(rows)

    assert len(view.blocks) == 50
    assert all(len(block["text"]["text"]) <= 3000 for block in view.blocks if block["type"] == "section")
    footer = view.blocks[-1]
    assert footer["type"] == "context"
    shown = sum(block["text"]["text"].count(" · worked ") for block in view.blocks[:-1])
    assert footer["elements"][0]["text"] == f"Report truncated: showing {shown} of 5000 rows. Narrow the date range."


def test_empty_leave_list():
    view = render_leave_list([])

    assert view.text == "You have no leave requests."
    assert view.blocks[0]["type"] == "section"
