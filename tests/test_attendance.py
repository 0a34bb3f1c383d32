"""Tests for the daily attendance state machine."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
from structlog.testing import capture_logs

from office_workflow_bot.models import (
    AlreadyCheckedInError,
    AlreadyCheckedOutError,
    AlreadyOnBreakError,
    InvalidInputError,
    NotCheckedInError,
    NotOnBreakError,
)
from office_workflow_bot.slack_client import SlackClient
from office_workflow_bot.workflows import (
    AttendanceRecord,
    AttendanceService,
    AttendanceStatus,
    BreakInterval,
    NotificationGateway,
    attendance_repository,
    summarize,
    total_break_time,
)
from office_workflow_bot.workflows.attendance import report_rows


class Clock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def set(self, hour: int, minute: int = 0) -> None:
        self.now = self.now.replace(hour=hour, minute=minute)


@pytest.fixture
def clock():
    return Clock(datetime(2025, 3, 3, 9, 0, tzinfo=UTC))


@pytest.fixture
def service(slack, clock):
    return AttendanceService(
        repository=attendance_repository(),
        gateway=NotificationGateway(SlackClient(client=slack)),
        timezone=ZoneInfo("UTC"),
        report_max_days=31,
        clock=clock,
    )


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 3, 3, hour, minute, tzinfo=UTC)


def test_check_in_posts_and_stores_thread_root(service, slack):
    with capture_logs() as logs:
        result = service.check_in(actor="U1", channel_id="CATT", photo_url="https://example.com/me.png")

    record = result.entity
    assert record.status is AttendanceStatus.WORKING
    assert record.day == date(2025, 3, 3)
    assert record.username == "Name U1"
    assert record.message_ts == slack.posts[0]["ts"]
    assert any(block["type"] == "image" for block in slack.posts[0]["blocks"])
    assert "checked in at 09:00" in slack.posts[0]["text"]
    assert service.today("U1").message_ts == record.message_ts
    assert any(log["event"] == "attendance_checked_in" for log in logs)


def test_second_check_in_same_day_fails(service):
    service.check_in(actor="U1", channel_id="CATT")

    with pytest.raises(AlreadyCheckedInError):
        service.check_in(actor="U1", channel_id="CATT")


def test_check_in_on_next_day_creates_new_record(service, clock):
    service.check_in(actor="U1", channel_id="CATT")
    clock.now = clock.now + timedelta(days=1)

    record = service.check_in(actor="U1", channel_id="CATT").entity

    assert record.day == date(2025, 3, 4)


def test_break_cycle_replies_in_thread(service, slack, clock):
    root = service.check_in(actor="U1", channel_id="CATT").entity.message_ts

    clock.set(10)
    on_break = service.break_start(actor="U1", reason="coffee").entity
    assert on_break.status is AttendanceStatus.ON_BREAK
    assert on_break.open_break is not None

    with pytest.raises(AlreadyOnBreakError):
        service.break_start(actor="U1")

    clock.set(10, 15)
    back = service.break_end(actor="U1").entity
    assert back.status is AttendanceStatus.WORKING
    assert back.breaks[0].end == _at(10, 15)

    replies = [post for post in slack.posts if post.get("thread_ts") == root]
    assert [reply["text"] for reply in replies] == [
        "<@U1> started a break at 10:00: coffee",
        "<@U1> ended the break at 10:15",
    ]


def test_break_end_without_open_break_fails(service):
    service.check_in(actor="U1", channel_id="CATT")

    with pytest.raises(NotOnBreakError):
        service.break_end(actor="U1")


def test_actions_before_check_in_fail(service):
    with pytest.raises(NotCheckedInError):
        service.break_start(actor="U1")
    with pytest.raises(NotCheckedInError):
        service.check_out(actor="U1")


def test_check_out_requires_closed_break(service, clock):
    service.check_in(actor="U1", channel_id="CATT")
    clock.set(12)
    service.break_start(actor="U1")

    with pytest.raises(AlreadyOnBreakError) as err:
        service.check_out(actor="U1")

    assert err.value.message == "End your break before checking out."


def test_check_out_completes_day_with_totals(service, slack, clock):
    service.check_in(actor="U1", channel_id="CATT")
    clock.set(12)
    service.break_start(actor="U1")
    clock.set(12, 30)
    service.break_end(actor="U1")
    clock.set(17, 30)

    record = service.check_out(actor="U1").entity

    assert record.status is AttendanceStatus.COMPLETED
    assert record.check_out == _at(17, 30)
    assert slack.posts[-1]["text"] == "<@U1> checked out at 17:30 · worked 8h00m, breaks 0h30m"

    with pytest.raises(AlreadyCheckedOutError):
        service.check_out(actor="U1")
    with pytest.raises(AlreadyCheckedOutError):
        service.break_start(actor="U1")


def test_open_break_counts_until_now_only_in_live_totals():
    record = AttendanceRecord(
        user_id="U1",
        username="Ann",
        channel_id="CATT",
        day=date(2025, 3, 3),
        check_in=_at(8),
        breaks=[
            BreakInterval(start=_at(9), end=_at(9, 15)),
            BreakInterval(start=_at(12)),
        ],
        status=AttendanceStatus.ON_BREAK,
    )

    assert total_break_time(record, now=_at(13)) == timedelta(hours=1, minutes=15)
    assert total_break_time(record) == timedelta(minutes=15)
    assert record.breaks[1].end is None

    summary = summarize(record, now=_at(13))
    assert summary.breaks == timedelta(hours=1, minutes=15)
    assert summary.worked == timedelta(hours=3, minutes=45)
    assert summary.break_count == 2


def test_report_summarises_range(service, clock):
    service.check_in(actor="U1", channel_id="CATT")
    service.check_in(actor="U2", channel_id="CATT")
    clock.set(17)
    service.check_out(actor="U1")

    summaries = service.report(date(2025, 3, 1), date(2025, 3, 5), now=_at(18))

    assert [summary.record.user_id for summary in summaries] == ["U1", "U2"]
    assert summaries[0].worked == timedelta(hours=8)
    assert summaries[1].worked == timedelta(hours=9)

    only_u2 = service.report(date(2025, 3, 3), date(2025, 3, 3), user_id="U2", now=_at(18))
    assert [summary.record.user_id for summary in only_u2] == ["U2"]

    rows = report_rows(summaries, ZoneInfo("UTC"))
    assert rows[0] == ("2025-03-03", "Name U1", "09:00", "17:00", "8h00m", "0h00m")
    assert rows[1][3] == "-"


def test_report_validates_range(service):
    with pytest.raises(InvalidInputError):
        service.report(date(2025, 3, 5), date(2025, 3, 1))
    with pytest.raises(InvalidInputError):
        service.report(date(2025, 1, 1), date(2025, 3, 1))


def test_days_follow_configured_timezone(slack):
    late_evening = datetime(2025, 3, 3, 23, 30, tzinfo=UTC)
    service = AttendanceService(
        repository=attendance_repository(),
        gateway=NotificationGateway(SlackClient(client=slack)),
        timezone=ZoneInfo("Asia/Ho_Chi_Minh"),
        clock=lambda: late_evening,
    )

    record = service.check_in(actor="U1", channel_id="CATT").entity

    assert record.day == date(2025, 3, 4)
    assert "checked in at 06:30" in slack.posts[0]["text"]


def test_check_in_survives_post_failure(service, slack):
    slack.failing_channels.add("CATT")

    result = service.check_in(actor="U1", channel_id="CATT")

    assert result.warnings == ["post_check_in: channel_not_found"]
    assert result.entity.message_ts is None
    assert service.today("U1") is not None
