"""Daily attendance: check-in, breaks and check-out per user per day."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta, tzinfo
from typing import Callable, List, Sequence, Tuple

import structlog

from office_workflow_bot.models import (
    AlreadyCheckedInError,
    AlreadyCheckedOutError,
    AlreadyOnBreakError,
    ConflictError,
    InvalidInputError,
    NotCheckedInError,
    NotOnBreakError,
)

from .documents import AttendanceRecord, AttendanceStatus, BreakInterval, attendance_key
from .messages import break_end_text, break_start_text, check_out_text, format_duration, render_check_in
from .notifications import BestEffort, NotificationGateway, TransitionResult
from .requests import BreakInput, CheckInInput, validate_input
from .storage import DocumentRepository, DuplicateKeyError


def utc_now() -> datetime:
    return datetime.now(UTC)


def total_break_time(record: AttendanceRecord, now: datetime | None = None) -> timedelta:
    """Sum every break; an open break counts up to *now* only when it is given."""

    return sum((interval.duration(now) for interval in record.breaks), timedelta(0))


@dataclass(frozen=True)
class AttendanceSummary:
    record: AttendanceRecord
    worked: timedelta
    breaks: timedelta
    break_count: int

    @property
    def status(self) -> AttendanceStatus:
        return self.record.status


def summarize(record: AttendanceRecord, now: datetime | None = None) -> AttendanceSummary:
    """Derive worked and break totals, using *now* for intervals still open."""

    end = record.check_out or now
    on_break = total_break_time(record, now=end)
    if end is None:
        worked = timedelta(0)
    else:
        worked = max(end - record.check_in - on_break, timedelta(0))
    return AttendanceSummary(record=record, worked=worked, breaks=on_break, break_count=len(record.breaks))


def report_rows(summaries: Sequence[AttendanceSummary], tz: tzinfo) -> List[Tuple[str, str, str, str, str, str]]:
    rows = []
    for summary in summaries:
        record = summary.record
        check_out = record.check_out.astimezone(tz).strftime("%H:%M") if record.check_out else "-"
        rows.append(
            (
                record.day.isoformat(),
                record.username,
                record.check_in.astimezone(tz).strftime("%H:%M"),
                check_out,
                format_duration(summary.worked),
                format_duration(summary.breaks),
            )
        )
    return rows


class AttendanceService:
    """Record attendance events and post them to the attendance channel."""

    workflow = "attendance"

    def __init__(
        self,
        *,
        repository: DocumentRepository[AttendanceRecord],
        gateway: NotificationGateway,
        timezone: tzinfo,
        report_max_days: int = 62,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repository = repository
        self._gateway = gateway
        self._tz = timezone
        self._report_max_days = report_max_days
        self._clock = clock

    @property
    def _log(self):
        return structlog.get_logger().bind(workflow=self.workflow)

    def _now(self) -> datetime:
        return self._clock()

    def local_day(self, moment: datetime) -> date:
        return moment.astimezone(self._tz).date()

    def today(self, user_id: str) -> AttendanceRecord | None:
        return self._repository.find_by_key(attendance_key(user_id, self.local_day(self._now())))

    def _current(self, user_id: str) -> AttendanceRecord:
        record = self.today(user_id)
        if record is None:
            raise NotCheckedInError()
        if record.status is AttendanceStatus.COMPLETED:
            raise AlreadyCheckedOutError()
        return record

    def check_in(
        self,
        *,
        actor: str,
        channel_id: str,
        username: str = "",
        team_id: str | None = None,
        photo_url: str | None = None,
    ) -> TransitionResult[AttendanceRecord]:
        data = validate_input(CheckInInput, photo_url=photo_url or "")
        now = self._now()
        day = self.local_day(now)
        if self._repository.find_by_key(attendance_key(actor, day)) is not None:
            raise AlreadyCheckedInError()

        runner = BestEffort(workflow=self.workflow, entity_id=attendance_key(actor, day))
        if not username:
            username = runner.run("display_name", self._gateway.display_name, actor) or actor

        try:
            record = self._repository.create(
                AttendanceRecord(
                    user_id=actor,
                    username=username,
                    team_id=team_id,
                    channel_id=channel_id,
                    day=day,
                    check_in=now,
                    photo_url=data.photo_url or None,
                )
            )
        except DuplicateKeyError as exc:
            raise AlreadyCheckedInError() from exc
        self._log.info("attendance_checked_in", request_id=record.id, user_id=actor, day=day.isoformat())

        ts = runner.run(
            "post_check_in",
            self._gateway.post,
            channel_id=channel_id,
            view=render_check_in(record, now.astimezone(self._tz)),
        )
        if ts:
            record.message_ts = ts
            try:
                record = self._repository.replace(record)
            except ConflictError:
                self._log.warning("message_handles_not_saved", request_id=record.id)
                runner.warnings.append("store_message_handles: conflict")

        return TransitionResult(entity=record, message="Checked in.", warnings=runner.warnings)

    def break_start(self, *, actor: str, reason: str = "") -> TransitionResult[AttendanceRecord]:
        data = validate_input(BreakInput, reason=reason)
        record = self._current(actor)
        if record.open_break is not None:
            raise AlreadyOnBreakError()

        now = self._now()
        record.breaks.append(BreakInterval(start=now, reason=data.reason))
        record.status = AttendanceStatus.ON_BREAK
        record = self._repository.replace(record)
        self._log.info("attendance_break_started", request_id=record.id, user_id=actor)

        return self._reply(record, break_start_text(record, now.astimezone(self._tz), data.reason), "Break started.")

    def break_end(self, *, actor: str) -> TransitionResult[AttendanceRecord]:
        record = self._current(actor)
        interval = record.open_break
        if interval is None:
            raise NotOnBreakError()

        now = self._now()
        interval.end = now
        record.status = AttendanceStatus.WORKING
        record = self._repository.replace(record)
        self._log.info("attendance_break_ended", request_id=record.id, user_id=actor)

        return self._reply(record, break_end_text(record, now.astimezone(self._tz)), "Break ended.")

    def check_out(self, *, actor: str) -> TransitionResult[AttendanceRecord]:
        record = self._current(actor)
        if record.open_break is not None:
            raise AlreadyOnBreakError("End your break before checking out.")

        now = self._now()
        record.check_out = now
        record.status = AttendanceStatus.COMPLETED
        record = self._repository.replace(record)
        summary = summarize(record)
        self._log.info(
            "attendance_checked_out",
            request_id=record.id,
            user_id=actor,
            worked_seconds=int(summary.worked.total_seconds()),
        )

        text = check_out_text(record, now.astimezone(self._tz), summary.worked, summary.breaks)
        return self._reply(record, text, "Checked out.")

    def report(
        self,
        from_day: date,
        to_day: date,
        *,
        user_id: str | None = None,
        now: datetime | None = None,
    ) -> List[AttendanceSummary]:
        if from_day > to_day:
            raise InvalidInputError("The start date must not be after the end date.")
        if (to_day - from_day).days + 1 > self._report_max_days:
            raise InvalidInputError(f"Reports cover at most {self._report_max_days} days.")

        now = now or self._now()
        records = self._repository.list_between(from_day, to_day, owner_id=user_id)
        return [summarize(record, now=now) for record in records]

    def _reply(self, record: AttendanceRecord, text: str, message: str) -> TransitionResult[AttendanceRecord]:
        runner = BestEffort(workflow=self.workflow, entity_id=record.id)
        runner.run(
            "attendance_reply",
            self._gateway.reply,
            channel_id=record.channel_id,
            thread_ts=record.message_ts,
            text=text,
        )
        return TransitionResult(entity=record, message=message, warnings=runner.warnings)
