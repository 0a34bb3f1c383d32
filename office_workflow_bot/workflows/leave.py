"""Leave requests: pending until someone other than the requester decides."""

from __future__ import annotations

from datetime import UTC, date, datetime, tzinfo
from typing import Callable, Iterable, List

import structlog

from office_workflow_bot.models import (
    AlreadyDecidedError,
    ChannelResolutionError,
    ConflictError,
    InvalidInputError,
    SelfActionError,
)

from .channels import ChannelDirectory, log_resolution_failure, resolve_leave_approval_channel
from .documents import LeaveRequest, LeaveStatus, LeaveType
from .messages import APPROVE_LEAVE, REJECT_LEAVE, leave_decision_reply, render_leave_view
from .notifications import BestEffort, NotificationGateway, TransitionResult
from .requests import DecisionInput, LeaveInput, validate_input
from .storage import DocumentRepository


def utc_now() -> datetime:
    return datetime.now(UTC)


def validate_dates(dates: Iterable[date], today: date) -> List[date]:
    """Return the sorted dates or raise ``InvalidInputError`` if any is in the past."""

    cleaned = sorted(set(dates))
    if not cleaned:
        raise InvalidInputError("At least one date is required.")
    past = [day.isoformat() for day in cleaned if day < today]
    if past:
        raise InvalidInputError(f"Dates in the past are not allowed: {', '.join(past)}")
    return cleaned


class LeaveService:
    workflow = "leave"

    def __init__(
        self,
        *,
        repository: DocumentRepository[LeaveRequest],
        gateway: NotificationGateway,
        directory: ChannelDirectory,
        timezone: tzinfo,
        channel_prefix: str = "attendance",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repository = repository
        self._gateway = gateway
        self._directory = directory
        self._tz = timezone
        self._prefix = channel_prefix
        self._clock = clock

    @property
    def _log(self):
        return structlog.get_logger().bind(workflow=self.workflow)

    def get_request(self, request_id: str) -> LeaveRequest:
        return self._repository.get(request_id)

    def list_for_user(self, user_id: str) -> List[LeaveRequest]:
        return self._repository.list_for_owner(user_id)

    def create_request(
        self,
        *,
        actor: str,
        origin_channel: str,
        leave_type: LeaveType | str,
        dates: Iterable[date | str] | str,
        reason: str,
        expected_time: str | None = None,
        username: str = "",
    ) -> TransitionResult[LeaveRequest]:
        data = validate_input(
            LeaveInput,
            leave_type=leave_type,
            dates=dates,
            reason=reason,
            expected_time=expected_time,
        )
        valid_dates = validate_dates(data.dates, self._clock().astimezone(self._tz).date())

        try:
            origin = self._directory.describe(origin_channel)
            approval_channel = resolve_leave_approval_channel(self._directory, origin, prefix=self._prefix)
        except ChannelResolutionError as exc:
            log_resolution_failure(exc, workflow=self.workflow, origin_channel=origin_channel)
            raise

        runner = BestEffort(workflow=self.workflow, entity_id="new")
        if not username:
            username = runner.run("display_name", self._gateway.display_name, actor) or actor

        leave = self._repository.create(
            LeaveRequest(
                user_id=actor,
                username=username,
                team_id=origin.team_id,
                channel_id=origin.id,
                approval_channel_id=approval_channel,
                leave_type=data.leave_type,
                dates=valid_dates,
                expected_time=data.expected_time,
                reason=data.reason,
            )
        )
        self._log.info(
            "leave_requested",
            request_id=leave.id,
            user_id=actor,
            leave_type=leave.leave_type.value,
            days=len(leave.dates),
        )

        leave.info_message_ts = runner.run(
            "post_info",
            self._gateway.post,
            channel_id=leave.channel_id,
            view=render_leave_view(leave),
        )
        leave.approval_message_ts = runner.run(
            "post_approval",
            self._gateway.post,
            channel_id=leave.approval_channel_id,
            view=render_leave_view(leave, buttons=[APPROVE_LEAVE, REJECT_LEAVE]),
        )
        if leave.info_message_ts or leave.approval_message_ts:
            try:
                leave = self._repository.replace(leave)
            except ConflictError:
                self._log.warning("message_handles_not_saved", request_id=leave.id)
                runner.warnings.append("store_message_handles: conflict")

        return TransitionResult(entity=leave, message="Leave request submitted.", warnings=runner.warnings)

    def approve(self, request_id: str, *, actor: str) -> TransitionResult[LeaveRequest]:
        return self._decide(request_id, actor=actor, status=LeaveStatus.APPROVED)

    def reject(self, request_id: str, *, actor: str, reason: str = "") -> TransitionResult[LeaveRequest]:
        data = validate_input(DecisionInput, reason=reason)
        return self._decide(request_id, actor=actor, status=LeaveStatus.REJECTED, reason=data.reason)

    def _decide(
        self,
        request_id: str,
        *,
        actor: str,
        status: LeaveStatus,
        reason: str = "",
    ) -> TransitionResult[LeaveRequest]:
        leave = self._repository.get(request_id)
        if leave.status is not LeaveStatus.PENDING:
            raise AlreadyDecidedError(leave.status.value)
        if leave.user_id == actor:
            raise SelfActionError()

        runner = BestEffort(workflow=self.workflow, entity_id=leave.id)
        leave.status = status
        leave.decided_by = actor
        leave.decided_by_name = runner.run("display_name", self._gateway.display_name, actor)
        leave.decided_at = self._clock()
        leave.reject_reason = reason or None
        leave = self._repository.replace(leave)
        self._log.info("leave_decided", request_id=leave.id, user_id=actor, status=status.value)

        view = render_leave_view(leave)
        if leave.info_message_ts:
            runner.run("edit_info", self._gateway.edit, channel_id=leave.channel_id, ts=leave.info_message_ts, view=view)
        if leave.approval_message_ts:
            runner.run(
                "edit_approval",
                self._gateway.edit,
                channel_id=leave.approval_channel_id,
                ts=leave.approval_message_ts,
                view=view,
            )
        runner.run(
            "notify_requester",
            self._gateway.reply,
            channel_id=leave.channel_id,
            thread_ts=leave.info_message_ts,
            text=leave_decision_reply(leave),
        )

        return TransitionResult(entity=leave, message=f"Leave request {status.value}.", warnings=runner.warnings)
