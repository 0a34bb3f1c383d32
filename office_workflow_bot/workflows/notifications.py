"""Notification gateway used by every workflow to publish message views."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Generic, List, Mapping, TypeVar

from slack_sdk.errors import SlackApiError
import structlog

from office_workflow_bot.models import GatewayError
from office_workflow_bot.slack_client import SlackClient

from .messages import MessageView

E = TypeVar("E")
R = TypeVar("R")


def _error_details(exc: SlackApiError) -> tuple[str, Any]:
    response = getattr(exc, "response", None)
    if response is None:
        return str(exc), None
    return response.get("error") or str(exc), getattr(response, "status_code", None)


class NotificationGateway:
    """Post, edit and reply to Slack messages, mapping API errors to ``GatewayError``."""

    def __init__(self, slack_client: SlackClient) -> None:
        self._slack = slack_client

    def _call(self, operation: str, channel: str | None, func: Callable[[], Mapping[str, Any]]) -> Mapping[str, Any]:
        try:
            return func()
        except SlackApiError as exc:
            error_code, status_code = _error_details(exc)
            structlog.get_logger().error(
                "slack_call_failed",
                operation=operation,
                channel=channel,
                error=error_code,
                status_code=status_code,
            )
            raise GatewayError(operation, error_code) from exc

    def post(self, *, channel_id: str, view: MessageView, thread_ts: str | None = None) -> str:
        """Post *view* and return the new message handle."""

        response = self._call(
            "post_message",
            channel_id,
            lambda: self._slack.post_message(
                channel=channel_id,
                text=view.text,
                blocks=view.blocks,
                thread_ts=thread_ts,
            ),
        )
        ts = response.get("ts")
        if not ts:
            raise GatewayError("post_message", "missing_ts")
        return ts

    def edit(self, *, channel_id: str, ts: str, view: MessageView) -> None:
        self._call(
            "update_message",
            channel_id,
            lambda: self._slack.update_message(channel=channel_id, ts=ts, text=view.text, blocks=view.blocks),
        )

    def upsert(self, *, channel_id: str, ts: str | None, view: MessageView) -> str:
        """Edit the message at *ts* when known, otherwise post it; return the handle to keep."""

        if ts:
            self.edit(channel_id=channel_id, ts=ts, view=view)
            return ts
        return self.post(channel_id=channel_id, view=view)

    def reply(self, *, channel_id: str, thread_ts: str | None, text: str) -> str:
        view = MessageView(text=text, blocks=[{"type": "section", "text": {"type": "mrkdwn", "text": text}}])
        return self.post(channel_id=channel_id, view=view, thread_ts=thread_ts)

    def display_name(self, user_id: str) -> str:
        user = self._call("users_info", None, lambda: self._slack.get_user(user_id))
        profile = user.get("profile") or {}
        return profile.get("display_name") or profile.get("real_name") or user.get("name") or user_id

    def open_form(self, *, trigger_id: str, view: Mapping[str, Any]) -> None:
        self._call("views_open", None, lambda: self._slack.open_view(trigger_id=trigger_id, view=view))

    def notify_ephemeral(self, *, channel_id: str, user_id: str, text: str) -> None:
        self._call(
            "post_ephemeral",
            channel_id,
            lambda: self._slack.post_ephemeral(channel=channel_id, user=user_id, text=text),
        )


@dataclass
class TransitionResult(Generic[E]):
    """Outcome of a committed transition; ``warnings`` lists failed notifications."""

    entity: E
    message: str
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings


class BestEffort:
    """Run notification side effects after a commit without letting them fail it."""

    def __init__(self, *, workflow: str, entity_id: str) -> None:
        self.warnings: List[str] = []
        self._log = structlog.get_logger().bind(workflow=workflow, request_id=entity_id)

    def run(self, operation: str, func: Callable[..., R], /, *args: Any, **kwargs: Any) -> R | None:
        try:
            return func(*args, **kwargs)
        except GatewayError as exc:
            self._log.warning(
                "notification_failed",
                operation=operation,
                channel=kwargs.get("channel_id"),
                error=exc.error,
            )
            self.warnings.append(f"{operation}: {exc.error}")
            return None
