"""SQLAlchemy document rows and the workflow error taxonomy."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from office_workflow_bot.db import Base


class Document(Base):
    """Stores one workflow entity as a canonical JSON document.

    ``natural_key`` carries an optional per-collection uniqueness constraint,
    e.g. ``"U123:2025-01-01"`` for the one-attendance-record-per-day rule.
    """

    __tablename__ = "documents"
    __table_args__ = (
        UniqueConstraint("collection", "natural_key", name="uq_documents_natural_key"),
        Index("ix_documents_collection_day", "collection", "day"),
        Index("ix_documents_collection_owner", "collection", "owner_id"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    collection: Mapped[str] = mapped_column(String(32), nullable=False)
    natural_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    owner_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    day: Mapped[str | None] = mapped_column(String(10), nullable=True)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )


def _step_label(step) -> str:
    name = getattr(step, "name", None)
    if name is None:
        return str(step)
    return f"{int(step)} ({name.replace('_', ' ').lower()})"


class WorkflowError(Exception):
    """Base class for every error surfaced to the Slack boundary."""

    default_message = "The workflow action could not be completed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class InvalidInputError(WorkflowError):
    """Raised when actor-supplied data fails validation."""

    default_message = "Some of the submitted values are invalid."


class NotFoundError(WorkflowError):
    """Raised when an identifier is unknown or malformed."""

    default_message = "Request could not be found."


class WorkflowStateError(WorkflowError):
    """Raised when the stored state does not allow the requested action."""


class AlreadyRejectedError(WorkflowStateError):
    default_message = "This request has already been rejected."


class AlreadyCompletedError(WorkflowStateError):
    default_message = "This request has already been completed."


class WrongStepError(WorkflowStateError):
    """Raised when an action arrives out of order."""

    def __init__(self, current, expected) -> None:
        self.current = current
        self.expected = expected
        super().__init__(
            f"This request is at step {_step_label(current)}; "
            f"this action requires step {_step_label(expected)}."
        )


class SelfActionError(WorkflowStateError):
    default_message = "You cannot decide on your own request."


class AlreadyDecidedError(WorkflowStateError):
    """Raised when a leave request is no longer pending."""

    def __init__(self, status: str) -> None:
        self.status = status
        super().__init__(f"This request has already been {status}.")


class AlreadyCheckedInError(WorkflowStateError):
    default_message = "You have already checked in today."


class NotCheckedInError(WorkflowStateError):
    default_message = "You have not checked in today."


class AlreadyOnBreakError(WorkflowStateError):
    default_message = "You are already on a break."


class NotOnBreakError(WorkflowStateError):
    default_message = "You are not on a break."


class AlreadyCheckedOutError(WorkflowStateError):
    default_message = "You have already checked out today."


class ChannelResolutionError(WorkflowError):
    """Raised when a sibling channel cannot be found."""

    def __init__(self, name: str, detail: str | None = None) -> None:
        self.channel_name = name
        message = f"Channel `{name}` could not be found."
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class GatewayError(WorkflowError):
    """Raised when a chat platform side effect fails."""

    def __init__(self, operation: str, error: str) -> None:
        self.operation = operation
        self.error = error
        super().__init__(f"Slack call {operation} failed: {error}")


class ConflictError(WorkflowError):
    """Raised when a concurrent update is detected."""

    default_message = "This request was updated concurrently. Please try again."
