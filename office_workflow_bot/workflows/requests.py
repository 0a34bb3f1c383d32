"""Typed step inputs and helpers for parsing Slack modal submissions."""

from __future__ import annotations

import json
import re
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from office_workflow_bot.models import InvalidInputError

from .documents import LeaveType

F = TypeVar("F", bound="StepInput")

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class FormValidationError(InvalidInputError):
    """Carries per-field messages so modals can highlight the offending block."""

    def __init__(self, errors: Dict[str, str]) -> None:
        self.errors = errors
        super().__init__("; ".join(f"{field}: {message}" for field, message in errors.items()))


def _optional_url(value: str) -> str:
    if value and not value.startswith(("http://", "https://")):
        raise ValueError("Enter a valid URL starting with http or https.")
    return value


class StepInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


class BudgetRequestInput(StepInput):
    name: str = Field(..., min_length=1)
    partner: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    purpose: str = Field(..., min_length=1)
    deadline: date


class ContentInput(StepInput):
    post_content: str = Field(..., min_length=1)
    post_link: str = ""
    page_link: str = ""

    @field_validator("post_link", "page_link")
    @classmethod
    def _links(cls, value: str) -> str:
        return _optional_url(value)


class ReturnInput(StepInput):
    reason: str = Field(..., min_length=1)


class PaymentInput(StepInput):
    recipient_name: str = Field(..., min_length=1)
    bank_account: str = Field(..., min_length=1)
    bank_name: str = Field(..., min_length=1)
    payment_amount: Decimal = Field(..., gt=0)


class CompletionInput(StepInput):
    transaction_ref: str = Field(..., min_length=1)
    bill_ref: str = ""

    @field_validator("bill_ref")
    @classmethod
    def _bill(cls, value: str) -> str:
        return _optional_url(value)


class LeaveInput(StepInput):
    leave_type: LeaveType
    dates: List[date] = Field(..., min_length=1)
    reason: str = Field(..., min_length=1)
    expected_time: str | None = None

    @field_validator("dates", mode="before")
    @classmethod
    def _split_dates(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.replace("\n", ",").split(",") if item.strip()]
        return value

    @field_validator("dates")
    @classmethod
    def _dedupe(cls, value: List[date]) -> List[date]:
        return sorted(set(value))

    @field_validator("expected_time")
    @classmethod
    def _time(cls, value: str | None) -> str | None:
        if not value:
            return None
        if not _TIME_RE.match(value):
            raise ValueError("Use the HH:MM format.")
        return value

    @model_validator(mode="after")
    def _partial_day(self):
        if self.leave_type.is_partial_day:
            if len(self.dates) != 1:
                raise ValueError("Late arrival and early departure cover exactly one date.")
            if not self.expected_time:
                raise ValueError("An expected time is required for this request type.")
        return self


class DecisionInput(StepInput):
    reason: str = ""


class BreakInput(StepInput):
    reason: str = ""


class CheckInInput(StepInput):
    photo_url: str = ""

    @field_validator("photo_url")
    @classmethod
    def _photo(cls, value: str) -> str:
        return _optional_url(value)


def _error_field(error: Dict[str, Any]) -> str:
    location = error.get("loc") or ()
    return str(location[0]) if location else "general"


def validate_input(model: Type[F], **data: Any) -> F:
    """Validate keyword data into *model*, raising ``FormValidationError``."""

    try:
        return model.model_validate(data)
    except ValidationError as exc:
        errors: Dict[str, str] = {}
        for error in exc.errors():
            message = str(error.get("msg", "Invalid value"))
            if message.startswith("Value error, "):
                message = message[len("Value error, "):]
            errors.setdefault(_error_field(error), message)
        raise FormValidationError(errors) from exc


class SubmissionValue(BaseModel):
    """Represents a single element value coming from Slack modal state."""

    model_config = ConfigDict(extra="ignore")

    value: str | None = None
    selected_date: str | None = None
    selected_time: str | None = None
    selected_option: Dict[str, Any] | None = None

    def resolved(self) -> str | None:
        if self.selected_option is not None:
            return self.selected_option.get("value")
        for candidate in (self.value, self.selected_date, self.selected_time):
            if candidate is not None:
                return candidate
        return None


class SubmissionState(BaseModel):
    """Model to validate Slack modal state payloads."""

    values: Dict[str, Dict[str, SubmissionValue]]


def extract_values(state_payload: Dict[str, Any]) -> Dict[str, str]:
    """Flatten modal state into ``{block_id: value}`` ignoring empty inputs."""

    try:
        state = SubmissionState.model_validate(state_payload)
    except ValidationError as exc:
        raise InvalidInputError("Invalid submission payload") from exc

    values: Dict[str, str] = {}
    for block_id, elements in state.values.items():
        element = elements.get(block_id) or next(iter(elements.values()), SubmissionValue())
        resolved = element.resolved()
        if resolved is not None and resolved.strip() != "":
            values[block_id] = resolved
    return values


def parse_form(model: Type[F], state_payload: Dict[str, Any]) -> F:
    """Parse a modal submission straight into a typed step input."""

    return validate_input(model, **extract_values(state_payload))


def canonical_json(data: Dict[str, Any]) -> str:
    """Return a canonical JSON string with stable ordering and whitespace."""

    return json.dumps(data, sort_keys=True, separators=(",", ":"))
