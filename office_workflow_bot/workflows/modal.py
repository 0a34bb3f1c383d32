"""Modal payloads for every form the workflows collect."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Sequence

from .documents import LeaveType

MAX_TITLE_LENGTH = 24
MAX_LABEL_LENGTH = 75

BUDGET_CREATE_CALLBACK_ID = "budget_create"
BUDGET_CONTENT_CALLBACK_ID = "budget_content"
BUDGET_RETURN_CALLBACK_ID = "budget_return"
BUDGET_PAYMENT_CALLBACK_ID = "budget_payment"
BUDGET_COMPLETE_CALLBACK_ID = "budget_complete"
LEAVE_CREATE_CALLBACK_ID = "leave_create"
LEAVE_REJECT_CALLBACK_ID = "leave_reject"
ATTENDANCE_CHECK_IN_CALLBACK_ID = "attendance_check_in"
ATTENDANCE_BREAK_CALLBACK_ID = "attendance_break"


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "..."


def _input_block(
    block_id: str,
    label: str,
    *,
    element_type: str = "plain_text_input",
    multiline: bool = False,
    optional: bool = False,
    placeholder: str | None = None,
    options: Sequence[tuple[str, str]] = (),
) -> Dict[str, Any]:
    element: Dict[str, Any] = {"type": element_type, "action_id": block_id}
    if element_type == "plain_text_input":
        element["placeholder"] = {"type": "plain_text", "text": placeholder or "Enter a value"}
        if multiline:
            element["multiline"] = True
    elif element_type == "static_select":
        element["placeholder"] = {"type": "plain_text", "text": placeholder or "Choose an option"}
        element["options"] = [
            {"text": {"type": "plain_text", "text": text, "emoji": True}, "value": value} for value, text in options
        ]

    return {
        "type": "input",
        "block_id": block_id,
        "optional": optional,
        "label": {"type": "plain_text", "text": _truncate(label, MAX_LABEL_LENGTH), "emoji": True},
        "element": element,
    }


def encode_metadata(**values: Any) -> str:
    return json.dumps({key: value for key, value in values.items() if value is not None}, separators=(",", ":"))


def decode_metadata(raw: str | None) -> Dict[str, Any]:
    """Parse ``private_metadata``; raises ``ValueError`` when it is not a JSON object."""

    try:
        payload = json.loads(raw or "{}")
    except json.JSONDecodeError as exc:
        raise ValueError("Invalid modal metadata.") from exc
    if not isinstance(payload, dict):
        raise ValueError("Invalid modal metadata.")
    return payload


def _modal(callback_id: str, title: str, blocks: List[Dict[str, Any]], metadata: str, submit: str = "Submit") -> Dict:
    return {
        "type": "modal",
        "callback_id": callback_id,
        "private_metadata": metadata,
        "title": {"type": "plain_text", "text": _truncate(title, MAX_TITLE_LENGTH), "emoji": True},
        "submit": {"type": "plain_text", "text": submit, "emoji": True},
        "close": {"type": "plain_text", "text": "Cancel", "emoji": True},
        "blocks": blocks,
    }


def build_budget_create_modal(*, channel_id: str) -> Dict:
    blocks = [
        _input_block("name", "Campaign name"),
        _input_block("partner", "Partner", placeholder="Partner name as used in its channel"),
        _input_block("amount", "Amount", placeholder="e.g. 500"),
        _input_block("purpose", "Purpose", multiline=True),
        _input_block("deadline", "Deadline", element_type="datepicker"),
    ]
    return _modal(BUDGET_CREATE_CALLBACK_ID, "New budget request", blocks, encode_metadata(channel_id=channel_id))


def build_content_modal(*, request_id: str, channel_id: str | None = None) -> Dict:
    blocks = [
        _input_block("post_content", "Post content", multiline=True),
        _input_block("post_link", "Post link", optional=True, placeholder="https://"),
        _input_block("page_link", "Page link", optional=True, placeholder="https://"),
    ]
    metadata = encode_metadata(request_id=request_id, channel_id=channel_id)
    return _modal(BUDGET_CONTENT_CALLBACK_ID, "Partner content", blocks, metadata)


def build_return_modal(*, request_id: str, channel_id: str | None = None) -> Dict:
    blocks = [_input_block("reason", "What needs to change?", multiline=True)]
    metadata = encode_metadata(request_id=request_id, channel_id=channel_id)
    return _modal(BUDGET_RETURN_CALLBACK_ID, "Return content", blocks, metadata, submit="Return")


def build_payment_modal(*, request_id: str, channel_id: str | None = None) -> Dict:
    blocks = [
        _input_block("recipient_name", "Recipient name"),
        _input_block("bank_account", "Bank account"),
        _input_block("bank_name", "Bank"),
        _input_block("payment_amount", "Payment amount"),
    ]
    metadata = encode_metadata(request_id=request_id, channel_id=channel_id)
    return _modal(BUDGET_PAYMENT_CALLBACK_ID, "Payment details", blocks, metadata)


def build_complete_modal(*, request_id: str, channel_id: str | None = None) -> Dict:
    blocks = [
        _input_block("transaction_ref", "Transaction reference"),
        _input_block("bill_ref", "Bill link", optional=True, placeholder="https://"),
    ]
    metadata = encode_metadata(request_id=request_id, channel_id=channel_id)
    return _modal(BUDGET_COMPLETE_CALLBACK_ID, "Complete payment", blocks, metadata, submit="Complete")


def build_leave_modal(*, channel_id: str) -> Dict:
    options = [(leave_type.value, leave_type.label) for leave_type in LeaveType]
    blocks = [
        _input_block("leave_type", "Request type", element_type="static_select", options=options),
        _input_block("dates", "Dates", placeholder="YYYY-MM-DD, YYYY-MM-DD"),
        _input_block("expected_time", "Expected time (late arrival / early departure)", element_type="timepicker", optional=True),
        _input_block("reason", "Reason", multiline=True),
    ]
    return _modal(LEAVE_CREATE_CALLBACK_ID, "Leave request", blocks, encode_metadata(channel_id=channel_id))


def build_leave_reject_modal(*, request_id: str, channel_id: str | None = None) -> Dict:
    blocks = [_input_block("reason", "Reason", multiline=True, optional=True)]
    metadata = encode_metadata(request_id=request_id, channel_id=channel_id)
    return _modal(LEAVE_REJECT_CALLBACK_ID, "Reject leave", blocks, metadata, submit="Reject")


def build_check_in_modal(*, channel_id: str) -> Dict:
    blocks = [_input_block("photo_url", "Photo link", optional=True, placeholder="https://")]
    return _modal(ATTENDANCE_CHECK_IN_CALLBACK_ID, "Check in", blocks, encode_metadata(channel_id=channel_id), submit="Check in")


def build_break_modal(*, channel_id: str) -> Dict:
    blocks = [_input_block("reason", "Reason", optional=True)]
    return _modal(ATTENDANCE_BREAK_CALLBACK_ID, "Start a break", blocks, encode_metadata(channel_id=channel_id), submit="Start")
