"""Utilities for handling Slack interaction payloads."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class ActionContext:
    """Parsed context describing a workflow button invocation."""

    request_id: str
    workflow: str


def encode_action_value(*, request_id: str, workflow: str) -> str:
    """Serialise the button value carried by every workflow action."""

    return json.dumps({"request_id": request_id, "workflow": workflow}, separators=(",", ":"))


def parse_action_context(raw_value: str) -> ActionContext:
    """Parse the action value into a structured context."""

    try:
        payload = json.loads(raw_value)
    except (TypeError, json.JSONDecodeError) as exc:
        raise ValueError("Invalid action payload.") from exc

    if not isinstance(payload, dict):
        raise ValueError("Invalid action payload.")

    request_id = payload.get("request_id")
    workflow = payload.get("workflow")
    if not isinstance(request_id, str) or not request_id:
        raise ValueError("Invalid action payload.")
    if not isinstance(workflow, str) or not workflow:
        raise ValueError("Invalid action payload.")

    return ActionContext(request_id=request_id, workflow=workflow)


def first_action(body: Mapping[str, Any]) -> Mapping[str, Any]:
    actions = body.get("actions") or []
    if not actions:
        raise ValueError("Unable to process this action payload.")
    return actions[0]
