"""Tests for slash command parsing and channel checks."""

from datetime import date

import pytest

from office_workflow_bot.models import InvalidInputError
from office_workflow_bot.workflows.commands import (
    ATTENDANCE_CHECK_IN_ACTION_ID,
    build_attendance_menu,
    is_attendance_channel,
    is_budget_origin_channel,
    parse_attendance_command,
    parse_budget_command,
)

TODAY = date(2025, 3, 3)


@pytest.mark.parametrize(
    ("name", "expected"),
    [("budget-sale", True), ("budget-sale-dev", True), ("budget-tlqc", False), ("general", False), (None, False)],
)
def test_budget_origin_channel(name, expected):
    assert is_budget_origin_channel(name, "budget") is expected


@pytest.mark.parametrize(
    ("name", "expected"),
    [("attendance", True), ("attendance-dev", True), ("attendance-approval", False), ("attendance-approval-dev", False)],
)
def test_attendance_channel(name, expected):
    assert is_attendance_channel(name, "attendance") is expected


def test_parse_budget_command():
    assert parse_budget_command("").action == "create"
    status = parse_budget_command("status abc")
    assert (status.action, status.request_id) == ("status", "abc")
    with pytest.raises(InvalidInputError):
        parse_budget_command("approve abc")


def test_parse_attendance_command_defaults_to_today():
    assert parse_attendance_command("  ", today=TODAY).action == "menu"

    single = parse_attendance_command("report", today=TODAY)
    assert (single.from_day, single.to_day) == (TODAY, TODAY)

    ranged = parse_attendance_command("report 2025-03-01 2025-03-05", today=TODAY)
    assert (ranged.from_day, ranged.to_day) == (date(2025, 3, 1), date(2025, 3, 5))


@pytest.mark.parametrize("text", ["report 03/01/2025", "export", "leaves all", "report 2025-03-01 2025-03-02 2025-03-03"])
def test_parse_attendance_command_rejects_bad_input(text):
    with pytest.raises(InvalidInputError):
        parse_attendance_command(text, today=TODAY)


def test_attendance_menu_buttons_carry_channel():
    blocks = build_attendance_menu(channel_id="CATT")

    elements = blocks[-1]["elements"]
    assert elements[0]["action_id"] == ATTENDANCE_CHECK_IN_ACTION_ID
    assert {element["value"] for element in elements} == {"CATT"}


def test_parse_attendance_leaves_command():
    assert parse_attendance_command("Leaves", today=TODAY).action == "leaves"
