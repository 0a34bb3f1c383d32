"""Tests for channel naming and resolution."""

from __future__ import annotations

import pytest

from conftest import FakeWebClient
from office_workflow_bot.models import ChannelResolutionError
from office_workflow_bot.slack_client import SlackClient
from office_workflow_bot.workflows import BudgetRole, ChannelDirectory, ChannelInfo
from office_workflow_bot.workflows.channels import (
    budget_channel_names,
    environment_suffix,
    is_channel_family,
    partner_slug,
    resolve_leave_approval_channel,
)


def test_partner_slug_normalises_names():
    assert partner_slug("  Big Acme Co ") == "big-acme-co"


def test_environment_suffix():
    assert environment_suffix("budget-sale", "budget-sale") == ""
    assert environment_suffix("budget-sale-dev", "budget-sale") == "-dev"
    with pytest.raises(ChannelResolutionError):
        environment_suffix("general", "budget-sale")


def test_is_channel_family():
    assert is_channel_family("attendance-staging", "attendance")
    assert not is_channel_family("attendances", "attendance")
    assert not is_channel_family(None, "attendance")


def test_budget_channel_names_carry_suffix():
    names = budget_channel_names("budget-sale-dev", prefix="budget", partner="Acme")

    assert names == {
        BudgetRole.PARTNER: "budget-partner-acme-dev",
        BudgetRole.REVIEWER: "budget-tlqc-dev",
        BudgetRole.APPROVER: "budget-approval-dev",
        BudgetRole.FINANCE: "budget-finance-dev",
    }


def test_directory_describe_and_resolve(slack):
    directory = ChannelDirectory(SlackClient(client=slack))

    assert directory.describe("CSALE") == ChannelInfo(id="CSALE", name="budget-sale", team_id="T1")
    assert directory.resolve("T1", "budget-tlqc") == "CTLQC"


def test_directory_errors_become_resolution_errors(slack):
    directory = ChannelDirectory(SlackClient(client=slack))

    with pytest.raises(ChannelResolutionError) as err:
        directory.describe("CUNKNOWN")
    assert "channel_not_found" in err.value.message

    with pytest.raises(ChannelResolutionError) as err:
        directory.resolve("T1", "budget-nowhere")
    assert err.value.channel_name == "budget-nowhere"


def test_leave_approval_channel_uses_origin_suffix():
    slack = FakeWebClient(channels={"CATT": "attendance-dev", "CAPP": "attendance-approval-dev"})
    directory = ChannelDirectory(SlackClient(client=slack))

    origin = directory.describe("CATT")

    assert resolve_leave_approval_channel(directory, origin, prefix="attendance") == "CAPP"


class PagedWebClient(FakeWebClient):
    def conversations_list(self, **kwargs):
        if kwargs.get("cursor") == "page-2":
            return {"channels": [{"id": "CLATE", "name": "budget-finance"}], "response_metadata": {"next_cursor": ""}}
        return {"channels": [{"id": "CEARLY", "name": "budget-tlqc"}], "response_metadata": {"next_cursor": "page-2"}}


def test_resolve_walks_every_page():
    directory = ChannelDirectory(SlackClient(client=PagedWebClient()))

    assert directory.resolve("T1", "budget-finance") == "CLATE"
