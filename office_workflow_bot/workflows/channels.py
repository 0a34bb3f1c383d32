"""Channel naming conventions and the resolve-once channel directory."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping

from slack_sdk.errors import SlackApiError
import structlog

from office_workflow_bot.models import ChannelResolutionError
from office_workflow_bot.slack_client import SlackClient

from .documents import BudgetRole

ORIGIN_CHANNEL = "{prefix}-sale"

# Sibling channels of a budget request; ``{suffix}`` is the environment tail
# of the origin channel name (``budget-sale-dev`` -> ``-dev``).
BUDGET_ROLE_CHANNELS: Mapping[BudgetRole, str] = {
    BudgetRole.PARTNER: "{prefix}-partner-{partner}{suffix}",
    BudgetRole.REVIEWER: "{prefix}-tlqc{suffix}",
    BudgetRole.APPROVER: "{prefix}-approval{suffix}",
    BudgetRole.FINANCE: "{prefix}-finance{suffix}",
}

LEAVE_APPROVAL_CHANNEL = "{prefix}-approval{suffix}"


@dataclass(frozen=True)
class ChannelInfo:
    id: str
    name: str
    team_id: str | None


def _slack_error(exc: SlackApiError) -> str:
    response = getattr(exc, "response", None)
    return response.get("error") if response is not None else str(exc)


class ChannelDirectory:
    """Look up channels by id or by (team, name)."""

    def __init__(self, slack_client: SlackClient) -> None:
        self._slack = slack_client

    def describe(self, channel_id: str) -> ChannelInfo:
        try:
            channel = self._slack.get_channel(channel_id)
        except SlackApiError as exc:
            raise ChannelResolutionError(channel_id, _slack_error(exc)) from exc
        name = channel.get("name")
        if not name:
            raise ChannelResolutionError(channel_id)
        team_id = channel.get("context_team_id") or next(iter(channel.get("shared_team_ids") or []), None)
        return ChannelInfo(id=channel_id, name=name, team_id=team_id)

    def resolve(self, team_id: str | None, name: str) -> str:
        try:
            channel_id = self._slack.find_channel_id(team_id=team_id, name=name)
        except SlackApiError as exc:
            raise ChannelResolutionError(name, _slack_error(exc)) from exc
        if not channel_id:
            raise ChannelResolutionError(name)
        return channel_id


def partner_slug(partner: str) -> str:
    return "-".join(partner.strip().lower().split())


def environment_suffix(channel_name: str, base: str) -> str:
    """Return what follows *base* in *channel_name*, e.g. ``-dev``."""

    if channel_name == base:
        return ""
    if not channel_name.startswith(base + "-"):
        raise ChannelResolutionError(channel_name, f"expected a channel named {base}[-env]")
    return channel_name[len(base):]


def is_channel_family(channel_name: str | None, base: str) -> bool:
    if not channel_name:
        return False
    try:
        environment_suffix(channel_name, base)
    except ChannelResolutionError:
        return False
    return True


def budget_channel_names(origin_name: str, *, prefix: str, partner: str) -> Dict[BudgetRole, str]:
    """Derive every sibling channel name from the origin channel name."""

    suffix = environment_suffix(origin_name, ORIGIN_CHANNEL.format(prefix=prefix))
    slug = partner_slug(partner)
    return {
        role: template.format(prefix=prefix, partner=slug, suffix=suffix)
        for role, template in BUDGET_ROLE_CHANNELS.items()
    }


def resolve_budget_channels(
    directory: ChannelDirectory,
    origin: ChannelInfo,
    *,
    prefix: str,
    partner: str,
) -> Dict[BudgetRole, str]:
    """Resolve every role's channel id; any missing sibling aborts."""

    resolved: Dict[BudgetRole, str] = {BudgetRole.ORIGIN: origin.id}
    for role, name in budget_channel_names(origin.name, prefix=prefix, partner=partner).items():
        resolved[role] = directory.resolve(origin.team_id, name)
    return resolved


def resolve_leave_approval_channel(directory: ChannelDirectory, origin: ChannelInfo, *, prefix: str) -> str:
    suffix = environment_suffix(origin.name, prefix)
    return directory.resolve(origin.team_id, LEAVE_APPROVAL_CHANNEL.format(prefix=prefix, suffix=suffix))


def log_resolution_failure(exc: ChannelResolutionError, **context) -> None:
    structlog.get_logger().warning("channel_resolution_failed", channel=exc.channel_name, **context)
