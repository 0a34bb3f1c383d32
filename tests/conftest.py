"""Shared fixtures: per-test SQLite document store and a fake Slack WebClient."""

from __future__ import annotations

from pathlib import Path
import sys

import pytest
from slack_sdk.errors import SlackApiError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:  # pragma: no cover
    sys.path.insert(0, str(ROOT))

from office_workflow_bot import config  # noqa: E402
from office_workflow_bot.db import create_schema, drop_schema, get_engine, get_session_factory  # noqa: E402


@pytest.fixture(autouse=True)
def configure_environment(monkeypatch, tmp_path):
    db_path = tmp_path / "workflows.db"
    monkeypatch.setenv("SLACK_BOT_TOKEN", "token")
    monkeypatch.setenv("SLACK_SIGNING_SECRET", "secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")
    monkeypatch.setenv("TIMEZONE", "UTC")

    config.get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()

    create_schema()

    yield

    drop_schema()
    config.get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()


class DummyResponse(dict):
    """Minimal Slack response stub for error handling tests."""

    def __init__(self, error: str = "invalid_arguments", status_code: int = 400) -> None:
        super().__init__({"ok": False, "error": error})
        self.status_code = status_code

    @property
    def data(self) -> dict:
        return dict(self)


DEFAULT_CHANNELS = {
    "CSALE": "budget-sale",
    "CPARTNER": "budget-partner-acme",
    "CTLQC": "budget-tlqc",
    "CAPPROVAL": "budget-approval",
    "CFINANCE": "budget-finance",
    "CATT": "attendance",
    "CATTAPP": "attendance-approval",
}


class FakeWebClient:
    """Records every Slack call and hands out increasing message timestamps."""

    def __init__(self, channels: dict[str, str] | None = None, team_id: str = "T1") -> None:
        self.channels = dict(DEFAULT_CHANNELS if channels is None else channels)
        self.team_id = team_id
        self.posts: list[dict] = []
        self.updates: list[dict] = []
        self.ephemeral: list[dict] = []
        self.opened_views: list[dict] = []
        self.failing_channels: set[str] = set()
        self._counter = 0

    def _fail_if_needed(self, channel: str) -> None:
        if channel in self.failing_channels:
            raise SlackApiError("slack failure", DummyResponse("channel_not_found", 404))

    def conversations_info(self, *, channel: str):
        if channel not in self.channels:
            raise SlackApiError("not found", DummyResponse("channel_not_found", 404))
        return {"ok": True, "channel": {"id": channel, "name": self.channels[channel], "context_team_id": self.team_id}}

    def conversations_list(self, **kwargs):
        channels = [{"id": channel_id, "name": name} for channel_id, name in self.channels.items()]
        return {"ok": True, "channels": channels, "response_metadata": {"next_cursor": ""}}

    def chat_postMessage(self, **kwargs):
        self._fail_if_needed(kwargs["channel"])
        self._counter += 1
        ts = f"1700000000.{self._counter:06d}"
        self.posts.append({**kwargs, "ts": ts})
        return {"ok": True, "ts": ts, "channel": kwargs["channel"]}

    def chat_update(self, **kwargs):
        self._fail_if_needed(kwargs["channel"])
        self.updates.append(kwargs)
        return {"ok": True, "ts": kwargs["ts"]}

    def chat_postEphemeral(self, **kwargs):
        self.ephemeral.append(kwargs)
        return {"ok": True}

    def views_open(self, **kwargs):
        self.opened_views.append(kwargs)
        return {"ok": True}

    def users_info(self, *, user: str):
        return {"ok": True, "user": {"id": user, "name": user.lower(), "profile": {"display_name": f"Name {user}"}}}

    def posts_to(self, channel: str, *, top_level_only: bool = False) -> list[dict]:
        return [
            post
            for post in self.posts
            if post["channel"] == channel and not (top_level_only and post.get("thread_ts"))
        ]

    def updates_to(self, channel: str) -> list[dict]:
        return [update for update in self.updates if update["channel"] == channel]


@pytest.fixture
def slack():
    return FakeWebClient()
