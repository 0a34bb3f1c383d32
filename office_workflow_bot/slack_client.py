"""Thin wrapper utilities around the Slack WebClient."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from slack_sdk import WebClient

CHANNEL_PAGE_SIZE = 200
CHANNEL_TYPES = "public_channel,private_channel"


class SlackClient:
    """Encapsulate Slack WebClient interactions for easier testing."""

    def __init__(self, *, token: str | None = None, client: WebClient | None = None) -> None:
        if client is None and token is None:
            raise ValueError("Either an instantiated client or a bot token must be provided.")

        self._client = client or WebClient(token=token)

    @property
    def client(self) -> WebClient:
        """Expose the underlying WebClient for advanced use cases."""

        return self._client

    def post_message(
        self,
        *,
        channel: str,
        text: str,
        blocks: Sequence[Mapping[str, Any]],
        thread_ts: str | None = None,
    ) -> Mapping[str, Any]:
        """Post a message with Block Kit content, optionally inside a thread."""

        kwargs: dict[str, Any] = {"channel": channel, "text": text, "blocks": list(blocks)}
        if thread_ts:
            kwargs["thread_ts"] = thread_ts
        return self._client.chat_postMessage(**kwargs)

    def update_message(
        self,
        *,
        channel: str,
        ts: str,
        text: str,
        blocks: Sequence[Mapping[str, Any]],
    ) -> Mapping[str, Any]:
        """Update an existing Slack message."""

        return self._client.chat_update(channel=channel, ts=ts, text=text, blocks=list(blocks))

    def post_ephemeral(self, *, channel: str, user: str, text: str) -> Mapping[str, Any]:
        return self._client.chat_postEphemeral(channel=channel, user=user, text=text)

    def open_view(self, *, trigger_id: str, view: Mapping[str, Any]) -> Mapping[str, Any]:
        """Open a modal bound to an interaction trigger."""

        return self._client.views_open(trigger_id=trigger_id, view=dict(view))

    def get_channel(self, channel_id: str) -> Mapping[str, Any]:
        response = self._client.conversations_info(channel=channel_id)
        return response.get("channel") or {}

    def find_channel_id(self, *, team_id: str | None, name: str) -> str | None:
        """Return the id of the channel called *name*, walking every page."""

        cursor = None
        while True:
            kwargs: dict[str, Any] = {
                "types": CHANNEL_TYPES,
                "exclude_archived": True,
                "limit": CHANNEL_PAGE_SIZE,
            }
            if team_id:
                kwargs["team_id"] = team_id
            if cursor:
                kwargs["cursor"] = cursor
            response = self._client.conversations_list(**kwargs)
            for channel in response.get("channels") or []:
                if channel.get("name") == name:
                    return channel.get("id")
            cursor = (response.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                return None

    def get_user(self, user_id: str) -> Mapping[str, Any]:
        response = self._client.users_info(user=user_id)
        return response.get("user") or {}
