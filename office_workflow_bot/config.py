"""Pydantic-based configuration helpers for the Office Workflow Bot."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Iterable, List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, ValidationError, field_validator


class AppSettings(BaseModel):
    """Settings required to initialise the Slack bot and supporting services."""

    bot_token: str = Field(..., alias="SLACK_BOT_TOKEN")
    signing_secret: str = Field(..., alias="SLACK_SIGNING_SECRET")
    database_url: str = Field(..., alias="DATABASE_URL")
    budget_channel_prefix: str = Field("budget", alias="BUDGET_CHANNEL_PREFIX")
    attendance_channel_prefix: str = Field("attendance", alias="ATTENDANCE_CHANNEL_PREFIX")
    timezone: str = Field("UTC", alias="TIMEZONE")
    report_max_days: int = Field(62, alias="REPORT_MAX_DAYS")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    @field_validator("budget_channel_prefix", "attendance_channel_prefix")
    @classmethod
    def _normalise_prefix(cls, value: str) -> str:
        cleaned = value.strip().strip("-").lower()
        if not cleaned:
            raise ValueError("Channel prefixes must not be empty")
        return cleaned

    @field_validator("timezone")
    @classmethod
    def _ensure_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone '{value}'") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def _normalise_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level '{value}'")
        return level

    @field_validator("report_max_days")
    @classmethod
    def _ensure_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Report window must be greater than zero")
        return value

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def _format_missing(fields: Iterable[str]) -> str:
    """Return a human-friendly comma-separated list of missing env vars."""

    unique: List[str] = []
    for field in fields:
        if field not in unique:
            unique.append(field)
    return ", ".join(unique)


@lru_cache()
def get_settings() -> AppSettings:
    """Fetch and cache settings from environment variables."""

    try:
        return AppSettings.model_validate(os.environ)
    except ValidationError as exc:
        missing = [str(error["loc"][0]) for error in exc.errors() if error["type"] == "missing"]
        if not missing:
            raise RuntimeError(f"Invalid configuration: {exc}") from exc
        message = (
            "Missing required environment variables: "
            f"{_format_missing(missing)}"
        )
        raise RuntimeError(message) from exc
