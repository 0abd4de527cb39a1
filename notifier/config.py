"""Application configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from notifier.models import DispatchConfig, MentionMode


class Settings(BaseSettings):
    """Environment-driven settings validated at startup."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    timezone: str = Field(default="Asia/Jakarta", alias="TZ")
    group_id: str | None = Field(default=None, alias="GROUP_ID")
    group_name: str | None = Field(default=None, alias="GROUP_NAME")
    cron_expression: str = Field(default="0 8 * * 1-5", alias="CRON_EXPRESSION")
    mention_mode: MentionMode = Field(default="visible", alias="MENTION_MODE")
    message_text: str = Field(default="[REMINDER] Standup today {{date}}.", alias="MESSAGE_TEXT")
    message_locale: Literal["id", "en"] = Field(default="id", alias="MESSAGE_LOCALE")
    scheduler_enabled: bool = Field(default=True, alias="SCHEDULER_ENABLED")

    mention_chunk_size: int = Field(default=50, ge=1, alias="MENTION_CHUNK_SIZE")
    roster_cache_ttl_seconds: float = Field(default=30 * 60, gt=0, alias="ROSTER_CACHE_TTL_SECONDS")
    batch_delay_seconds: float = Field(default=2.0, ge=0, alias="BATCH_DELAY_SECONDS")
    dm_spacing_seconds: float = Field(default=0.4, ge=0, alias="DM_SPACING_SECONDS")

    database_path: Path = Field(default=Path("notifier.db"), alias="DATABASE_PATH")
    signal_cli_path: str = Field(default="signal-cli", alias="SIGNAL_CLI_PATH")
    signal_account: str = Field(..., alias="SIGNAL_ACCOUNT")
    signal_owner_number: str = Field(..., alias="SIGNAL_OWNER_NUMBER")
    # Comma-separated E.164 numbers allowed to send commands (defaults to owner only).
    signal_allowed_senders: str = Field(default="", alias="SIGNAL_ALLOWED_SENDERS")
    signal_poll_interval_seconds: float = Field(default=2.0, alias="SIGNAL_POLL_INTERVAL_SECONDS")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown time zone: {value}") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @model_validator(mode="after")
    def _require_target(self) -> Settings:
        if not self.group_id and not self.group_name:
            raise ValueError("At least one of GROUP_ID or GROUP_NAME must be set")
        return self


def load_settings() -> Settings:
    """Load and validate settings."""

    return Settings()


def allowed_senders(settings: Settings) -> frozenset[str]:
    """Return the set of E.164 numbers permitted to send commands.

    Always includes the owner. Additional numbers can be added via the
    SIGNAL_ALLOWED_SENDERS env var as a comma-separated list.
    """
    extra = {n.strip() for n in settings.signal_allowed_senders.split(",") if n.strip()}
    return frozenset({settings.signal_owner_number} | extra)


def initial_dispatch_config(settings: Settings) -> DispatchConfig:
    """Build the startup dispatch configuration from settings."""

    return DispatchConfig(
        target_id=settings.group_id or None,
        message_template=settings.message_text,
        cadence=settings.cron_expression,
        mode=settings.mention_mode,
        enabled=settings.scheduler_enabled,
    )
