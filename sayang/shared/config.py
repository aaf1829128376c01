"""Configuration management using Pydantic Settings."""

from __future__ import annotations

import json
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_list(v: object) -> list[str]:
    """Parse a list from either a JSON array string, comma-separated string, or list."""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        v = v.strip()
        if not v:
            return []
        if v.startswith("["):
            return json.loads(v)
        return [item.strip() for item in v.split(",") if item.strip()]
    return list(v)  # type: ignore[arg-type]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # VAPID credentials: both must be set or the scheduler runs as a no-op
    vapid_public_key: str = ""
    vapid_private_key: str = ""
    vapid_subject: str = "mailto:you@example.com"

    # Schedule
    # Hours east of UTC that the scheduled message hours are written in.
    # Default 8 = WITA (Balikpapan). WIB = 7, WIT = 9.
    schedule_utc_offset_hours: int = 8
    notification_title: str = "Notifikasi Sayang 💌"

    # Subscriber persistence
    subscriptions_file: str = "subscriptions.json"
    # Optional JSON array of subscriptions; takes precedence over the file
    # on hosts without a persistent disk.
    subscriptions_data: str = ""

    # Delivery
    push_timeout_seconds: float = 10.0
    push_max_attempts: int = 3
    push_retry_delay_seconds: float = 2.0
    # 401/403 responses tolerated before a subscription is dropped
    auth_failure_limit: int = 3

    # Protects the manual-send and debug endpoints; empty disables the check
    service_auth_token: str = ""

    # Stored as str: comma-separated or JSON array. Use parse_list().
    cors_origins: str = "*"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("schedule_utc_offset_hours")
    @classmethod
    def _offset_in_range(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError("schedule_utc_offset_hours must be between 0 and 23")
        return v

    @property
    def vapid_configured(self) -> bool:
        return bool(self.vapid_public_key and self.vapid_private_key)


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
