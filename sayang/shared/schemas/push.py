"""Push subscription and message schemas."""

from __future__ import annotations

import json
import zoneinfo
from datetime import timedelta, timezone, tzinfo
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PushKeys(BaseModel):
    """Client-side encryption keys from the browser PushSubscription."""

    p256dh: str = Field(min_length=1)
    auth: str = Field(min_length=1)


class Destination(BaseModel):
    """A registered push target. Identity is the endpoint URL."""

    model_config = ConfigDict(extra="ignore")

    endpoint: str = Field(min_length=1)
    keys: PushKeys
    timezone: str | None = None  # IANA name, e.g. "Asia/Makassar"
    utc_offset_minutes: int | None = Field(default=None, ge=-720, le=840)  # east of UTC
    failure_count: int = Field(default=0, ge=0)  # consecutive 401/403 responses

    @field_validator("endpoint")
    @classmethod
    def _http_endpoint(cls, v: str) -> str:
        if not v.startswith(("https://", "http://")):
            raise ValueError("endpoint must be an http(s) URL")
        return v

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, v: str | None) -> str | None:
        if v is None:
            return v
        try:
            zoneinfo.ZoneInfo(v)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone: {v}") from e
        return v

    def zone(self) -> tzinfo | None:
        """Resolve the client-supplied timezone, named zone first."""
        if self.timezone:
            return zoneinfo.ZoneInfo(self.timezone)
        if self.utc_offset_minutes is not None:
            return timezone(timedelta(minutes=self.utc_offset_minutes))
        return None

    def subscription_info(self) -> dict:
        return {"endpoint": self.endpoint, "keys": self.keys.model_dump()}

    @property
    def short_endpoint(self) -> str:
        return self.endpoint[:60]


class Urgency(str, Enum):
    very_low = "very-low"
    low = "low"
    normal = "normal"
    high = "high"


class PushOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    ttl_seconds: int = Field(ge=0)
    urgency: Urgency = Urgency.normal


# A scheduled message must survive the device being offline for a while;
# a filler that arrives after its half-hour is worthless.
FIXED_OPTIONS = PushOptions(ttl_seconds=60 * 60, urgency=Urgency.high)
FILLER_OPTIONS = PushOptions(ttl_seconds=30, urgency=Urgency.normal)
DEFAULT_OPTIONS = FIXED_OPTIONS


class Message(BaseModel):
    """An immutable notification: what the service worker displays."""

    model_config = ConfigDict(frozen=True)

    title: str
    body: str
    options: PushOptions = DEFAULT_OPTIONS

    def payload(self) -> str:
        return json.dumps({"title": self.title, "body": self.body}, ensure_ascii=False)


class UnsubscribeRequest(BaseModel):
    endpoint: str = Field(min_length=1)
