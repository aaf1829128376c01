"""Common response schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Health check response, also used by the browser subscribe button."""

    status: str = "ok"
    timestamp: datetime
    vapid_configured: bool
    subscription_count: int


class SuccessResponse(BaseModel):
    success: bool
    error: str | None = None
