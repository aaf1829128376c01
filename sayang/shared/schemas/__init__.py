"""Pydantic schemas for the push service."""

from shared.schemas.common import HealthResponse, SuccessResponse
from shared.schemas.push import (
    DEFAULT_OPTIONS,
    FILLER_OPTIONS,
    FIXED_OPTIONS,
    Destination,
    Message,
    PushKeys,
    PushOptions,
    UnsubscribeRequest,
    Urgency,
)

__all__ = [
    "DEFAULT_OPTIONS",
    "FILLER_OPTIONS",
    "FIXED_OPTIONS",
    "Destination",
    "HealthResponse",
    "Message",
    "PushKeys",
    "PushOptions",
    "SuccessResponse",
    "UnsubscribeRequest",
    "Urgency",
]
