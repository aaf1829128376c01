"""Web Push delivery primitive.

Wraps ``pywebpush`` (synchronous, requests-based) with ``asyncio.to_thread``.
One call = one attempt; retry and invalidation policy live in the dispatcher.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol

import requests
import structlog
from pywebpush import WebPushException, webpush

from shared.schemas.push import Destination, PushOptions

logger = structlog.get_logger()


@dataclass(frozen=True)
class DeliveryResult:
    ok: bool
    status_code: int | None = None  # None when no response was received
    error: str | None = None


class PushSender(Protocol):
    configured: bool

    async def send(
        self, destination: Destination, payload: str, options: PushOptions
    ) -> DeliveryResult: ...


class WebPushSender:
    """Sends VAPID-signed, encrypted Web Push messages."""

    def __init__(
        self,
        vapid_private_key: str,
        vapid_subject: str,
        timeout: float = 10.0,
        vapid_public_key: str = "",
    ):
        self.vapid_private_key = vapid_private_key
        self.vapid_public_key = vapid_public_key
        self.vapid_subject = vapid_subject
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.vapid_private_key and self.vapid_public_key)

    def _send_sync(self, destination: Destination, payload: str, options: PushOptions) -> None:
        webpush(
            subscription_info=destination.subscription_info(),
            data=payload,
            vapid_private_key=self.vapid_private_key,
            # pywebpush adds "aud"/"exp" in place, so hand it a fresh dict
            vapid_claims={"sub": self.vapid_subject},
            ttl=options.ttl_seconds,
            headers={"Urgency": options.urgency.value},
            timeout=self.timeout,
        )

    async def send(
        self, destination: Destination, payload: str, options: PushOptions
    ) -> DeliveryResult:
        try:
            await asyncio.to_thread(self._send_sync, destination, payload, options)
        except WebPushException as e:
            response = getattr(e, "response", None)
            if response is None:
                # rejected locally before anything went on the wire
                return DeliveryResult(ok=False, status_code=400, error=str(e))
            logger.debug(
                "push_response_error",
                endpoint=destination.short_endpoint,
                status_code=response.status_code,
                body=(getattr(response, "text", "") or "")[:200],
            )
            return DeliveryResult(ok=False, status_code=response.status_code, error=str(e))
        except requests.RequestException as e:
            return DeliveryResult(ok=False, error=f"{type(e).__name__}: {e}")
        except (ValueError, TypeError) as e:
            # unusable p256dh/auth keys: the payload cannot be encrypted
            return DeliveryResult(ok=False, status_code=400, error=str(e))
        return DeliveryResult(ok=True, status_code=201)
