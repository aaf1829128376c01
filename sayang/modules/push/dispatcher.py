"""Dispatcher - bounded retries and subscription invalidation around one push."""

from __future__ import annotations

import asyncio
import enum
from typing import Awaitable, Callable

import structlog

from modules.push.registry import SubscriberRegistry
from modules.push.sender import DeliveryResult, PushSender
from shared.schemas.push import Destination, Message

logger = structlog.get_logger()

MAX_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 2.0
AUTH_FAILURE_LIMIT = 3


class FailureKind(str, enum.Enum):
    gone = "gone"  # endpoint withdrawn: prune
    malformed = "malformed"  # request rejected: don't retry, keep
    auth = "auth"  # credentials rejected: count, prune at the limit
    transient = "transient"  # network/server: retry, keep


def classify(status_code: int | None) -> FailureKind:
    if status_code in (404, 410):
        return FailureKind.gone
    if status_code == 400:
        return FailureKind.malformed
    if status_code in (401, 403):
        return FailureKind.auth
    return FailureKind.transient


class Dispatcher:
    """Drives one destination's delivery attempts and applies their outcome."""

    def __init__(
        self,
        sender: PushSender,
        registry: SubscriberRegistry,
        *,
        max_attempts: int = MAX_ATTEMPTS,
        retry_delay: float = RETRY_DELAY_SECONDS,
        auth_failure_limit: int = AUTH_FAILURE_LIMIT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.sender = sender
        self.registry = registry
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.auth_failure_limit = auth_failure_limit
        self._sleep = sleep
        # one in-flight attempt chain per endpoint; an entry lives only while
        # some delivery for that endpoint holds or waits on it
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiting: dict[str, int] = {}

    @property
    def active_endpoints(self) -> int:
        return len(self._locks)

    async def deliver(
        self, destination: Destination, message: Message, *, registered_only: bool = True
    ) -> bool:
        """Send ``message`` to ``destination``. Never raises; returns success.

        With ``registered_only`` a destination removed since it was selected
        (unsubscribed, or pruned by a concurrent failure) is skipped, and the
        registry's current record is sent so refreshed keys are used.
        """
        endpoint = destination.endpoint
        lock = self._locks.setdefault(endpoint, asyncio.Lock())
        self._waiting[endpoint] = self._waiting.get(endpoint, 0) + 1
        try:
            async with lock:
                if registered_only:
                    current = self.registry.get(endpoint)
                    if current is None:
                        logger.info(
                            "push_skipped_unregistered", endpoint=destination.short_endpoint
                        )
                        return False
                    destination = current
                try:
                    return await self._attempt_chain(destination, message)
                except Exception as e:
                    logger.error(
                        "push_dispatch_error",
                        endpoint=destination.short_endpoint,
                        error=str(e),
                    )
                    return False
        finally:
            self._waiting[endpoint] -= 1
            if not self._waiting[endpoint]:
                del self._waiting[endpoint]
                del self._locks[endpoint]

    async def _attempt_chain(self, destination: Destination, message: Message) -> bool:
        payload = message.payload()
        for attempt in range(1, self.max_attempts + 1):
            logger.info(
                "push_attempt",
                endpoint=destination.short_endpoint,
                attempt=attempt,
                max_attempts=self.max_attempts,
                preview=message.body[:50],
            )
            result = await self.sender.send(destination, payload, message.options)
            if result.ok:
                logger.info("push_sent", endpoint=destination.short_endpoint, attempt=attempt)
                await self.registry.reset_failure_count(destination.endpoint)
                return True

            kind = classify(result.status_code)
            logger.warning(
                "push_failed",
                endpoint=destination.short_endpoint,
                attempt=attempt,
                status_code=result.status_code,
                kind=kind.value,
                error=result.error,
            )

            if kind is not FailureKind.transient:
                await self._invalidate(destination, kind, result)
                return False

            if attempt < self.max_attempts:
                logger.info(
                    "push_retry_scheduled",
                    endpoint=destination.short_endpoint,
                    delay_seconds=self.retry_delay,
                    retry=attempt,
                )
                await self._sleep(self.retry_delay)

        logger.warning(
            "push_retries_exhausted",
            endpoint=destination.short_endpoint,
            attempts=self.max_attempts,
        )
        return False

    async def _invalidate(
        self, destination: Destination, kind: FailureKind, result: DeliveryResult
    ) -> None:
        if kind is FailureKind.gone:
            await self.registry.remove(destination.endpoint, reason=f"gone_{result.status_code}")
        elif kind is FailureKind.auth:
            count = await self.registry.increment_failure_count(
                destination.endpoint, remove_at=self.auth_failure_limit
            )
            logger.info(
                "push_auth_failure_counted",
                endpoint=destination.short_endpoint,
                failure_count=count,
                limit=self.auth_failure_limit,
            )
