"""Shared test fixtures for the push service test suite.

Provides an in-memory subscription store, a scripted fake push sender and
factory helpers so tests run without network access or a VAPID key pair.
"""

from __future__ import annotations

import random
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from modules.push.dispatcher import Dispatcher
from modules.push.registry import SubscriberRegistry
from modules.push.schedule import FillerPool, build_schedule_table
from modules.push.sender import DeliveryResult
from modules.push.worker import TickScheduler
from shared.schemas.push import Destination, PushKeys


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


class MemoryStore:
    """SubscriptionStore that keeps the last saved list in memory."""

    def __init__(self, destinations: list[Destination] | None = None, fail_saves: bool = False):
        self.saved: list[Destination] = list(destinations or [])
        self.save_calls = 0
        self.fail_saves = fail_saves

    def load(self) -> list[Destination]:
        return list(self.saved)

    def save(self, destinations: list[Destination]) -> None:
        self.save_calls += 1
        if self.fail_saves:
            raise OSError("disk full")
        self.saved = list(destinations)


class FakeSender:
    """PushSender returning scripted results per endpoint.

    ``script[endpoint]`` is a list of DeliveryResults consumed in order;
    once exhausted (or for unknown endpoints) every send succeeds.
    """

    def __init__(self, configured: bool = True):
        self.configured = configured
        self.script: dict[str, list[DeliveryResult]] = {}
        self.calls: list[tuple[str, str, object]] = []
        self.sent_to: list[Destination] = []

    def fail(self, endpoint: str, *status_codes: int | None) -> None:
        self.script.setdefault(endpoint, []).extend(
            DeliveryResult(ok=False, status_code=code, error="scripted") for code in status_codes
        )

    def calls_for(self, endpoint: str) -> list[tuple[str, str, object]]:
        return [c for c in self.calls if c[0] == endpoint]

    async def send(self, destination, payload, options) -> DeliveryResult:
        self.calls.append((destination.endpoint, payload, options))
        self.sent_to.append(destination)
        queue = self.script.get(destination.endpoint)
        if queue:
            return queue.pop(0)
        return DeliveryResult(ok=True, status_code=201)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def make_destination(n: int = 1, **kwargs) -> Destination:
    """Build a valid Destination with a unique endpoint per ``n``."""
    defaults = dict(
        endpoint=f"https://fcm.googleapis.com/fcm/send/device-{n}",
        keys=PushKeys(p256dh=f"p256dh-{n}", auth=f"auth-{n}"),
    )
    defaults.update(kwargs)
    return Destination(**defaults)


def utc(hour: int, minute: int = 0, day: int = 15) -> datetime:
    return datetime(2026, 3, day, hour, minute, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def registry(store):
    return SubscriberRegistry(store)


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def no_sleep():
    return AsyncMock()


@pytest.fixture
def dispatcher(sender, registry, no_sleep):
    return Dispatcher(sender, registry, sleep=no_sleep)


@pytest.fixture
def table():
    # local UTC+8: 9 -> 01 UTC, 15 -> 07 UTC
    return build_schedule_table({9: "morning", 15: "afternoon"}, 8)


@pytest.fixture
def filler_pool():
    return FillerPool(("filler-a", "filler-b", "filler-c"))


@pytest.fixture
def welcome_pool():
    return FillerPool(("welcome",))


@pytest.fixture
def clock():
    """Mutable clock: set ``clock.now`` to move time."""

    class _Clock:
        now = utc(0, 0)

        def __call__(self) -> datetime:
            return self.now

    return _Clock()


@pytest.fixture
def scheduler(registry, dispatcher, table, filler_pool, welcome_pool, clock, sender):
    return TickScheduler(
        registry,
        dispatcher,
        table,
        filler_pool,
        welcome_pool,
        title="Test 💌",
        configured=sender.configured,
        clock=clock,
        rng=random.Random(7),
    )
