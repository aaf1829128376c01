"""Tick scheduler - minute-aligned loop that selects and dispatches messages."""

from __future__ import annotations

import asyncio
import math
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

import structlog

from modules.push.dispatcher import Dispatcher
from modules.push.policy import Kind, SendBook, next_slot, select, truncate_to_minute
from modules.push.registry import SubscriberRegistry
from modules.push.schedule import FillerPool, ScheduleTable
from shared.schemas.push import (
    DEFAULT_OPTIONS,
    FILLER_OPTIONS,
    FIXED_OPTIONS,
    Destination,
    Message,
)

logger = structlog.get_logger()

TICK_SECONDS = 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def seconds_until_next_minute(now: datetime) -> float:
    """Delay until the next wall-clock minute boundary (never zero)."""
    elapsed = now.second + now.microsecond / 1_000_000
    return TICK_SECONDS - elapsed


@dataclass
class TickReport:
    minute_key: int
    skipped: str | None = None  # "duplicate_minute" | "not_configured" | "no_subscriptions"
    fixed: int = 0
    filler: int = 0
    idle: int = 0
    batch: asyncio.Task | None = field(default=None, repr=False)

    @property
    def selected(self) -> int:
        return self.fixed + self.filler


class TickScheduler:
    """Owns the per-minute loop, the minute guard and the send bookkeeping."""

    def __init__(
        self,
        registry: SubscriberRegistry,
        dispatcher: Dispatcher,
        table: ScheduleTable,
        filler_pool: FillerPool,
        welcome_pool: FillerPool,
        *,
        title: str,
        configured: bool = True,
        clock: Callable[[], datetime] = _utcnow,
        rng: random.Random | None = None,
    ):
        self.registry = registry
        self.dispatcher = dispatcher
        self.table = table
        self.filler_pool = filler_pool
        self.welcome_pool = welcome_pool
        self.title = title
        self.configured = configured
        self.clock = clock
        self.rng = rng or random.Random()
        self.book = SendBook()
        self.last_minute_key: int | None = None
        self._stopping = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Align to the next minute boundary, tick, repeat until stopped."""
        logger.info(
            "push_scheduler_started",
            configured=self.configured,
            utc_hours=self.table.utc_hours(),
        )
        while not self._stopping.is_set():
            delay = seconds_until_next_minute(self.clock())
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=delay)
                break
            except asyncio.TimeoutError:
                pass

            try:
                self.tick()
            except Exception as e:
                logger.error("push_tick_error", error=str(e))
        logger.info("push_scheduler_stopped")

    def stop(self) -> None:
        self._stopping.set()

    async def drain(self) -> None:
        """Wait for every in-flight dispatch batch to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Scheduled cadence
    # ------------------------------------------------------------------

    def tick(self, now: datetime | None = None) -> TickReport:
        """Evaluate every destination for this minute and dispatch in the background."""
        now = truncate_to_minute(now or self.clock()).astimezone(timezone.utc)
        minute_key = now.hour * 60 + now.minute
        report = TickReport(minute_key=minute_key)

        if minute_key == self.last_minute_key:
            report.skipped = "duplicate_minute"
            logger.debug("push_tick_duplicate", minute_key=minute_key)
            return report
        self.last_minute_key = minute_key

        if not self.configured:
            report.skipped = "not_configured"
            logger.info("push_not_configured", minute_key=minute_key)
            return report

        destinations = self.registry.snapshot()
        self.book.retain(d.endpoint for d in destinations)
        if not destinations:
            report.skipped = "no_subscriptions"
            return report

        jobs = []
        for destination in destinations:
            decision = select(
                now,
                destination,
                self.book.get(destination.endpoint),
                self.table,
                self.filler_pool,
                self.rng,
            )
            if decision.kind is Kind.fixed:
                report.fixed += 1
                message = Message(title=self.title, body=decision.body, options=FIXED_OPTIONS)
            elif decision.kind is Kind.filler:
                report.filler += 1
                message = Message(title=self.title, body=decision.body, options=FILLER_OPTIONS)
            else:
                report.idle += 1
                continue
            jobs.append(self._deliver_and_record(destination, message, decision.kind, now))

        if jobs:
            logger.info(
                "push_tick",
                time=now.strftime("%H:%M"),
                fixed=report.fixed,
                filler=report.filler,
                idle=report.idle,
            )
            report.batch = self._spawn(self._run_batch("tick", jobs))
        return report

    async def _deliver_and_record(
        self, destination: Destination, message: Message, kind: Kind, at: datetime
    ) -> bool:
        ok = await self.dispatcher.deliver(destination, message)
        if ok:
            if kind is Kind.fixed:
                self.book.mark_fixed(destination.endpoint, at)
            else:
                self.book.mark_filler(destination.endpoint, at)
        return ok

    # ------------------------------------------------------------------
    # Out-of-band triggers
    # ------------------------------------------------------------------

    def trigger_immediate_filler(self) -> int:
        """Send one random filler to everyone now. Returns the recipient count.

        Bypasses the selection policy and leaves the bookkeeping and the
        minute guard untouched.
        """
        if not self.configured:
            logger.info("push_not_configured", trigger="send_now")
            return 0

        destinations = self.registry.snapshot()
        if not destinations:
            logger.info("push_send_now_no_subscriptions")
            return 0

        message = Message(
            title=self.title,
            body=self.filler_pool.pick(self.rng),
            options=FILLER_OPTIONS,
        )
        logger.info("push_send_now", recipients=len(destinations))
        self._spawn(
            self._run_batch(
                "send_now",
                [self.dispatcher.deliver(d, message) for d in destinations],
            )
        )
        return len(destinations)

    def trigger_fixed(self, utc_hour: int) -> int:
        """Force the fixed message keyed at ``utc_hour`` to everyone now.

        Raises KeyError if no fixed message is scheduled for that hour.
        Like the manual filler, the bookkeeping and minute guard are left alone.
        """
        body = self.table.utc[utc_hour]
        if not self.configured:
            logger.info("push_not_configured", trigger="send_scheduled")
            return 0

        destinations = self.registry.snapshot()
        if not destinations:
            return 0

        message = Message(title=self.title, body=body, options=FIXED_OPTIONS)
        logger.info("push_send_scheduled", utc_hour=utc_hour, recipients=len(destinations))
        self._spawn(
            self._run_batch(
                "send_scheduled",
                [self.dispatcher.deliver(d, message) for d in destinations],
            )
        )
        return len(destinations)

    def trigger_welcome(self, destination: Destination) -> asyncio.Task | None:
        """Send one welcome message to one new destination."""
        if not self.configured:
            logger.info("push_not_configured", trigger="welcome")
            return None

        message = Message(
            title=self.title,
            body=self.welcome_pool.pick(self.rng),
            options=DEFAULT_OPTIONS,
        )
        logger.info("push_welcome", endpoint=destination.short_endpoint)
        return self._spawn(
            self._run_batch(
                "welcome",
                [self.dispatcher.deliver(destination, message, registered_only=False)],
            )
        )

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def schedule_snapshot(self) -> dict[int, str]:
        return self.table.snapshot()

    def state_snapshot(self) -> dict:
        now = self.clock().astimezone(timezone.utc)
        destinations = []
        for d in self.registry.snapshot():
            state = self.book.get(d.endpoint)
            destinations.append({
                "endpoint": d.short_endpoint,
                "timezone": d.timezone,
                "utc_offset_minutes": d.utc_offset_minutes,
                "failure_count": d.failure_count,
                "last_fixed_sent_at": _iso(state.last_fixed_sent_at),
                "last_filler_sent_at": _iso(state.last_filler_sent_at),
            })
        return {
            "configured": self.configured,
            "subscriptions": len(self.registry),
            "last_minute_key": self.last_minute_key,
            "current_hour": now.hour,
            "current_minute": now.minute,
            "scheduled_hours": self.table.utc_hours(),
            "in_flight_batches": len(self._tasks),
            "destinations": destinations,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_batch(self, label: str, jobs: list) -> tuple[int, int]:
        results = await asyncio.gather(*jobs, return_exceptions=True)
        sent = sum(1 for r in results if r is True)
        failed = len(results) - sent
        logger.info("push_batch_complete", batch=label, sent=sent, failed=failed)
        return sent, failed


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def next_message_info(
    now: datetime, table: ScheduleTable, destination: Destination | None = None
) -> dict:
    """When the next slot is on the destination's clock, for the welcome response."""
    at, kind = next_slot(now, table, destination)
    minutes = max(0, math.ceil((at - now) / timedelta(minutes=1)))
    return {"type": kind.value, "time": at.isoformat(), "minutes_until": minutes}
