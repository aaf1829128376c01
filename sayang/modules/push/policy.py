"""Selection policy - decides what (if anything) a destination gets this minute.

Pure functions over an injected clock value and an explicit ``SendBook``,
so every rule can be exercised with synthetic times and state.

Rules, evaluated per destination on its own clock:

1. ``:00`` of a scheduled hour, fixed not yet sent this hour -> fixed message.
2. Next fixed event 1-29 minutes away -> nothing (don't cheapen it).
3. ``:00`` / ``:30`` and no filler yet in this half-hour bucket -> filler.
4. Otherwise nothing.
"""

from __future__ import annotations

import enum
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, Mapping

from modules.push.schedule import FillerPool, ScheduleTable
from shared.schemas.push import Destination

FIXED_COOLDOWN = timedelta(hours=1)
SUPPRESS_MIN_MINUTES = 1
SUPPRESS_MAX_MINUTES = 29


class Kind(str, enum.Enum):
    fixed = "fixed"
    filler = "filler"
    none = "none"


@dataclass(frozen=True)
class Decision:
    kind: Kind
    body: str | None = None
    reason: str = ""

    @property
    def sends(self) -> bool:
        return self.kind is not Kind.none


@dataclass
class DestinationState:
    """Last-send bookkeeping for one destination (UTC, minute-truncated)."""

    last_fixed_sent_at: datetime | None = None
    last_filler_sent_at: datetime | None = None


@dataclass
class SendBook:
    """Per-destination send bookkeeping, keyed by endpoint."""

    states: dict[str, DestinationState] = field(default_factory=dict)

    def get(self, endpoint: str) -> DestinationState:
        return self.states.get(endpoint) or DestinationState()

    def mark_fixed(self, endpoint: str, at: datetime) -> None:
        self.states.setdefault(endpoint, DestinationState()).last_fixed_sent_at = at

    def mark_filler(self, endpoint: str, at: datetime) -> None:
        self.states.setdefault(endpoint, DestinationState()).last_filler_sent_at = at

    def retain(self, endpoints: Iterable[str]) -> None:
        """Drop bookkeeping for destinations no longer registered."""
        keep = set(endpoints)
        for endpoint in list(self.states):
            if endpoint not in keep:
                del self.states[endpoint]


def truncate_to_minute(dt: datetime) -> datetime:
    return dt.replace(second=0, microsecond=0)


def clock_for(now_utc: datetime, destination: Destination) -> datetime:
    """The wall clock a destination's rules are evaluated on.

    Destinations without timezone metadata share the UTC clock (paired with
    the UTC-keyed table, i.e. the server's configured zone).
    """
    zone = destination.zone()
    if zone is None:
        return now_utc.astimezone(timezone.utc)
    return now_utc.astimezone(zone)


def hours_for(table: ScheduleTable, destination: Destination) -> Mapping[int, str]:
    """The hour mapping matching ``clock_for``."""
    return table.utc if destination.zone() is None else table.local


def minutes_until_next_fixed(hour: int, minute: int, hours: Iterable[int]) -> int | None:
    """Minutes from ``hour:minute`` to the next ``:00`` of any scheduled hour.

    Looks forward only, wrapping past midnight. An event at the current
    ``:00`` has already passed; its next occurrence is tomorrow.
    """
    now = hour * 60 + minute
    best: int | None = None
    for scheduled in hours:
        distance = (scheduled * 60 - now) % (24 * 60)
        if distance == 0:
            distance = 24 * 60
        if best is None or distance < best:
            best = distance
    return best


def _bucket(clock: datetime) -> tuple:
    return (clock.date(), clock.hour, clock.minute // 30)


def select(
    now_utc: datetime,
    destination: Destination,
    state: DestinationState,
    table: ScheduleTable,
    pool: FillerPool,
    rng: random.Random,
) -> Decision:
    """Apply the selection rules for one destination at one tick."""
    now_utc = truncate_to_minute(now_utc)
    clock = clock_for(now_utc, destination)
    hours = hours_for(table, destination)
    hour, minute = clock.hour, clock.minute

    # Rule 1: fixed window
    if minute == 0 and hour in hours:
        last = state.last_fixed_sent_at
        if last is None or now_utc - last >= FIXED_COOLDOWN:
            return Decision(Kind.fixed, hours[hour], reason="scheduled_hour")
        return Decision(Kind.none, reason="fixed_already_sent")

    # Rule 2: suppression window before a fixed message
    until = minutes_until_next_fixed(hour, minute, hours)
    if until is not None and SUPPRESS_MIN_MINUTES <= until <= SUPPRESS_MAX_MINUTES:
        return Decision(Kind.none, reason=f"fixed_in_{until}m")

    # Rule 3: half-hourly filler
    if minute in (0, 30):
        last = state.last_filler_sent_at
        if last is not None and _bucket(clock_for(last, destination)) == _bucket(clock):
            return Decision(Kind.none, reason="filler_already_sent")
        return Decision(Kind.filler, pool.pick(rng), reason="half_hour")

    return Decision(Kind.none, reason="not_send_time")


def next_slot(
    now_utc: datetime, table: ScheduleTable, destination: Destination | None = None
) -> tuple[datetime, Kind]:
    """Next ``:00`` / ``:30`` slot and what it will carry.

    Evaluated on the destination's clock when one is given (the returned
    time carries that clock's offset), otherwise on the UTC clock.
    """
    if destination is None:
        clock = now_utc.astimezone(timezone.utc)
        hours: Mapping[int, str] = table.utc
    else:
        clock = clock_for(now_utc, destination)
        hours = hours_for(table, destination)
    base = truncate_to_minute(clock)
    if base.minute < 30:
        at = base.replace(minute=30)
    else:
        at = base.replace(minute=0) + timedelta(hours=1)
    if at.minute == 0 and at.hour in hours:
        return at, Kind.fixed
    return at, Kind.filler
