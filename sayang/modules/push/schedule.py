"""Schedule table construction - local hour schedule to UTC hour keys."""

from __future__ import annotations

import random
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

import structlog

logger = structlog.get_logger()


class ScheduleConfigError(ValueError):
    """Raised at startup when the schedule cannot be built."""


def local_to_utc_hour(local_hour: int, offset: float) -> int:
    """Translate a local hour to its UTC hour for a zone ``offset`` hours east of UTC."""
    return int((local_hour - offset + 24) // 1) % 24


@dataclass(frozen=True)
class ScheduleTable:
    """Fixed messages keyed by UTC hour, plus the local mapping they came from.

    ``utc`` drives destinations without timezone metadata; ``local`` is
    evaluated against a destination's own clock when it supplied one.
    """

    utc: Mapping[int, str]
    local: Mapping[int, str]
    offset_hours: float

    def utc_hours(self) -> list[int]:
        return sorted(self.utc)

    def snapshot(self) -> dict[int, str]:
        return dict(sorted(self.utc.items()))

    def local_snapshot(self) -> dict[int, str]:
        return dict(sorted(self.local.items()))


def build_schedule_table(local: Mapping[int, str], offset_hours: float) -> ScheduleTable:
    """Build the UTC-keyed table from a local-hour mapping.

    Raises:
        ScheduleConfigError: If the offset or any local hour is outside [0, 23].
    """
    if not 0 <= offset_hours <= 23:
        raise ScheduleConfigError(f"UTC offset must be within [0, 23], got {offset_hours}")

    utc: dict[int, str] = {}
    for local_hour, body in local.items():
        if not 0 <= local_hour <= 23:
            raise ScheduleConfigError(f"Scheduled hour must be within [0, 23], got {local_hour}")
        utc_hour = local_to_utc_hour(local_hour, offset_hours)
        if utc_hour in utc:
            logger.warning("schedule_hour_collision", utc_hour=utc_hour, local_hour=local_hour)
        utc[utc_hour] = body

    logger.info(
        "schedule_table_built",
        offset_hours=offset_hours,
        utc_hours=sorted(utc),
    )
    return ScheduleTable(
        utc=MappingProxyType(utc),
        local=MappingProxyType(dict(local)),
        offset_hours=offset_hours,
    )


class FillerPool:
    """Non-empty pool of interchangeable messages, picked uniformly at random."""

    def __init__(self, messages: tuple[str, ...] | list[str]):
        if not messages:
            raise ScheduleConfigError("Filler pool must not be empty")
        self._messages = tuple(messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(self._messages)

    def pick(self, rng: random.Random) -> str:
        return rng.choice(self._messages)
