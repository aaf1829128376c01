"""Subscriber registry - in-memory destinations with serialized, persisted mutations."""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Protocol

import structlog
from pydantic import ValidationError

from shared.schemas.push import Destination

logger = structlog.get_logger()


class SubscriptionStore(Protocol):
    """Durable storage for the full subscriber list."""

    def load(self) -> list[Destination]: ...

    def save(self, destinations: list[Destination]) -> None: ...


def parse_destinations(raw: object, source: str) -> list[Destination]:
    """Validate raw JSON records, dropping the ones that don't parse."""
    if not isinstance(raw, list):
        logger.warning("subscriptions_not_a_list", source=source)
        return []

    destinations = []
    for index, record in enumerate(raw):
        try:
            destinations.append(Destination.model_validate(record))
        except ValidationError as e:
            logger.warning(
                "subscription_record_rejected",
                source=source,
                index=index,
                error=str(e),
            )
    return destinations


def dump_destinations(destinations: list[Destination], indent: int | None = None) -> str:
    """Serialize destinations in the format ``load`` and the env seed accept."""
    return json.dumps(
        [d.model_dump(exclude_none=True) for d in destinations],
        indent=indent,
        ensure_ascii=False,
    )


class JsonFileStore:
    """Subscriptions kept in a JSON file, optionally seeded from a JSON string.

    The seed (``SUBSCRIPTIONS_DATA``) lets hosts without a persistent disk
    restore subscribers after a redeploy; when it parses it wins over the file.
    """

    def __init__(self, path: str | Path, seed: str = ""):
        self.path = Path(path)
        self.seed = seed

    def load(self) -> list[Destination]:
        if self.seed.strip():
            try:
                destinations = parse_destinations(json.loads(self.seed), "env")
            except json.JSONDecodeError as e:
                logger.warning("subscriptions_seed_invalid", error=str(e))
            else:
                logger.info("subscriptions_loaded", source="env", count=len(destinations))
                return destinations

        if not self.path.exists():
            return []

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "[]")
        except (OSError, json.JSONDecodeError) as e:
            logger.error("subscriptions_file_unreadable", path=str(self.path), error=str(e))
            return []

        destinations = parse_destinations(raw, str(self.path))
        logger.info("subscriptions_loaded", source="file", count=len(destinations))
        return destinations

    def save(self, destinations: list[Destination]) -> None:
        data = dump_destinations(destinations, indent=2)
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=directory, prefix=".subscriptions-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(data)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise


class SubscriberRegistry:
    """The authoritative set of destinations, keyed by endpoint.

    Subscribe/unsubscribe from the HTTP layer and invalidation from the
    dispatcher all mutate through this class under a single lock. Each
    mutation persists the whole list off the event loop; a failed persist
    is logged and the in-memory state stays authoritative.
    """

    def __init__(self, store: SubscriptionStore):
        self._store = store
        self._destinations: dict[str, Destination] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._destinations)

    def __contains__(self, endpoint: object) -> bool:
        return endpoint in self._destinations

    def get(self, endpoint: str) -> Destination | None:
        return self._destinations.get(endpoint)

    def snapshot(self) -> list[Destination]:
        return list(self._destinations.values())

    async def load(self) -> int:
        destinations = await asyncio.to_thread(self._store.load)
        async with self._lock:
            self._destinations = {d.endpoint: d for d in destinations}
            return len(self._destinations)

    async def add(self, destination: Destination) -> bool:
        """Register a destination. Returns False if the endpoint was already known.

        A known endpoint gets its keys and timezone metadata refreshed.
        """
        async with self._lock:
            existing = self._destinations.get(destination.endpoint)
            if existing is not None:
                refreshed = destination.model_copy(update={"failure_count": existing.failure_count})
                if refreshed == existing:
                    logger.info("subscription_exists", endpoint=destination.short_endpoint)
                    return False
                self._destinations[destination.endpoint] = refreshed
                await self._persist()
                logger.info("subscription_refreshed", endpoint=destination.short_endpoint)
                return False

            self._destinations[destination.endpoint] = destination.model_copy(
                update={"failure_count": 0}
            )
            await self._persist()
            logger.info(
                "subscription_added",
                endpoint=destination.short_endpoint,
                total=len(self._destinations),
            )
            return True

    async def remove(self, endpoint: str, reason: str = "unsubscribe") -> bool:
        async with self._lock:
            if self._destinations.pop(endpoint, None) is None:
                return False
            await self._persist()
            logger.info(
                "subscription_removed",
                endpoint=endpoint[:60],
                reason=reason,
                total=len(self._destinations),
            )
            return True

    async def increment_failure_count(
        self, endpoint: str, *, remove_at: int | None = None
    ) -> int | None:
        """Count one auth failure; drop the destination once ``remove_at`` is reached.

        Returns the new count, or None if the endpoint is not registered.
        """
        async with self._lock:
            destination = self._destinations.get(endpoint)
            if destination is None:
                return None
            count = destination.failure_count + 1
            if remove_at is not None and count >= remove_at:
                del self._destinations[endpoint]
                logger.info(
                    "subscription_removed",
                    endpoint=endpoint[:60],
                    reason="auth_failures",
                    failure_count=count,
                    total=len(self._destinations),
                )
            else:
                self._destinations[endpoint] = destination.model_copy(
                    update={"failure_count": count}
                )
            await self._persist()
            return count

    async def reset_failure_count(self, endpoint: str) -> None:
        async with self._lock:
            destination = self._destinations.get(endpoint)
            if destination is None or destination.failure_count == 0:
                return
            self._destinations[endpoint] = destination.model_copy(update={"failure_count": 0})
            await self._persist()

    async def _persist(self) -> None:
        """Write the current list. Caller must hold the lock."""
        destinations = list(self._destinations.values())
        try:
            await asyncio.to_thread(self._store.save, destinations)
        except Exception as e:
            logger.error("subscriptions_persist_failed", count=len(destinations), error=str(e))
        else:
            logger.debug("subscriptions_persisted", count=len(destinations))
