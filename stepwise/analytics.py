from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Mapping, Protocol, cast

import redis

logger = logging.getLogger(__name__)


class EventStore(Protocol):
    def record(self, *, event_name: str, properties: Mapping[str, Any]) -> str | None:  # pragma: no cover
        ...


@dataclass(frozen=True, slots=True)
class RedisEventStore:
    """Append analytics events to a Redis Stream."""

    r: redis.Redis
    stream_key: str = "stepwise:events"

    def record(self, *, event_name: str, properties: Mapping[str, Any]) -> str | None:
        fields = {
            "event_name": event_name,
            "properties": json.dumps(dict(properties), default=str),
            "ts": datetime.now(tz=UTC).isoformat(),
        }
        return cast(str, self.r.xadd(self.stream_key, fields))


def read_events(*, r: redis.Redis, stream_key: str, count: int = 100) -> list[dict[str, Any]]:
    """Newest-first view of recorded events (debug/dev helper)."""

    out: list[dict[str, Any]] = []
    for entry_id, fields in r.xrevrange(stream_key, count=count):
        out.append(
            {
                "id": entry_id,
                "event_name": fields.get("event_name", ""),
                "properties": json.loads(fields.get("properties") or "{}"),
                "ts": fields.get("ts"),
            }
        )
    return out


class AnalyticsEmitter:
    """Fire-and-forget event delivery.

    `track()` never raises and never blocks the caller; delivery failures are logged.
    """

    def __init__(self, store: EventStore | None = None) -> None:
        self._store = store
        self._tasks: set[asyncio.Task[None]] = set()

    def track(self, event_name: str, **properties: Any) -> None:
        logger.info("[METRIC TRACKED] Event: %s %s", event_name, properties)
        if self._store is None:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Outside the event loop (e.g. process teardown); one synchronous attempt.
            self._record(event_name, properties)
            return

        task = loop.create_task(self._deliver(event_name, properties))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, event_name: str, properties: dict[str, Any]) -> None:
        await asyncio.to_thread(self._record, event_name, properties)

    def _record(self, event_name: str, properties: dict[str, Any]) -> None:
        store = self._store
        if store is None:
            return
        try:
            store.record(event_name=event_name, properties=properties)
        except Exception:
            logger.exception("Failed to track event %s", event_name)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for in-flight deliveries (tests and shutdown)."""

        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
