from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any
from uuid import UUID

from fastapi import WebSocket

from stepwise.api.models import SessionSnapshot

logger = logging.getLogger(__name__)


def snapshot_message(snapshot: SessionSnapshot) -> dict[str, Any]:
    """Wire shape of a pushed update: the full session snapshot, snake_case JSON."""

    return {
        "type": "session_updated",
        "session_id": str(snapshot.session_id),
        "snapshot": snapshot.model_dump(mode="json"),
    }


def ended_message(session_id: UUID, reason: str) -> dict[str, Any]:
    return {"type": "session_ended", "session_id": str(session_id), "reason": reason}


class SessionWebSocketHub:
    """Pushes session snapshots to the sockets watching each session.

    A client that connects gets the current snapshot straight away, then one
    message per state change, including changes made by feedback timers.
    """

    def __init__(self) -> None:
        self._watchers: dict[UUID, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    def watcher_count(self, session_id: UUID) -> int:
        return len(self._watchers.get(session_id, ()))

    async def connect(self, session_id: UUID, websocket: WebSocket, *, current: SessionSnapshot | None = None) -> None:
        await websocket.accept()
        async with self._lock:
            self._watchers[session_id].add(websocket)
        if current is not None:
            await websocket.send_json(snapshot_message(current))

    async def disconnect(self, session_id: UUID, websocket: WebSocket) -> None:
        async with self._lock:
            conns = self._watchers.get(session_id)
            if not conns:
                return
            conns.discard(websocket)
            if not conns:
                self._watchers.pop(session_id, None)

    async def publish(self, snapshot: SessionSnapshot) -> None:
        await self._send(snapshot.session_id, snapshot_message(snapshot))

    async def end_session(self, session_id: UUID, *, reason: str) -> None:
        """Tell watchers the session is gone and stop pushing to them.

        Sockets stay open until the client hangs up.
        """

        await self._send(session_id, ended_message(session_id, reason))
        async with self._lock:
            self._watchers.pop(session_id, None)

    async def _send(self, session_id: UUID, payload: dict[str, Any]) -> None:
        async with self._lock:
            conns = list(self._watchers.get(session_id, ()))

        dead: list[WebSocket] = []
        for ws in conns:
            try:
                await ws.send_json(payload)
            except Exception as e:
                logger.info("dropping socket for session %s: %s", session_id, e)
                dead.append(ws)

        if dead:
            async with self._lock:
                for ws in dead:
                    self._watchers.get(session_id, set()).discard(ws)


hub = SessionWebSocketHub()
