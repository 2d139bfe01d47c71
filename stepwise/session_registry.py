from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from uuid import UUID

from stepwise.orchestrator import SessionOrchestrator

logger = logging.getLogger(__name__)

OrchestratorFactory = Callable[[], SessionOrchestrator]
ExpiredCallback = Callable[[UUID], Awaitable[None]]


class SessionNotFound(LookupError):
    pass


class SessionRegistry:
    """In-process map of live sessions, keyed by session id.

    Sessions exist only for the lifetime of the process; nothing is persisted.
    Every lookup counts as activity; `expire_idle` closes sessions nobody has
    touched for longer than the idle TTL.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._sessions: dict[UUID, SessionOrchestrator] = {}
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._last_active: dict[UUID, float] = {}
        self._clock = clock

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def open(self, factory: OrchestratorFactory) -> SessionOrchestrator:
        orch = factory()
        self._sessions[orch.session_id] = orch
        self._locks[orch.session_id] = asyncio.Lock()
        self._last_active[orch.session_id] = self._clock()
        orch.start_session()
        logger.info("session %s started", orch.session_id)
        return orch

    def get(self, session_id: UUID) -> SessionOrchestrator:
        orch = self._sessions.get(session_id)
        if orch is None:
            raise SessionNotFound(f"Session not found: {session_id}")
        self._last_active[session_id] = self._clock()
        return orch

    def lock_for(self, session_id: UUID) -> asyncio.Lock:
        """Serialises learner actions within one session."""

        self.get(session_id)
        return self._locks[session_id]

    def close(self, session_id: UUID) -> None:
        orch = self._sessions.pop(session_id, None)
        self._locks.pop(session_id, None)
        self._last_active.pop(session_id, None)
        if orch is None:
            raise SessionNotFound(f"Session not found: {session_id}")
        orch.end_session()
        logger.info("session %s ended", session_id)

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.close(session_id)

    def idle_for(self, session_id: UUID) -> float:
        if session_id not in self._last_active:
            raise SessionNotFound(f"Session not found: {session_id}")
        return self._clock() - self._last_active[session_id]

    def expire_idle(self, max_idle_s: float) -> list[UUID]:
        """Close every session idle for longer than `max_idle_s`; returns the closed ids.

        A session whose lock is held is mid-action and is never expired.
        """

        now = self._clock()
        expired: list[UUID] = []
        for session_id, last in list(self._last_active.items()):
            if now - last <= max_idle_s or self._locks[session_id].locked():
                continue
            self.close(session_id)
            expired.append(session_id)
        if expired:
            logger.info("expired %d idle session(s)", len(expired))
        return expired

    async def run_idle_sweeper(
        self,
        *,
        max_idle_s: float,
        interval_s: float,
        on_expired: ExpiredCallback | None = None,
    ) -> None:
        """Sweep forever; cancel the task to stop it."""

        while True:
            await asyncio.sleep(interval_s)
            for session_id in self.expire_idle(max_idle_s):
                if on_expired is None:
                    continue
                try:
                    await on_expired(session_id)
                except Exception:
                    logger.exception("session %s expiry callback failed", session_id)


registry = SessionRegistry()
