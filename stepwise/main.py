import asyncio
import contextlib
import logging
from uuid import UUID

from fastapi import FastAPI

from stepwise.api.deps import close_shared_redis, get_settings
from stepwise.api.routes import router
from stepwise.session_registry import registry
from stepwise.websocket_hub import hub

app = FastAPI(title="stepwise", version="0.1.0")
app.include_router(router)
# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_sweeper: asyncio.Task[None] | None = None


async def _notify_expired(session_id: UUID) -> None:
    await hub.end_session(session_id, reason="idle")


@app.on_event("startup")
async def _startup() -> None:
    global _sweeper
    settings = get_settings()
    _sweeper = asyncio.create_task(
        registry.run_idle_sweeper(
            max_idle_s=settings.session_idle_ttl_s,
            interval_s=settings.session_sweep_interval_s,
            on_expired=_notify_expired,
        )
    )


@app.on_event("shutdown")
async def _shutdown() -> None:
    global _sweeper
    if _sweeper is not None:
        _sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await _sweeper
        _sweeper = None
    registry.close_all()
    close_shared_redis()


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "stepwise", "version": "0.1.0"}
