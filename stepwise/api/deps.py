from __future__ import annotations

import os
from collections.abc import Generator
from functools import lru_cache

import redis

from stepwise.analytics import AnalyticsEmitter, RedisEventStore
from stepwise.config import Settings, settings_from_env
from stepwise.orchestrator import SessionOrchestrator
from stepwise.services import AgentEvaluationService, AgentGenerationService
from stepwise.session_registry import SessionRegistry, registry


def get_redis_url() -> str:
    return os.environ.get("REDIS_URL", "redis://localhost:6379/0")


def create_redis() -> redis.Redis:
    # decode_responses=True => strings in/out instead of bytes
    return redis.Redis.from_url(get_redis_url(), decode_responses=True)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return settings_from_env()


@lru_cache(maxsize=1)
def get_shared_redis() -> redis.Redis:
    """Process-wide client for session event streams; sessions outlive a request."""

    return create_redis()


def close_shared_redis() -> None:
    if get_shared_redis.cache_info().currsize:
        get_shared_redis().close()
        get_shared_redis.cache_clear()


def get_redis() -> Generator[redis.Redis, None, None]:
    client = create_redis()
    try:
        yield client
    finally:
        client.close()


def get_registry() -> SessionRegistry:
    return registry


def build_orchestrator(*, r: redis.Redis, settings: Settings) -> SessionOrchestrator:
    """Wire a session to the AG2-backed collaborators and the Redis event stream."""

    analytics = AnalyticsEmitter(RedisEventStore(r=r, stream_key=settings.events_stream))
    return SessionOrchestrator(
        generator=AgentGenerationService(settings=settings),
        evaluator=AgentEvaluationService(settings=settings),
        analytics=analytics,
        settings=settings,
    )


def get_orchestrator_factory():
    """Dependency returning a zero-arg session factory (overridden in tests)."""

    settings = get_settings()

    def _factory() -> SessionOrchestrator:
        return build_orchestrator(r=get_shared_redis(), settings=settings)

    return _factory
