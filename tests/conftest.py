from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from fakes import FakeEvaluator, FakeGenerator, RecordingStore
from stepwise.config import Settings


@pytest.fixture(scope="session", autouse=True)
def _load_dotenv_for_tests() -> None:
    """Load repo .env for local runs so OPENAI_* settings reach the env-gated tests.

    In CI, `.env` is not auto-loaded, so integration tests stay skipped unless
    explicitly opted-in with STEPWISE_LOAD_DOTENV_FOR_TESTS=1.
    """

    if os.environ.get("CI") and os.environ.get("STEPWISE_LOAD_DOTENV_FOR_TESTS") != "1":
        return

    env_path = Path(__file__).resolve().parents[1] / ".env"
    if env_path.exists():
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=env_path, override=False)

    # If using a local OpenAI-compatible endpoint, some clients require a key string.
    if os.environ.get("OPENAI_BASE_URL") and not os.environ.get("OPENAI_API_KEY"):
        os.environ["OPENAI_API_KEY"] = "ollama"


@pytest.fixture()
def fast_settings() -> Settings:
    return Settings(correct_delay_ms=0, incorrect_delay_ms=0, settle_ms=0, quiz_failure_return_ms=0)


@pytest.fixture()
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture()
def evaluator() -> FakeEvaluator:
    return FakeEvaluator()


@pytest.fixture()
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture()
def analytics(store: RecordingStore):
    from stepwise.analytics import AnalyticsEmitter

    return AnalyticsEmitter(store)


@pytest.fixture()
def orchestrator(generator: FakeGenerator, evaluator: FakeEvaluator, analytics, fast_settings: Settings):
    from stepwise.orchestrator import SessionOrchestrator

    orch = SessionOrchestrator(
        generator=generator,
        evaluator=evaluator,
        analytics=analytics,
        settings=fast_settings,
    )
    orch.start_session()
    return orch


@pytest.fixture()
def client_and_redis(generator: FakeGenerator, evaluator: FakeEvaluator, fast_settings: Settings) -> Generator[Any, None, None]:
    """FastAPI TestClient wired to fake collaborators, a private registry and fakeredis."""

    import fakeredis
    from fastapi.testclient import TestClient

    from stepwise.analytics import AnalyticsEmitter, RedisEventStore
    from stepwise.api.deps import get_orchestrator_factory, get_redis, get_registry, get_settings
    from stepwise.main import app
    from stepwise.orchestrator import SessionOrchestrator
    from stepwise.session_registry import SessionRegistry

    r = fakeredis.FakeRedis(decode_responses=True)
    registry = SessionRegistry()

    def _redis() -> Generator[fakeredis.FakeRedis, None, None]:
        yield r

    def _factory():
        def _make() -> SessionOrchestrator:
            return SessionOrchestrator(
                generator=generator,
                evaluator=evaluator,
                analytics=AnalyticsEmitter(RedisEventStore(r=r, stream_key=fast_settings.events_stream)),
                settings=fast_settings,
            )

        return _make

    app.dependency_overrides[get_redis] = _redis
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_settings] = lambda: fast_settings
    app.dependency_overrides[get_orchestrator_factory] = _factory
    with TestClient(app) as c:
        yield c, r
    app.dependency_overrides.clear()
