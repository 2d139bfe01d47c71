from __future__ import annotations

import os

import httpx
import pytest

from stepwise.agents.ag2_backend import Ag2ChatAgent
from stepwise.agents.step_game_builder import build_step_game_with_agent
from stepwise.config import settings_from_env


def _ollama_healthy(base_url: str) -> bool:
    # base_url might be http://127.0.0.1:11434/v1
    root = base_url.removesuffix("/v1")
    try:
        r = httpx.get(f"{root}/api/tags", timeout=1.0)
        return r.status_code == 200
    except Exception:
        return False


@pytest.mark.asyncio
async def test_ag2_step_game_integration_env_gated() -> None:
    base_url = os.environ.get("OPENAI_BASE_URL")
    api_key = os.environ.get("OPENAI_API_KEY")

    if not (api_key or base_url):
        pytest.skip("Set OPENAI_API_KEY or OPENAI_BASE_URL")

    if base_url and not _ollama_healthy(base_url):
        pytest.skip("Ollama not reachable at OPENAI_BASE_URL")

    agent = Ag2ChatAgent(name="ag2-test", settings=settings_from_env())
    game = await build_step_game_with_agent(agent=agent, question_text="Solve for x: 2x + 3 = 7")

    assert game.steps
    for s in game.steps:
        assert s.answers
        assert any(a.is_correct for a in s.answers)
