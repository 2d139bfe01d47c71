from __future__ import annotations

from typing import cast

from stepwise.agents.ag2_backend import Ag2ChatAgent
from stepwise.agents.base import Agent
from stepwise.config import Settings, settings_from_env


def create_default_agent(*, name: str, settings: Settings | None = None) -> Agent:
    """Create the default LLM-backed agent (AG2, model names from settings/env)."""

    s = settings or settings_from_env()
    return cast(Agent, Ag2ChatAgent(name=name, settings=s))
