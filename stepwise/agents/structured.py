from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from stepwise.agents.base import Agent, AgentAction
from stepwise.agents.json_schema import JsonSchema
from stepwise.core.context import RenderedContext
from stepwise.errors import CollaboratorFailure, MalformedContent

logger = logging.getLogger(__name__)

T = TypeVar("T")


def load_json_object(text: str) -> dict[str, Any]:
    """Strict JSON object parse; tolerates a ```json fence some models add anyway."""

    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.strip("`")
        cleaned = cleaned.removeprefix("json").strip()

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise MalformedContent(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedContent("Expected a JSON object")
    return data


async def _propose(
    *,
    agent: Agent,
    prompt: str,
    ctx: RenderedContext,
    schema: JsonSchema | None,
    image_url: str | None,
) -> AgentAction:
    try:
        return await agent.propose_action(prompt=prompt, ctx=ctx, structured_output=schema, image_url=image_url)
    except (MalformedContent, CollaboratorFailure):
        raise
    except Exception as e:
        raise CollaboratorFailure(f"{agent.name} request failed: {e}") from e


async def request_parsed(
    *,
    agent: Agent,
    ctx: RenderedContext,
    prompt: str,
    parse: Callable[[str], T],
    schema: JsonSchema | None = None,
    image_url: str | None = None,
    max_attempts: int = 3,
) -> T:
    """Ask an agent and parse its reply, re-asking on unparseable output.

    Transport errors are not retried (CollaboratorFailure); persistent bad output
    becomes MalformedContent.
    """

    last_err: Exception | None = None
    for attempt in range(1, max_attempts + 1):
        action = await _propose(agent=agent, prompt=prompt, ctx=ctx, schema=schema, image_url=image_url)
        try:
            return parse(action.content)
        except MalformedContent as e:
            logger.warning("%s: unusable reply on attempt %s/%s: %s", agent.name, attempt, max_attempts, e)
            last_err = e

    raise MalformedContent(f"{agent.name} gave no usable reply after {max_attempts} attempts: {last_err}")
