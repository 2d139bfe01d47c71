from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from autogen import ConversableAgent

from stepwise.agents.autogen_config import llm_config_for, model_for
from stepwise.agents.base import AgentAction
from stepwise.agents.json_schema import JsonSchema
from stepwise.config import Settings
from stepwise.core.context import RenderedContext


def _extract_last_content(messages: object) -> str:
    """Extract the last non-empty message content from AG2 chat history."""

    if not isinstance(messages, list):
        return ""

    for msg in reversed(messages):
        if isinstance(msg, dict):
            content = msg.get("content")
            if isinstance(content, str) and content.strip():
                return content.strip()
    return ""


def _user_message(prompt: str, image_url: str | None) -> str | dict[str, Any]:
    if image_url is None:
        return prompt
    return {
        "role": "user",
        "content": [
            {"type": "text", "text": prompt},
            {"type": "image_url", "image_url": {"url": image_url}},
        ],
    }


@dataclass(slots=True)
class Ag2ChatAgent:
    """Single-turn AG2 agent.

    Context layering is done by our code (RenderedContext); transport and model config
    by AG2, built from `Settings`. Image prompts switch to the vision model.
    """

    name: str
    settings: Settings

    async def propose_action(
        self,
        *,
        prompt: str,
        ctx: RenderedContext,
        structured_output: JsonSchema | None = None,
        image_url: str | None = None,
    ) -> AgentAction:
        vision = image_url is not None
        model = model_for(self.settings, vision=vision)

        agent = ConversableAgent(
            name=self.name,
            system_message=ctx.system_prompt,
            llm_config=llm_config_for(self.settings, vision=vision),
            human_input_mode="NEVER",
        )

        # AG2 forwards unknown kwargs through to the OpenAI client.
        extra: dict[str, Any] = {}
        if structured_output is not None:
            extra["response_format"] = structured_output.as_response_format()

        def _run() -> str:
            result = agent.run(message=_user_message(prompt, image_url), max_turns=1, **extra)
            result.process()
            text = _extract_last_content(list(result.messages))
            if not text and isinstance(result.summary, str):
                text = result.summary.strip()
            return text

        # agent.run blocks on network I/O; keep the event loop free for other sessions.
        text = await asyncio.to_thread(_run)

        metadata: dict[str, Any] = {"model": model}
        if structured_output is not None:
            metadata["structured"] = True
        return AgentAction(kind="chat", content=text, metadata=metadata)
