from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from stepwise.agents.base import AgentAction
from stepwise.agents.homework_parser import parse_homework_with_agent
from stepwise.agents.json_schema import JsonSchema
from stepwise.agents.solution_writer import write_solution_with_agent
from stepwise.agents.step_game_builder import build_step_game_with_agent
from stepwise.api.models import HomeworkInput
from stepwise.content import GroupedItem
from stepwise.core.context import RenderedContext
from stepwise.errors import CollaboratorFailure, MalformedContent


@dataclass
class _ScriptedAgent:
    replies: list[str]
    name: str = "scripted"
    seen_schema: JsonSchema | None = None
    seen_image: str | None = None
    prompts: list[str] = field(default_factory=list)
    systems: list[str] = field(default_factory=list)

    async def propose_action(
        self,
        *,
        prompt: str,
        ctx: RenderedContext,
        structured_output: JsonSchema | None = None,
        image_url: str | None = None,
    ) -> AgentAction:
        self.seen_schema = structured_output
        self.seen_image = image_url
        self.prompts.append(prompt)
        self.systems.append(ctx.system_prompt)
        return AgentAction(kind="chat", content=self.replies.pop(0), metadata={})


@dataclass
class _BrokenAgent:
    name: str = "broken"

    async def propose_action(self, **_: object) -> AgentAction:
        raise ConnectionError("connection refused")


_STEP_GAME = '{"steps":[{"question":"What is 2+2?","answers":[{"text":"4","isCorrect":true},{"text":"5","isCorrect":false,"explanation":"Count again."}]}],"keySkill":"Addition"}'


async def test_step_game_builder_passes_schema() -> None:
    a = _ScriptedAgent(replies=[_STEP_GAME])
    game = await build_step_game_with_agent(agent=a, question_text="2+2")

    assert game.key_skill == "Addition"
    assert game.steps[0].answers[1].explanation == "Count again."
    assert a.seen_schema is not None
    assert a.seen_schema.name == "step_game"
    assert a.prompts == ['The problem is: "2+2"']
    assert "TASK:" in a.systems[0] and "question_to_step_game" in a.systems[0]


async def test_unparseable_reply_is_retried() -> None:
    a = _ScriptedAgent(replies=["sorry, I can't", "```json\n" + _STEP_GAME + "\n```"])
    game = await build_step_game_with_agent(agent=a, question_text="2+2")
    assert len(game.steps) == 1
    assert len(a.prompts) == 2


async def test_persistent_garbage_becomes_malformed_content() -> None:
    a = _ScriptedAgent(replies=["nope"] * 3)
    with pytest.raises(MalformedContent):
        await build_step_game_with_agent(agent=a, question_text="2+2")


async def test_transport_errors_are_not_retried() -> None:
    with pytest.raises(CollaboratorFailure, match="connection refused"):
        await build_step_game_with_agent(agent=_BrokenAgent(), question_text="2+2")


async def test_homework_image_is_sent_as_data_url() -> None:
    reply = '{"questions":[{"id":"p1","label":"Problem 1 Pack","subQuestions":[{"id":"q1","label":"1a","text":"x=1"}]}]}'
    a = _ScriptedAgent(replies=[reply])
    homework = HomeworkInput(image_base64="aGVsbG8=", image_mime="image/jpeg")

    items = await parse_homework_with_agent(agent=a, homework=homework)

    assert isinstance(items[0], GroupedItem)
    assert a.seen_image == "data:image/jpeg;base64,aGVsbG8="
    assert a.prompts == ["Here is the homework image:"]
    assert a.seen_schema is not None and a.seen_schema.name == "homework_questions"


async def test_solution_is_plain_text_without_schema() -> None:
    a = _ScriptedAgent(replies=["  **Step 1** add the numbers.  "])
    text = await write_solution_with_agent(agent=a, homework=HomeworkInput(text="2+2"))

    assert text == "**Step 1** add the numbers."
    assert a.seen_schema is None
    assert a.prompts == ["Here is the homework text: 2+2"]
    assert "Output only the raw JSON object" not in a.systems[0]
