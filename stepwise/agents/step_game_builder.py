from __future__ import annotations

from pydantic import ValidationError

from stepwise.agents.base import Agent
from stepwise.agents.json_schema import JsonSchema
from stepwise.agents.structured import load_json_object, request_parsed
from stepwise.api.models import StepGame
from stepwise.contexts import make_task_context
from stepwise.errors import MalformedContent

STEP_GAME_SCHEMA = JsonSchema(
    name="step_game",
    schema={
        "type": "object",
        "properties": {
            "steps": {
                "type": "array",
                "minItems": 1,
                "items": {
                    "type": "object",
                    "properties": {
                        "question": {"type": "string"},
                        "stepResult": {"type": "string"},
                        "answers": {
                            "type": "array",
                            "minItems": 2,
                            "items": {
                                "type": "object",
                                "properties": {
                                    "text": {"type": "string"},
                                    "isCorrect": {"type": "boolean"},
                                    "explanation": {"type": "string"},
                                },
                                "required": ["text", "isCorrect"],
                            },
                        },
                    },
                    "required": ["question", "answers"],
                },
            },
            "keySkill": {"type": "string"},
        },
        "required": ["steps", "keySkill"],
    },
    strict=False,
)


def parse_step_game(text: str) -> StepGame:
    data = load_json_object(text)
    try:
        game = StepGame.model_validate(data)
    except ValidationError as e:
        raise MalformedContent(f"Step game has an invalid shape: {e.error_count()} error(s)") from e
    if not game.steps:
        raise MalformedContent("Step game has no steps")
    return game


async def build_step_game_with_agent(*, agent: Agent, question_text: str) -> StepGame:
    """Turn one problem into a multiple-choice walk through its solving steps."""

    if not question_text.strip():
        raise MalformedContent("No question text provided.")

    ctx = make_task_context(task_name="question_to_step_game", prompt_file="step_game.txt")
    return await request_parsed(
        agent=agent,
        ctx=ctx,
        prompt=f'The problem is: "{question_text}"',
        parse=parse_step_game,
        schema=STEP_GAME_SCHEMA,
    )
