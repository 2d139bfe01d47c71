from __future__ import annotations

from pydantic import ValidationError

from stepwise.agents.base import Agent
from stepwise.agents.json_schema import JsonSchema
from stepwise.agents.structured import load_json_object, request_parsed
from stepwise.api.models import Evaluation
from stepwise.contexts import make_task_context
from stepwise.errors import MalformedContent

EVALUATION_SCHEMA = JsonSchema(
    name="answer_evaluation",
    schema={
        "type": "object",
        "properties": {
            "isCorrect": {"type": "boolean"},
            "feedback": {"type": "string"},
            "newChallenge": {"type": "string"},
            "visual": {"type": ["object", "null"]},
        },
        "required": ["isCorrect"],
    },
    strict=False,
)


def parse_evaluation(text: str) -> Evaluation:
    """Parse a judgement.

    A correct verdict needs nothing else; an incorrect one must carry feedback and a
    fresh challenge, otherwise the learner would be left with nothing to retry.
    """

    data = load_json_object(text)
    if not isinstance(data.get("isCorrect"), bool):
        raise MalformedContent("Missing/invalid 'isCorrect' field")

    try:
        evaluation = Evaluation.model_validate(data)
    except ValidationError as e:
        raise MalformedContent(f"Evaluation has an invalid shape: {e.error_count()} error(s)") from e

    if evaluation.is_correct:
        return evaluation
    if not (evaluation.feedback and evaluation.feedback.strip()):
        raise MalformedContent("Missing/invalid 'feedback' field")
    if not (evaluation.new_challenge and evaluation.new_challenge.strip()):
        raise MalformedContent("Missing/invalid 'newChallenge' field")
    return evaluation


async def judge_answer_with_agent(
    *,
    agent: Agent,
    objective_title: str,
    challenge: str,
    user_answer: str,
) -> Evaluation:
    ctx = make_task_context(task_name="judge_challenge_answer", prompt_file="answer_judge.txt")
    prompt = (
        f'Objective: "{objective_title}"\n'
        f'Challenge: "{challenge}"\n'
        f'Student\'s Answer: "{user_answer}"'
    )
    return await request_parsed(
        agent=agent,
        ctx=ctx,
        prompt=prompt,
        parse=parse_evaluation,
        schema=EVALUATION_SCHEMA,
    )
