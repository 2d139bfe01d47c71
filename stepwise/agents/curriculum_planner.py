from __future__ import annotations

import logging

from pydantic import ValidationError

from stepwise.agents.base import Agent
from stepwise.agents.json_schema import JsonSchema
from stepwise.agents.structured import load_json_object, request_parsed
from stepwise.api.models import Lesson, MasteryQuiz, Objective
from stepwise.contexts import make_task_context
from stepwise.errors import MalformedContent

logger = logging.getLogger(__name__)

_VISUAL = {
    "anyOf": [
        {"type": "null"},
        {
            "type": "object",
            "properties": {
                "type": {"type": "string", "enum": ["latex_expression", "chartjs", "html_expression"]},
                "data": {"type": "object"},
            },
            "required": ["type", "data"],
        },
    ]
}

CURRICULUM_SCHEMA = JsonSchema(
    name="curriculum",
    schema={
        "type": "object",
        "properties": {
            "curriculum": {
                "type": "array",
                "minItems": 3,
                "maxItems": 5,
                "items": {
                    "type": "object",
                    "properties": {"id": {"type": "string"}, "title": {"type": "string"}},
                    "required": ["id", "title"],
                    "additionalProperties": False,
                },
            }
        },
        "required": ["curriculum"],
        "additionalProperties": False,
    },
    strict=False,
)

LESSON_SCHEMA = JsonSchema(
    name="lesson",
    schema={
        "type": "object",
        "properties": {
            "lesson": {"type": "string"},
            "visual": _VISUAL,
            "challenge": {"type": "string"},
        },
        "required": ["lesson", "challenge"],
    },
    strict=False,
)

MASTERY_QUIZ_SCHEMA = JsonSchema(
    name="mastery_quiz",
    schema={
        "type": "object",
        "properties": {
            "title": {"type": "string"},
            "questions": {
                "type": "array",
                "minItems": 1,
                "items": {
                    "type": "object",
                    "properties": {
                        "question": {"type": "string"},
                        "answers": {
                            "type": "array",
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
        },
        "required": ["questions"],
    },
    strict=False,
)


def parse_curriculum(text: str) -> list[Objective]:
    data = load_json_object(text)
    raw = data.get("curriculum")
    if not isinstance(raw, list) or not raw:
        raise MalformedContent("Missing/invalid 'curriculum' array")

    try:
        objectives = [Objective.model_validate(o) for o in raw]
    except ValidationError as e:
        raise MalformedContent(f"Curriculum objective has an invalid shape: {e.error_count()} error(s)") from e

    ids = [o.id for o in objectives]
    if len(set(ids)) != len(ids):
        raise MalformedContent("Curriculum objective ids must be unique")
    if not 3 <= len(objectives) <= 5:
        logger.warning("curriculum has %s objectives (expected 3-5)", len(objectives))
    return objectives


def parse_lesson(text: str) -> Lesson:
    try:
        lesson = Lesson.model_validate(load_json_object(text))
    except ValidationError as e:
        raise MalformedContent(f"Lesson has an invalid shape: {e.error_count()} error(s)") from e
    if not lesson.challenge.strip():
        raise MalformedContent("Lesson has no challenge")
    return lesson


def parse_mastery_quiz(text: str) -> MasteryQuiz:
    try:
        quiz = MasteryQuiz.model_validate(load_json_object(text))
    except ValidationError as e:
        raise MalformedContent(f"Mastery quiz has an invalid shape: {e.error_count()} error(s)") from e
    if not quiz.questions:
        raise MalformedContent("Mastery quiz has no questions")
    return quiz


async def plan_curriculum_with_agent(*, agent: Agent, pain_point: str) -> list[Objective]:
    ctx = make_task_context(task_name="pain_point_to_curriculum", prompt_file="curriculum.txt")
    return await request_parsed(
        agent=agent,
        ctx=ctx,
        prompt=f'My pain point is: "{pain_point}"',
        parse=parse_curriculum,
        schema=CURRICULUM_SCHEMA,
    )


async def write_lesson_with_agent(*, agent: Agent, objective_title: str) -> Lesson:
    ctx = make_task_context(task_name="objective_to_lesson", prompt_file="lesson.txt")
    return await request_parsed(
        agent=agent,
        ctx=ctx,
        prompt=f'The learning objective is: "{objective_title}"',
        parse=parse_lesson,
        schema=LESSON_SCHEMA,
    )


async def build_mastery_quiz_with_agent(*, agent: Agent, objective_titles: list[str]) -> MasteryQuiz:
    ctx = make_task_context(task_name="curriculum_to_mastery_quiz", prompt_file="mastery_quiz.txt")
    listing = "\n".join(f"{i}. {title}" for i, title in enumerate(objective_titles, start=1))
    return await request_parsed(
        agent=agent,
        ctx=ctx,
        prompt=f"The learner has mastered these objectives:\n{listing}",
        parse=parse_mastery_quiz,
        schema=MASTERY_QUIZ_SCHEMA,
    )
