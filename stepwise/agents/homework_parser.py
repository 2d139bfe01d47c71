from __future__ import annotations

from stepwise.agents.base import Agent
from stepwise.agents.json_schema import JsonSchema
from stepwise.agents.structured import load_json_object, request_parsed
from stepwise.api.models import HomeworkInput
from stepwise.content import QuestionItem, parse_question_items
from stepwise.contexts import make_task_context

_QUESTION = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "label": {"type": "string"},
        "text": {"type": "string"},
    },
    "required": ["id", "label", "text"],
}

QUESTIONS_SCHEMA = JsonSchema(
    name="homework_questions",
    schema={
        "type": "object",
        "properties": {
            "questions": {
                "type": "array",
                "minItems": 1,
                "items": {
                    "anyOf": [
                        _QUESTION,
                        {
                            "type": "object",
                            "properties": {
                                "id": {"type": "string"},
                                "label": {"type": "string"},
                                "subQuestions": {"type": "array", "minItems": 1, "items": _QUESTION},
                            },
                            "required": ["id", "label", "subQuestions"],
                        },
                    ]
                },
            }
        },
        "required": ["questions"],
    },
    strict=False,
)


def parse_homework_questions(text: str) -> list[QuestionItem]:
    return parse_question_items(load_json_object(text))


def homework_prompt(homework: HomeworkInput) -> str:
    if homework.has_image:
        return "Here is the homework image:"
    return f"Here is the homework text: {homework.text or ''}"


async def parse_homework_with_agent(*, agent: Agent, homework: HomeworkInput) -> list[QuestionItem]:
    """Split homework (text or image) into single questions and packs of sub-questions."""

    ctx = make_task_context(task_name="homework_to_questions", prompt_file="homework_parser.txt")
    return await request_parsed(
        agent=agent,
        ctx=ctx,
        prompt=homework_prompt(homework),
        parse=parse_homework_questions,
        schema=QUESTIONS_SCHEMA,
        image_url=homework.image_data_url() if homework.has_image else None,
    )
