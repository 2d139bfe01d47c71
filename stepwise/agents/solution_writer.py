from __future__ import annotations

from stepwise.agents.base import Agent
from stepwise.agents.homework_parser import homework_prompt
from stepwise.agents.structured import request_parsed
from stepwise.api.models import HomeworkInput
from stepwise.contexts import make_task_context
from stepwise.errors import MalformedContent


def parse_solution_text(text: str) -> str:
    cleaned = text.strip()
    if not cleaned:
        raise MalformedContent("Empty solution")
    return cleaned


async def write_solution_with_agent(*, agent: Agent, homework: HomeworkInput) -> str:
    ctx = make_task_context(task_name="homework_to_solution", prompt_file="solution.txt", json_output=False)
    return await request_parsed(
        agent=agent,
        ctx=ctx,
        prompt=homework_prompt(homework),
        parse=parse_solution_text,
        image_url=homework.image_data_url() if homework.has_image else None,
    )
