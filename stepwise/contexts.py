from __future__ import annotations

from stepwise.core.context import BaseAgentContext, RenderedContext, TaskContext, compose_context
from stepwise.prompts import load_prompt

JSON_ONLY = "Output only the raw JSON object. No markdown fences, no commentary."


def make_base_tutor_context() -> BaseAgentContext:
    """Shared tutor persona from prompts/tutor_base.txt."""

    return BaseAgentContext(system_prompt=load_prompt("tutor_base.txt").strip())


def make_task_context(*, task_name: str, prompt_file: str, json_output: bool = True) -> RenderedContext:
    task = TaskContext(
        task_name=task_name,
        prompt=load_prompt(prompt_file),
        output_rules=JSON_ONLY if json_output else "",
    )
    return compose_context(base=make_base_tutor_context(), task=task)
