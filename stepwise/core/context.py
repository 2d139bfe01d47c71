from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class BaseAgentContext:
    """Tutor persona and tone rules shared by every collaborator agent."""

    system_prompt: str


@dataclass(frozen=True, slots=True)
class TaskContext:
    """Task overlay: what to produce and the output contract."""

    task_name: str
    prompt: str
    output_rules: str = ""


@dataclass(frozen=True, slots=True)
class RenderedContext:
    """Final, merged system prompt passed into the LLM agent."""

    system_prompt: str


def compose_context(*, base: BaseAgentContext, task: TaskContext) -> RenderedContext:
    parts: list[str] = [base.system_prompt.strip()]

    parts.append(
        "\n".join(
            [
                "TASK:",
                f"- name: {task.task_name}",
                "- instructions:",
                task.prompt.strip(),
            ]
        ).strip()
    )

    if task.output_rules.strip():
        parts.append("OUTPUT RULES:\n" + task.output_rules.strip())

    system_prompt = "\n\n".join([p for p in parts if p.strip()]).strip()
    return RenderedContext(system_prompt=system_prompt)
