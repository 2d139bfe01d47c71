from __future__ import annotations

from typing import Protocol

from stepwise.agents.answer_judge import judge_answer_with_agent
from stepwise.agents.base import Agent
from stepwise.agents.curriculum_planner import (
    build_mastery_quiz_with_agent,
    plan_curriculum_with_agent,
    write_lesson_with_agent,
)
from stepwise.agents.factory import create_default_agent
from stepwise.agents.homework_parser import parse_homework_with_agent
from stepwise.agents.solution_writer import write_solution_with_agent
from stepwise.agents.step_game_builder import build_step_game_with_agent
from stepwise.api.models import Evaluation, HomeworkInput, Lesson, MasteryQuiz, Objective, StepGame
from stepwise.config import Settings
from stepwise.content import QuestionItem


class GenerationService(Protocol):
    async def questions_from_homework(self, homework: HomeworkInput) -> list[QuestionItem]:  # pragma: no cover
        ...

    async def solution_from_homework(self, homework: HomeworkInput) -> str:  # pragma: no cover
        ...

    async def step_game_for(self, question_text: str) -> StepGame:  # pragma: no cover
        ...

    async def curriculum_for(self, pain_point: str) -> list[Objective]:  # pragma: no cover
        ...

    async def lesson_for(self, objective_title: str) -> Lesson:  # pragma: no cover
        ...

    async def mastery_quiz_for(self, objective_titles: list[str]) -> MasteryQuiz:  # pragma: no cover
        ...


class EvaluationService(Protocol):
    async def judge(self, *, objective_title: str, challenge: str, user_answer: str) -> Evaluation:  # pragma: no cover
        ...


class AgentGenerationService:
    """Generation Service backed by one AG2 agent per task."""

    def __init__(self, *, settings: Settings, agent: Agent | None = None) -> None:
        self._settings = settings
        self._agent = agent

    def _agent_for(self, task: str) -> Agent:
        if self._agent is not None:
            return self._agent
        return create_default_agent(name=f"stepwise-{task}", settings=self._settings)

    async def questions_from_homework(self, homework: HomeworkInput) -> list[QuestionItem]:
        return await parse_homework_with_agent(agent=self._agent_for("questions"), homework=homework)

    async def solution_from_homework(self, homework: HomeworkInput) -> str:
        return await write_solution_with_agent(agent=self._agent_for("solution"), homework=homework)

    async def step_game_for(self, question_text: str) -> StepGame:
        return await build_step_game_with_agent(agent=self._agent_for("step-game"), question_text=question_text)

    async def curriculum_for(self, pain_point: str) -> list[Objective]:
        return await plan_curriculum_with_agent(agent=self._agent_for("curriculum"), pain_point=pain_point)

    async def lesson_for(self, objective_title: str) -> Lesson:
        return await write_lesson_with_agent(agent=self._agent_for("lesson"), objective_title=objective_title)

    async def mastery_quiz_for(self, objective_titles: list[str]) -> MasteryQuiz:
        return await build_mastery_quiz_with_agent(
            agent=self._agent_for("mastery-quiz"),
            objective_titles=objective_titles,
        )


class AgentEvaluationService:
    def __init__(self, *, settings: Settings, agent: Agent | None = None) -> None:
        self._settings = settings
        self._agent = agent

    async def judge(self, *, objective_title: str, challenge: str, user_answer: str) -> Evaluation:
        agent = self._agent or create_default_agent(name="stepwise-judge", settings=self._settings)
        return await judge_answer_with_agent(
            agent=agent,
            objective_title=objective_title,
            challenge=challenge,
            user_answer=user_answer,
        )
