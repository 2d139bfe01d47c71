from __future__ import annotations

import base64
from enum import StrEnum
from typing import Any, Literal
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from stepwise.errors import NoInput


class _Content(BaseModel):
    # Collaborators speak camelCase JSON; the HTTP API and Python code use snake_case.
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Question(_Content):
    id: str
    label: str
    text: str = ""


class Pack(_Content):
    id: str
    label: str
    sub_questions: list[Question] = Field(default_factory=list, validation_alias=AliasChoices("subQuestions", "sub_questions"))


class Answer(_Content):
    text: str
    is_correct: bool = Field(False, validation_alias=AliasChoices("isCorrect", "is_correct"))
    explanation: str | None = None


class Step(_Content):
    question: str
    # State of the problem after this step is solved; absent for single-step questions.
    step_result: str | None = Field(None, validation_alias=AliasChoices("stepResult", "step_result"))
    answers: list[Answer] = Field(default_factory=list)


class StepGame(_Content):
    steps: list[Step] = Field(default_factory=list)
    key_skill: str = Field("", validation_alias=AliasChoices("keySkill", "key_skill"))


class VisualSpec(_Content):
    """Opaque rendering payload; never interpreted server-side."""

    type: Literal["latex_expression", "chartjs", "html_expression"]
    data: dict[str, Any] = Field(default_factory=dict)


class Objective(_Content):
    id: str
    title: str


class Lesson(_Content):
    lesson: str
    visual: VisualSpec | None = None
    challenge: str


class Evaluation(_Content):
    is_correct: bool = Field(..., validation_alias=AliasChoices("isCorrect", "is_correct"))
    feedback: str | None = None
    new_challenge: str | None = Field(None, validation_alias=AliasChoices("newChallenge", "new_challenge"))
    visual: VisualSpec | None = None


class MasteryQuiz(_Content):
    title: str = "Mastery Quiz"
    questions: list[Step] = Field(default_factory=list)


class GameResult(_Content):
    key_skill: str = Field("", validation_alias=AliasChoices("keySkill", "key_skill"))
    solved_steps: list[str] = Field(default_factory=list, validation_alias=AliasChoices("solvedSteps", "solved_steps"))


class Screen(StrEnum):
    home = "home"
    loading = "loading"
    selecting = "selecting"
    generating = "generating"
    game = "game"
    complete = "complete"
    solution = "solution"
    topic_intake = "topic_intake"
    topic_curriculum = "topic_curriculum"
    topic_lesson = "topic_lesson"
    topic_quiz = "topic_quiz"


class HomeworkInput(BaseModel):
    text: str | None = None
    image_base64: str | None = None
    image_mime: str = "image/png"

    @property
    def has_text(self) -> bool:
        return bool(self.text and self.text.strip())

    @property
    def has_image(self) -> bool:
        return bool(self.image_base64)

    def require_content(self) -> None:
        if not (self.has_text or self.has_image):
            raise NoInput("Please type your homework or upload an image first.")

    @property
    def input_type(self) -> Literal["text", "image"]:
        return "image" if self.has_image else "text"

    def image_data_url(self) -> str:
        if not self.image_base64:
            raise ValueError("No image attached")
        # Reject garbage early rather than shipping it to the vision model.
        base64.b64decode(self.image_base64, validate=True)
        return f"data:{self.image_mime};base64,{self.image_base64}"


# ---- HTTP request/response models ----


class HomeworkRequest(HomeworkInput):
    mode: Literal["game", "solution"] = "game"


class SelectItemRequest(BaseModel):
    item_id: str = Field(..., min_length=1)


class AnswerRequest(BaseModel):
    index: int = Field(..., ge=0)


class PainPointRequest(BaseModel):
    pain_point: str = Field(..., max_length=2000)


class ObjectiveRequest(BaseModel):
    objective_id: str = Field(..., min_length=1)


class ChallengeAnswerRequest(BaseModel):
    answer: str = Field(..., max_length=4000)


class SelectionEntry(BaseModel):
    item_id: str
    title: str
    summary: str
    is_pack: bool
    completed: bool
    action_label: str


class GameView(BaseModel):
    ready: bool
    label: str = ""
    question_text: str = ""
    step_question: str = ""
    answers: list[str] = Field(default_factory=list)
    selected_answer_index: int | None = None
    selected_is_correct: bool | None = None
    explanation: str | None = None
    solved_steps: list[str] = Field(default_factory=list)
    progress: float = 0.0
    question_index: int = 0
    step_index: int = 0


class QuizSummary(BaseModel):
    """What clients see of the mastery quiz; questions are served one at a time via `game`."""

    title: str
    question_count: int


class SessionSnapshot(BaseModel):
    session_id: UUID
    screen: Screen
    view: str
    error: str | None = None
    settle_ms: int = 0

    items: list[SelectionEntry] = Field(default_factory=list)
    selected_item_id: str | None = None
    solution_text: str | None = None
    game: GameView | None = None
    last_game_result: GameResult | None = None
    original_question: str | None = None
    completed_question_ids: list[str] = Field(default_factory=list)

    curriculum: list[Objective] = Field(default_factory=list)
    current_objective: Objective | None = None
    lesson: Lesson | None = None
    lesson_feedback: str | None = None
    completed_objective_ids: list[str] = Field(default_factory=list)
    mastery_quiz: QuizSummary | None = None
    mastery_quiz_passed: bool = False
