from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Literal
from uuid import UUID, uuid4

from stepwise.analytics import AnalyticsEmitter
from stepwise.api.models import (
    GameResult,
    GameView,
    HomeworkInput,
    Lesson,
    MasteryQuiz,
    Objective,
    Question,
    QuizSummary,
    Screen,
    SessionSnapshot,
    StepGame,
)
from stepwise.completion import CompletionSet
from stepwise.config import Settings
from stepwise.content import (
    GroupedItem,
    QuestionItem,
    SingleItem,
    find_item,
    require_playable_text,
    selection_entry,
    validate_step_game,
)
from stepwise.engine import GameProgressionEngine
from stepwise.errors import CollaboratorFailure, InvalidTransition, MalformedContent, NoInput, StepwiseError
from stepwise.fsm import SessionFSM
from stepwise.services import EvaluationService, GenerationService

logger = logging.getLogger(__name__)

Listener = Callable[["SessionOrchestrator"], Awaitable[None]]

LESSON_LOAD_MESSAGE = "Error loading lesson. Please go back and try again."
EVALUATION_MESSAGE = "There was an error evaluating your answer. Please try again."
QUIZ_FAILURE_MESSAGE = (
    "Amazing work, you've mastered every step! "
    "Sorry, we couldn't prepare your mastery quiz right now. Taking you back home..."
)

# Screens where a stored error replaces the normal view.
_ERROR_VIEW_SCREENS = frozenset({Screen.home, Screen.selecting})


@dataclass(slots=True)
class SessionState:
    screen: Screen = Screen.home
    ai_response: list[QuestionItem] = field(default_factory=list)
    selected_item: QuestionItem | None = None
    game_pack: list[StepGame] | None = None
    solution_text: str | None = None
    last_game_result: GameResult | None = None
    completed_question_ids: CompletionSet = field(default_factory=CompletionSet)

    curriculum: list[Objective] = field(default_factory=list)
    current_objective: Objective | None = None
    lesson: Lesson | None = None
    lesson_feedback: str | None = None
    completed_objective_ids: CompletionSet = field(default_factory=CompletionSet)
    mastery_quiz: MasteryQuiz | None = None
    mastery_quiz_passed: bool = False

    error: str | None = None


def _pack_failure_message(exc: BaseException) -> str:
    # Only messages written here or in `content` name the failing question; anything else is generic.
    if isinstance(exc, StepwiseError) and str(exc).strip():
        return str(exc)
    return "Failed to generate game."


class SessionOrchestrator:
    """Top-level state machine for one learner session.

    Collaborators are injected; all session state is in memory and owned here.
    Every collaborator error is converted into `state.error` at this boundary.
    """

    def __init__(
        self,
        *,
        generator: GenerationService,
        evaluator: EvaluationService,
        analytics: AnalyticsEmitter | None = None,
        settings: Settings | None = None,
        session_id: UUID | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session_id = session_id or uuid4()
        self.settings = settings or Settings()
        self.state = SessionState()

        self._generator = generator
        self._evaluator = evaluator
        self._analytics = analytics or AnalyticsEmitter()
        self._clock = clock
        self._started_at: float | None = None

        self._fsm = SessionFSM()
        self._engine: GameProgressionEngine | None = None
        self._quiz_engine: GameProgressionEngine | None = None
        self._home_timer: asyncio.Task[None] | None = None
        self._listeners: list[Listener] = []

    # ---- plumbing ----

    @property
    def screen(self) -> Screen:
        return self.state.screen

    @property
    def engine(self) -> GameProgressionEngine | None:
        return self._engine

    @property
    def quiz_engine(self) -> GameProgressionEngine | None:
        return self._quiz_engine

    def add_listener(self, listener: Listener) -> None:
        """Register a callback for state changes that happen outside a request (timers)."""

        self._listeners.append(listener)

    async def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                await listener(self)
            except Exception:
                logger.exception("session %s listener failed", self.session_id)

    def _fire(self, event: str) -> None:
        before = self.state.screen
        self.state.screen = self._fsm.fire(event)
        logger.debug("session %s: %s --%s--> %s", self.session_id, before.value, event, self.state.screen.value)

    def _require(self, screen: Screen, action: str) -> None:
        if self.state.screen != screen:
            raise InvalidTransition(f"Cannot {action} from screen '{self.state.screen.value}'")

    def _reset(self) -> None:
        """Clear every screen-scoped field; completion sets live for the whole session."""

        self._close_engines()
        self._cancel_home_timer()
        self.state = SessionState(
            screen=self.state.screen,
            completed_question_ids=self.state.completed_question_ids,
            completed_objective_ids=self.state.completed_objective_ids,
        )

    def _close_engines(self) -> None:
        for engine in (self._engine, self._quiz_engine):
            if engine is not None:
                engine.close()
        self._engine = None
        self._quiz_engine = None

    def _cancel_home_timer(self) -> None:
        timer = self._home_timer
        self._home_timer = None
        if timer is not None and not timer.done() and timer is not asyncio.current_task():
            timer.cancel()

    # ---- session lifecycle ----

    def start_session(self) -> None:
        self._started_at = self._clock()
        self._analytics.track("session_start")

    def end_session(self) -> None:
        self._close_engines()
        self._cancel_home_timer()
        if self._started_at is not None:
            elapsed = self._clock() - self._started_at
            self._analytics.track("session_end", session_length_seconds=round(elapsed, 2))
            self._started_at = None

    # ---- homework -> game / solution ----

    async def submit_homework(self, homework: HomeworkInput, *, mode: Literal["game", "solution"]) -> None:
        self._require(Screen.home, "submit homework")

        try:
            homework.require_content()
        except NoInput as e:
            self.state.error = str(e)
            return

        self.state.error = None
        self._fire("homework_submitted")
        self._analytics.track("core_action_taken", action=mode, input_type=homework.input_type)

        if mode == "game":
            try:
                items = await self._generator.questions_from_homework(homework)
            except Exception as e:
                self._homework_failed(e, "Failed to parse questions.")
                return
            if not items:
                self._homework_failed(None, "AI returned an invalid format.")
                return
            self._analytics.track("questions_processed", question_count=len(items))
            self.state.ai_response = list(items)
            self._fire("questions_ready")
        else:
            try:
                text = await self._generator.solution_from_homework(homework)
            except Exception as e:
                self._homework_failed(e, "Failed to generate solution.")
                return
            if not text or not text.strip():
                self._homework_failed(None, "Failed to generate solution.")
                return
            self.state.solution_text = text
            self._fire("solution_ready")

    def _homework_failed(self, exc: Exception | None, message: str) -> None:
        # Upstream detail goes to the log only; the learner sees `message`.
        if exc is not None:
            logger.warning("homework request failed: %s", exc, exc_info=not isinstance(exc, StepwiseError))
        self.state.error = message
        self._fire("generation_failed")

    def is_item_completed(self, item: QuestionItem) -> bool:
        return self.state.completed_question_ids.covers(q.id for q in item.questions)

    async def select_item(self, item_id: str) -> None:
        self._require(Screen.selecting, "select a question")
        item = find_item(self.state.ai_response, item_id)

        try:
            questions = require_playable_text(item)
        except MalformedContent as e:
            self.state.error = str(e)
            return

        if self.is_item_completed(item):
            self._analytics.track("play_again_clicked")

        self.state.selected_item = item
        self.state.error = None
        self._fire("item_selected")

        tasks = [asyncio.create_task(self._step_game_for(q)) for q in questions]
        try:
            games = await asyncio.gather(*tasks)
        except Exception as e:
            for t in tasks:
                t.cancel()
            self.state.game_pack = None
            self.state.error = _pack_failure_message(e)
            self._fire("pack_failed")
            return

        self.state.game_pack = list(games)
        self._engine = GameProgressionEngine(
            item=item,
            game_pack=self.state.game_pack,
            on_complete=self._on_pack_complete,
            on_change=self._notify,
            correct_delay_s=self.settings.correct_delay_s,
            incorrect_delay_s=self.settings.incorrect_delay_s,
        )
        self._fire("pack_ready")

    async def _step_game_for(self, question: Question) -> StepGame:
        try:
            game = await self._generator.step_game_for(question.text)
        except Exception as e:
            logger.warning("step game for %s failed: %s", question.id, e)
            raise CollaboratorFailure(f'Failed to generate game for "{question.label}"') from e
        return validate_step_game(game, label=question.label)

    def submit_answer(self, index: int) -> bool:
        self._require(Screen.game, "answer")
        if self._engine is None:
            return False
        return self._engine.submit_answer(index)

    async def _on_pack_complete(self, result: GameResult) -> None:
        item = self.state.selected_item
        if item is None or self.state.screen != Screen.game:
            return

        self.state.last_game_result = result
        self.state.completed_question_ids = self.state.completed_question_ids.add_all(q.id for q in item.questions)
        self.state.game_pack = None
        self._engine = None

        if isinstance(item, GroupedItem):
            self._analytics.track("game_complete", pack_id=item.id)
        else:
            self._analytics.track("game_complete", question_id=item.id)

        self._fire("pack_completed")
        await self._notify()

    def continue_selecting(self) -> None:
        self._fire("next_question")
        self.state.error = None

    def go_home(self) -> None:
        """Back/home/try-again: reset to an idle home screen."""

        self._fire("go_home")
        self._reset()

    # ---- topic mastery ----

    def start_topic(self) -> None:
        self._fire("start_topic")
        self.state.error = None
        self._analytics.track("topic_started")

    async def submit_pain_point(self, pain_point: str) -> None:
        self._require(Screen.topic_intake, "submit a pain point")
        if not pain_point.strip():
            self.state.error = "Tell us what you're struggling with first."
            return

        self.state.error = None
        self.state.completed_objective_ids = CompletionSet()
        try:
            curriculum = await self._generator.curriculum_for(pain_point.strip())
            if not curriculum:
                raise MalformedContent("Failed to generate curriculum.")
        except Exception as e:
            logger.warning("curriculum request failed: %s", e, exc_info=not isinstance(e, StepwiseError))
            self.state.error = "Failed to generate curriculum."
            return

        if self.state.screen != Screen.topic_intake:
            return
        self.state.curriculum = list(curriculum)
        self._analytics.track("curriculum_generated", objective_count=len(curriculum))
        self._fire("curriculum_ready")

    async def select_objective(self, objective_id: str) -> None:
        self._require(Screen.topic_curriculum, "select an objective")
        objective = next((o for o in self.state.curriculum if o.id == objective_id), None)
        if objective is None:
            raise ValueError(f"Unknown objective: {objective_id}")

        self._cancel_home_timer()
        self.state.current_objective = objective
        self.state.lesson = None
        self.state.lesson_feedback = None
        self.state.error = None
        self._fire("objective_selected")

        try:
            lesson = await self._generator.lesson_for(objective.title)
        except Exception as e:
            logger.warning("lesson for %s failed: %s", objective.id, e)
            if self._still_on(objective):
                self.state.error = LESSON_LOAD_MESSAGE
            return

        if self._still_on(objective):
            self.state.lesson = lesson

    def _still_on(self, objective: Objective) -> bool:
        return self.state.screen == Screen.topic_lesson and self.state.current_objective is objective

    def back_to_plan(self) -> None:
        self._fire("lesson_back")
        self._cancel_home_timer()
        self.state.current_objective = None
        self.state.lesson = None
        self.state.lesson_feedback = None
        self.state.error = None

    async def submit_challenge_answer(self, answer: str) -> None:
        self._require(Screen.topic_lesson, "answer the challenge")
        objective = self.state.current_objective
        lesson = self.state.lesson
        if objective is None or lesson is None:
            raise InvalidTransition("Lesson is not ready yet")
        if not answer.strip():
            self.state.error = "Type your answer before submitting."
            return

        self.state.error = None
        self.state.lesson_feedback = None
        try:
            evaluation = await self._evaluator.judge(
                objective_title=objective.title,
                challenge=lesson.challenge,
                user_answer=answer,
            )
        except Exception as e:
            logger.warning("evaluation for %s failed: %s", objective.id, e)
            if self._still_on(objective):
                self.state.error = EVALUATION_MESSAGE
            return

        if not self._still_on(objective):
            return

        if evaluation.is_correct:
            await self.objective_mastered(objective.id)
            return

        self.state.lesson_feedback = evaluation.feedback
        self.state.lesson = Lesson(
            lesson=lesson.lesson,
            visual=evaluation.visual,
            challenge=evaluation.new_challenge or lesson.challenge,
        )

    async def objective_mastered(self, objective_id: str) -> None:
        self._require(Screen.topic_lesson, "master an objective")
        if all(o.id != objective_id for o in self.state.curriculum):
            raise ValueError(f"Unknown objective: {objective_id}")

        self.state.completed_objective_ids = self.state.completed_objective_ids.add_all([objective_id])
        self._analytics.track("objective_mastered", objective_id=objective_id)
        self.state.current_objective = None
        self.state.lesson = None
        self.state.lesson_feedback = None

        if not self.state.completed_objective_ids.covers(o.id for o in self.state.curriculum):
            self._fire("objective_mastered")
            return

        try:
            quiz = await self._generator.mastery_quiz_for([o.title for o in self.state.curriculum])
            quiz_game = validate_step_game(StepGame(steps=quiz.questions, key_skill=quiz.title), label=quiz.title)
        except Exception as e:
            logger.warning("mastery quiz failed: %s", e)
            self.state.error = QUIZ_FAILURE_MESSAGE
            self._cancel_home_timer()
            self._home_timer = asyncio.create_task(self._return_home_after(self.settings.quiz_failure_return_s))
            return

        self.state.mastery_quiz = quiz
        self._quiz_engine = GameProgressionEngine(
            item=SingleItem(question=Question(id="mastery_quiz", label=quiz.title, text=quiz.title)),
            game_pack=[quiz_game],
            on_complete=self._on_quiz_complete,
            on_change=self._notify,
            correct_delay_s=self.settings.correct_delay_s,
            incorrect_delay_s=self.settings.incorrect_delay_s,
        )
        self._analytics.track("mastery_quiz_ready", question_count=len(quiz.questions))
        self._fire("quiz_ready")

    async def _return_home_after(self, delay_s: float) -> None:
        await asyncio.sleep(delay_s)
        if self.state.screen != Screen.topic_lesson:
            return
        self._fire("quiz_failed")
        self._reset()
        await self._notify()

    def submit_quiz_answer(self, index: int) -> bool:
        self._require(Screen.topic_quiz, "answer the quiz")
        if self._quiz_engine is None:
            return False
        return self._quiz_engine.submit_answer(index)

    async def _on_quiz_complete(self, result: GameResult) -> None:
        self.state.mastery_quiz_passed = True
        quiz = self.state.mastery_quiz
        self._analytics.track("mastery_quiz_complete", question_count=len(quiz.questions) if quiz else 0)
        await self._notify()

    def finish_quiz(self) -> None:
        self._fire("quiz_finished")
        self._reset()

    # ---- presentation ----

    @property
    def view(self) -> str:
        if self.state.error and self.state.screen in _ERROR_VIEW_SCREENS:
            return "error"
        if self.state.screen in (Screen.loading, Screen.generating):
            return "loading"
        return self.state.screen.value

    def game_view(self) -> GameView | None:
        if self.state.screen == Screen.game and self._engine is not None:
            return self._engine.view()
        if self.state.screen == Screen.topic_quiz and self._quiz_engine is not None:
            return self._quiz_engine.view()
        return None

    def snapshot(self) -> SessionSnapshot:
        s = self.state
        selected = s.selected_item
        return SessionSnapshot(
            session_id=self.session_id,
            screen=s.screen,
            view=self.view,
            error=s.error,
            settle_ms=self.settings.settle_ms,
            items=[selection_entry(i, completed=self.is_item_completed(i)) for i in s.ai_response],
            selected_item_id=selected.id if selected is not None else None,
            solution_text=s.solution_text,
            game=self.game_view(),
            last_game_result=s.last_game_result,
            original_question=selected.original_text if selected is not None else None,
            completed_question_ids=s.completed_question_ids.sorted_ids(),
            curriculum=list(s.curriculum),
            current_objective=s.current_objective,
            lesson=s.lesson,
            lesson_feedback=s.lesson_feedback,
            completed_objective_ids=s.completed_objective_ids.sorted_ids(),
            mastery_quiz=(
                QuizSummary(title=s.mastery_quiz.title, question_count=len(s.mastery_quiz.questions))
                if s.mastery_quiz is not None
                else None
            ),
            mastery_quiz_passed=s.mastery_quiz_passed,
        )
