from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from stepwise.api.models import Answer, GameResult, GameView, Question, Step, StepGame
from stepwise.content import GroupedItem, QuestionItem
from stepwise.fsm import PlaythroughFSM

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[GameResult], Awaitable[None]]


class GameProgressionEngine:
    """Drives one GamePack to completion, one step at a time.

    `game_pack` is index-aligned with `item.questions`. Answer feedback is modelled as
    timed transitions of `PlaythroughFSM`, scheduled on the running event loop; `close()`
    cancels a pending transition when the game is torn down.
    """

    def __init__(
        self,
        *,
        item: QuestionItem,
        game_pack: Sequence[StepGame],
        on_complete: CompletionCallback,
        on_change: Callable[[], Awaitable[None]] | None = None,
        correct_delay_s: float = 1.0,
        incorrect_delay_s: float = 0.5,
    ) -> None:
        self.item = item
        self.game_pack = list(game_pack)
        self._on_complete = on_complete
        self._on_change = on_change
        self._correct_delay_s = correct_delay_s
        self._incorrect_delay_s = incorrect_delay_s

        self.question_index = 0
        self.step_index = 0
        self.selected_answer_index: int | None = None
        self.solved_steps: list[str] = []
        self.result: GameResult | None = None

        self._fsm = PlaythroughFSM()
        self._pending: asyncio.Task[None] | None = None

    # ---- position ----

    @property
    def phase(self) -> str:
        return self._fsm.phase

    @property
    def finished(self) -> bool:
        return self._fsm.phase == "finished"

    @property
    def current_game(self) -> StepGame | None:
        if 0 <= self.question_index < len(self.game_pack):
            return self.game_pack[self.question_index]
        return None

    @property
    def current_step(self) -> Step | None:
        game = self.current_game
        if game is None or not (0 <= self.step_index < len(game.steps)):
            return None
        return game.steps[self.step_index]

    @property
    def current_question(self) -> Question | None:
        questions = self.item.questions
        if 0 <= self.question_index < len(questions):
            return questions[self.question_index]
        return None

    @property
    def ready(self) -> bool:
        return self.current_step is not None

    @property
    def selected_answer(self) -> Answer | None:
        step = self.current_step
        if step is None or self.selected_answer_index is None:
            return None
        return step.answers[self.selected_answer_index]

    @property
    def progress(self) -> float:
        if self.finished:
            return 100.0
        total = sum(len(g.steps) for g in self.game_pack)
        if total == 0:
            return 0.0
        before = sum(len(g.steps) for g in self.game_pack[: self.question_index])
        pct = (before + self.step_index) / total * 100
        return max(0.0, min(100.0, pct))

    @property
    def label(self) -> str:
        if isinstance(self.item, GroupedItem):
            return f"{self.item.label} ({self.question_index + 1}/{len(self.game_pack)})"
        return self.item.label

    @property
    def explanation(self) -> str | None:
        answer = self.selected_answer
        if answer is None or answer.is_correct:
            return None
        return answer.explanation

    def view(self) -> GameView:
        step = self.current_step
        question = self.current_question
        if step is None or question is None:
            return GameView(ready=False, progress=self.progress, solved_steps=list(self.solved_steps))

        selected = self.selected_answer
        return GameView(
            ready=True,
            label=self.label,
            question_text=question.text,
            step_question=step.question,
            answers=[a.text for a in step.answers],
            selected_answer_index=self.selected_answer_index,
            selected_is_correct=selected.is_correct if selected is not None else None,
            explanation=self.explanation,
            solved_steps=list(self.solved_steps),
            progress=self.progress,
            question_index=self.question_index,
            step_index=self.step_index,
        )

    # ---- answering ----

    def submit_answer(self, index: int) -> bool:
        """Select an answer for the current step.

        Returns False (and changes nothing) while feedback for a previous answer is
        still showing, when the game is not ready, or for an out-of-range index.
        Must be called from the running event loop.
        """

        if self.selected_answer_index is not None or self._fsm.phase != "awaiting_answer":
            return False

        step = self.current_step
        if step is None:
            logger.debug("answer ignored: game data not ready")
            return False
        if not (0 <= index < len(step.answers)):
            logger.warning("answer index %s out of range (%s answers)", index, len(step.answers))
            return False

        self.selected_answer_index = index
        if step.answers[index].is_correct:
            self._fsm.answer_correct()
            self._schedule(self._correct_delay_s, self._apply_correct)
        else:
            self._fsm.answer_incorrect()
            self._schedule(self._incorrect_delay_s, self._apply_incorrect)
        return True

    def _schedule(self, delay_s: float, apply: Callable[[], Awaitable[None]]) -> None:
        async def _run() -> None:
            await asyncio.sleep(delay_s)
            await apply()

        task = asyncio.get_running_loop().create_task(_run())
        task.add_done_callback(self._log_failure)
        self._pending = task

    @staticmethod
    def _log_failure(task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("game transition failed", exc_info=exc)

    async def _apply_incorrect(self) -> None:
        self.selected_answer_index = None
        self._fsm.retry()
        await self._changed()

    async def _changed(self) -> None:
        if self._on_change is not None:
            await self._on_change()

    async def _apply_correct(self) -> None:
        game = self.current_game
        step = self.current_step
        if game is None or step is None:
            return

        if step.step_result:
            self.solved_steps.append(step.step_result)

        if self.step_index < len(game.steps) - 1:
            self.step_index += 1
        elif self.question_index < len(self.game_pack) - 1:
            self.question_index += 1
            self.step_index = 0
        else:
            self._fsm.finish()
            self.selected_answer_index = None
            self.result = GameResult(key_skill=game.key_skill, solved_steps=list(self.solved_steps))
            logger.info("pack %s complete (%s solved steps)", self.item.id, len(self.solved_steps))
            await self._on_complete(self.result)
            return

        self._fsm.advance()
        self.selected_answer_index = None
        await self._changed()

    # ---- lifecycle ----

    async def settle(self) -> None:
        """Wait for any scheduled feedback transition to be applied."""

        task = self._pending
        if task is not None and task is not asyncio.current_task():
            await task

    def close(self) -> None:
        task = self._pending
        self._pending = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
