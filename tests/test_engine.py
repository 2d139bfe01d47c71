from __future__ import annotations

import asyncio

import pytest

from fakes import game, pack, single, step
from stepwise.api.models import GameResult
from stepwise.engine import GameProgressionEngine


class _Completions:
    def __init__(self) -> None:
        self.results: list[GameResult] = []

    async def __call__(self, result: GameResult) -> None:
        self.results.append(result)


def _engine(item, games, **kw) -> tuple[GameProgressionEngine, _Completions]:
    done = _Completions()
    kw.setdefault("correct_delay_s", 0)
    kw.setdefault("incorrect_delay_s", 0)
    return GameProgressionEngine(item=item, game_pack=games, on_complete=done, **kw), done


async def test_single_step_question_completes_immediately() -> None:
    eng, done = _engine(single("q1"), [game(step("2+2?", correct=1), key_skill="Addition")])

    assert eng.ready
    assert eng.progress == 0
    assert eng.submit_answer(1)
    await eng.settle()

    assert eng.finished
    assert eng.progress == 100
    assert done.results == [GameResult(key_skill="Addition", solved_steps=[])]


async def test_pack_moves_to_next_sub_question_and_resets_step() -> None:
    eng, done = _engine(pack("p1", "q1", "q2"), [game(step("a")), game(step("b"), key_skill="Last")])
    assert eng.label == "Problem 1 Pack (1/2)"

    eng.submit_answer(0)
    await eng.settle()
    assert (eng.question_index, eng.step_index) == (1, 0)
    assert eng.progress == 50
    assert eng.label == "Problem 1 Pack (2/2)"
    assert not done.results

    eng.submit_answer(0)
    await eng.settle()
    assert done.results[0].key_skill == "Last"


async def test_step_results_accumulate_and_progress_is_monotone() -> None:
    g = game(step("s1", result="x = 2"), step("s2", result="x + 1 = 3"), step("s3"))
    eng, done = _engine(single("q1"), [g])

    seen = [eng.progress]
    for _ in range(3):
        eng.submit_answer(0)
        await eng.settle()
        seen.append(eng.progress)

    assert seen == sorted(seen)
    assert seen[-1] == 100
    assert done.results[0].solved_steps == ["x = 2", "x + 1 = 3"]


async def test_incorrect_answer_shows_explanation_then_clears_without_advancing() -> None:
    eng, _ = _engine(single("q1"), [game(step("s1", correct=2))], incorrect_delay_s=0.05)

    assert eng.submit_answer(0)
    view = eng.view()
    assert view.selected_answer_index == 0
    assert view.selected_is_correct is False
    assert view.explanation == "not 0"

    await eng.settle()
    assert eng.selected_answer_index is None
    assert eng.explanation is None
    assert (eng.question_index, eng.step_index) == (0, 0)
    assert eng.phase == "awaiting_answer"


async def test_answers_are_ignored_while_feedback_is_showing() -> None:
    eng, _ = _engine(single("q1"), [game(step("s1", correct=1), step("s2"))], incorrect_delay_s=0.05)

    assert eng.submit_answer(0)
    assert not eng.submit_answer(1)
    assert eng.selected_answer_index == 0

    await eng.settle()
    assert eng.submit_answer(1)
    assert eng.selected_answer_index == 1


async def test_out_of_range_answer_is_a_no_op() -> None:
    eng, _ = _engine(single("q1"), [game(step("s1", n=3))])
    assert not eng.submit_answer(3)
    assert not eng.submit_answer(-1)
    assert eng.selected_answer_index is None


async def test_on_change_fires_after_each_timed_transition() -> None:
    changes: list[int] = []

    async def _changed() -> None:
        changes.append(eng.step_index)

    eng, _ = _engine(single("q1"), [game(step("s1"), step("s2"))], on_change=_changed)
    eng.submit_answer(1)
    await eng.settle()
    eng.submit_answer(0)
    await eng.settle()
    assert changes == [0, 1]


async def test_close_cancels_pending_transition() -> None:
    eng, done = _engine(single("q1"), [game(step("s1"))], correct_delay_s=10)
    eng.submit_answer(0)
    pending = eng._pending
    eng.close()

    with pytest.raises(asyncio.CancelledError):
        await pending  # type: ignore[misc]
    assert not done.results
    assert not eng.finished


def test_view_reports_not_ready_without_game_data() -> None:
    eng, _ = _engine(single("q1"), [])
    assert not eng.ready
    assert eng.view().ready is False
    assert not eng.submit_answer(0)
