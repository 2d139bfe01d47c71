from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from stepwise.api.models import Screen
from stepwise.errors import InvalidTransition


def _screen(screen: Screen, *, initial: bool = False) -> State:
    return State(screen.value, value=screen.value, initial=initial)


class SessionFSM(StateMachine):
    """Screen-level state machine for one learner session.

    The FSM only guards transitions; the orchestrator applies the effects and
    talks to collaborators.
    """

    home = _screen(Screen.home, initial=True)
    loading = _screen(Screen.loading)
    selecting = _screen(Screen.selecting)
    generating = _screen(Screen.generating)
    game = _screen(Screen.game)
    complete = _screen(Screen.complete)
    solution = _screen(Screen.solution)
    topic_intake = _screen(Screen.topic_intake)
    topic_curriculum = _screen(Screen.topic_curriculum)
    topic_lesson = _screen(Screen.topic_lesson)
    topic_quiz = _screen(Screen.topic_quiz)

    # homework -> game / solution
    homework_submitted = home.to(loading)
    questions_ready = loading.to(selecting)
    solution_ready = loading.to(solution)
    generation_failed = loading.to(home)
    item_selected = selecting.to(generating)
    pack_ready = generating.to(game)
    pack_failed = generating.to(selecting)
    pack_completed = game.to(complete)
    next_question = complete.to(selecting)

    # topic mastery
    start_topic = home.to(topic_intake)
    curriculum_ready = topic_intake.to(topic_curriculum)
    objective_selected = topic_curriculum.to(topic_lesson)
    lesson_back = topic_lesson.to(topic_curriculum)
    objective_mastered = topic_lesson.to(topic_curriculum)
    quiz_ready = topic_lesson.to(topic_quiz)
    quiz_failed = topic_lesson.to(home)
    quiz_finished = topic_quiz.to(home)

    go_home = (
        home.to.itself()
        | selecting.to(home)
        | solution.to(home)
        | topic_intake.to(home)
        | topic_curriculum.to(home)
        | topic_lesson.to(home)
        | topic_quiz.to(home)
    )

    def __init__(self, screen: Screen = Screen.home):
        super().__init__(start_value=screen.value)

    @property
    def screen(self) -> Screen:
        return Screen(str(self.current_state_value))

    def fire(self, event: str) -> Screen:
        try:
            self.send(event)
        except TransitionNotAllowed as e:
            raise InvalidTransition(f"Cannot '{event}' from screen '{self.screen.value}'") from e
        return self.screen


class PlaythroughFSM(StateMachine):
    """Per-step answer/feedback cycle of the game progression engine.

    Both feedback states are left only by a timed transition scheduled by the engine.
    """

    awaiting_answer = State("awaiting_answer", value="awaiting_answer", initial=True)
    correct_feedback = State("correct_feedback", value="correct_feedback")
    incorrect_feedback = State("incorrect_feedback", value="incorrect_feedback")
    finished = State("finished", value="finished", final=True)

    answer_correct = awaiting_answer.to(correct_feedback)
    answer_incorrect = awaiting_answer.to(incorrect_feedback)
    advance = correct_feedback.to(awaiting_answer)
    finish = correct_feedback.to(finished)
    retry = incorrect_feedback.to(awaiting_answer)

    @property
    def phase(self) -> str:
        return str(self.current_state_value)
