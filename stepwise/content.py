from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from stepwise.api.models import Pack, Question, SelectionEntry, StepGame
from stepwise.errors import MalformedContent


@dataclass(frozen=True, slots=True)
class SingleItem:
    question: Question

    @property
    def id(self) -> str:
        return self.question.id

    @property
    def label(self) -> str:
        return self.question.label

    @property
    def questions(self) -> list[Question]:
        return [self.question]

    @property
    def original_text(self) -> str:
        return self.question.text


@dataclass(frozen=True, slots=True)
class GroupedItem:
    pack: Pack

    @property
    def id(self) -> str:
        return self.pack.id

    @property
    def label(self) -> str:
        return self.pack.label

    @property
    def questions(self) -> list[Question]:
        return list(self.pack.sub_questions)

    @property
    def original_text(self) -> str:
        # Completion screen shows the first part of a pack as the original question.
        return self.pack.sub_questions[0].text if self.pack.sub_questions else ""


QuestionItem = SingleItem | GroupedItem


def classify_item(raw: Mapping[str, Any]) -> QuestionItem:
    """Resolve a collaborator question entry into a tagged variant.

    An entry with a non-empty `subQuestions` list is a pack; anything else is a single question.
    """

    if not isinstance(raw, Mapping):
        raise MalformedContent("Each question entry must be a JSON object")

    try:
        subs = raw.get("subQuestions")
        if isinstance(subs, list) and subs:
            return GroupedItem(pack=Pack.model_validate(raw))
        return SingleItem(question=Question.model_validate(raw))
    except ValidationError as e:
        raise MalformedContent(f"Question entry has an invalid shape: {e.error_count()} error(s)") from e


def parse_question_items(data: Any) -> list[QuestionItem]:
    """Parse a homework→questions response (`{"questions": [...]}`)."""

    if not isinstance(data, Mapping):
        raise MalformedContent("AI returned an invalid format.")

    raw_items = data.get("questions")
    if not isinstance(raw_items, list) or not raw_items:
        raise MalformedContent("AI returned an invalid format.")

    items = [classify_item(raw) for raw in raw_items]

    seen: set[str] = set()
    for item in items:
        if item.id in seen:
            raise MalformedContent(f"Duplicate question id: {item.id}")
        seen.add(item.id)
    return items


def require_playable_text(item: QuestionItem) -> list[Question]:
    """Return the questions to process for an item, requiring non-empty text on each."""

    questions = item.questions
    for q in questions:
        if not q.text.strip():
            raise MalformedContent(f'Question "{q.label}" has no text to play')
    return questions


def validate_step_game(game: StepGame, *, label: str) -> StepGame:
    """Reject step-games that can never be finished.

    Steps without answers, or without any correct answer, would leave the learner stuck.
    More than one correct answer is tolerated: any of them advances.
    """

    if not game.steps:
        raise MalformedContent(f'Game for "{label}" has no steps')
    for idx, step in enumerate(game.steps, start=1):
        if not step.answers:
            raise MalformedContent(f'Game for "{label}" step {idx} has no answers')
        if not any(a.is_correct for a in step.answers):
            raise MalformedContent(f'Game for "{label}" step {idx} has no correct answer')
    return game


def find_item(items: Iterable[QuestionItem], item_id: str) -> QuestionItem:
    for item in items:
        if item.id == item_id:
            return item
    raise ValueError(f"Unknown question item: {item_id}")


def selection_entry(item: QuestionItem, *, completed: bool) -> SelectionEntry:
    if isinstance(item, GroupedItem):
        title = item.label.removesuffix(" Pack")
        parts = ", ".join(q.label for q in item.pack.sub_questions)
        summary = f"Contains {len(item.pack.sub_questions)} parts: {parts}"
        is_pack = True
    else:
        title = item.label
        summary = item.question.text
        is_pack = False

    return SelectionEntry(
        item_id=item.id,
        title=title,
        summary=summary,
        is_pack=is_pack,
        completed=completed,
        action_label="Play Again" if completed else "Play this question",
    )
