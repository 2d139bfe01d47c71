from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable


@dataclass(frozen=True, slots=True)
class CompletionSet:
    """Append-only set of completed ids.

    Every update returns a new instance, so callers can compare before/after to tell
    whether a transition changed completion state.
    """

    ids: frozenset[str] = field(default_factory=frozenset)

    def add_all(self, ids: Iterable[str]) -> "CompletionSet":
        merged = self.ids.union(ids)
        if merged == self.ids:
            return self
        return CompletionSet(ids=merged)

    def covers(self, ids: Iterable[str]) -> bool:
        wanted = list(ids)
        return bool(wanted) and all(i in self.ids for i in wanted)

    def sorted_ids(self) -> list[str]:
        return sorted(self.ids)

    def __contains__(self, item: object) -> bool:
        return item in self.ids

    def __len__(self) -> int:
        return len(self.ids)
