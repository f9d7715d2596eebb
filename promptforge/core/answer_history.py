from __future__ import annotations

from typing import Iterable

from .models import ClarifyingAnswer


class AnswerHistoryTracker:
    """Keeps every clarifying answer given for the current task, keyed by question id.

    Answers stay here after they are undone from the active list. The store only
    resets when the active list goes from non-empty to empty (a new conversation),
    or when answers start arriving again after it was empty.
    """

    def __init__(self) -> None:
        self._answers: dict[str, str] = {}
        self._previous_count = 0

    def sync(self, active: Iterable[ClarifyingAnswer]) -> None:
        current = list(active)
        if not current:
            if self._previous_count > 0:
                self._answers = {}
            self._previous_count = 0
            return
        if self._previous_count == 0:
            self._answers = {}
        self._previous_count = len(current)
        for answer in current:
            if answer.question_id and answer.answer is not None:
                self._answers[answer.question_id] = answer.answer

    def reset(self) -> None:
        self._answers = {}
        self._previous_count = 0

    def restore(self, answers: dict[str, str], active_count: int) -> None:
        self._answers = dict(answers)
        self._previous_count = active_count

    def get(self, question_id: str) -> str | None:
        return self._answers.get(question_id)

    def question_ids(self) -> set[str]:
        return set(self._answers)

    def as_dict(self) -> dict[str, str]:
        return dict(self._answers)

    def __len__(self) -> int:
        return len(self._answers)
