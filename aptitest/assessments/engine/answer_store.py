"""
Answer Store

In-memory answer state of the active attempt, one entry per resolved
question. The store validates every value against its question but has no
persistence side effects.
"""

from typing import Dict, Iterable, List, Optional

from aptitest.common.error_handling import QuestionNotFoundError, TypeMismatchError
from aptitest.domain.questions import Question
from aptitest.assessments.engine.models import (
    Answer,
    AnswerValue,
    BooleanAnswer,
    MultiIndices,
    NumericAnswer,
    SingleIndex,
)


def _describe(value) -> str:
    question_type = getattr(value, "question_type", None)
    if question_type is not None:
        return question_type.value
    return type(value).__name__


def validate_answer_value(question: Question, value: AnswerValue) -> None:
    """
    Check that ``value`` is a legal answer to ``question``.

    Raises:
        TypeMismatchError: If the tag does not match the question type or an
            option index is out of range
    """
    expected = question.type.value
    if getattr(value, "question_type", None) is not question.type:
        raise TypeMismatchError(question.id, expected, _describe(value))

    if isinstance(value, SingleIndex):
        if isinstance(value.index, bool) or not isinstance(value.index, int):
            raise TypeMismatchError(question.id, expected, _describe(value), "index must be an integer")
        if not 0 <= value.index < len(question.options):
            raise TypeMismatchError(question.id, expected, _describe(value), f"index {value.index} out of range")

    elif isinstance(value, MultiIndices):
        out_of_range = [
            i for i in value.indices
            if isinstance(i, bool) or not isinstance(i, int) or not 0 <= i < len(question.options)
        ]
        if out_of_range:
            raise TypeMismatchError(
                question.id, expected, _describe(value), f"indices {out_of_range} out of range"
            )

    elif isinstance(value, BooleanAnswer):
        if not isinstance(value.value, bool):
            raise TypeMismatchError(question.id, expected, _describe(value), "value must be a bool")

    elif isinstance(value, NumericAnswer):
        if isinstance(value.value, bool) or not isinstance(value.value, (int, float, str)):
            raise TypeMismatchError(question.id, expected, _describe(value), "value must be a number or string")


class AnswerStore:
    """
    Answers of the active attempt keyed by question id.

    Seeded with one unanswered, unflagged entry per question in question
    order; entries are never removed.
    """

    def __init__(self, questions: Iterable[Question]):
        self._questions: Dict[str, Question] = {}
        self._answers: Dict[str, Answer] = {}
        for question in questions:
            self._questions[question.id] = question
            self._answers[question.id] = Answer(question_id=question.id)

    def _entry(self, question_id: str) -> Answer:
        try:
            return self._answers[question_id]
        except KeyError:
            raise QuestionNotFoundError(question_id) from None

    def set_answer(self, question_id: str, value: Optional[AnswerValue]) -> Answer:
        """
        Record ``value`` as the answer to a question; None clears it.

        Raises:
            QuestionNotFoundError: If the question is not part of the store
            TypeMismatchError: If the value does not fit the question
        """
        entry = self._entry(question_id)
        if value is not None:
            validate_answer_value(self._questions[question_id], value)
        entry.value = value
        return entry.copy()

    def clear_answer(self, question_id: str) -> Answer:
        return self.set_answer(question_id, None)

    def toggle_flag(self, question_id: str) -> bool:
        """Flip the review flag of a question and return the new flag."""
        entry = self._entry(question_id)
        entry.flagged = not entry.flagged
        return entry.flagged

    def add_time(self, question_id: str, seconds: int = 1) -> int:
        """Add ``seconds`` to the time spent on a question."""
        if seconds < 0:
            raise ValueError(f"Time spent cannot decrease, got {seconds}")
        entry = self._entry(question_id)
        entry.time_spent_seconds += seconds
        return entry.time_spent_seconds

    def get(self, question_id: str) -> Answer:
        return self._entry(question_id).copy()

    def snapshot(self) -> List[Answer]:
        """Copies of every answer in question order"""
        return [answer.copy() for answer in self._answers.values()]

    @property
    def answered_count(self) -> int:
        return sum(1 for answer in self._answers.values() if answer.is_answered)

    @property
    def flagged_count(self) -> int:
        return sum(1 for answer in self._answers.values() if answer.flagged)

    def __len__(self) -> int:
        return len(self._answers)

    def __contains__(self, question_id: object) -> bool:
        return question_id in self._answers


__all__ = ["AnswerStore", "validate_answer_value"]
