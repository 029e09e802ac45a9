"""
Answer Scoring

Pure, deterministic grading of an attempt. Every question is worth the same
and there is no partial credit.
"""

import math
from typing import Any, Callable, Dict, Iterable, Optional, Sequence

from aptitest.common.error_handling import TypeMismatchError
from aptitest.domain.questions import Question, QuestionType
from aptitest.assessments.engine.models import (
    DEFAULT_PASSING_SCORE,
    Answer,
    AnswerValue,
    ScoreResult,
)

NUMERIC_TOLERANCE = 1e-3


def parse_numeric(value: Any) -> Optional[float]:
    """Parse a number or numeric string; None if unparseable or NaN."""
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(parsed):
        return None
    return parsed


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up (not to even)."""
    return int(math.floor(value + 0.5))


class ScoringEngine:
    """
    Grades answers against their questions.

    Rules per question type:
        single-choice: the selected index equals the correct index
        multi-choice: same number of selections and every correct index selected
        boolean: exact equality
        numeric: both sides parse and differ by less than the tolerance
    """

    def __init__(self, tolerance: float = NUMERIC_TOLERANCE):
        if tolerance <= 0:
            raise ValueError(f"Tolerance must be positive, got {tolerance}")
        self.tolerance = tolerance
        self._rules: Dict[QuestionType, Callable[[Question, AnswerValue], bool]] = {
            QuestionType.SINGLE_CHOICE: self._single_choice,
            QuestionType.MULTI_CHOICE: self._multi_choice,
            QuestionType.BOOLEAN: self._boolean,
            QuestionType.NUMERIC: self._numeric,
        }

    def evaluate(self, question: Question, value: Optional[AnswerValue]) -> bool:
        """
        Decide whether ``value`` answers ``question`` correctly.

        Raises:
            TypeMismatchError: If the value is tagged for another question type
        """
        if value is None:
            return False

        value_type = getattr(value, "question_type", None)
        if value_type is not question.type:
            actual = value_type.value if value_type is not None else type(value).__name__
            raise TypeMismatchError(question.id, question.type.value, actual)

        return self._rules[question.type](question, value)

    def score(
        self,
        questions: Sequence[Question],
        answers: Iterable[Answer],
        passing_score: int = DEFAULT_PASSING_SCORE
    ) -> ScoreResult:
        """
        Grade a full attempt.

        Answers are matched to questions by id; answers to questions that are
        not part of ``questions`` are ignored and unanswered questions count
        as incorrect.

        Args:
            questions: The resolved questions, in display order
            answers: Answers of the attempt
            passing_score: Minimum score required to pass

        Returns:
            The score result
        """
        by_question = {answer.question_id: answer for answer in answers}

        per_question = tuple(
            self.evaluate(question, by_question[question.id].value if question.id in by_question else None)
            for question in questions
        )

        total = len(per_question)
        correct = sum(per_question)
        score = round_half_up(100 * correct / total) if total else 0

        return ScoreResult(
            score=score,
            correct_count=correct,
            total_questions=total,
            per_question_correct=per_question,
            passed=score >= passing_score,
        )

    # -- rules ---------------------------------------------------------------

    @staticmethod
    def _single_choice(question: Question, value) -> bool:
        return value.index == question.correct_answer

    @staticmethod
    def _multi_choice(question: Question, value) -> bool:
        selected = value.indices
        correct = question.correct_answer
        return len(selected) == len(correct) and all(i in selected for i in correct)

    @staticmethod
    def _boolean(question: Question, value) -> bool:
        return value.value == question.correct_answer

    def _numeric(self, question: Question, value) -> bool:
        answer = parse_numeric(value.value)
        correct = parse_numeric(question.correct_answer)
        if answer is None or correct is None:
            return False
        return abs(answer - correct) < self.tolerance


default_scoring_engine = ScoringEngine()


def score_answers(
    questions: Sequence[Question],
    answers: Iterable[Answer],
    passing_score: int = DEFAULT_PASSING_SCORE
) -> ScoreResult:
    """Grade an attempt with the default engine."""
    return default_scoring_engine.score(questions, answers, passing_score)
