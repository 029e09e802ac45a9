"""
Tests for the scoring engine.

Covers the per-type rules, rounding, unanswered questions and loud failure
on mistagged answers.
"""

import pytest

from aptitest.common.error_handling import TypeMismatchError
from aptitest.domain.questions import Question
from aptitest.assessments.engine.models import (
    Answer,
    BooleanAnswer,
    MultiIndices,
    NumericAnswer,
    SingleIndex,
)
from aptitest.assessments.engine.scoring import (
    ScoringEngine,
    parse_numeric,
    round_half_up,
    score_answers,
)


@pytest.fixture
def engine():
    return ScoringEngine()


@pytest.fixture
def multi_question():
    return Question(id="m", type="multi-choice", text="?", options=["a", "b", "c", "d"], correct_answer={0, 2})


@pytest.mark.parametrize("selected, expected", [
    ({0, 2}, True),
    ({0, 2, 3}, False),
    ({0}, False),
    ({1, 3}, False),
])
def test_multi_choice_rule(engine, multi_question, selected, expected):
    assert engine.evaluate(multi_question, MultiIndices(selected)) is expected


@pytest.mark.parametrize("answer, expected", [
    ("42.0009", True),
    ("42.01", False),
    (42, True),
    ("  42  ", True),
    ("forty-two", False),
    ("nan", False),
])
def test_numeric_tolerance(engine, answer, expected):
    question = Question(id="n", type="numeric", text="?", correct_answer=42.0)
    assert engine.evaluate(question, NumericAnswer(answer)) is expected


def test_custom_numeric_tolerance():
    question = Question(id="n", type="numeric", text="?", correct_answer="10")
    assert ScoringEngine(tolerance=0.5).evaluate(question, NumericAnswer(10.4)) is True
    assert ScoringEngine().evaluate(question, NumericAnswer(10.4)) is False


def test_single_choice_and_boolean(engine, questions):
    single, boolean = questions[0], questions[3]

    assert engine.evaluate(single, SingleIndex(2)) is True
    assert engine.evaluate(single, SingleIndex(0)) is False
    assert engine.evaluate(boolean, BooleanAnswer(True)) is True
    assert engine.evaluate(boolean, BooleanAnswer(False)) is False


def test_unanswered_is_incorrect(engine, questions):
    assert engine.evaluate(questions[0], None) is False


def test_mistagged_answer_raises(engine, questions):
    with pytest.raises(TypeMismatchError) as exc_info:
        engine.evaluate(questions[0], BooleanAnswer(True))

    assert exc_info.value.question_id == "q1"


def test_three_of_five_correct_fails_at_seventy(questions):
    """Two single, one multi, one boolean, one numeric with three correct answers."""
    answers = [
        Answer("q1", SingleIndex(2)),
        Answer("q2", SingleIndex(0)),
        Answer("q3", MultiIndices({0, 2})),
        Answer("q4", BooleanAnswer(True)),
        Answer("q5", NumericAnswer("41")),
    ]

    result = score_answers(questions, answers, passing_score=70)

    assert result.score == 60
    assert result.correct_count == 3
    assert result.total_questions == 5
    assert result.per_question_correct == (True, False, True, True, False)
    assert result.passed is False


def test_scoring_is_deterministic(engine, questions):
    answers = [Answer("q1", SingleIndex(2)), Answer("q5", NumericAnswer("42"))]

    first = engine.score(questions, answers)
    second = engine.score(questions, answers)

    assert first == second
    assert first.score == 40


def test_unknown_and_missing_answers(engine, questions):
    """Answers for other questions are ignored; missing ones count as wrong."""
    answers = [Answer("elsewhere", SingleIndex(0)), Answer("q4", BooleanAnswer(True))]

    result = engine.score(questions, answers)

    assert result.correct_count == 1
    assert result.total_questions == 5
    assert result.score == 20


def test_empty_question_list_scores_zero(engine):
    result = engine.score([], [], passing_score=0)

    assert result.score == 0
    assert result.total_questions == 0
    assert result.passed is True


def test_rounding_halves_up():
    assert round_half_up(12.5) == 13
    assert round_half_up(87.5) == 88
    assert round_half_up(33.333) == 33


def test_one_of_eight_rounds_up(engine):
    questions = [
        Question(id=f"b{i}", type="boolean", text="?", correct_answer=True) for i in range(8)
    ]
    result = engine.score(questions, [Answer("b0", BooleanAnswer(True))])

    assert result.score == 13


def test_parse_numeric():
    assert parse_numeric("1e3") == 1000.0
    assert parse_numeric(True) is None
    assert parse_numeric(None) is None
    assert parse_numeric("") is None
