"""
Tests for the question domain model and the in-memory bank provider.
"""

import pytest

from aptitest.domain.questions import (
    Difficulty,
    MemoryQuestionBankProvider,
    Question,
    QuestionBank,
    QuestionType,
)
from aptitest.assessments.engine.models import TestDefinition


def test_question_type_accepts_legacy_names():
    """Document-store spellings map onto the canonical types."""
    assert QuestionType.parse("mcq-single") is QuestionType.SINGLE_CHOICE
    assert QuestionType.parse("mcq-multiple") is QuestionType.MULTI_CHOICE
    assert QuestionType.parse("true-false") is QuestionType.BOOLEAN
    assert QuestionType.parse("Numeric") is QuestionType.NUMERIC

    with pytest.raises(ValueError):
        QuestionType.parse("essay")


def test_multi_choice_correct_answer_becomes_frozenset():
    question = Question(
        id="q", type="multi-choice", text="Pick", options=["a", "b", "c"], correct_answer=[0, 2]
    )

    assert question.correct_answer == frozenset({0, 2})
    assert question.options == ("a", "b", "c")


@pytest.mark.parametrize("kwargs", [
    # Choice questions need at least two options
    {"type": "single-choice", "options": ["only"], "correct_answer": 0},
    # Index outside the options
    {"type": "single-choice", "options": ["a", "b"], "correct_answer": 2},
    # Empty set of correct options
    {"type": "multi-choice", "options": ["a", "b"], "correct_answer": []},
    # Boolean answers must be real bools
    {"type": "boolean", "correct_answer": "yes"},
    # Numeric questions take no options
    {"type": "numeric", "options": ["1", "2"], "correct_answer": 1},
    {"type": "numeric", "correct_answer": "not a number"},
    {"type": "numeric", "correct_answer": float("nan")},
])
def test_malformed_questions_are_rejected(kwargs):
    with pytest.raises(ValueError):
        Question(id="bad", text="?", **kwargs)


def test_question_from_document_shape():
    """The authoring tool stores camelCase keys and legacy type names."""
    question = Question.from_dict({
        "id": "q9",
        "type": "mcq-multiple",
        "question": "Which are colors?",
        "options": ["red", "dog", "blue"],
        "correctAnswer": [0, 2],
        "difficulty": "unknown-level",
    })

    assert question.type is QuestionType.MULTI_CHOICE
    assert question.text == "Which are colors?"
    assert question.difficulty is Difficulty.MEDIUM

    data = question.to_dict()
    assert data["correct_answer"] == [0, 2]
    assert Question.from_dict(data) == question


def test_numeric_correct_answer_is_kept_as_authored():
    question = Question(id="n", type="numeric", text="?", correct_answer="3.14")
    assert question.correct_answer == "3.14"


def test_bank_from_document_shape():
    bank = QuestionBank.from_dict({"id": "b", "title": "Bank", "questions": ["q1", "q2"], "isActive": False})

    assert bank.question_ids == ("q1", "q2")
    assert bank.is_active is False


def test_test_definition_duration_in_minutes():
    test = TestDefinition.from_dict({
        "id": "t", "duration": 30, "questionBankId": "b", "shuffleQuestions": True
    })

    assert test.duration_seconds == 1800
    assert test.shuffle_questions is True
    assert test.passing_score == 70


@pytest.mark.parametrize("kwargs", [
    {"duration_seconds": 0},
    {"passing_score": 101},
    {"question_bank_id": ""},
])
def test_invalid_test_definitions(kwargs):
    values = {"id": "t", "duration_seconds": 60, "question_bank_id": "b"}
    values.update(kwargs)
    with pytest.raises(ValueError):
        TestDefinition(**values)


@pytest.mark.asyncio
async def test_memory_provider_lookups(questions):
    provider = MemoryQuestionBankProvider(questions=questions)
    provider.add_bank(QuestionBank(id="b", question_ids=["q1"]))

    assert (await provider.get_question("q1")).id == "q1"
    assert await provider.get_question("missing") is None
    assert (await provider.get_bank("b")).question_ids == ("q1",)

    assert provider.remove_question("q1") is True
    assert provider.remove_question("q1") is False
    assert await provider.get_question("q1") is None
