"""
Shared fixtures for the Aptitest test suite.
"""

import pytest

from aptitest.common.config import EngineConfig
from aptitest.domain.questions import MemoryQuestionBankProvider, Question, QuestionBank, QuestionType
from aptitest.assessments.engine.models import TestDefinition
from aptitest.assessments.engine.repositories import MemoryAttemptRepository


def build_questions():
    """Five questions: two single-choice, one multi-choice, one boolean, one numeric."""
    return [
        Question(
            id="q1",
            type=QuestionType.SINGLE_CHOICE,
            text="Which number is prime?",
            options=("4", "6", "7", "9"),
            correct_answer=2,
            category="numbers",
        ),
        Question(
            id="q2",
            type=QuestionType.SINGLE_CHOICE,
            text="Which word is a synonym of 'rapid'?",
            options=("slow", "fast", "late"),
            correct_answer=1,
            category="verbal",
        ),
        Question(
            id="q3",
            type=QuestionType.MULTI_CHOICE,
            text="Which numbers are even?",
            options=("2", "3", "8", "9"),
            correct_answer=frozenset({0, 2}),
            category="numbers",
        ),
        Question(
            id="q4",
            type=QuestionType.BOOLEAN,
            text="A square is a rectangle.",
            correct_answer=True,
            category="logic",
        ),
        Question(
            id="q5",
            type=QuestionType.NUMERIC,
            text="What is 6 times 7?",
            correct_answer=42.0,
            category="numbers",
        ),
    ]


@pytest.fixture
def questions():
    return build_questions()


@pytest.fixture
def question_provider(questions):
    bank = QuestionBank(id="bank-1", title="General aptitude", question_ids=[q.id for q in questions])
    return MemoryQuestionBankProvider(questions=questions, banks=[bank])


@pytest.fixture
def test_definition():
    return TestDefinition(
        id="test-1",
        title="General aptitude",
        duration_seconds=600,
        question_bank_id="bank-1",
        passing_score=70,
    )


@pytest.fixture
def engine_config():
    """Engine settings with retries fast enough for tests."""
    return EngineConfig(
        tick_interval_seconds=0.01,
        autosave_every_ticks=0,
        submit_max_retries=3,
        submit_retry_delay=0.0,
        submit_backoff_factor=1.0,
        submit_retry_jitter=0.0,
    )


@pytest.fixture
def attempt_repository():
    return MemoryAttemptRepository()
