"""
Tests for the in-memory answer store.
"""

import pytest

from aptitest.common.error_handling import QuestionNotFoundError, TypeMismatchError
from aptitest.assessments.engine.answer_store import AnswerStore
from aptitest.assessments.engine.models import (
    BooleanAnswer,
    MultiIndices,
    NumericAnswer,
    SingleIndex,
)


@pytest.fixture
def store(questions):
    return AnswerStore(questions)


def test_seeded_with_unanswered_entries(store):
    snapshot = store.snapshot()

    assert [a.question_id for a in snapshot] == ["q1", "q2", "q3", "q4", "q5"]
    assert all(a.value is None and not a.flagged and a.time_spent_seconds == 0 for a in snapshot)
    assert store.answered_count == 0
    assert len(store) == 5


def test_set_and_clear_answer(store):
    store.set_answer("q1", SingleIndex(2))
    store.set_answer("q3", MultiIndices([0, 2]))

    assert store.get("q1").value == SingleIndex(2)
    assert store.get("q3").value.indices == frozenset({0, 2})
    assert store.answered_count == 2

    store.clear_answer("q1")
    assert store.get("q1").value is None
    assert store.answered_count == 1

    store.set_answer("q3", None)
    assert store.answered_count == 0


@pytest.mark.parametrize("question_id, value", [
    ("q1", BooleanAnswer(True)),
    ("q4", SingleIndex(0)),
    ("q5", MultiIndices({1})),
    ("q1", SingleIndex(4)),
    ("q1", SingleIndex(-1)),
    ("q3", MultiIndices({0, 7})),
    ("q4", BooleanAnswer("yes")),
    ("q5", NumericAnswer(True)),
])
def test_invalid_values_raise(store, question_id, value):
    with pytest.raises(TypeMismatchError):
        store.set_answer(question_id, value)

    assert store.get(question_id).value is None


def test_unknown_question_raises(store):
    with pytest.raises(QuestionNotFoundError):
        store.set_answer("q99", SingleIndex(0))
    with pytest.raises(QuestionNotFoundError):
        store.toggle_flag("q99")
    with pytest.raises(QuestionNotFoundError):
        store.get("q99")


def test_toggle_flag(store):
    assert store.toggle_flag("q2") is True
    assert store.flagged_count == 1
    assert store.toggle_flag("q2") is False
    assert store.flagged_count == 0


def test_add_time(store):
    store.add_time("q4")
    store.add_time("q4", 5)

    assert store.get("q4").time_spent_seconds == 6
    with pytest.raises(ValueError):
        store.add_time("q4", -1)


def test_snapshot_is_a_copy(store):
    store.set_answer("q5", NumericAnswer("42"))
    snapshot = store.snapshot()

    snapshot[4].value = None
    snapshot[4].flagged = True
    store.get("q5").time_spent_seconds = 100

    assert store.get("q5").value == NumericAnswer("42")
    assert store.get("q5").flagged is False
    assert store.get("q5").time_spent_seconds == 0
