"""
Tests for question set resolution.
"""

import random

import pytest

from aptitest.common.error_handling import BankNotFoundError, EmptyQuestionSetError
from aptitest.domain.questions import MemoryQuestionBankProvider, QuestionBank
from aptitest.assessments.engine.models import TestDefinition
from aptitest.assessments.engine.resolver import QuestionSetResolver, fisher_yates_shuffle


def make_test(shuffle=False, bank_id="bank-1"):
    return TestDefinition(id="t", duration_seconds=60, question_bank_id=bank_id, shuffle_questions=shuffle)


@pytest.mark.asyncio
async def test_resolves_in_bank_order(question_provider):
    resolver = QuestionSetResolver(question_provider)

    questions = await resolver.resolve(make_test())

    assert [q.id for q in questions] == ["q1", "q2", "q3", "q4", "q5"]


@pytest.mark.asyncio
async def test_shuffle_is_a_permutation(question_provider):
    resolver = QuestionSetResolver(question_provider, rng=random.Random(7))

    shuffled = await resolver.resolve(make_test(shuffle=True))

    assert sorted(q.id for q in shuffled) == ["q1", "q2", "q3", "q4", "q5"]
    assert len({q.id for q in shuffled}) == 5


@pytest.mark.asyncio
async def test_shuffle_is_reproducible_with_seeded_rng(question_provider):
    first = await QuestionSetResolver(question_provider, rng=random.Random(42)).resolve(make_test(shuffle=True))
    second = await QuestionSetResolver(question_provider, rng=random.Random(42)).resolve(make_test(shuffle=True))

    assert [q.id for q in first] == [q.id for q in second]


@pytest.mark.asyncio
async def test_missing_questions_are_skipped(questions):
    bank = QuestionBank(id="bank-1", question_ids=["q1", "deleted", "q2", "gone"])
    provider = MemoryQuestionBankProvider(questions=questions, banks=[bank])

    resolved = await QuestionSetResolver(provider).resolve(make_test())

    assert [q.id for q in resolved] == ["q1", "q2"]


@pytest.mark.asyncio
async def test_duplicate_ids_resolve_once(questions):
    bank = QuestionBank(id="bank-1", question_ids=["q2", "q1", "q2"])
    provider = MemoryQuestionBankProvider(questions=questions, banks=[bank])

    resolved = await QuestionSetResolver(provider).resolve(make_test())

    assert [q.id for q in resolved] == ["q2", "q1"]


@pytest.mark.asyncio
async def test_unknown_bank_raises(question_provider):
    with pytest.raises(BankNotFoundError) as exc_info:
        await QuestionSetResolver(question_provider).resolve(make_test(bank_id="nope"))

    assert exc_info.value.bank_id == "nope"


@pytest.mark.asyncio
async def test_bank_without_resolvable_questions_raises():
    provider = MemoryQuestionBankProvider(banks=[QuestionBank(id="bank-1", question_ids=["x", "y"])])

    with pytest.raises(EmptyQuestionSetError) as exc_info:
        await QuestionSetResolver(provider).resolve(make_test())

    assert exc_info.value.skipped_ids == ["x", "y"]


def test_fisher_yates_covers_every_permutation():
    """Every ordering of three items shows up with a seeded source."""
    rng = random.Random(0)
    seen = set()
    for _ in range(300):
        seen.add(tuple(fisher_yates_shuffle([1, 2, 3], rng)))

    assert len(seen) == 6


def test_fisher_yates_handles_short_sequences():
    assert fisher_yates_shuffle([]) == []
    assert fisher_yates_shuffle(["a"]) == ["a"]
