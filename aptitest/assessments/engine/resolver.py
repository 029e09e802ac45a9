"""
Question Set Resolution

Turns a test definition into the ordered list of questions an attempt is
answered against.
"""

import random
from typing import List, MutableSequence, Optional, TypeVar

from aptitest.common.logger import app_logger, log_execution_time
from aptitest.common.error_handling import BankNotFoundError, EmptyQuestionSetError
from aptitest.domain.questions import Question, QuestionBankProvider
from aptitest.assessments.engine.models import TestDefinition

logger = app_logger.getChild("engine.resolver")

T = TypeVar('T')


def fisher_yates_shuffle(items: MutableSequence[T], rng: Optional[random.Random] = None) -> MutableSequence[T]:
    """
    Shuffle ``items`` in place with the Fisher-Yates algorithm.

    Every permutation is equally likely for a uniform ``rng``.

    Args:
        items: Sequence to shuffle
        rng: Random source; a fresh ``random.Random`` when None

    Returns:
        The same sequence, shuffled
    """
    rng = rng or random.Random()
    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]
    return items


class QuestionSetResolver:
    """
    Resolves the question set of a test from its question bank.

    Question ids listed by the bank that no longer resolve are skipped, so a
    question deleted after publishing does not make the test unusable.
    """

    def __init__(self, provider: QuestionBankProvider, rng: Optional[random.Random] = None):
        """
        Initialize the resolver.

        Args:
            provider: Source of banks and questions
            rng: Random source used for shuffling
        """
        self.provider = provider
        self.rng = rng or random.Random()

    @log_execution_time(logger)
    async def resolve(self, test: TestDefinition) -> List[Question]:
        """
        Resolve the questions of ``test``.

        Args:
            test: The test definition

        Returns:
            Resolved questions, shuffled when the test asks for it

        Raises:
            BankNotFoundError: If the bank does not resolve
            EmptyQuestionSetError: If no listed question resolves
        """
        bank = await self.provider.get_bank(test.question_bank_id)
        if bank is None:
            raise BankNotFoundError(test.question_bank_id, context={"test_id": test.id})

        questions: List[Question] = []
        seen = set()
        skipped: List[str] = []

        for question_id in bank.question_ids:
            if question_id in seen:
                logger.warning(f"Bank {bank.id} lists question {question_id} more than once, keeping the first")
                continue
            seen.add(question_id)

            question = await self.provider.get_question(question_id)
            if question is None:
                logger.info(f"Question {question_id} of bank {bank.id} no longer exists, skipping")
                skipped.append(question_id)
                continue
            questions.append(question)

        if skipped:
            logger.warning(
                f"Skipped {len(skipped)} of {len(seen)} questions of bank {bank.id} for test {test.id}"
            )

        if not questions:
            raise EmptyQuestionSetError(bank.id, skipped_ids=skipped, context={"test_id": test.id})

        if test.shuffle_questions:
            fisher_yates_shuffle(questions, self.rng)

        logger.debug(f"Resolved {len(questions)} questions for test {test.id}")
        return questions
