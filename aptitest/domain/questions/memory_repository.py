"""
Memory Question Bank Provider Module

This module provides an in-memory implementation of the QuestionBankProvider
interface for development and testing purposes.
"""

import logging
from typing import Dict, Iterable, List, Optional

from .model import Question, QuestionBank
from .repository import QuestionBankProvider

logger = logging.getLogger(__name__)


class MemoryQuestionBankProvider(QuestionBankProvider):
    """
    In-memory implementation of the QuestionBankProvider.

    This implementation keeps questions and banks in dictionaries and is
    intended for development and testing purposes only.
    """

    def __init__(
        self,
        questions: Optional[Iterable[Question]] = None,
        banks: Optional[Iterable[QuestionBank]] = None
    ):
        """
        Initialize the provider with optional initial data.

        Args:
            questions: Questions to register
            banks: Banks to register
        """
        self._questions: Dict[str, Question] = {}
        self._banks: Dict[str, QuestionBank] = {}

        for question in questions or ():
            self.add_question(question)
        for bank in banks or ():
            self.add_bank(bank)

    async def get_bank(self, bank_id: str) -> Optional[QuestionBank]:
        return self._banks.get(bank_id)

    async def get_question(self, question_id: str) -> Optional[Question]:
        return self._questions.get(question_id)

    def add_question(self, question: Question) -> Question:
        """Register or replace a question."""
        self._questions[question.id] = question
        return question

    def add_bank(self, bank: QuestionBank) -> QuestionBank:
        """Register or replace a bank."""
        self._banks[bank.id] = bank
        return bank

    def remove_question(self, question_id: str) -> bool:
        """
        Delete a question while leaving bank references to it in place.

        Returns:
            True if the question was deleted, False otherwise
        """
        if question_id in self._questions:
            del self._questions[question_id]
            logger.debug(f"Removed question {question_id}")
            return True
        return False

    def get_all(self) -> List[Question]:
        """Get all registered questions."""
        return list(self._questions.values())

    def clear(self) -> None:
        """Remove all questions and banks."""
        self._questions.clear()
        self._banks.clear()
