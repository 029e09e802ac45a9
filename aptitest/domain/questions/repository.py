"""
Question Bank Provider Module

This module defines the interface through which the session engine reads
question banks and questions. Providers are owned by the authoring side of
the platform; the engine only reads from them.
"""

import abc
from typing import Optional

from .model import Question, QuestionBank


class QuestionBankProvider(abc.ABC):
    """
    Abstract base class for question bank providers.

    A provider returns ``None`` for ids that do not resolve; it raises only
    for storage faults.
    """

    @abc.abstractmethod
    async def get_bank(self, bank_id: str) -> Optional[QuestionBank]:
        """
        Get a question bank by its ID.

        Args:
            bank_id: The ID of the bank to retrieve

        Returns:
            The QuestionBank if found, None otherwise
        """
        pass

    @abc.abstractmethod
    async def get_question(self, question_id: str) -> Optional[Question]:
        """
        Get a question by its ID.

        Args:
            question_id: The ID of the question to retrieve

        Returns:
            The Question if found, None otherwise
        """
        pass
