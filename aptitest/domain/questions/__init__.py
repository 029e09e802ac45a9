"""
Question domain module for Aptitest.

This module contains the question model and the provider interface the
assessment engine uses to read question banks.
"""

from .model import Question, QuestionBank, QuestionType, Difficulty
from .repository import QuestionBankProvider
from .memory_repository import MemoryQuestionBankProvider

__all__ = [
    'Question',
    'QuestionBank',
    'QuestionType',
    'Difficulty',
    'QuestionBankProvider',
    'MemoryQuestionBankProvider',
]
