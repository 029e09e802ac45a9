"""
Question Domain Model Module

This module defines the read-only question entities the session engine
consumes: questions of four answer types and the banks that group them.
"""

import enum
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Tuple, Union


class QuestionType(enum.Enum):
    """
    Answer type of a question.

    The document store of the authoring tool uses the legacy spellings
    ``mcq-single``, ``mcq-multiple`` and ``true-false``; :meth:`parse`
    accepts both forms.
    """
    SINGLE_CHOICE = "single-choice"
    MULTI_CHOICE = "multi-choice"
    BOOLEAN = "boolean"
    NUMERIC = "numeric"

    @property
    def is_choice(self) -> bool:
        """Whether questions of this type carry options"""
        return self in (QuestionType.SINGLE_CHOICE, QuestionType.MULTI_CHOICE)

    @classmethod
    def parse(cls, value: Union[str, 'QuestionType']) -> 'QuestionType':
        """Parse a canonical or legacy type name."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        normalized = _LEGACY_TYPE_NAMES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Invalid question type: {value}")


_LEGACY_TYPE_NAMES = {
    "mcq-single": "single-choice",
    "mcq-multiple": "multi-choice",
    "true-false": "boolean",
}


class Difficulty(enum.Enum):
    """Difficulty label attached to a question by its author."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @classmethod
    def from_value(cls, value: Any) -> 'Difficulty':
        """Convert a stored value, falling back to MEDIUM for unknown labels."""
        if isinstance(value, cls):
            return value
        return next((d for d in cls if d.value == str(value).lower()), cls.MEDIUM)


def _is_index(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class Question:
    """
    Represents a question as resolved from a question bank.

    Attributes:
        id: Unique identifier for the question
        type: The answer type
        text: The question text
        correct_answer: Index (single-choice), frozenset of indices
            (multi-choice), bool (boolean) or number/numeric string (numeric)
        options: Ordered answer options, only for choice types
        explanation: Explanation shown after grading
        category: The category or topic of the question
        difficulty: The difficulty label
    """
    id: str
    type: QuestionType
    text: str
    correct_answer: Any
    options: Tuple[str, ...] = ()
    explanation: str = ""
    category: str = ""
    difficulty: Difficulty = Difficulty.MEDIUM

    def __post_init__(self):
        if not self.id:
            raise ValueError("Question ID is required")

        object.__setattr__(self, "type", QuestionType.parse(self.type))
        object.__setattr__(self, "options", tuple(self.options or ()))
        object.__setattr__(self, "difficulty", Difficulty.from_value(self.difficulty))

        if self.type.is_choice:
            if len(self.options) < 2:
                raise ValueError(f"Question {self.id}: choice questions need at least 2 options")
        elif self.options:
            raise ValueError(f"Question {self.id}: {self.type.value} questions take no options")

        object.__setattr__(self, "correct_answer", self._validated_correct_answer())

    def _validated_correct_answer(self) -> Any:
        answer = self.correct_answer

        if self.type is QuestionType.SINGLE_CHOICE:
            if not _is_index(answer) or not 0 <= answer < len(self.options):
                raise ValueError(f"Question {self.id}: correct answer must be an option index")
            return answer

        if self.type is QuestionType.MULTI_CHOICE:
            if isinstance(answer, (str, bytes)) or not hasattr(answer, "__iter__"):
                raise ValueError(f"Question {self.id}: correct answer must be a collection of indices")
            indices = frozenset(answer)
            if not indices:
                raise ValueError(f"Question {self.id}: at least one option must be correct")
            if not all(_is_index(i) and 0 <= i < len(self.options) for i in indices):
                raise ValueError(f"Question {self.id}: correct answer indices out of range")
            return indices

        if self.type is QuestionType.BOOLEAN:
            if not isinstance(answer, bool):
                raise ValueError(f"Question {self.id}: correct answer must be true or false")
            return answer

        # Numeric answers stay as authored; they are parsed at grading time
        if isinstance(answer, bool):
            raise ValueError(f"Question {self.id}: correct answer must be numeric")
        try:
            parsed = float(answer)
        except (TypeError, ValueError):
            raise ValueError(f"Question {self.id}: correct answer {answer!r} is not numeric")
        if math.isnan(parsed):
            raise ValueError(f"Question {self.id}: correct answer is NaN")
        return answer

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the question to a dictionary.

        Returns:
            Dictionary representation of the question
        """
        correct_answer = self.correct_answer
        if isinstance(correct_answer, frozenset):
            correct_answer = sorted(correct_answer)

        result = {
            'id': self.id,
            'type': self.type.value,
            'text': self.text,
            'correct_answer': correct_answer,
            'explanation': self.explanation,
            'category': self.category,
            'difficulty': self.difficulty.value,
        }
        if self.options:
            result['options'] = list(self.options)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Question':
        """
        Create a Question from a dictionary.

        Both the snake_case keys produced by :meth:`to_dict` and the camelCase
        keys of the authoring tool (``correctAnswer``, ``question``) are read.

        Args:
            data: Dictionary containing question data

        Returns:
            A Question instance
        """
        correct_answer = data.get('correct_answer', data.get('correctAnswer'))
        return cls(
            id=data.get('id'),
            type=data.get('type'),
            text=data.get('text', data.get('question', '')),
            correct_answer=correct_answer,
            options=tuple(data.get('options') or ()),
            explanation=data.get('explanation', ''),
            category=data.get('category', ''),
            difficulty=data.get('difficulty', Difficulty.MEDIUM.value),
        )


@dataclass(frozen=True)
class QuestionBank:
    """
    A named, reusable collection of questions referenced by tests.

    Attributes:
        id: Unique identifier for the bank
        title: Display title
        question_ids: Ordered question ids
        is_active: Whether the bank is offered to test authors
    """
    id: str
    title: str = ""
    question_ids: Tuple[str, ...] = field(default_factory=tuple)
    is_active: bool = True

    def __post_init__(self):
        object.__setattr__(self, "question_ids", tuple(self.question_ids))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'QuestionBank':
        """Create a bank from a stored document (``questions`` holds the ids)."""
        return cls(
            id=data.get('id'),
            title=data.get('title', ''),
            question_ids=tuple(data.get('question_ids', data.get('questions', ()))),
            is_active=data.get('is_active', data.get('isActive', True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'question_ids': list(self.question_ids),
            'is_active': self.is_active,
        }
