"""
Assessment Engine Models

This module defines the data model of a live examination attempt: the test
definition, the tagged answer values, per-question answers, the durable
attempt record and the read models handed to the presentation layer.
"""

import uuid
import enum
import datetime
from dataclasses import dataclass, field, fields, replace
from typing import Any, ClassVar, Dict, FrozenSet, List, Optional, Tuple, Type, Union

from aptitest.domain.questions import QuestionType

DEFAULT_PASSING_SCORE = 70


def utcnow() -> datetime.datetime:
    """Timezone-aware current UTC time"""
    return datetime.datetime.now(datetime.timezone.utc)


def _parse_datetime(value: Any) -> Optional[datetime.datetime]:
    if value is None or isinstance(value, datetime.datetime):
        return value
    return datetime.datetime.fromisoformat(value)


def as_utc(value: datetime.datetime) -> datetime.datetime:
    # Some stores (SQLite) drop tzinfo; naive values are taken to be UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


def same_instant(left: Optional[datetime.datetime], right: Optional[datetime.datetime]) -> bool:
    """Compare two timestamps, treating naive values as UTC."""
    if left is None or right is None:
        return left is right
    return as_utc(left) == as_utc(right)


# ---------------------------------------------------------------------------
# Answer values
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SingleIndex:
    """Selected option of a single-choice question"""
    question_type: ClassVar[QuestionType] = QuestionType.SINGLE_CHOICE

    index: int

    def payload(self) -> Any:
        return self.index


@dataclass(frozen=True)
class MultiIndices:
    """Selected options of a multi-choice question"""
    question_type: ClassVar[QuestionType] = QuestionType.MULTI_CHOICE

    indices: FrozenSet[int]

    def __post_init__(self):
        object.__setattr__(self, "indices", frozenset(self.indices))

    def payload(self) -> Any:
        return sorted(self.indices)


@dataclass(frozen=True)
class BooleanAnswer:
    """True/false answer"""
    question_type: ClassVar[QuestionType] = QuestionType.BOOLEAN

    value: bool

    def payload(self) -> Any:
        return self.value


@dataclass(frozen=True)
class NumericAnswer:
    """Numeric answer, kept as entered (a number or the raw input string)"""
    question_type: ClassVar[QuestionType] = QuestionType.NUMERIC

    value: Union[float, str]

    def payload(self) -> Any:
        return self.value


AnswerValue = Union[SingleIndex, MultiIndices, BooleanAnswer, NumericAnswer]

ANSWER_VALUE_TYPES: Dict[QuestionType, Type] = {
    QuestionType.SINGLE_CHOICE: SingleIndex,
    QuestionType.MULTI_CHOICE: MultiIndices,
    QuestionType.BOOLEAN: BooleanAnswer,
    QuestionType.NUMERIC: NumericAnswer,
}


def answer_value_to_dict(value: Optional[AnswerValue]) -> Optional[Dict[str, Any]]:
    """Serialize an answer value as ``{"type": ..., "value": ...}``."""
    if value is None:
        return None
    return {"type": value.question_type.value, "value": value.payload()}


def answer_value_from_dict(data: Optional[Dict[str, Any]]) -> Optional[AnswerValue]:
    """Inverse of :func:`answer_value_to_dict`."""
    if data is None:
        return None
    value_type = ANSWER_VALUE_TYPES[QuestionType.parse(data["type"])]
    return value_type(data["value"])


# ---------------------------------------------------------------------------
# Test definition, answers and attempts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TestDefinition:
    """
    A published test, immutable for the lifetime of an attempt.

    Attributes:
        id: Unique identifier of the test
        duration_seconds: Time limit of one attempt
        question_bank_id: Bank the questions are drawn from
        shuffle_questions: Whether each attempt gets its own question order
        passing_score: Minimum score (0-100) required to pass
        title: Display title
    """
    __test__ = False  # not a pytest test class

    id: str
    duration_seconds: int
    question_bank_id: str
    shuffle_questions: bool = False
    passing_score: int = DEFAULT_PASSING_SCORE
    title: str = ""

    def __post_init__(self):
        if not self.id:
            raise ValueError("Test ID is required")
        if not self.question_bank_id:
            raise ValueError("Question bank ID is required")
        if self.duration_seconds <= 0:
            raise ValueError(f"Duration must be positive, got {self.duration_seconds}")
        if not 0 <= self.passing_score <= 100:
            raise ValueError(f"Passing score must be between 0 and 100, got {self.passing_score}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TestDefinition':
        """
        Create a test definition from a stored document.

        ``duration_seconds`` is preferred; documents written by the authoring
        tool only carry ``duration`` in minutes.
        """
        if 'duration_seconds' in data:
            duration_seconds = int(data['duration_seconds'])
        else:
            duration_seconds = int(data['duration']) * 60

        passing_score = data.get('passing_score', data.get('passingScore'))
        return cls(
            id=data['id'],
            duration_seconds=duration_seconds,
            question_bank_id=data.get('question_bank_id', data.get('questionBankId')),
            shuffle_questions=bool(data.get('shuffle_questions', data.get('shuffleQuestions', False))),
            passing_score=DEFAULT_PASSING_SCORE if passing_score is None else int(passing_score),
            title=data.get('title', ''),
        )


@dataclass
class Answer:
    """
    Answer state of one question in the active attempt.

    Attributes:
        question_id: Question the answer belongs to
        value: Tagged answer value, None while unanswered
        flagged: Whether the candidate flagged the question for review
        time_spent_seconds: Seconds spent with this question on screen
    """
    question_id: str
    value: Optional[AnswerValue] = None
    flagged: bool = False
    time_spent_seconds: int = 0

    @property
    def is_answered(self) -> bool:
        return self.value is not None

    def copy(self) -> 'Answer':
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_id": self.question_id,
            "value": answer_value_to_dict(self.value),
            "flagged": self.flagged,
            "time_spent_seconds": self.time_spent_seconds,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Answer':
        return cls(
            question_id=data["question_id"],
            value=answer_value_from_dict(data.get("value")),
            flagged=bool(data.get("flagged", False)),
            time_spent_seconds=int(data.get("time_spent_seconds", 0)),
        )


class AttemptStatus(enum.Enum):
    """Status of a durable attempt record"""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass
class AttemptPatch:
    """
    Partial update of an attempt; only fields that are not None are applied.

    Re-applying a patch whose values an attempt already holds is a no-op,
    which is what makes retried completion writes safe.
    """
    status: Optional[AttemptStatus] = None
    completed_at: Optional[datetime.datetime] = None
    answers: Optional[Tuple[Answer, ...]] = None
    score: Optional[int] = None
    duration_used_seconds: Optional[int] = None
    correct_count: Optional[int] = None
    total_questions: Optional[int] = None
    answered_questions: Optional[int] = None
    passed: Optional[bool] = None

    def __post_init__(self):
        if self.answers is not None:
            self.answers = tuple(a.copy() for a in self.answers)

    def changes(self) -> Dict[str, Any]:
        """Fields carried by this patch"""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    def completes(self) -> bool:
        return self.status is AttemptStatus.COMPLETED

    def differing_fields(self, attempt: 'Attempt') -> List[str]:
        """Names of the patch fields whose value the attempt does not hold yet"""
        differing = []
        for name, value in self.changes().items():
            current = getattr(attempt, name)
            if name == "completed_at":
                equal = same_instant(current, value)
            elif name == "answers":
                equal = list(current) == list(value)
            else:
                equal = current == value
            if not equal:
                differing.append(name)
        return differing

    def matches(self, attempt: 'Attempt') -> bool:
        return not self.differing_fields(attempt)


@dataclass
class Attempt:
    """
    Durable record of one user taking one test.

    Created once when the session starts, mutated in place while the attempt
    runs and immutable once ``status`` is completed.
    """
    id: str
    user_id: str
    test_id: str
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    started_at: datetime.datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime.datetime] = None
    answers: List[Answer] = field(default_factory=list)
    score: Optional[int] = None
    duration_used_seconds: Optional[int] = None
    correct_count: Optional[int] = None
    total_questions: Optional[int] = None
    answered_questions: Optional[int] = None
    passed: Optional[bool] = None

    @classmethod
    def create(cls, user_id: str, test_id: str, started_at: Optional[datetime.datetime] = None) -> 'Attempt':
        """Create a new in-progress attempt with a generated ID."""
        return cls(
            id=str(uuid.uuid4()),
            user_id=user_id,
            test_id=test_id,
            started_at=started_at or utcnow(),
        )

    @property
    def is_completed(self) -> bool:
        return self.status is AttemptStatus.COMPLETED

    def apply(self, patch: AttemptPatch) -> None:
        """Apply the fields carried by ``patch`` in place."""
        for name, value in patch.changes().items():
            if name == "answers":
                value = [a.copy() for a in value]
            setattr(self, name, value)

    def copy(self) -> 'Attempt':
        return replace(self, answers=[a.copy() for a in self.answers])

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the attempt to a dictionary.

        Returns:
            Dictionary representation of the attempt
        """
        return {
            "id": self.id,
            "user_id": self.user_id,
            "test_id": self.test_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "answers": [a.to_dict() for a in self.answers],
            "score": self.score,
            "duration_used_seconds": self.duration_used_seconds,
            "correct_count": self.correct_count,
            "total_questions": self.total_questions,
            "answered_questions": self.answered_questions,
            "passed": self.passed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Attempt':
        """
        Create an attempt from dictionary data.

        Args:
            data: Dictionary produced by :meth:`to_dict`
        """
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            test_id=data["test_id"],
            status=AttemptStatus(data.get("status", AttemptStatus.IN_PROGRESS.value)),
            started_at=_parse_datetime(data.get("started_at")) or utcnow(),
            completed_at=_parse_datetime(data.get("completed_at")),
            answers=[Answer.from_dict(a) for a in data.get("answers") or []],
            score=data.get("score"),
            duration_used_seconds=data.get("duration_used_seconds"),
            correct_count=data.get("correct_count"),
            total_questions=data.get("total_questions"),
            answered_questions=data.get("answered_questions"),
            passed=data.get("passed"),
        )


# ---------------------------------------------------------------------------
# Session read models
# ---------------------------------------------------------------------------

class SessionState(enum.Enum):
    """States of the session controller"""
    NOT_STARTED = "not_started"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    BLOCKED = "blocked"
    LOAD_FAILED = "load_failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.BLOCKED, SessionState.LOAD_FAILED)


class SubmissionTrigger(enum.Enum):
    """What caused a submission"""
    MANUAL = "manual"
    TIMER = "timer"


@dataclass(frozen=True)
class ScoreResult:
    """Outcome of grading one attempt"""
    score: int
    correct_count: int
    total_questions: int
    per_question_correct: Tuple[bool, ...]
    passed: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "correct_count": self.correct_count,
            "total_questions": self.total_questions,
            "per_question_correct": list(self.per_question_correct),
            "passed": self.passed,
        }


@dataclass(frozen=True)
class SessionProgress:
    """Snapshot of the session for the navigation grid and timer display"""
    state: SessionState
    current_index: int
    total_questions: int
    answered_count: int
    flagged_count: int
    remaining_seconds: int
