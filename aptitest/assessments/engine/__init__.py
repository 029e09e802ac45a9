"""
Assessment Session Engine

Turns a test definition into a live, time-bounded attempt: question set
resolution, answer tracking, countdown, scoring and idempotent persistence.
"""

from aptitest.assessments.engine.models import (
    Answer,
    AnswerValue,
    Attempt,
    AttemptPatch,
    AttemptStatus,
    BooleanAnswer,
    MultiIndices,
    NumericAnswer,
    ScoreResult,
    SessionProgress,
    SessionState,
    SingleIndex,
    SubmissionTrigger,
    TestDefinition,
)
from aptitest.assessments.engine.resolver import QuestionSetResolver, fisher_yates_shuffle
from aptitest.assessments.engine.answer_store import AnswerStore
from aptitest.assessments.engine.clock import ExamClock
from aptitest.assessments.engine.scoring import ScoringEngine, score_answers
from aptitest.assessments.engine.repositories import AttemptRepository, MemoryAttemptRepository
from aptitest.assessments.engine.controllers import CompletionCallback, SessionController

__all__ = [
    'Answer',
    'AnswerValue',
    'Attempt',
    'AttemptPatch',
    'AttemptStatus',
    'BooleanAnswer',
    'CompletionCallback',
    'MultiIndices',
    'NumericAnswer',
    'ScoreResult',
    'SessionProgress',
    'SessionState',
    'SingleIndex',
    'SubmissionTrigger',
    'TestDefinition',
    'QuestionSetResolver',
    'fisher_yates_shuffle',
    'AnswerStore',
    'ExamClock',
    'ScoringEngine',
    'score_answers',
    'AttemptRepository',
    'MemoryAttemptRepository',
    'SessionController',
]
