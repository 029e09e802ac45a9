"""
SQL Attempt Repository

SQLAlchemy implementation of :class:`AttemptRepository` over the
``test_attempts`` table.
"""

import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from aptitest.common.logger import app_logger
from aptitest.common.error_handling import (
    AlreadyCompletedError,
    AttemptImmutableError,
    AttemptNotFoundError,
    PersistenceError,
)
from aptitest.assessments.engine.models import (
    Answer,
    Attempt,
    AttemptPatch,
    AttemptStatus,
    as_utc,
)
from aptitest.assessments.engine.repositories import AttemptRepository
from aptitest.database.init_db import get_session_factory
from aptitest.database.models import AttemptRecord

logger = app_logger.getChild("database.attempt_repository")


def _completed_filter(user_id: str, test_id: str):
    return (
        AttemptRecord.user_id == user_id,
        AttemptRecord.test_id == test_id,
        AttemptRecord.status == AttemptStatus.COMPLETED.value,
    )


class SqlAttemptRepository(AttemptRepository):
    """
    Attempt repository backed by SQLAlchemy's async ORM.

    Every call runs in its own transaction. Driver and connection failures are
    raised as :class:`PersistenceError`; a write that trips the unique index on
    completed attempts is raised as :class:`AlreadyCompletedError`.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        """
        Initialize the repository.

        Args:
            session_factory: Session factory to use; the one created by
                :func:`initialize_database` when None
        """
        self._session_factory = session_factory

    @property
    def session_factory(self) -> async_sessionmaker:
        return self._session_factory or get_session_factory()

    # -- mapping ---------------------------------------------------------------

    @staticmethod
    def _to_domain(record: AttemptRecord) -> Attempt:
        return Attempt(
            id=record.id,
            user_id=record.user_id,
            test_id=record.test_id,
            status=AttemptStatus(record.status),
            started_at=as_utc(record.started_at),
            completed_at=as_utc(record.completed_at) if record.completed_at else None,
            answers=[Answer.from_dict(a) for a in record.answers or []],
            score=record.score,
            duration_used_seconds=record.duration_used_seconds,
            correct_count=record.correct_count,
            total_questions=record.total_questions,
            answered_questions=record.answered_questions,
            passed=record.passed,
        )

    @staticmethod
    def _columns(patch: AttemptPatch) -> Dict[str, Any]:
        columns = patch.changes()
        if "status" in columns:
            columns["status"] = columns["status"].value
        if "answers" in columns:
            columns["answers"] = [a.to_dict() for a in columns["answers"]]
        if "completed_at" in columns:
            columns["completed_at"] = as_utc(columns["completed_at"])
        return columns

    # -- queries ---------------------------------------------------------------

    async def find_completed_attempt(self, user_id: str, test_id: str) -> Optional[Attempt]:
        try:
            async with self.session_factory() as session:
                record = await session.scalar(
                    select(AttemptRecord).where(*_completed_filter(user_id, test_id)).limit(1)
                )
                return self._to_domain(record) if record else None
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to look up completed attempt of user {user_id} for test {test_id}", cause=e
            ) from e

    async def get_by_id(self, attempt_id: str) -> Optional[Attempt]:
        try:
            async with self.session_factory() as session:
                record = await session.get(AttemptRecord, attempt_id)
                return self._to_domain(record) if record else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load attempt {attempt_id}", cause=e) from e

    async def list_attempts(self, user_id: str, test_id: Optional[str] = None) -> List[Attempt]:
        query = select(AttemptRecord).where(AttemptRecord.user_id == user_id)
        if test_id is not None:
            query = query.where(AttemptRecord.test_id == test_id)
        query = query.order_by(AttemptRecord.started_at)

        try:
            async with self.session_factory() as session:
                records = (await session.scalars(query)).all()
                return [self._to_domain(r) for r in records]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list attempts of user {user_id}", cause=e) from e

    # -- writes ----------------------------------------------------------------

    async def create_attempt(
        self,
        user_id: str,
        test_id: str,
        started_at: Optional[datetime.datetime] = None
    ) -> Attempt:
        attempt = Attempt.create(user_id, test_id, started_at)

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    completed_id = await session.scalar(
                        select(AttemptRecord.id).where(*_completed_filter(user_id, test_id)).limit(1)
                    )
                    if completed_id is not None:
                        raise AlreadyCompletedError(user_id, test_id, attempt_id=completed_id)

                    session.add(AttemptRecord(
                        id=attempt.id,
                        user_id=user_id,
                        test_id=test_id,
                        status=attempt.status.value,
                        started_at=as_utc(attempt.started_at),
                        answers=[],
                    ))
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to create attempt of user {user_id} for test {test_id}", cause=e) from e

        logger.debug(f"Created attempt {attempt.id} for user {user_id} on test {test_id}")
        return attempt

    async def update_attempt(self, attempt_id: str, patch: AttemptPatch) -> Attempt:
        owner = None

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    record = await session.get(AttemptRecord, attempt_id)
                    if record is None:
                        raise AttemptNotFoundError(attempt_id)
                    owner = (record.user_id, record.test_id)

                    attempt = self._to_domain(record)
                    if attempt.is_completed:
                        differing = patch.differing_fields(attempt)
                        if differing:
                            raise AttemptImmutableError(attempt_id, differing)
                        logger.debug(f"Attempt {attempt_id} already holds the patch, nothing to do")
                        return attempt

                    if patch.completes():
                        completed_id = await session.scalar(
                            select(AttemptRecord.id)
                            .where(*_completed_filter(*owner), AttemptRecord.id != attempt_id)
                            .limit(1)
                        )
                        if completed_id is not None:
                            raise AlreadyCompletedError(*owner, attempt_id=completed_id)

                    record.update(self._columns(patch))
                    await session.flush()
                    attempt.apply(patch)
        except IntegrityError as e:
            if owner is not None and patch.completes():
                raise AlreadyCompletedError(*owner, cause=e) from e
            raise PersistenceError(f"Failed to update attempt {attempt_id}", cause=e) from e
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update attempt {attempt_id}", cause=e) from e

        return attempt
