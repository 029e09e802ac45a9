"""
Attempt Repositories

This module defines the persistence interface the session engine writes
attempts through, and an in-memory implementation for development and tests.
The SQLAlchemy implementation lives in :mod:`aptitest.database.attempt_repository`.
"""

import asyncio
import datetime
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from aptitest.common.logger import app_logger
from aptitest.common.error_handling import (
    AlreadyCompletedError,
    AttemptImmutableError,
    AttemptNotFoundError,
)
from aptitest.assessments.engine.models import Attempt, AttemptPatch

logger = app_logger.getChild("engine.repositories")


class AttemptRepository(ABC):
    """
    Abstract repository for attempt records.

    Implementations must guarantee that at most one attempt per
    (user_id, test_id) ever reaches the completed status, and that storage
    faults surface as :class:`PersistenceError` so callers can retry.
    """

    @abstractmethod
    async def find_completed_attempt(self, user_id: str, test_id: str) -> Optional[Attempt]:
        """
        Find the completed attempt of a user for a test.

        Args:
            user_id: The user's unique identifier
            test_id: The test's unique identifier

        Returns:
            The completed attempt if one exists, None otherwise

        Raises:
            PersistenceError: If the store cannot be read
        """
        pass

    @abstractmethod
    async def create_attempt(
        self,
        user_id: str,
        test_id: str,
        started_at: Optional[datetime.datetime] = None
    ) -> Attempt:
        """
        Create a new in-progress attempt.

        Args:
            user_id: The user's unique identifier
            test_id: The test's unique identifier
            started_at: Start time; now when None

        Returns:
            The created attempt

        Raises:
            AlreadyCompletedError: If the user already completed the test
            PersistenceError: If the write fails
        """
        pass

    @abstractmethod
    async def update_attempt(self, attempt_id: str, patch: AttemptPatch) -> Attempt:
        """
        Apply a partial update to an attempt.

        Re-applying a patch that a completed attempt already holds succeeds
        without changing anything.

        Args:
            attempt_id: The attempt's unique identifier
            patch: Fields to update

        Returns:
            The updated attempt

        Raises:
            AttemptNotFoundError: If the attempt does not exist
            AttemptImmutableError: If the attempt is completed and the patch differs
            AlreadyCompletedError: If completing would give the user a second
                completed attempt for the test
            PersistenceError: If the write fails
        """
        pass

    @abstractmethod
    async def get_by_id(self, attempt_id: str) -> Optional[Attempt]:
        """Retrieve an attempt by its ID."""
        pass

    @abstractmethod
    async def list_attempts(self, user_id: str, test_id: Optional[str] = None) -> List[Attempt]:
        """List the attempts of a user, oldest first, optionally for one test."""
        pass


class MemoryAttemptRepository(AttemptRepository):
    """
    In-memory attempt repository.

    Mutations are serialized with an ``asyncio.Lock`` so the completed-attempt
    check and the write happen atomically. Stored and returned attempts are
    copies.
    """

    def __init__(self):
        self._attempts: Dict[str, Attempt] = {}
        self._lock = asyncio.Lock()

    def _completed_for(self, user_id: str, test_id: str) -> Optional[Attempt]:
        return next(
            (
                a for a in self._attempts.values()
                if a.user_id == user_id and a.test_id == test_id and a.is_completed
            ),
            None
        )

    async def find_completed_attempt(self, user_id: str, test_id: str) -> Optional[Attempt]:
        attempt = self._completed_for(user_id, test_id)
        return attempt.copy() if attempt else None

    async def create_attempt(
        self,
        user_id: str,
        test_id: str,
        started_at: Optional[datetime.datetime] = None
    ) -> Attempt:
        async with self._lock:
            completed = self._completed_for(user_id, test_id)
            if completed is not None:
                raise AlreadyCompletedError(user_id, test_id, attempt_id=completed.id)

            attempt = Attempt.create(user_id, test_id, started_at)
            self._attempts[attempt.id] = attempt
            logger.debug(f"Created attempt {attempt.id} for user {user_id} on test {test_id}")
            return attempt.copy()

    async def update_attempt(self, attempt_id: str, patch: AttemptPatch) -> Attempt:
        async with self._lock:
            attempt = self._attempts.get(attempt_id)
            if attempt is None:
                raise AttemptNotFoundError(attempt_id)

            if attempt.is_completed:
                differing = patch.differing_fields(attempt)
                if differing:
                    raise AttemptImmutableError(attempt_id, differing)
                logger.debug(f"Attempt {attempt_id} already holds the patch, nothing to do")
                return attempt.copy()

            if patch.completes():
                completed = self._completed_for(attempt.user_id, attempt.test_id)
                if completed is not None:
                    raise AlreadyCompletedError(attempt.user_id, attempt.test_id, attempt_id=completed.id)

            attempt.apply(patch)
            return attempt.copy()

    async def get_by_id(self, attempt_id: str) -> Optional[Attempt]:
        attempt = self._attempts.get(attempt_id)
        return attempt.copy() if attempt else None

    async def list_attempts(self, user_id: str, test_id: Optional[str] = None) -> List[Attempt]:
        attempts = [
            a for a in self._attempts.values()
            if a.user_id == user_id and (test_id is None or a.test_id == test_id)
        ]
        attempts.sort(key=lambda a: a.started_at)
        return [a.copy() for a in attempts]

    def clear(self) -> None:
        self._attempts.clear()
