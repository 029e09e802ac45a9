"""
Session Controller

This module provides the state machine that runs one user's attempt at one
test: it loads the question set, guards against retakes, routes answers and
flags into the answer store, drives the countdown, and grades and persists
the attempt exactly once whether the candidate submits or time runs out.

All methods are meant to be called from a single asyncio event loop.
"""

import asyncio
import datetime
import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, Set

from aptitest.common.config import EngineConfig, get_config
from aptitest.common.logger import LoggerAdapter, app_logger
from aptitest.common.error_handling import (
    AlreadyCompletedError,
    AttemptImmutableError,
    AttemptNotFoundError,
    BankNotFoundError,
    EmptyQuestionSetError,
    InvalidStateError,
    PersistenceError,
    SubmissionNotPersistedError,
    log_error,
    retry_async,
)
from aptitest.domain.questions import Question, QuestionBankProvider
from aptitest.assessments.engine.answer_store import AnswerStore
from aptitest.assessments.engine.clock import ExamClock
from aptitest.assessments.engine.models import (
    AnswerValue,
    Attempt,
    AttemptPatch,
    AttemptStatus,
    ScoreResult,
    SessionProgress,
    SessionState,
    SubmissionTrigger,
    TestDefinition,
    utcnow,
)
from aptitest.assessments.engine.repositories import AttemptRepository
from aptitest.assessments.engine.resolver import QuestionSetResolver
from aptitest.assessments.engine.scoring import ScoringEngine

logger = app_logger.getChild("engine.session")

ClockFactory = Callable[[int], ExamClock]
CompletionCallback = Callable[[Attempt, ScoreResult], Any]

_ACTIVE_STATES = (SessionState.IN_PROGRESS, SessionState.PAUSED)
_LOADED_STATES = (
    SessionState.READY,
    SessionState.IN_PROGRESS,
    SessionState.PAUSED,
    SessionState.SUBMITTING,
    SessionState.COMPLETED,
)


class SessionController:
    """
    Runs one attempt from loading to the persisted, graded record.

    States::

        NOT_STARTED -> READY -> IN_PROGRESS <-> PAUSED -> SUBMITTING -> COMPLETED
        NOT_STARTED -> LOAD_FAILED | BLOCKED
        READY -> BLOCKED

    Submission is guarded synchronously: the first trigger (manual submit or
    clock expiry) moves the session to SUBMITTING, freezes the answers and
    computes the score without yielding to the event loop, so a second
    trigger can only join the submission already in flight.
    """

    def __init__(
        self,
        *,
        user_id: str,
        test: TestDefinition,
        question_provider: QuestionBankProvider,
        attempt_repository: AttemptRepository,
        config: Optional[EngineConfig] = None,
        resolver: Optional[QuestionSetResolver] = None,
        scoring_engine: Optional[ScoringEngine] = None,
        clock_factory: Optional[ClockFactory] = None,
        now: Optional[Callable[[], datetime.datetime]] = None
    ):
        """
        Initialize the session controller.

        Args:
            user_id: The candidate's unique identifier
            test: The test being taken
            question_provider: Source of the test's question bank
            attempt_repository: Store of attempt records
            config: Engine settings; the loaded application config when None
            resolver: Question set resolver; built from ``question_provider`` when None
            scoring_engine: Grading engine; built with the configured tolerance when None
            clock_factory: Builds the countdown from the duration in seconds
            now: Wall clock used for attempt timestamps
        """
        self.user_id = user_id
        self.test = test
        self.attempt_repository = attempt_repository
        self.config = config or get_config().engine
        self.resolver = resolver or QuestionSetResolver(question_provider)
        self.scoring_engine = scoring_engine or ScoringEngine(self.config.numeric_tolerance)
        self._clock_factory = clock_factory or self._default_clock
        self._now = now or utcnow

        self._state = SessionState.NOT_STARTED
        self._starting = False
        self.questions: List[Question] = []
        self.answer_store: Optional[AnswerStore] = None
        self.attempt: Optional[Attempt] = None
        self.clock: Optional[ExamClock] = None
        self.current_index = 0

        self.load_error: Optional[Exception] = None
        self.blocking_attempt: Optional[Attempt] = None
        self.result: Optional[ScoreResult] = None
        self.trigger: Optional[SubmissionTrigger] = None

        self._ticks_since_save = 0
        self._save_tasks: Set[asyncio.Task] = set()
        self._completion_patch: Optional[AttemptPatch] = None
        self._submission_task: Optional[asyncio.Task] = None
        self._remaining_at_submission: Optional[int] = None
        self._completion_error: Optional[Exception] = None
        self._completed_event = asyncio.Event()
        self._completion_callbacks: List[CompletionCallback] = []

        self._log = LoggerAdapter(logger, {"user_id": user_id, "test_id": test.id})

    def _default_clock(self, duration_seconds: int) -> ExamClock:
        return ExamClock(duration_seconds, tick_interval=self.config.tick_interval_seconds)

    def on_completed(self, callback: CompletionCallback) -> None:
        """
        Register a callback run once the completed attempt is persisted.

        The callback receives a copy of the stored attempt and the score; it
        may be a coroutine function. Failures are logged and do not affect
        the completed attempt, which makes it the place to record activity
        log entries.
        """
        self._completion_callbacks.append(callback)

    # -- state -----------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    def _set_state(self, state: SessionState) -> None:
        self._log.info(f"Session {self._state.value} -> {state.value}")
        self._state = state

    def _require_state(self, operation: str, *allowed: SessionState) -> None:
        if self._state not in allowed:
            raise InvalidStateError(operation, self._state.value, [s.value for s in allowed])

    # -- lifecycle ---------------------------------------------------------------

    async def load(self) -> SessionState:
        """
        Resolve the question set and check for a completed attempt.

        Returns:
            READY, or BLOCKED when the user already completed the test, or
            LOAD_FAILED with :attr:`load_error` set
        """
        self._require_state("load", SessionState.NOT_STARTED)

        try:
            questions = await self.resolver.resolve(self.test)
            completed = await self.attempt_repository.find_completed_attempt(self.user_id, self.test.id)
        except (BankNotFoundError, EmptyQuestionSetError, PersistenceError) as e:
            self.load_error = e
            log_error(e, log=self._log)
            self._set_state(SessionState.LOAD_FAILED)
            return self._state

        if completed is not None:
            self.blocking_attempt = completed
            self._log.warning(f"Test already completed in attempt {completed.id}")
            self._set_state(SessionState.BLOCKED)
            return self._state

        self.questions = questions
        self.answer_store = AnswerStore(questions)
        self.current_index = 0
        self._set_state(SessionState.READY)
        return self._state

    async def start(self) -> Attempt:
        """
        Create the attempt record and start the countdown.

        Raises:
            InvalidStateError: If the session is not READY
            AlreadyCompletedError: If a completed attempt appeared since loading
            PersistenceError: If the attempt could not be created; the session
                stays READY
        """
        self._require_state("start", SessionState.READY)
        if self._starting:
            raise InvalidStateError("start", "starting")
        self._starting = True

        try:
            attempt = await self.attempt_repository.create_attempt(
                self.user_id, self.test.id, started_at=self._now()
            )
        except AlreadyCompletedError as e:
            self.load_error = e
            self._log.warning(f"Start refused: {e.message}")
            self._set_state(SessionState.BLOCKED)
            raise
        finally:
            self._starting = False

        self.attempt = attempt
        self._log = self._log.with_context(attempt_id=attempt.id)

        clock = self._clock_factory(self.test.duration_seconds)
        clock.on_tick(self._on_tick)
        clock.on_expiry(self._on_expiry)
        self.clock = clock

        self._set_state(SessionState.IN_PROGRESS)
        clock.start()
        return attempt.copy()

    def pause(self) -> None:
        if not self.config.allow_pause:
            raise InvalidStateError("pause", self._state.value, [])
        self._require_state("pause", SessionState.IN_PROGRESS)
        self.clock.pause()
        self._set_state(SessionState.PAUSED)

    def resume(self) -> None:
        self._require_state("resume", SessionState.PAUSED)
        self._set_state(SessionState.IN_PROGRESS)
        self.clock.resume()

    async def close(self) -> None:
        """
        Release the countdown task.

        A submission in flight is awaited, never cancelled.
        """
        if self.clock is not None:
            await self.clock.aclose()

        pending = [t for t in self._save_tasks if not t.done()]
        if self._submission_task is not None and not self._submission_task.done():
            pending.append(self._submission_task)
        if pending:
            await asyncio.wait(pending)

    # -- answers -----------------------------------------------------------------

    def _accepting_input(self, operation: str) -> bool:
        if self._state is SessionState.IN_PROGRESS:
            return True
        self._log.warning(f"Ignoring {operation} while session is {self._state.value}")
        return False

    def set_answer(self, question_id: str, value: Optional[AnswerValue]) -> bool:
        """
        Record an answer; None clears it.

        Returns:
            True if the answer was recorded, False when the session does not
            accept input

        Raises:
            QuestionNotFoundError: If the question is not part of the session
            TypeMismatchError: If the value does not fit the question
        """
        if not self._accepting_input("answer"):
            return False
        self.answer_store.set_answer(question_id, value)
        return True

    def clear_answer(self, question_id: str) -> bool:
        if not self._accepting_input("clear"):
            return False
        self.answer_store.clear_answer(question_id)
        return True

    def toggle_flag(self, question_id: str) -> bool:
        """Toggle the review flag; returns False when the session does not accept input."""
        if not self._accepting_input("flag"):
            return False
        self.answer_store.toggle_flag(question_id)
        return True

    # -- navigation --------------------------------------------------------------

    @property
    def current_question(self) -> Optional[Question]:
        if not self.questions:
            return None
        return self.questions[self.current_index]

    def go_to(self, index: int) -> Question:
        """
        Make the question at ``index`` current.

        Raises:
            InvalidStateError: If no question set is loaded
            IndexError: If ``index`` is outside the question list
        """
        self._require_state("navigate", *_LOADED_STATES)
        if not 0 <= index < len(self.questions):
            raise IndexError(f"Question index {index} out of range 0..{len(self.questions) - 1}")
        self.current_index = index
        return self.questions[index]

    def next_question(self) -> Question:
        return self.go_to(min(self.current_index + 1, len(self.questions) - 1))

    def previous_question(self) -> Question:
        return self.go_to(max(self.current_index - 1, 0))

    def remaining_seconds(self) -> int:
        if self._remaining_at_submission is not None:
            return self._remaining_at_submission
        if self.clock is not None:
            return self.clock.remaining_seconds()
        return self.test.duration_seconds

    def progress(self) -> SessionProgress:
        store = self.answer_store
        return SessionProgress(
            state=self._state,
            current_index=self.current_index,
            total_questions=len(self.questions),
            answered_count=store.answered_count if store else 0,
            flagged_count=store.flagged_count if store else 0,
            remaining_seconds=self.remaining_seconds(),
        )

    # -- clock events ------------------------------------------------------------

    def _on_tick(self, remaining: int) -> None:
        if self._state is not SessionState.IN_PROGRESS:
            return

        question = self.current_question
        if question is not None:
            self.answer_store.add_time(question.id, 1)

        every = self.config.autosave_every_ticks
        if every > 0:
            self._ticks_since_save += 1
            if self._ticks_since_save >= every:
                self._ticks_since_save = 0
                self._autosave()

    def _on_expiry(self) -> None:
        self._log.info("Time is up")
        self._begin_submission(SubmissionTrigger.TIMER)

    # -- progress saves ----------------------------------------------------------

    def _start_save(self) -> asyncio.Task:
        patch = AttemptPatch(answers=tuple(self.answer_store.snapshot()))
        task = asyncio.get_running_loop().create_task(self._write_progress(patch))
        self._save_tasks.add(task)
        task.add_done_callback(self._save_tasks.discard)
        return task

    async def _write_progress(self, patch: AttemptPatch) -> Attempt:
        attempt = await self.attempt_repository.update_attempt(self.attempt.id, patch)
        if self._state in _ACTIVE_STATES:
            self.attempt = attempt
        return attempt

    async def save_progress(self) -> Attempt:
        """
        Persist the current answers without changing the attempt status.

        Raises:
            InvalidStateError: If the session is not running
            PersistenceError: If the write fails
        """
        self._require_state("save progress", *_ACTIVE_STATES)
        return await self._start_save()

    def _autosave(self) -> None:
        if any(not t.done() for t in self._save_tasks):
            self._log.debug("Previous save still running, skipping autosave")
            return
        self._start_save().add_done_callback(self._on_autosave_done)

    def _on_autosave_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            log_error(error, level=logging.WARNING, log=self._log)

    # -- submission --------------------------------------------------------------

    def _begin_submission(self, trigger: SubmissionTrigger) -> bool:
        # No await in here: the state check and the transition are atomic
        if self._state not in _ACTIVE_STATES:
            self._log.debug(f"{trigger.value} submission ignored while session is {self._state.value}")
            return False

        remaining = self.clock.remaining_seconds()
        snapshot = self.answer_store.snapshot()
        result = self.scoring_engine.score(self.questions, snapshot, self.test.passing_score)

        self.clock.stop()
        self._set_state(SessionState.SUBMITTING)
        self.trigger = trigger
        self.result = result
        self._remaining_at_submission = remaining
        self._completion_patch = AttemptPatch(
            status=AttemptStatus.COMPLETED,
            completed_at=self._now(),
            answers=tuple(snapshot),
            score=result.score,
            duration_used_seconds=self.test.duration_seconds - remaining,
            correct_count=result.correct_count,
            total_questions=result.total_questions,
            answered_questions=sum(1 for a in snapshot if a.is_answered),
            passed=result.passed,
        )
        self._log.info(f"Submitting ({trigger.value}) with {remaining}s remaining")

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # Manual clock ticked outside the event loop
            self._log.warning("No running event loop, completion write starts on the next submit")
            return True

        self._launch_submission(self._run_submission)
        return True

    def _launch_submission(self, write: Callable[[], Awaitable[ScoreResult]]) -> asyncio.Task:
        loop = asyncio.get_running_loop()
        task = loop.create_task(write())
        task.add_done_callback(self._on_submission_done)
        self._submission_task = task
        return task

    def _fail_completion(self, error: Exception) -> None:
        self._completion_error = error
        self._completed_event.set()

    async def _run_submission(self) -> ScoreResult:
        pending = [t for t in self._save_tasks if not t.done()]
        if pending:
            await asyncio.wait(pending)
        return await self._write_completion()

    async def _write_completion(self) -> ScoreResult:
        patch = self._completion_patch
        attempt_id = self.attempt.id

        try:
            attempt = await retry_async(
                lambda: self.attempt_repository.update_attempt(attempt_id, patch),
                max_retries=self.config.submit_max_retries,
                retry_delay=self.config.submit_retry_delay,
                backoff_factor=self.config.submit_backoff_factor,
                jitter=self.config.submit_retry_jitter,
                retry_exceptions=(PersistenceError,),
                name="complete_attempt",
            )
        except PersistenceError as e:
            error = SubmissionNotPersistedError(
                attempt_id, self.result, self.config.submit_max_retries + 1, cause=e
            )
            self._fail_completion(error)
            raise error from e
        except AlreadyCompletedError as e:
            # Another session of the same user completed the test first
            self._set_state(SessionState.BLOCKED)
            self._fail_completion(e)
            raise
        except (AttemptImmutableError, AttemptNotFoundError) as e:
            self._fail_completion(e)
            raise

        self.attempt = attempt
        self._set_state(SessionState.COMPLETED)
        self._completed_event.set()
        self._log.info(
            f"Attempt completed with score {self.result.score} "
            f"({self.result.correct_count}/{self.result.total_questions}, "
            f"{'passed' if self.result.passed else 'not passed'})"
        )
        await self._notify_completed(attempt)
        return self.result

    async def _notify_completed(self, attempt: Attempt) -> None:
        for callback in list(self._completion_callbacks):
            try:
                outcome = callback(attempt.copy(), self.result)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                self._log.exception("Completion listener failed")

    def _on_submission_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            self._log.error("Submission task was cancelled")
            return
        error = task.exception()
        if error is not None:
            log_error(error, log=self._log)

    async def submit(self) -> ScoreResult:
        """
        Submit the attempt.

        If the timer already triggered the submission, the in-flight result is
        awaited and returned instead of writing a second time. Cancelling the
        caller does not cancel the submission.

        Raises:
            InvalidStateError: If the attempt has not started
            SubmissionNotPersistedError: If the completion write kept failing;
                the score is available on the error and on :attr:`result`
        """
        if self._state is SessionState.COMPLETED:
            return self.result
        if self._state not in _ACTIVE_STATES and self._state is not SessionState.SUBMITTING:
            raise InvalidStateError(
                "submit", self._state.value, [s.value for s in (*_ACTIVE_STATES, SessionState.SUBMITTING)]
            )

        self._begin_submission(SubmissionTrigger.MANUAL)
        if self._submission_task is None:
            self._launch_submission(self._run_submission)
        return await asyncio.shield(self._submission_task)

    async def retry_submission(self) -> ScoreResult:
        """
        Retry the completion write after :class:`SubmissionNotPersistedError`.

        The same completion patch is written again, so the retry is safe even
        if an earlier write reached the store.
        """
        if self._state is SessionState.COMPLETED:
            return self.result
        self._require_state("retry submission", SessionState.SUBMITTING)

        task = self._submission_task
        if task is None:
            task = self._launch_submission(self._run_submission)
        elif task.done():
            self._completion_error = None
            self._completed_event.clear()
            task = self._launch_submission(self._write_completion)
        return await asyncio.shield(task)

    async def wait_for_completion(self, timeout: Optional[float] = None) -> ScoreResult:
        """
        Wait until the attempt is completed and persisted.

        Raises:
            asyncio.TimeoutError: If ``timeout`` elapses first
            SubmissionNotPersistedError: If the completion write ran out of
                retries; the score is carried on the error
            AlreadyCompletedError: If the completion was refused
        """
        if self._state is SessionState.SUBMITTING and self._submission_task is None:
            self._launch_submission(self._run_submission)
        await asyncio.wait_for(self._wait_for_outcome(), timeout)
        return self.result

    async def _wait_for_outcome(self) -> None:
        # A retry clears the event again, so wake-ups are re-checked
        while True:
            await self._completed_event.wait()
            if self._completion_error is not None:
                raise self._completion_error
            if self._state is SessionState.COMPLETED:
                return
            self._completed_event.clear()
