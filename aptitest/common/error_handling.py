"""
Error Handling System for Aptitest

This module provides the error framework used by the assessment engine:
1. Exception hierarchy with stable error codes and severities
2. Retry helpers with exponential backoff for transient failures
3. Structured error logging
"""

import time
import logging
import traceback
import asyncio
import random
import functools
import json
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type, TypeVar, Union, cast
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator

T = TypeVar('T')
F = TypeVar('F', bound=Callable)

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Severity levels for errors"""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCode(Enum):
    """Standard error codes for Aptitest"""
    UNKNOWN_ERROR = "unknown_error"
    CONFIGURATION_ERROR = "configuration_error"

    # Session loading
    BANK_NOT_FOUND = "bank_not_found"
    EMPTY_QUESTION_SET = "empty_question_set"
    ALREADY_COMPLETED = "already_completed"

    # In-session defects
    TYPE_MISMATCH = "type_mismatch"
    QUESTION_NOT_FOUND = "question_not_found"
    INVALID_STATE = "invalid_state"

    # Persistence
    PERSISTENCE_FAILURE = "persistence_failure"
    ATTEMPT_NOT_FOUND = "attempt_not_found"
    ATTEMPT_IMMUTABLE = "attempt_immutable"
    SUBMISSION_NOT_PERSISTED = "submission_not_persisted"


class ErrorInfo(BaseModel):
    """Structured information about an error"""
    model_config = ConfigDict(use_enum_values=True)

    code: ErrorCode
    message: str
    timestamp: datetime = Field(default_factory=datetime.now)
    severity: ErrorSeverity = ErrorSeverity.ERROR
    details: Optional[Dict[str, Any]] = None
    exception_type: Optional[str] = None
    exception_message: Optional[str] = None
    stack_trace: Optional[List[str]] = None
    context: Optional[Dict[str, Any]] = None

    @field_validator('stack_trace', mode='before')
    @classmethod
    def validate_stack_trace(cls, v):
        """Split a stack trace string into lines"""
        if isinstance(v, str):
            return v.splitlines()
        return v


class AptitestError(Exception):
    """Base exception class for all Aptitest errors"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.severity = severity
        self.details = details or {}
        self.cause = cause
        self.context = context or {}
        self.timestamp = datetime.now()

    def to_error_info(self, include_stack_trace: bool = False) -> ErrorInfo:
        """Convert the exception to an ErrorInfo object"""
        stack_trace = None
        if include_stack_trace:
            stack_trace = traceback.format_exc().splitlines()

        details = dict(self.details)
        if self.cause is not None:
            details["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause)
            }

        return ErrorInfo(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            severity=self.severity,
            details=details,
            exception_type=type(self).__name__,
            exception_message=str(self),
            stack_trace=stack_trace,
            context=self.context
        )

    def to_dict(self, include_stack_trace: bool = False) -> Dict[str, Any]:
        """Convert the exception to a dictionary"""
        return self.to_error_info(include_stack_trace).model_dump(mode="json")

    def to_json(self, include_stack_trace: bool = False) -> str:
        """Convert the exception to a JSON string"""
        return json.dumps(self.to_dict(include_stack_trace))

    def __str__(self) -> str:
        base_str = f"{self.code.value}: {self.message}"
        if self.details:
            base_str += f" (details: {self.details})"
        if self.cause:
            base_str += f" caused by {type(self.cause).__name__}: {self.cause}"
        return base_str


class ConfigurationError(AptitestError):
    """Error raised when configuration cannot be loaded or is invalid"""

    def __init__(self, message: str, config_key: Optional[str] = None, cause: Optional[Exception] = None):
        details = {"config_key": config_key} if config_key else None
        super().__init__(
            message=message,
            code=ErrorCode.CONFIGURATION_ERROR,
            severity=ErrorSeverity.CRITICAL,
            details=details,
            cause=cause
        )
        self.config_key = config_key


class AssessmentError(AptitestError):
    """Base class for assessment-related errors"""
    pass


class BankNotFoundError(AssessmentError):
    """Error raised when a test references a question bank that does not resolve"""

    def __init__(
        self,
        bank_id: str,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details["bank_id"] = bank_id

        super().__init__(
            message=f"Question bank with ID {bank_id} not found",
            code=ErrorCode.BANK_NOT_FOUND,
            severity=ErrorSeverity.ERROR,
            details=details,
            context=context
        )
        self.bank_id = bank_id


class EmptyQuestionSetError(AssessmentError):
    """Error raised when no question of a bank could be resolved"""

    def __init__(
        self,
        bank_id: str,
        skipped_ids: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        skipped_ids = list(skipped_ids or [])
        super().__init__(
            message=f"Question bank {bank_id} resolved to zero questions",
            code=ErrorCode.EMPTY_QUESTION_SET,
            severity=ErrorSeverity.ERROR,
            details={"bank_id": bank_id, "skipped_ids": skipped_ids},
            context=context
        )
        self.bank_id = bank_id
        self.skipped_ids = skipped_ids


class AlreadyCompletedError(AssessmentError):
    """Error raised when a user already holds a completed attempt for a test"""

    def __init__(
        self,
        user_id: str,
        test_id: str,
        attempt_id: Optional[str] = None,
        cause: Optional[Exception] = None
    ):
        details = {"user_id": user_id, "test_id": test_id}
        if attempt_id:
            details["attempt_id"] = attempt_id

        super().__init__(
            message=f"User {user_id} has already completed test {test_id}",
            code=ErrorCode.ALREADY_COMPLETED,
            severity=ErrorSeverity.WARNING,
            details=details,
            cause=cause
        )
        self.user_id = user_id
        self.test_id = test_id
        self.attempt_id = attempt_id


class TypeMismatchError(AssessmentError):
    """Error raised when an answer value does not fit its question's type"""

    def __init__(self, question_id: str, expected: str, actual: str, reason: Optional[str] = None):
        message = f"Answer for question {question_id} must be {expected}, got {actual}"
        if reason:
            message += f" ({reason})"

        super().__init__(
            message=message,
            code=ErrorCode.TYPE_MISMATCH,
            severity=ErrorSeverity.CRITICAL,
            details={"question_id": question_id, "expected": expected, "actual": actual}
        )
        self.question_id = question_id


class QuestionNotFoundError(AssessmentError):
    """Error raised when an operation names a question outside the session"""

    def __init__(self, question_id: str):
        super().__init__(
            message=f"Question with ID {question_id} is not part of this session",
            code=ErrorCode.QUESTION_NOT_FOUND,
            severity=ErrorSeverity.CRITICAL,
            details={"question_id": question_id}
        )
        self.question_id = question_id


class InvalidStateError(AssessmentError):
    """Error raised when an operation is invoked in a state that does not allow it"""

    def __init__(self, operation: str, state: str, allowed: Optional[List[str]] = None):
        details: Dict[str, Any] = {"operation": operation, "state": state}
        if allowed:
            details["allowed"] = allowed

        super().__init__(
            message=f"Cannot {operation} while session is {state}",
            code=ErrorCode.INVALID_STATE,
            severity=ErrorSeverity.ERROR,
            details=details
        )
        self.operation = operation
        self.state = state


class PersistenceError(AptitestError):
    """Transient storage failure; callers may retry"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(
            message=message,
            code=ErrorCode.PERSISTENCE_FAILURE,
            severity=ErrorSeverity.ERROR,
            details=details,
            cause=cause
        )


class AttemptNotFoundError(AptitestError):
    """Error raised when an attempt id does not exist in the repository"""

    def __init__(self, attempt_id: str):
        super().__init__(
            message=f"Attempt with ID {attempt_id} not found",
            code=ErrorCode.ATTEMPT_NOT_FOUND,
            severity=ErrorSeverity.ERROR,
            details={"attempt_id": attempt_id}
        )
        self.attempt_id = attempt_id


class AttemptImmutableError(AptitestError):
    """Error raised when a completed attempt would be changed"""

    def __init__(self, attempt_id: str, fields: Optional[List[str]] = None):
        super().__init__(
            message=f"Attempt {attempt_id} is completed and cannot be modified",
            code=ErrorCode.ATTEMPT_IMMUTABLE,
            severity=ErrorSeverity.ERROR,
            details={"attempt_id": attempt_id, "fields": list(fields or [])}
        )
        self.attempt_id = attempt_id


class SubmissionNotPersistedError(AptitestError):
    """
    Error raised when the completion write still fails after every retry.

    The score has been computed and is carried on the error so that it can be
    shown to the operator while the write is retried.
    """

    def __init__(self, attempt_id: str, score_result: Any, attempts: int, cause: Optional[Exception] = None):
        super().__init__(
            message=f"Submission for attempt {attempt_id} computed but not persisted after {attempts} attempts",
            code=ErrorCode.SUBMISSION_NOT_PERSISTED,
            severity=ErrorSeverity.CRITICAL,
            details={"attempt_id": attempt_id, "attempts": attempts},
            cause=cause
        )
        self.attempt_id = attempt_id
        self.score_result = score_result
        self.attempts = attempts


def convert_exception(
    exception: Exception,
    default_message: str = "An unexpected error occurred",
    default_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
    default_severity: ErrorSeverity = ErrorSeverity.ERROR,
    context: Optional[Dict[str, Any]] = None
) -> AptitestError:
    """
    Convert a standard exception to an AptitestError.

    Args:
        exception: The exception to convert
        default_message: Message used when the exception has none
        default_code: Error code for the converted error
        default_severity: Severity for the converted error
        context: Optional additional context

    Returns:
        The converted error (or the same error with merged context)
    """
    if isinstance(exception, AptitestError):
        if context:
            exception.context.update(context)
        return exception

    return AptitestError(
        message=str(exception) or default_message,
        code=default_code,
        severity=default_severity,
        cause=exception,
        context=context
    )


def _next_delay(delay: float, jitter: float) -> float:
    return delay * (1 + random.uniform(-jitter, jitter))


async def retry_async(
    func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    retry_delay: float = 1.0,
    backoff_factor: float = 2.0,
    jitter: float = 0.1,
    retry_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    ignore_exceptions: Tuple[Type[Exception], ...] = (),
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    name: Optional[str] = None
) -> T:
    """
    Await ``func()`` and retry it with exponential backoff.

    The last exception is re-raised once ``max_retries`` retries have failed.

    Args:
        func: Zero-argument coroutine function to call
        max_retries: Maximum number of retries after the first call
        retry_delay: Initial delay between retries in seconds
        backoff_factor: Factor to increase delay with each retry
        jitter: Random jitter factor applied to each delay
        retry_exceptions: Exception types that trigger a retry
        ignore_exceptions: Exception types re-raised immediately
        on_retry: Optional callback ``(retry_number, exception, delay)``
        name: Name used in log messages
    """
    name = name or getattr(func, "__name__", "operation")
    retries = 0
    delay = retry_delay

    while True:
        try:
            return await func()
        except ignore_exceptions:
            raise
        except retry_exceptions as e:
            retries += 1
            if retries > max_retries:
                raise

            actual_delay = _next_delay(delay, jitter)
            if on_retry:
                on_retry(retries, e, actual_delay)

            logger.warning(
                f"Retry {retries}/{max_retries} for {name} "
                f"after {actual_delay:.2f}s due to {type(e).__name__}: {e}"
            )
            await asyncio.sleep(actual_delay)
            delay *= backoff_factor


def retry(
    max_retries: int = 3,
    retry_delay: float = 1.0,
    backoff_factor: float = 2.0,
    jitter: float = 0.1,
    retry_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    ignore_exceptions: Tuple[Type[Exception], ...] = (),
    on_retry: Optional[Callable[[int, Exception, float], None]] = None
):
    """
    Decorator for retrying sync or async functions when exceptions occur.

    See :func:`retry_async` for the meaning of the arguments.
    """
    def decorator(func: F) -> F:
        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                return await retry_async(
                    lambda: func(*args, **kwargs),
                    max_retries=max_retries,
                    retry_delay=retry_delay,
                    backoff_factor=backoff_factor,
                    jitter=jitter,
                    retry_exceptions=retry_exceptions,
                    ignore_exceptions=ignore_exceptions,
                    on_retry=on_retry,
                    name=func.__name__
                )

            return cast(F, async_wrapper)

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            retries = 0
            delay = retry_delay

            while True:
                try:
                    return func(*args, **kwargs)
                except ignore_exceptions:
                    raise
                except retry_exceptions as e:
                    retries += 1
                    if retries > max_retries:
                        raise

                    actual_delay = _next_delay(delay, jitter)
                    if on_retry:
                        on_retry(retries, e, actual_delay)

                    logger.warning(
                        f"Retry {retries}/{max_retries} for {func.__name__} "
                        f"after {actual_delay:.2f}s due to {type(e).__name__}: {e}"
                    )
                    time.sleep(actual_delay)
                    delay *= backoff_factor

        return cast(F, sync_wrapper)

    return decorator


def log_error(
    error: Union[AptitestError, Exception],
    level: int = logging.ERROR,
    include_stack_trace: bool = False,
    context: Optional[Dict[str, Any]] = None,
    log: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None
) -> None:
    """
    Log an error with a standardized format.

    Args:
        error: The error to log
        level: Logging level
        include_stack_trace: Whether to append the current traceback
        context: Additional context to include
        log: Logger to use; defaults to this module's logger
    """
    error = convert_exception(error, context=context)

    message = f"ERROR [{error.code.value}]: {error.message}"

    if error.context:
        context_str = ", ".join(f"{k}={v}" for k, v in error.context.items())
        message += f" (context: {context_str})"

    if error.cause:
        message += f" caused by {type(error.cause).__name__}: {error.cause}"

    if include_stack_trace:
        message += f"\n{traceback.format_exc()}"

    (log or logger).log(level, message)
