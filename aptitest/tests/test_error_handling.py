"""
Tests for the error hierarchy and retry helpers.
"""

import json
import logging

import pytest

from aptitest.common.error_handling import (
    AlreadyCompletedError,
    AptitestError,
    ErrorCode,
    ErrorSeverity,
    PersistenceError,
    SubmissionNotPersistedError,
    TypeMismatchError,
    convert_exception,
    log_error,
    retry,
    retry_async,
)


def test_error_serialization():
    error = AlreadyCompletedError("u1", "t1", attempt_id="a1")

    data = error.to_dict()

    assert data["code"] == "already_completed"
    assert data["severity"] == "warning"
    assert data["details"] == {"user_id": "u1", "test_id": "t1", "attempt_id": "a1"}
    assert data["exception_type"] == "AlreadyCompletedError"
    assert json.loads(error.to_json())["message"] == error.message


def test_cause_is_reported():
    cause = ConnectionError("socket closed")
    error = PersistenceError("write failed", cause=cause)

    assert error.to_error_info().details["cause"] == {"type": "ConnectionError", "message": "socket closed"}
    assert "caused by ConnectionError" in str(error)


def test_submission_error_carries_score():
    error = SubmissionNotPersistedError("a1", score_result={"score": 60}, attempts=6)

    assert error.code is ErrorCode.SUBMISSION_NOT_PERSISTED
    assert error.severity is ErrorSeverity.CRITICAL
    assert error.score_result == {"score": 60}
    assert error.details["attempts"] == 6


def test_type_mismatch_message():
    error = TypeMismatchError("q1", "boolean", "numeric", "wrong tag")
    assert "q1" in error.message and "wrong tag" in error.message


def test_convert_exception():
    converted = convert_exception(ValueError("bad"), context={"step": "load"})

    assert isinstance(converted, AptitestError)
    assert converted.code is ErrorCode.UNKNOWN_ERROR
    assert converted.context == {"step": "load"}

    original = PersistenceError("down")
    assert convert_exception(original, context={"k": 1}) is original
    assert original.context == {"k": 1}


def test_log_error(caplog):
    with caplog.at_level(logging.ERROR, logger="aptitest.common.error_handling"):
        log_error(PersistenceError("down", cause=OSError("disk")), context={"attempt_id": "a1"})

    assert "persistence_failure" in caplog.text
    assert "attempt_id=a1" in caplog.text


@pytest.mark.asyncio
async def test_retry_async_recovers():
    calls = []
    retries = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise PersistenceError("down")
        return "ok"

    result = await retry_async(
        flaky, max_retries=3, retry_delay=0, jitter=0,
        retry_exceptions=(PersistenceError,),
        on_retry=lambda n, e, d: retries.append(n)
    )

    assert result == "ok"
    assert len(calls) == 3
    assert retries == [1, 2]


@pytest.mark.asyncio
async def test_retry_async_gives_up():
    calls = []

    async def broken():
        calls.append(1)
        raise PersistenceError("down")

    with pytest.raises(PersistenceError):
        await retry_async(broken, max_retries=2, retry_delay=0, jitter=0)

    assert len(calls) == 3


@pytest.mark.asyncio
async def test_retry_async_does_not_retry_other_errors():
    calls = []

    async def wrong():
        calls.append(1)
        raise ValueError("defect")

    with pytest.raises(ValueError):
        await retry_async(wrong, retry_delay=0, retry_exceptions=(PersistenceError,))

    assert len(calls) == 1


def test_retry_decorator_sync():
    calls = []

    @retry(max_retries=2, retry_delay=0, jitter=0, ignore_exceptions=(KeyError,))
    def sometimes():
        calls.append(1)
        if len(calls) == 1:
            raise OSError("once")
        return len(calls)

    assert sometimes() == 2

    @retry(max_retries=5, retry_delay=0, ignore_exceptions=(KeyError,))
    def never():
        calls.append(1)
        raise KeyError("ignored")

    calls.clear()
    with pytest.raises(KeyError):
        never()
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_retry_decorator_async():
    calls = []

    @retry(max_retries=1, retry_delay=0, jitter=0)
    async def once_flaky(value):
        calls.append(value)
        if len(calls) == 1:
            raise OSError("once")
        return value * 2

    assert await once_flaky(21) == 42
    assert calls == [21, 21]
