"""
Tests for the logging helpers.
"""

import json
import logging

import pytest

from aptitest.common.logger import JsonFormatter, LoggerAdapter, configure_logger, log_execution_time


def make_record(**extra):
    record = logging.LogRecord("aptitest.test", logging.INFO, __file__, 10, "attempt %s saved", ("a1",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_merges_context():
    output = json.loads(JsonFormatter().format(make_record(data={"user_id": "u1"})))

    assert output["message"] == "attempt a1 saved"
    assert output["level"] == "INFO"
    assert output["user_id"] == "u1"


def test_adapter_context_is_attached():
    adapter = LoggerAdapter(logging.getLogger("aptitest.test"), {"user_id": "u1"})
    child = adapter.with_context(attempt_id="a1")

    _, kwargs = child.process("message", {})

    assert kwargs["extra"]["data"] == {"user_id": "u1", "attempt_id": "a1"}
    assert adapter.extra == {"user_id": "u1"}


def test_configure_logger_writes_file(tmp_path):
    log_file = tmp_path / "logs" / "aptitest.log"
    logger = configure_logger("aptitest.filetest", level="DEBUG", log_file=str(log_file), console_output=False)

    logger.debug("hello")
    for handler in logger.handlers:
        handler.flush()

    assert "hello" in log_file.read_text()


@pytest.mark.asyncio
async def test_log_execution_time_keeps_result(caplog):
    logger = logging.getLogger("aptitest.timing")

    @log_execution_time(logger)
    async def compute():
        return 7

    with caplog.at_level(logging.DEBUG, logger="aptitest.timing"):
        assert await compute() == 7

    assert "compute executed in" in caplog.text
