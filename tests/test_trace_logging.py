import json
import os
import tempfile

import pytest

from context_logging import ContextLogger, LogFacadeState, options_from_env


@pytest.fixture
def clean_env():
    old_environ = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(old_environ)


def _read_records(path: str) -> list[dict]:
    with open(path, "r", encoding="utf-8") as f:
        return [json.loads(line) for line in f]


def test_trace_level_logging(clean_env):
    """Verify TRACE logging works when enabled through the environment."""
    with tempfile.TemporaryDirectory() as temp_dir:
        log_file = os.path.join(temp_dir, "test_trace_app.log")
        os.environ["TEST_TRACE_APP_LOG_LEVEL"] = "TRACE"
        os.environ["TEST_TRACE_APP_LOG_FILE"] = log_file

        logger = ContextLogger(LogFacadeState())
        logger.initialize(**options_from_env("test_trace_app"))
        try:
            logger.trace("This is a trace message", kv_key="kv_value")
            logger.debug("This is a debug message")
        finally:
            logger.state.engine.close()

        records = _read_records(log_file)

        assert len(records) == 2

        assert records[0]["level"] == "TRACE"
        assert records[0]["message"] == "This is a trace message"
        assert records[0]["kv_key"] == "kv_value"

        assert records[1]["level"] == "DEBUG"
        assert records[1]["message"] == "This is a debug message"


def test_trace_level_filtering(clean_env):
    """Verify TRACE logging is filtered out when level is DEBUG."""
    with tempfile.TemporaryDirectory() as temp_dir:
        log_file = os.path.join(temp_dir, "test_trace_filtering.log")
        os.environ["TEST_TRACE_FILTERING_LOG_LEVEL"] = "DEBUG"
        os.environ["TEST_TRACE_FILTERING_LOG_FILE"] = log_file

        logger = ContextLogger(LogFacadeState())
        logger.initialize(**options_from_env("test_trace_filtering"))
        try:
            logger.trace("This should not appear")
            logger.debug("This should appear")
        finally:
            logger.state.engine.close()

        records = _read_records(log_file)

        assert len(records) == 1
        assert records[0]["level"] == "DEBUG"
