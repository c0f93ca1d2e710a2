"""
Tests for structured logging helpers
"""

import json
import logging

import pytest

from infrastructure.monitoring import logging_service
from infrastructure.monitoring.logging_service import (
    StructuredFormatter,
    get_logging_status,
    initialize_logging,
    log_conversation_event,
    log_execution_time,
)


class TestStructuredFormatter:

    def test_json_with_extra_fields(self):
        record = logging.LogRecord("chat", logging.INFO, __file__, 10, "Turn done", None, None)
        record.session_id = "s1"

        data = json.loads(StructuredFormatter().format(record))

        assert data["message"] == "Turn done"
        assert data["level"] == "INFO"
        assert data["extra"] == {"session_id": "s1"}


class TestLoggingHelpers:

    def test_conversation_event(self, caplog):
        logger = logging.getLogger("test.events")
        with caplog.at_level(logging.INFO, logger="test.events"):
            log_conversation_event(logger, "created", "s1", authenticated=False)

        record = caplog.records[0]
        assert record.conversation_event_type == "created"
        assert record.session_id == "s1"

    def test_execution_time_reraises(self, caplog):
        logger = logging.getLogger("test.timing")
        with caplog.at_level(logging.DEBUG, logger="test.timing"):
            with pytest.raises(RuntimeError):
                with log_execution_time(logger, "work"):
                    raise RuntimeError("failed")

        assert caplog.records[-1].status == "error"
        assert caplog.records[-1].error_type == "RuntimeError"


class TestLoggingSetup:
    """Test process-wide logging initialization"""

    @pytest.fixture(autouse=True)
    def _restore_root(self, monkeypatch):
        root = logging.getLogger()
        # pytest installs its own capture handlers per phase; leave those to pytest
        handlers = [h for h in root.handlers if not type(h).__module__.startswith("_pytest")]
        level = root.level
        monkeypatch.setattr(logging_service, "_logger_setup", False)
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_initialize_installs_structured_console(self, config):
        config.debug = False

        initialize_logging(config)

        status = get_logging_status()
        assert status["initialized"] is True
        assert status["handlers"] == ["StreamHandler"]
        assert isinstance(logging.getLogger().handlers[0].formatter, StructuredFormatter)

    def test_initialize_runs_once(self, config):
        config.debug = False
        initialize_logging(config)
        marker = logging.NullHandler()
        logging.getLogger().addHandler(marker)

        initialize_logging(config)

        assert marker in logging.getLogger().handlers
