"""
Tests for observability — event recorders and logging setup.
"""

import logging
from pathlib import Path

import pytest

from src.core.observability.events import (
    EventRecorder,
    EventType,
    LoggingEventRecorder,
    MemoryEventRecorder,
    emit,
)
from src.core.observability.logging_config import _parse_level, resolve_level, setup_logging


class _BrokenRecorder(EventRecorder):
    def record(self, subject, event_type, reason, message):
        raise RuntimeError("sink down")


class TestEvents:
    def test_memory_recorder(self):
        recorder = MemoryEventRecorder()
        emit(recorder, "ns/demo", EventType.NORMAL, "PlanComplete", "done")
        assert recorder.events == [("ns/demo", EventType.NORMAL, "PlanComplete", "done")]
        assert recorder.reasons() == ["PlanComplete"]

    def test_emit_without_recorder(self):
        emit(None, "ns/demo", EventType.NORMAL, "PlanComplete", "done")

    def test_recorder_failure_is_swallowed(self, caplog):
        with caplog.at_level(logging.WARNING):
            emit(_BrokenRecorder(), "ns/demo", EventType.WARNING, "ExecutionError", "x")
        assert "sink down" in caplog.text

    def test_logging_recorder_levels(self, caplog):
        recorder = LoggingEventRecorder()
        with caplog.at_level(logging.INFO, logger="src.core.observability.events"):
            recorder.record("ns/demo", EventType.NORMAL, "PhaseComplete", "phase a")
            recorder.record("ns/demo", EventType.WARNING, "ExecutionError", "boom")
        levels = [r.levelno for r in caplog.records]
        assert levels == [logging.INFO, logging.WARNING]
        assert "PhaseComplete" in caplog.records[0].getMessage()


class TestLoggingConfig:
    @pytest.fixture(autouse=True)
    def _restore_root(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        for handler in root.handlers:
            if handler not in handlers:
                handler.close()
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_parse_level(self):
        assert _parse_level("debug") == logging.DEBUG
        assert _parse_level("nonsense") == logging.WARNING
        assert _parse_level(None) == logging.WARNING

    def test_resolve_level(self):
        assert resolve_level(debug=True, quiet=True) == "DEBUG"
        assert resolve_level(verbose=True) == "INFO"
        assert resolve_level(quiet=True) == "ERROR"
        assert resolve_level(environ={"PLANENGINE_LOG_LEVEL": "INFO"}) == "INFO"
        assert resolve_level(environ={}) == "WARNING"

    def test_console_level(self):
        setup_logging("INFO")
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1

    def test_file_handler(self, tmp_path: Path):
        log_file = tmp_path / "engine.log"
        setup_logging("WARNING", log_file=str(log_file), log_file_level="DEBUG")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        logging.getLogger("src.test").debug("to file only")
        for handler in root.handlers:
            handler.flush()
        assert "to file only" in log_file.read_text()

    def test_third_party_quieted(self):
        setup_logging("INFO")
        assert logging.getLogger("jinja2").level == logging.WARNING
