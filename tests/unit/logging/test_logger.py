"""Unit tests for FlowLogger."""

import io
import json

import pytest

from flowhub_core.errors import create_error
from flowhub_core.logging import FlowLogger, LogConfig
from flowhub_core.types import LogFormat, LogLevel


def _lines(output: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in output.getvalue().splitlines() if line]


class TestFlowLogger:
    """Tests for the root logger."""

    def test_json_format(self):
        output = io.StringIO()
        logger = FlowLogger(LogConfig(format=LogFormat.JSON, output=output))

        logger._log(LogLevel.INFO, "hub", "Pause registered", {"pause_id": "p1"})

        (entry,) = _lines(output)
        assert entry["level"] == "INFO"
        assert entry["component"] == "hub"
        assert entry["message"] == "Pause registered"
        assert entry["pause_id"] == "p1"
        assert entry["timestamp"].endswith("Z")

    def test_level_filtering(self):
        output = io.StringIO()
        logger = FlowLogger(LogConfig(level=LogLevel.WARN, format=LogFormat.JSON, output=output))

        logger._log(LogLevel.DEBUG, "run", "hidden")
        logger._log(LogLevel.INFO, "run", "hidden")
        logger._log(LogLevel.ERROR, "run", "shown")

        assert [entry["message"] for entry in _lines(output)] == ["shown"]

    def test_component_toggle(self):
        output = io.StringIO()
        config = LogConfig(format=LogFormat.JSON, output=output)
        config.components["queue"] = False
        logger = FlowLogger(config)

        logger._log(LogLevel.INFO, "queue", "hidden")
        logger._log(LogLevel.INFO, "run", "shown")

        assert [entry["component"] for entry in _lines(output)] == ["run"]

    def test_colored_format(self):
        output = io.StringIO()
        logger = FlowLogger(LogConfig(format=LogFormat.COLORED, output=output))

        logger._log(LogLevel.INFO, "trigger", "Trigger fired")

        assert "[TRIGGER]" in output.getvalue()
        assert "Trigger fired" in output.getvalue()

    def test_truncate(self):
        logger = FlowLogger(LogConfig(truncate_at=5))
        assert logger._truncate("abcdefgh") == "abcde..."

    def test_configure_replaces_config(self):
        logger = FlowLogger()
        config = LogConfig(level=LogLevel.ERROR)
        logger.configure(config)
        assert logger.config is config


class TestScopedLoggers:
    """Tests for RunLogger and NodeLogger."""

    @pytest.fixture
    def output(self):
        return io.StringIO()

    @pytest.fixture
    def run_logger(self, output):
        logger = FlowLogger(LogConfig(level=LogLevel.DEBUG, format=LogFormat.JSON, output=output))
        return logger.run("flow-1", "wf-1")

    def test_run_events_carry_context(self, run_logger, output):
        run_logger.started(3)
        run_logger.paused("p1")
        run_logger.resumed("p1")
        run_logger.completed(1500, 3)

        entries = _lines(output)
        assert [entry["event"] for entry in entries] == [
            "run_started",
            "run_paused",
            "run_resumed",
            "run_completed",
        ]
        assert all(entry["flow_instance_id"] == "flow-1" for entry in entries)
        assert all(entry["workflow_id"] == "wf-1" for entry in entries)
        assert entries[1]["pause_id"] == "p1"

    def test_run_failed_is_error(self, run_logger, output):
        run_logger.failed(create_error("UNKNOWN_NODE", node_id="x"), 10)

        (entry,) = _lines(output)
        assert entry["level"] == "ERROR"
        assert entry["error_type"] == "FlowError"

    def test_run_cancelled_is_warning(self, run_logger, output):
        run_logger.cancelled(2)
        (entry,) = _lines(output)
        assert entry["level"] == "WARN"
        assert entry["step_count"] == 2

    def test_node_events(self, run_logger, output):
        node = run_logger.node("text.analysis.sentiment")
        node.started({"text": "great"})
        node.completed(12, "positive", "positive")
        node.branched("positive")

        entries = _lines(output)
        assert all(entry["component"] == "node" for entry in entries)
        assert all(entry["node_id"] == "text.analysis.sentiment" for entry in entries)
        assert entries[1]["edge"] == "positive"
        assert "-> positive" in entries[1]["message"]

    def test_node_failed_routed_is_warning(self, run_logger, output):
        node = run_logger.node("n1")
        node.failed(ValueError("bad"), routed_to_error_edge=True)
        node.failed(ValueError("bad"))

        first, second = _lines(output)
        assert first["level"] == "WARN"
        assert "routed to 'error' edge" in first["message"]
        assert second["level"] == "ERROR"
