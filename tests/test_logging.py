# ============================================================================
# LOGGING TESTS
# ============================================================================
# STATUS: Tests - Structured logging
# PURPOSE: Verify log context nesting, isolation, formatters and checkpoints
# CREATED: 19 OCT 2026
# ============================================================================
"""
Logging Tests

Run with:
    pytest tests/test_logging.py -v
"""

import asyncio
import json
import logging

from core.logging import (
    ComponentType,
    HumanFormatter,
    StructuredFormatter,
    get_current_context,
    get_logger,
    log_checkpoint,
    log_context,
)


def make_record(message="hello", extra=None):
    record = logging.LogRecord("orchestrator.loop", logging.INFO, __file__, 10, message, None, None)
    if extra is not None:
        record.extra = extra
    return record


class TestLogContext:
    """Nested context managers."""

    def test_nesting_inherits_parent(self):
        with log_context(workflow="wf", run_id="run-1"):
            with log_context(step_id="search"):
                context = get_current_context()
                assert context.workflow == "wf"
                assert context.step_id == "search"
            assert get_current_context().step_id is None
        assert get_current_context().workflow is None

    def test_to_dict_drops_empty_fields(self):
        with log_context(run_id="run-1", extra={"attempt": 2}):
            assert get_current_context().to_dict() == {"run_id": "run-1", "attempt": 2}

    def test_concurrent_tasks_are_isolated(self):
        async def task(run_id):
            with log_context(run_id=run_id):
                await asyncio.sleep(0.01)
                return get_current_context().run_id

        async def both():
            return await asyncio.gather(task("run-a"), task("run-b"))

        assert asyncio.run(both()) == ["run-a", "run-b"]


class TestFormatters:
    """JSON and human output."""

    def test_structured_formatter(self):
        with log_context(workflow="wf", step_id="search"):
            line = StructuredFormatter().format(make_record(extra={"k": 1}))
        data = json.loads(line)
        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["logger"] == "orchestrator.loop"
        assert data["context"] == {"workflow": "wf", "step_id": "search"}
        assert data["data"] == {"k": 1}
        assert data["timestamp"].endswith("Z")

    def test_structured_formatter_without_optional_fields(self):
        formatter = StructuredFormatter(include_timestamp=False, include_context=False)
        with log_context(workflow="wf"):
            data = json.loads(formatter.format(make_record()))
        assert "timestamp" not in data
        assert "context" not in data

    def test_human_formatter(self):
        with log_context(workflow="wf", run_id="run-1", step_id="search"):
            line = HumanFormatter().format(make_record())
        assert "INFO" in line
        assert "[workflow=wf, run=run-1, step=search]" in line
        assert line.endswith("orchestrator.loop [workflow=wf, run=run-1, step=search]: hello")


class TestLoggers:
    """Context logger and checkpoints."""

    def test_context_logger_attaches_context(self, caplog):
        logger = get_logger("tests.logging", ComponentType.ENGINE)
        with caplog.at_level(logging.INFO, logger="tests.logging"):
            with log_context(run_id="run-1"):
                logger.info("planned")
        record = caplog.records[-1]
        assert record.getMessage() == "planned"
        assert record.extra == {"run_id": "run-1"}

    def test_checkpoint(self, caplog):
        with caplog.at_level(logging.INFO, logger="checkpoint"):
            with log_context(workflow="wf", run_id="run-1"):
                log_checkpoint("workflow_started", {"inputs": ["q"]})
        record = caplog.records[-1]
        assert record.getMessage() == "CHECKPOINT: workflow_started"
        assert record.extra["checkpoint"] == "workflow_started"
        assert record.extra["workflow"] == "wf"
        assert record.extra["data"] == {"inputs": ["q"]}
