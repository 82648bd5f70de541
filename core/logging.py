# ============================================================================
# STRUCTURED LOGGING
# ============================================================================
# STATUS: Core - Structured logging with run context
# PURPOSE: Consistent, queryable logging across engine, tools and services
# CREATED: 19 OCT 2026
# ============================================================================
"""
Structured Logging

Every log line emitted while a workflow runs can carry the run's identity
(workflow, run_id, step_id, tool). The identity lives in a ContextVar, so
two runs awaited side by side in one event loop never see each other's
fields.

Output is human-readable by default and JSON when LOG_FORMAT=json.

Usage:
    from core.logging import get_logger, log_context

    logger = get_logger(__name__, ComponentType.ORCHESTRATOR)

    with log_context(workflow="rag-brief", run_id="run-123"):
        with log_context(step_id="search", tool="search"):
            logger.info("Dispatching step")
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Union


class ComponentType(str, Enum):
    """Which part of the engine a logger belongs to."""
    ORCHESTRATOR = "orchestrator"
    ENGINE = "engine"
    TOOL = "tool"
    SERVICE = "service"
    CLI = "cli"


# ============================================================================
# RUN CONTEXT
# ============================================================================

@dataclass(frozen=True)
class LogContext:
    """Identity fields attached to log records."""
    workflow: Optional[str] = None
    run_id: Optional[str] = None
    step_id: Optional[str] = None
    tool: Optional[str] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def merged(self, **overrides: Any) -> "LogContext":
        """Child context: overrides win, extra maps are combined."""
        extra = {**self.extra, **(overrides.pop("extra", None) or {})}
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")
        return replace(self, extra=extra, **overrides)

    def to_dict(self) -> Dict[str, Any]:
        """Set fields only, with extra flattened in."""
        data = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "extra" and getattr(self, f.name) is not None
        }
        data.update(self.extra)
        return data


_EMPTY_CONTEXT = LogContext()
_current_context: ContextVar[LogContext] = ContextVar("workflow_log_context", default=_EMPTY_CONTEXT)


def get_current_context() -> LogContext:
    """Context of the innermost active log_context block."""
    return _current_context.get()


@contextmanager
def log_context(**fields_: Any) -> Iterator[LogContext]:
    """
    Attach fields to every record logged inside the block.

    Blocks nest; inner blocks inherit the outer fields they do not set.

    Example:
        with log_context(run_id="run-123", step_id="search"):
            logger.info("Dispatching step")
    """
    context = get_current_context().merged(**fields_)
    token = _current_context.set(context)
    try:
        yield context
    finally:
        _current_context.reset(token)


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# ============================================================================
# FORMATTERS
# ============================================================================

class StructuredFormatter(logging.Formatter):
    """One JSON object per record, for log aggregators."""

    def __init__(
        self,
        include_timestamp: bool = True,
        include_level: bool = True,
        include_logger: bool = True,
        include_context: bool = True,
    ):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.include_level = include_level
        self.include_logger = include_logger
        self.include_context = include_context

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {}
        if self.include_timestamp:
            payload["timestamp"] = _utc_timestamp()
        if self.include_level:
            payload["level"] = record.levelname
        if self.include_logger:
            payload["logger"] = record.name
        payload["message"] = record.getMessage()

        if self.include_context:
            run_context = get_current_context().to_dict()
            if run_context:
                payload["context"] = run_context

        data = getattr(record, "extra", None)
        if data:
            payload["data"] = data
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        payload["source"] = {"file": record.filename, "line": record.lineno, "function": record.funcName}
        return json.dumps(payload, default=str)


# (context field, label) pairs shown inline by HumanFormatter
_INLINE_FIELDS = (("workflow", "workflow"), ("run_id", "run"), ("step_id", "step"))


class HumanFormatter(logging.Formatter):
    """
    Single-line format for terminals:

        2026-10-19 10:00:00 INFO     orchestrator.loop [workflow=wf, run=run-1]: message
    """

    def format(self, record: logging.LogRecord) -> str:
        context = get_current_context()
        labels = [
            f"{label}={getattr(context, name)}"
            for name, label in _INLINE_FIELDS
            if getattr(context, name)
        ]
        where = f" [{', '.join(labels)}]" if labels else ""

        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        line = f"{stamp} {record.levelname:<8} {record.name}{where}: {record.getMessage()}"

        data = getattr(record, "extra", None)
        if data:
            line += f" {data}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# ============================================================================
# LOGGERS
# ============================================================================

class ContextLogger(logging.LoggerAdapter):
    """
    Adapter copying the active run context onto each record.

    Caller-supplied extra fields and the context end up together in
    record.extra, which both formatters read.
    """

    def process(self, msg, kwargs):
        data = dict(kwargs.get("extra") or {})
        data.update(get_current_context().to_dict())
        kwargs["extra"] = {"extra": data}
        return msg, kwargs


def get_logger(name: str, component: Optional[ComponentType] = None) -> ContextLogger:
    """
    Context-aware logger for a module.

    Args:
        name: Logger name, usually __name__
        component: Engine component, kept on the adapter
    """
    return ContextLogger(logging.getLogger(name), {"component": component})


def configure_logging(level: Union[str, int] = "INFO", json_output: bool = False) -> None:
    """
    Install a single stderr handler on the root logger.

    stdout stays free for command output. LOG_FORMAT=json forces JSON
    output even when json_output is False.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    use_json = json_output or os.getenv("LOG_FORMAT", "").lower() == "json"
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredFormatter() if use_json else HumanFormatter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


# ============================================================================
# CHECKPOINTS
# ============================================================================

def log_checkpoint(
    name: str,
    data: Optional[Dict[str, Any]] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """
    Log a named milestone of a run (workflow_started, layer_started,
    step_completed, workflow_completed, ...).

    Records go to the "checkpoint" logger unless one is given, so a single
    logger level switches run tracing on or off.
    """
    context = get_current_context()
    marker: Dict[str, Any] = {"checkpoint": name, "timestamp": _utc_timestamp()}
    for key in ("workflow", "run_id", "step_id"):
        value = getattr(context, key)
        if value:
            marker[key] = value
    if data:
        marker["data"] = data

    (logger or logging.getLogger("checkpoint")).info(f"CHECKPOINT: {name}", extra={"extra": marker})


__all__ = [
    "ComponentType",
    "LogContext",
    "StructuredFormatter",
    "HumanFormatter",
    "ContextLogger",
    "get_logger",
    "configure_logging",
    "log_context",
    "get_current_context",
    "log_checkpoint",
]
