# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for loop bounds, event payloads, budgets
# CREATED: 19 OCT 2026
# ============================================================================
"""
Configuration Defaults

Provides sensible defaults for the workflow engine and bundled tools.
These can be overridden via environment variables or constructor arguments.

Design:
- Immutable dataclasses for defaults
- Environment variable overrides
- Type-safe access
"""

import os
from dataclasses import dataclass, field
from typing import Optional


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or value.strip() == "":
        return None
    return float(value)


@dataclass(frozen=True)
class EngineDefaults:
    """
    Defaults for the execution engine.

    Controls loop bounds, event payload size and the run budget.
    """
    # Hard cap for loop steps without maxIterations and for forEach steps
    max_iterations: int = 100

    # Emitted step payloads are truncated to these bounds (context is not)
    event_payload_max_items: int = 10
    event_payload_max_chars: int = 2000

    # Wall-clock budget for a whole run, checked between steps (None = off)
    time_budget_seconds: Optional[float] = None

    # Directory the workflow service loads named workflows from
    workflows_dir: str = "./workflows"

    @classmethod
    def from_env(cls) -> "EngineDefaults":
        """Create from environment variables."""
        return cls(
            max_iterations=int(os.getenv("WORKFLOW_MAX_ITERATIONS", 100)),
            event_payload_max_items=int(os.getenv("WORKFLOW_EVENT_MAX_ITEMS", 10)),
            event_payload_max_chars=int(os.getenv("WORKFLOW_EVENT_MAX_CHARS", 2000)),
            time_budget_seconds=_optional_float(os.getenv("WORKFLOW_TIME_BUDGET_SECONDS")),
            workflows_dir=os.getenv("WORKFLOWS_DIR", "./workflows"),
        )


@dataclass(frozen=True)
class HttpToolDefaults:
    """
    Defaults for the bundled http tool.
    """
    timeout_seconds: float = 30.0
    user_agent: str = "workflow-engine-http-tool"
    max_body_chars: int = 100_000
    follow_redirects: bool = True

    @classmethod
    def from_env(cls) -> "HttpToolDefaults":
        """Create from environment variables."""
        return cls(
            timeout_seconds=float(os.getenv("HTTP_TOOL_TIMEOUT_SECONDS", 30.0)),
            user_agent=os.getenv("HTTP_TOOL_USER_AGENT", "workflow-engine-http-tool"),
            max_body_chars=int(os.getenv("HTTP_TOOL_MAX_BODY_CHARS", 100_000)),
        )


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

@dataclass
class Defaults:
    """Container for all default configurations."""
    engine: EngineDefaults = field(default_factory=EngineDefaults)
    http: HttpToolDefaults = field(default_factory=HttpToolDefaults)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            engine=EngineDefaults.from_env(),
            http=HttpToolDefaults.from_env(),
        )


_defaults: Optional[Defaults] = None


def get_defaults() -> Defaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = Defaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "EngineDefaults",
    "HttpToolDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
