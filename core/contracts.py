# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# STATUS: Foundation - Core enums shared by engine, tools and services
# PURPOSE: Define status enums for workflow runs and steps
# CREATED: 19 OCT 2026
# EXPORTS: ExecutionStatus, StepStatus, ValidationMode
# ============================================================================
"""
Base contracts for the workflow engine.

These enums cross every boundary of the engine:
- Orchestrator state machine
- Per-step results reported to callers
- Validator mode selection
"""

from enum import Enum


# ============================================================================
# STATUS ENUMS
# ============================================================================

class ExecutionStatus(str, Enum):
    """
    Workflow run lifecycle states.

    State transitions:
        VALIDATING -> PLANNING -> EXECUTING -> COMPLETED
                                            -> FAILED
                                            -> CANCELLED
        VALIDATING -> FAILED (invalid document)
        PLANNING   -> PLANNED (dry run)
    """
    VALIDATING = "validating"
    PLANNING = "planning"
    PLANNED = "planned"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    def is_terminal(self) -> bool:
        """Check if this is a terminal state (no further transitions)."""
        return self in (
            ExecutionStatus.PLANNED,
            ExecutionStatus.COMPLETED,
            ExecutionStatus.FAILED,
            ExecutionStatus.CANCELLED,
        )


class StepStatus(str, Enum):
    """
    Final state of a single step within a run.

    Skipped is not a failure: the step's condition was falsy, its
    conditional branch was not taken, or a required dependency was skipped.
    """
    COMPLETED = "completed"
    SKIPPED = "skipped"
    ERROR = "error"

    def is_successful(self) -> bool:
        """Check if this represents a non-error outcome."""
        return self in (StepStatus.COMPLETED, StepStatus.SKIPPED)


class ValidationMode(str, Enum):
    """
    Validator strictness.

    STRICT rejects any violation (workflow must not execute).
    DRAFT downgrades in-progress incompleteness to warnings.
    """
    STRICT = "strict"
    DRAFT = "draft"


__all__ = [
    "ExecutionStatus",
    "StepStatus",
    "ValidationMode",
]
