# ============================================================================
# ENGINE ERRORS
# ============================================================================
# STATUS: Core - Error taxonomy for validation, planning and execution
# PURPOSE: Structured exceptions raised by the workflow engine
# CREATED: 19 OCT 2026
# ============================================================================
"""
Engine Errors

Taxonomy:
- WorkflowValidationError: structural problems, always fatal before a run
- CycleError: the dependency graph has a cycle (planner refuses a short plan)
- StepError: one step failed; fatal unless the step has continueOnError
- LoopBoundError: iteration count exceeds the cap; always fatal
- ExpressionError: malformed template expression
- WorkflowExecutionError: the run failed, carries the partial result

Skipped steps are not errors and never raise.
"""

from typing import Any, List, Optional, Sequence


class WorkflowError(Exception):
    """Base class for all workflow engine errors."""
    pass


class WorkflowValidationError(WorkflowError):
    """Raised when a workflow document fails validation."""

    def __init__(self, errors: Sequence[str], message: Optional[str] = None):
        self.errors = list(errors)
        if message is None:
            message = f"Workflow validation failed with {len(self.errors)} error(s): " + "; ".join(self.errors)
        super().__init__(message)


class InputValidationError(WorkflowValidationError):
    """Raised when caller-supplied inputs do not satisfy the input schema."""
    pass


class CycleError(WorkflowError):
    """
    Raised when no step is ready while steps remain to be planned.

    Attributes:
        partial_layers: Layers computed before the cycle blocked progress
        remaining: Step IDs that could not be placed
    """

    def __init__(self, partial_layers: List[List[str]], remaining: List[str]):
        self.partial_layers = partial_layers
        self.remaining = remaining
        super().__init__(f"Cycle detected involving steps: {remaining}")


class ExpressionError(WorkflowError):
    """Raised when an expression cannot be parsed."""

    def __init__(self, expression: str, message: str, position: Optional[int] = None):
        self.expression = expression
        self.position = position
        where = f" at position {position}" if position is not None else ""
        super().__init__(f"Invalid expression '{expression}'{where}: {message}")


class ContextWriteError(WorkflowError):
    """Raised when a context key is written twice."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Context key '{key}' is already set")


class StepError(WorkflowError):
    """Raised when a single step fails."""

    def __init__(self, step_id: str, message: str, cause: Optional[BaseException] = None):
        self.step_id = step_id
        self.message = message
        self.cause = cause
        super().__init__(f"Step '{step_id}' failed: {message}")


class LoopBoundError(StepError):
    """Raised when a loop would run more iterations than allowed."""

    def __init__(self, step_id: str, count: int, max_iterations: int):
        self.count = count
        self.max_iterations = max_iterations
        super().__init__(
            step_id,
            f"{count} items exceed maxIterations ({max_iterations})",
        )


class WorkflowExecutionError(WorkflowError):
    """
    Raised when a run fails.

    Attributes:
        step_id: The step that caused the failure (None for run-level errors)
        result: Partial ExecutionResult with everything recorded so far
    """

    def __init__(self, message: str, step_id: Optional[str] = None, result: Any = None):
        self.step_id = step_id
        self.result = result
        super().__init__(message)


class ExecutionBudgetError(WorkflowExecutionError):
    """Raised when a run exceeds its wall-clock budget."""
    pass


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "WorkflowError",
    "WorkflowValidationError",
    "InputValidationError",
    "CycleError",
    "ExpressionError",
    "ContextWriteError",
    "StepError",
    "LoopBoundError",
    "WorkflowExecutionError",
    "ExecutionBudgetError",
]
