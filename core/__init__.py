# ============================================================================
# CORE MODULE
# ============================================================================
# STATUS: Core module initialization
# PURPOSE: Export core contracts and models
# CREATED: 19 OCT 2026
# ============================================================================

from core.contracts import ExecutionStatus, StepStatus, ValidationMode
from core.models import (
    ExecutionResult,
    InputDefinition,
    StepDefinition,
    StepResult,
    ToolCategory,
    ToolName,
    WorkflowDefinition,
)

__all__ = [
    # Enums
    "ExecutionStatus",
    "StepStatus",
    "ValidationMode",
    "ToolName",
    "ToolCategory",
    # Models
    "WorkflowDefinition",
    "StepDefinition",
    "InputDefinition",
    "ExecutionResult",
    "StepResult",
]
