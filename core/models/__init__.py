# ============================================================================
# MODELS MODULE
# ============================================================================
# STATUS: Model exports
# PURPOSE: Central export point for workflow and execution models
# CREATED: 19 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

- workflow: pydantic models for the authored document (immutable)
- execution: dataclasses for per-run results (discarded after use)
"""

from core.models.workflow import (
    ENGINE_NATIVE_TOOLS,
    INPUT_TYPES,
    DEFERRED_INPUTS,
    EXPRESSION_INPUTS,
    NO_INPUT_TOOLS,
    TOOL_CATEGORIES,
    InputDefinition,
    StepDefinition,
    ToolCategory,
    ToolName,
    WorkflowDefinition,
)
from core.models.execution import ExecutionResult, StepResult, summarize_payload

__all__ = [
    # Workflow
    "WorkflowDefinition",
    "StepDefinition",
    "InputDefinition",
    "ToolName",
    "ToolCategory",
    "TOOL_CATEGORIES",
    "ENGINE_NATIVE_TOOLS",
    "INPUT_TYPES",
    "EXPRESSION_INPUTS",
    "DEFERRED_INPUTS",
    "NO_INPUT_TOOLS",
    # Execution
    "ExecutionResult",
    "StepResult",
    "summarize_payload",
]
