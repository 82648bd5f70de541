# ============================================================================
# ORCHESTRATOR ENGINE
# ============================================================================
# STATUS: Core - Engine components
# PURPOSE: Expressions, templates, graph planning, validation, step execution
# CREATED: 19 OCT 2026
# ============================================================================
"""
Orchestrator Engine Components

- expressions: restricted expression language (AST, no eval)
- templates: {{ }} template resolution over step inputs
- context: write-once per-run value store
- evaluator: dependency graph, Kahn layering, workflow description
- validator: strict / draft document validation
- control_flow: conditional, loop, merge, filter, transform, template
- executor: single-step execution and tool dispatch
- errors: engine error taxonomy
"""

from orchestrator.engine.errors import (
    WorkflowError,
    WorkflowValidationError,
    InputValidationError,
    CycleError,
    ExpressionError,
    ContextWriteError,
    StepError,
    LoopBoundError,
    WorkflowExecutionError,
    ExecutionBudgetError,
)
from orchestrator.engine.expressions import (
    parse_expression,
    evaluate_condition,
    evaluate_expression,
    extract_references,
)
from orchestrator.engine.context import ExecutionContext, RESERVED_ROOTS
from orchestrator.engine.templates import (
    TemplateResolver,
    get_resolver,
    resolve_params,
)
from orchestrator.engine.evaluator import (
    DependencyGraph,
    ExecutionPlan,
    GraphBuilder,
    ExecutionPlanner,
    find_cycle,
    build_dependency_graph,
    build_execution_plan,
    describe_workflow,
)
from orchestrator.engine.validator import (
    ValidationReport,
    WorkflowValidator,
    validate_workflow,
)
from orchestrator.engine.control_flow import ControlFlowRunner
from orchestrator.engine.executor import (
    ExecutionRuntime,
    StepExecutor,
    StepOutcome,
)

__all__ = [
    # Errors
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
    # Expressions
    "parse_expression",
    "evaluate_condition",
    "evaluate_expression",
    "extract_references",
    # Context
    "ExecutionContext",
    "RESERVED_ROOTS",
    # Templates
    "TemplateResolver",
    "get_resolver",
    "resolve_params",
    # Graph / plan
    "DependencyGraph",
    "ExecutionPlan",
    "GraphBuilder",
    "ExecutionPlanner",
    "find_cycle",
    "build_dependency_graph",
    "build_execution_plan",
    "describe_workflow",
    # Validation
    "ValidationReport",
    "WorkflowValidator",
    "validate_workflow",
    # Execution
    "ControlFlowRunner",
    "ExecutionRuntime",
    "StepExecutor",
    "StepOutcome",
]
