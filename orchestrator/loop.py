# ============================================================================
# WORKFLOW ORCHESTRATOR
# ============================================================================
# STATUS: Core - Top-level execution loop
# PURPOSE: Validate, plan and run a workflow layer by layer
# CREATED: 19 OCT 2026
# ============================================================================
"""
Workflow Orchestrator

The execution loop:
1. Validate the document (strict) and the caller's inputs
2. Build the dependency graph and layered plan once
3. Walk layers in order; within a layer, steps run one after another
   in authoring order
4. Per step: cascade-skip, execute, record, emit progress
5. Resolve the workflow's output expression against the final context

State machine per run:
    validating -> planning -> executing -> completed | failed | cancelled

Steps inside a layer run sequentially so calls to rate-limited
collaborators stay bounded and progress events arrive in a stable order.

Cancellation (an asyncio.Event) is honoured at layer boundaries, between
steps and between loop iterations. A wall-clock budget, when set, is
checked between steps.
"""

import asyncio
import inspect
import json
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from core.config import EngineDefaults, get_defaults
from core.contracts import ExecutionStatus, StepStatus
from core.logging import ComponentType, get_logger, log_checkpoint, log_context
from core.models import (
    ExecutionResult,
    StepDefinition,
    StepResult,
    WorkflowDefinition,
    summarize_payload,
)
from orchestrator.engine.context import ExecutionContext
from orchestrator.engine.errors import (
    CycleError,
    ExecutionBudgetError,
    InputValidationError,
    LoopBoundError,
    StepError,
    WorkflowExecutionError,
    WorkflowValidationError,
)
from orchestrator.engine.evaluator import (
    DependencyGraph,
    build_dependency_graph,
    build_execution_plan,
)
from orchestrator.engine.executor import ExecutionRuntime, StepExecutor
from orchestrator.engine.templates import get_resolver
from orchestrator.engine.validator import validate_workflow
from tools.registry import ToolCollaborator

logger = get_logger(__name__, ComponentType.ORCHESTRATOR)


# ============================================================================
# PROGRESS CALLBACKS
# ============================================================================

@dataclass
class ProgressCallbacks:
    """
    Progress sink for live UIs. Each callback may be sync or async.

    on_step_start(step_id, step)            step is the StepDefinition
    on_step_complete(step_id, summary, time_ms)
    on_step_skip(step_id, reason)
    on_step_error(step_id, message)

    summary is a size-bounded copy of the step output; the full output
    stays in the run's context.
    """
    on_step_start: Optional[Callable[..., Any]] = None
    on_step_complete: Optional[Callable[..., Any]] = None
    on_step_skip: Optional[Callable[..., Any]] = None
    on_step_error: Optional[Callable[..., Any]] = None

    async def emit(self, event: str, *args: Any) -> None:
        callback = getattr(self, event)
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            # Fire-and-forget - log but don't raise
            logger.warning(f"Progress callback {event} failed: {e}")


# ============================================================================
# INPUT PREPARATION
# ============================================================================

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off"}


def _article(input_type: str) -> str:
    return f"an {input_type}" if input_type[0] in "aeiou" else f"a {input_type}"


def coerce_input(name: str, input_type: str, value: Any) -> Any:
    """
    Coerce a caller-supplied value to its declared type.

    Strings are accepted for every type (command-line and query-string
    callers only have strings).

    Raises:
        ValueError: If the value cannot be coerced
    """
    if input_type == "string":
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return value if isinstance(value, str) else str(value)

    if input_type in ("number", "integer"):
        if isinstance(value, bool):
            raise ValueError(f"Input '{name}' must be {_article(input_type)}, got boolean")
        if isinstance(value, str):
            try:
                value = float(value) if any(c in value for c in ".eE") else int(value)
            except ValueError:
                raise ValueError(f"Input '{name}' must be {_article(input_type)}, got '{value}'")
        if not isinstance(value, (int, float)):
            raise ValueError(f"Input '{name}' must be {_article(input_type)}, got {type(value).__name__}")
        if input_type == "integer":
            if isinstance(value, float) and not value.is_integer():
                raise ValueError(f"Input '{name}' must be an integer, got {value}")
            return int(value)
        return value

    if input_type == "boolean":
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in _TRUE_STRINGS:
            return True
        if isinstance(value, str) and value.strip().lower() in _FALSE_STRINGS:
            return False
        raise ValueError(f"Input '{name}' must be a boolean, got {value!r}")

    expected = list if input_type == "array" else dict
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            raise ValueError(f"Input '{name}' must be {_article(input_type)} (JSON), got '{value}'")
    if not isinstance(value, expected):
        raise ValueError(f"Input '{name}' must be {_article(input_type)}, got {type(value).__name__}")
    return value


def prepare_inputs(
    definition: WorkflowDefinition,
    inputs: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Merge caller inputs over workflow and schema defaults.

    Undeclared inputs pass through unchanged.

    Raises:
        InputValidationError: Missing required inputs or bad values
    """
    provided = dict(inputs or {})
    resolved: Dict[str, Any] = dict(definition.defaults)
    errors = []

    for name, spec in definition.inputs.items():
        value = provided.get(name)
        if value is not None:
            try:
                resolved[name] = coerce_input(name, spec.type, value)
            except ValueError as e:
                errors.append(str(e))
        elif spec.has_default:
            resolved[name] = spec.default
        elif spec.required:
            errors.append(f"Missing required input '{name}'")

    for name, value in provided.items():
        if name not in definition.inputs:
            resolved[name] = value

    if errors:
        raise InputValidationError(errors, f"Invalid workflow inputs: {'; '.join(errors)}")
    return resolved


# ============================================================================
# ORCHESTRATOR
# ============================================================================

class WorkflowOrchestrator:
    """
    Runs workflows against a tool collaborator.

    One instance can serve many runs, including concurrent ones; every
    run owns its own ExecutionContext.

    Usage:
        orchestrator = WorkflowOrchestrator(tools=registry)
        result = await orchestrator.execute(definition, inputs={"query": "rag"})
    """

    def __init__(
        self,
        tools: Optional[ToolCollaborator] = None,
        defaults: Optional[EngineDefaults] = None,
    ):
        self.defaults = defaults or get_defaults().engine
        self.executor = StepExecutor(tools)

    async def execute(
        self,
        definition: Union[WorkflowDefinition, Dict[str, Any]],
        inputs: Optional[Dict[str, Any]] = None,
        callbacks: Optional[ProgressCallbacks] = None,
        cancel_event: Optional[asyncio.Event] = None,
        time_budget_seconds: Optional[float] = None,
        dry_run: bool = False,
        run_id: Optional[str] = None,
    ) -> ExecutionResult:
        """
        Execute a workflow.

        Args:
            definition: WorkflowDefinition or raw document
            inputs: Caller inputs
            callbacks: Progress sink
            cancel_event: Set to cancel the run cooperatively
            time_budget_seconds: Wall-clock budget (defaults from config)
            dry_run: Validate and plan only
            run_id: Optional run identifier (generated when omitted)

        Returns:
            ExecutionResult (completed, planned or cancelled)

        Raises:
            WorkflowValidationError: Invalid document (run never starts)
            InputValidationError: Missing or malformed inputs
            WorkflowExecutionError: A step failed without continueOnError,
                or the time budget ran out; carries the partial result
        """
        callbacks = callbacks or ProgressCallbacks()
        run_id = run_id or f"run-{uuid.uuid4().hex[:12]}"
        started = time.perf_counter()

        # VALIDATING
        definition = self._load(definition)

        with log_context(workflow=definition.name, run_id=run_id, component="orchestrator"):
            resolved_inputs = prepare_inputs(definition, inputs)

            # PLANNING
            graph = build_dependency_graph(definition)
            try:
                plan = build_execution_plan(graph)
            except CycleError as e:
                raise WorkflowValidationError([str(e)])

            result = ExecutionResult(
                workflow=definition.name,
                run_id=run_id,
                status=ExecutionStatus.PLANNING,
                layers=plan.to_list(),
                inputs=resolved_inputs,
                dry_run=dry_run,
            )
            log_checkpoint("workflow_planned", {"layers": len(plan), "steps": plan.step_count})

            if dry_run:
                result.status = ExecutionStatus.PLANNED
                result.total_time_ms = _elapsed_ms(started)
                return result

            # EXECUTING
            result.status = ExecutionStatus.EXECUTING
            context = ExecutionContext(inputs=resolved_inputs, defaults=definition.defaults)
            runtime = ExecutionRuntime(
                workflow=definition.name,
                run_id=run_id,
                cancel_event=cancel_event,
                max_iterations=self.defaults.max_iterations,
            )
            budget = time_budget_seconds
            if budget is None:
                budget = self.defaults.time_budget_seconds
            deadline = time.monotonic() + budget if budget is not None else None

            steps = definition.step_map()
            log_checkpoint("workflow_started", {"inputs": sorted(resolved_inputs)})

            for layer_index, layer in enumerate(plan.layers):
                if runtime.cancelled:
                    return self._cancelled(result, context, started)

                logger.debug(f"Executing layer {layer_index}: {layer}")
                log_checkpoint("layer_started", {"layer": layer_index, "steps": layer})

                for step_id in layer:
                    if runtime.cancelled:
                        return self._cancelled(result, context, started)
                    if deadline is not None and time.monotonic() > deadline:
                        self._finish(result, context, started, ExecutionStatus.FAILED)
                        result.error = f"Time budget of {budget}s exceeded"
                        log_checkpoint("workflow_budget_exceeded", {"before_step": step_id})
                        raise ExecutionBudgetError(result.error, step_id=step_id, result=result)

                    await self._run_step(steps[step_id], graph, context, runtime, result, callbacks, started)

            if runtime.cancelled:
                return self._cancelled(result, context, started)

            result.output = self._resolve_output(definition, context)
            self._finish(result, context, started, ExecutionStatus.COMPLETED)
            log_checkpoint("workflow_completed", {
                "steps": len(result.steps),
                "total_time_ms": result.total_time_ms,
            })
            return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _run_step(
        self,
        step: StepDefinition,
        graph: DependencyGraph,
        context: ExecutionContext,
        runtime: ExecutionRuntime,
        result: ExecutionResult,
        callbacks: ProgressCallbacks,
        started: float,
    ) -> None:
        with log_context(step_id=step.id, tool=step.tool.value):
            reason = self._cascade_reason(step, graph, context)
            if reason is not None:
                context.record_skip(step.id, reason)
                result.steps.append(StepResult(step.id, step.tool.value, StepStatus.SKIPPED, reason=reason))
                logger.info(f"Skipped step '{step.id}': {reason}")
                await callbacks.emit("on_step_skip", step.id, reason)
                return

            await callbacks.emit("on_step_start", step.id, step)
            step_started = time.perf_counter()

            try:
                outcome = await self.executor.execute(step, context, runtime)
            except StepError as e:
                time_ms = _elapsed_ms(step_started)
                context.record_error(step.id, e.message)
                result.steps.append(StepResult(
                    step.id, step.tool.value, StepStatus.ERROR, time_ms=time_ms, error=e.message,
                ))
                logger.warning(f"Step '{step.id}' failed: {e.message}")
                await callbacks.emit("on_step_error", step.id, e.message)

                # LoopBoundError is a configuration error and always fatal
                if isinstance(e, LoopBoundError) or not step.continue_on_error:
                    self._finish(result, context, started, ExecutionStatus.FAILED)
                    result.error = str(e)
                    log_checkpoint("workflow_failed", {"step": step.id, "error": e.message})
                    raise WorkflowExecutionError(str(e), step_id=step.id, result=result) from e
                return

            if outcome.status == StepStatus.SKIPPED:
                result.steps.append(StepResult(
                    step.id, step.tool.value, StepStatus.SKIPPED,
                    time_ms=outcome.time_ms, reason=outcome.reason,
                ))
                logger.info(f"Skipped step '{step.id}': {outcome.reason}")
                await callbacks.emit("on_step_skip", step.id, outcome.reason)
                return

            summary = summarize_payload(
                outcome.output,
                max_items=self.defaults.event_payload_max_items,
                max_chars=self.defaults.event_payload_max_chars,
            )
            result.steps.append(StepResult(
                step.id, step.tool.value, StepStatus.COMPLETED,
                time_ms=outcome.time_ms, summary=summary,
            ))
            log_checkpoint("step_completed", {"time_ms": outcome.time_ms})
            await callbacks.emit("on_step_complete", step.id, summary, outcome.time_ms)

    @staticmethod
    def _cascade_reason(
        step: StepDefinition,
        graph: DependencyGraph,
        context: ExecutionContext,
    ) -> Optional[str]:
        """Return why a step must be skipped before it runs, or None."""
        for dependency in graph.steps:
            if dependency not in graph.required[step.id]:
                continue
            # errored dependencies do not cascade; dependents see the error marker
            if context.is_skipped(dependency):
                return f"dependency '{dependency}' was skipped"

        gates = graph.gates[step.id]
        if gates:
            for gate in gates:
                output = context.output_of(gate)
                if isinstance(output, dict) and step.id in (output.get("enabled") or []):
                    return None
            names = ", ".join(sorted(gates))
            return f"not enabled by conditional '{names}'"
        return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _load(definition: Union[WorkflowDefinition, Dict[str, Any]]) -> WorkflowDefinition:
        """Strict validation; the run never starts on any error."""
        if isinstance(definition, WorkflowDefinition):
            errors = validate_workflow(definition)
            if errors:
                raise WorkflowValidationError(errors)
            return definition
        return WorkflowDefinition.from_document(definition)

    @staticmethod
    def _resolve_output(definition: WorkflowDefinition, context: ExecutionContext) -> Any:
        if definition.output is None:
            return context.step_outputs()
        return get_resolver().resolve(definition.output, context)

    def _cancelled(
        self,
        result: ExecutionResult,
        context: ExecutionContext,
        started: float,
    ) -> ExecutionResult:
        self._finish(result, context, started, ExecutionStatus.CANCELLED)
        logger.info(f"Run cancelled after {len(result.steps)} step(s)")
        log_checkpoint("workflow_cancelled", {"steps": len(result.steps)})
        return result

    @staticmethod
    def _finish(
        result: ExecutionResult,
        context: ExecutionContext,
        started: float,
        status: ExecutionStatus,
    ) -> None:
        result.status = status
        result.outputs = context.snapshot()
        result.total_time_ms = _elapsed_ms(started)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

async def execute_workflow(
    definition: Union[WorkflowDefinition, Dict[str, Any]],
    *,
    inputs: Optional[Dict[str, Any]] = None,
    tools: Optional[ToolCollaborator] = None,
    on_step_start: Optional[Callable[..., Any]] = None,
    on_step_complete: Optional[Callable[..., Any]] = None,
    on_step_skip: Optional[Callable[..., Any]] = None,
    on_step_error: Optional[Callable[..., Any]] = None,
    cancel_event: Optional[asyncio.Event] = None,
    time_budget_seconds: Optional[float] = None,
    dry_run: bool = False,
) -> ExecutionResult:
    """
    Execute a workflow with a one-off orchestrator.

    See WorkflowOrchestrator.execute for arguments and errors.
    """
    orchestrator = WorkflowOrchestrator(tools=tools)
    callbacks = ProgressCallbacks(
        on_step_start=on_step_start,
        on_step_complete=on_step_complete,
        on_step_skip=on_step_skip,
        on_step_error=on_step_error,
    )
    return await orchestrator.execute(
        definition,
        inputs=inputs,
        callbacks=callbacks,
        cancel_event=cancel_event,
        time_budget_seconds=time_budget_seconds,
        dry_run=dry_run,
    )


__all__ = [
    "WorkflowOrchestrator",
    "ProgressCallbacks",
    "execute_workflow",
    "prepare_inputs",
    "coerce_input",
]
