# ============================================================================
# STEP EXECUTOR
# ============================================================================
# STATUS: Core - Per-step execution and tool dispatch
# PURPOSE: Evaluate conditions, run implicit loops, dispatch tools
# CREATED: 19 OCT 2026
# ============================================================================
"""
Step Executor

Executes one step against an execution context:

1. A falsy `condition` skips the step (recorded, nothing dispatched)
2. `forEach` on a non-loop tool runs the tool once per item
3. Engine-native tools run in-process (ControlFlowRunner)
4. Every other tool is delegated to the injected ToolCollaborator

On success the output is recorded in the context under the step ID.
Any failure surfaces as StepError; the orchestrator decides whether the
run continues.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from core.config import get_defaults
from core.contracts import StepStatus
from core.models import DEFERRED_INPUTS, StepDefinition, ToolName
from orchestrator.engine.context import ExecutionContext
from orchestrator.engine.control_flow import ControlFlowRunner, as_items
from orchestrator.engine.errors import ExpressionError, LoopBoundError, StepError
from orchestrator.engine.expressions import evaluate_condition, evaluate_expression
from orchestrator.engine.templates import resolve_params
from tools.registry import ToolCollaborator, ToolContext, ToolError, ToolResult

logger = logging.getLogger(__name__)


@dataclass
class ExecutionRuntime:
    """Per-run settings shared by every step of one execution."""
    workflow: Optional[str] = None
    run_id: Optional[str] = None
    cancel_event: Optional[asyncio.Event] = None
    max_iterations: int = 100

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


@dataclass
class StepOutcome:
    """Result of executing one step."""
    step_id: str
    status: StepStatus
    output: Any = None
    time_ms: int = 0
    reason: Optional[str] = None


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class StepExecutor:
    """
    Executes single steps.

    Stateless between calls; one instance can serve many runs.
    """

    def __init__(self, tools: Optional[ToolCollaborator] = None):
        self.tools = tools
        self.control_flow = ControlFlowRunner(self)

    async def execute(
        self,
        step: StepDefinition,
        context: ExecutionContext,
        runtime: Optional[ExecutionRuntime] = None,
        record: bool = True,
    ) -> StepOutcome:
        """
        Execute one step.

        Args:
            step: Step definition
            context: Context to resolve against (and record into)
            runtime: Per-run settings (defaults when omitted)
            record: Write the outcome into the context (False for loop
                iterations, which run in overlays)

        Returns:
            StepOutcome (completed or skipped)

        Raises:
            StepError: If the step failed
        """
        if runtime is None:
            runtime = ExecutionRuntime(max_iterations=get_defaults().engine.max_iterations)
        started = time.perf_counter()

        if step.condition is not None:
            try:
                enabled = evaluate_condition(step.condition, context)
            except ExpressionError as e:
                raise StepError(step.id, str(e), e)

            if not enabled:
                reason = f"condition is false: {step.condition}"
                if record:
                    context.record_skip(step.id, reason)
                logger.debug(f"Step '{step.id}' skipped: {reason}")
                return StepOutcome(step.id, StepStatus.SKIPPED, None, _elapsed_ms(started), reason)

        if step.for_each is not None and step.tool != ToolName.LOOP:
            output = await self._run_for_each(step, context, runtime)
        else:
            output = await self._dispatch(step, context, runtime)

        if record:
            context.record(step.id, output)
        return StepOutcome(step.id, StepStatus.COMPLETED, output, _elapsed_ms(started))

    async def _run_for_each(
        self,
        step: StepDefinition,
        context: ExecutionContext,
        runtime: ExecutionRuntime,
    ) -> Any:
        """Run the step's tool once per item (implicit loop)."""
        try:
            items = evaluate_expression(step.for_each, context)
        except ExpressionError as e:
            raise StepError(step.id, str(e), e)
        items = as_items(step.id, items, "forEach")

        if len(items) > runtime.max_iterations:
            raise LoopBoundError(step.id, len(items), runtime.max_iterations)

        results = []
        for index, item in enumerate(items):
            if runtime.cancelled:
                logger.info(f"forEach '{step.id}' cancelled after {index} item(s)")
                break
            child = context.child(item=item, index=index)
            results.append(await self._dispatch(step, child, runtime, index=index))

        return {"results": results, "count": len(results)}

    async def _dispatch(
        self,
        step: StepDefinition,
        context: ExecutionContext,
        runtime: ExecutionRuntime,
        index: Optional[int] = None,
    ) -> Any:
        inputs = resolve_params(step.inputs, context, skip=DEFERRED_INPUTS.get(step.tool, ()))

        if step.is_engine_native:
            return await self.control_flow.run(step, inputs, context, runtime)

        return await self._invoke(step, inputs, runtime, index)

    async def _invoke(
        self,
        step: StepDefinition,
        inputs: Any,
        runtime: ExecutionRuntime,
        index: Optional[int],
    ) -> Any:
        """Delegate to the tool collaborator and normalize failures."""
        tool = step.tool.value
        if self.tools is None:
            raise StepError(step.id, f"no tool collaborator configured for '{tool}'")

        tool_context = ToolContext(
            tool=tool,
            step_id=step.id,
            workflow=runtime.workflow,
            run_id=runtime.run_id,
            index=index,
        )

        try:
            result = self.tools.invoke(tool, inputs, tool_context)
            if inspect.isawaitable(result):
                result = await result
        except StepError:
            raise
        except ToolError as e:
            raise StepError(step.id, e.message, e)
        except Exception as e:
            raise StepError(step.id, str(e) or type(e).__name__, e)

        if isinstance(result, ToolResult):
            if not result.success:
                raise StepError(step.id, result.error_message or "tool reported failure")
            return result.output
        return result


__all__ = [
    "ExecutionRuntime",
    "StepOutcome",
    "StepExecutor",
]
