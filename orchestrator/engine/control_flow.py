# ============================================================================
# CONTROL-FLOW TOOLS
# ============================================================================
# STATUS: Core - Engine-native tools
# PURPOSE: conditional, loop, merge, filter, transform and template steps
# CREATED: 19 OCT 2026
# ============================================================================
"""
Control-Flow Tools

Tools implemented inside the engine because their semantics (branch
activation, iteration, aggregation) are part of the scheduling contract.

| tool        | output                                     |
|-------------|--------------------------------------------|
| conditional | {condition, branch, enabled, disabled}     |
| loop        | {results, errors, count, iterations}       |
| merge       | {results, resultCount, sourceCount}        |
| filter      | {results, count, removed}                  |
| transform   | {results, count}                           |
| template    | {text, references}                         |

Inputs named in DEFERRED_INPUTS arrive unresolved and are evaluated here,
per item where an item is bound.
"""

import json
import logging
from collections import ChainMap
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List

from pydantic import ValidationError

from core.contracts import StepStatus
from core.models import StepDefinition, ToolName
from orchestrator.engine.context import ExecutionContext
from orchestrator.engine.errors import ExpressionError, LoopBoundError, StepError
from orchestrator.engine.expressions import (
    evaluate_condition,
    evaluate_expression,
    parse_expression,
    to_text,
)
from orchestrator.engine.templates import get_resolver

if TYPE_CHECKING:
    from orchestrator.engine.executor import ExecutionRuntime, StepExecutor

logger = logging.getLogger(__name__)


# ============================================================================
# HELPERS
# ============================================================================

def as_items(step_id: str, value: Any, name: str) -> List[Any]:
    """
    Coerce a resolved input to a list of items.

    None (e.g. the output of a skipped step) counts as empty; a step output
    carrying a `results` array is unwrapped.
    """
    if value is None:
        return []
    if isinstance(value, dict) and isinstance(value.get("results"), list):
        return value["results"]
    if isinstance(value, list):
        return value
    raise StepError(step_id, f"'{name}' must resolve to an array, got {type(value).__name__}")


def _identity(value: Any) -> Any:
    """Hashable identity used by merge(unique)."""
    try:
        hash(value)
        return (type(value).__name__, value) if isinstance(value, bool) else value
    except TypeError:
        # tagged so a list or object never equals a string holding its JSON text
        return ("json", json.dumps(value, sort_keys=True, default=str))


def _condition(step_id: str, expression: Any, context: Any) -> bool:
    try:
        return evaluate_condition(expression, context)
    except ExpressionError as e:
        raise StepError(step_id, str(e), e)


def _expression(step_id: str, expression: Any, context: Any) -> Any:
    try:
        return evaluate_expression(expression, context)
    except ExpressionError as e:
        raise StepError(step_id, str(e), e)


# ============================================================================
# CONTROL-FLOW RUNNER
# ============================================================================

class ControlFlowRunner:
    """
    Runs engine-native tools.

    The loop tool runs its inline step through the owning StepExecutor,
    so the runner is created by (and holds a reference to) that executor.
    """

    def __init__(self, executor: "StepExecutor"):
        self.executor = executor
        self._handlers: Dict[ToolName, Callable[..., Awaitable[Any]]] = {
            ToolName.CONDITIONAL: self.conditional,
            ToolName.LOOP: self.loop,
            ToolName.MERGE: self.merge,
            ToolName.FILTER: self.filter,
            ToolName.TRANSFORM: self.transform,
            ToolName.TEMPLATE: self.template,
        }

    async def run(
        self,
        step: StepDefinition,
        inputs: Dict[str, Any],
        context: ExecutionContext,
        runtime: "ExecutionRuntime",
    ) -> Any:
        handler = self._handlers.get(step.tool)
        if handler is None:
            raise StepError(step.id, f"'{step.tool.value}' is not an engine-native tool")
        return await handler(step, inputs, context, runtime)

    # ------------------------------------------------------------------
    # conditional
    # ------------------------------------------------------------------

    async def conditional(self, step, inputs, context, runtime) -> Dict[str, Any]:
        """
        Evaluate the condition and report which branch's steps are enabled.

        Never fails because a branch is empty or missing.
        """
        matched = _condition(step.id, inputs.get("condition"), context)
        then_steps = list(inputs.get("then") or [])
        else_steps = list(inputs.get("else") or [])

        enabled = then_steps if matched else else_steps
        disabled = else_steps if matched else then_steps
        logger.debug(f"Conditional '{step.id}' took '{'then' if matched else 'else'}' branch")

        return {
            "condition": matched,
            "branch": "then" if matched else "else",
            "enabled": enabled,
            "disabled": [s for s in disabled if s not in enabled],
        }

    # ------------------------------------------------------------------
    # loop
    # ------------------------------------------------------------------

    async def loop(self, step, inputs, context, runtime) -> Dict[str, Any]:
        """
        Run the inline step once per item, sequentially.

        Raises:
            LoopBoundError: More items than maxIterations (no iteration runs)
            StepError: A sub-step failed without continueOnError
        """
        items = inputs.get("items")
        if "items" not in inputs and step.for_each is not None:
            items = _expression(step.id, step.for_each, context)
        items = as_items(step.id, items, "items")

        alias = inputs.get("as") or "item"
        max_iterations = inputs.get("maxIterations", runtime.max_iterations)
        try:
            max_iterations = int(max_iterations)
        except (TypeError, ValueError):
            raise StepError(step.id, f"maxIterations must be an integer, got {max_iterations!r}")

        if len(items) > max_iterations:
            raise LoopBoundError(step.id, len(items), max_iterations)

        sub_step = self._sub_step(step, inputs.get("step"))

        results: List[Any] = []
        errors: List[Dict[str, Any]] = []
        iterations = 0

        for index, item in enumerate(items):
            if runtime.cancelled:
                logger.info(f"Loop '{step.id}' cancelled after {iterations} iteration(s)")
                break

            iterations += 1
            child = context.child(**{"item": item, "index": index, alias: item})
            try:
                outcome = await self.executor.execute(sub_step, child, runtime, record=False)
            except LoopBoundError:
                raise
            except StepError as e:
                if not sub_step.continue_on_error:
                    raise StepError(step.id, f"iteration {index}: {e.message}", e)
                logger.warning(f"Loop '{step.id}' iteration {index} failed: {e.message}")
                errors.append({"index": index, "error": e.message})
                continue

            if outcome.status == StepStatus.COMPLETED:
                results.append(outcome.output)

        return {
            "results": results,
            "errors": errors,
            "count": len(results),
            "iterations": iterations,
        }

    @staticmethod
    def _sub_step(step: StepDefinition, document: Any) -> StepDefinition:
        if not isinstance(document, dict):
            raise StepError(step.id, "loop 'step' must be an object defining a step")
        try:
            return StepDefinition.model_validate({"id": f"{step.id}.step", **document})
        except ValidationError as e:
            raise StepError(step.id, f"invalid loop step: {e}", e)

    # ------------------------------------------------------------------
    # merge
    # ------------------------------------------------------------------

    async def merge(self, step, inputs, context, runtime) -> Dict[str, Any]:
        """Combine arrays with concat, interleave or unique."""
        sources = inputs.get("sources", inputs.get("arrays"))
        if sources is None:
            sources = []
        if not isinstance(sources, list):
            raise StepError(step.id, "'sources' must be an array")

        arrays = [as_items(step.id, source, "sources") if not _is_scalar(source) else [source]
                  for source in sources]
        strategy = inputs.get("strategy") or "concat"
        key_field = inputs.get("field")

        if strategy == "concat":
            results = [item for array in arrays for item in array]
        elif strategy == "interleave":
            results = []
            longest = max((len(array) for array in arrays), default=0)
            for position in range(longest):
                for array in arrays:
                    if position < len(array):
                        results.append(array[position])
        elif strategy == "unique":
            results = []
            seen = set()
            for array in arrays:
                for item in array:
                    key = item.get(key_field) if key_field and isinstance(item, dict) else item
                    identity = _identity(key)
                    if identity not in seen:
                        seen.add(identity)
                        results.append(item)
        else:
            raise StepError(step.id, f"unknown merge strategy '{strategy}'")

        return {
            "results": results,
            "resultCount": len(results),
            "sourceCount": len(arrays),
        }

    # ------------------------------------------------------------------
    # filter
    # ------------------------------------------------------------------

    async def filter(self, step, inputs, context, runtime) -> Dict[str, Any]:
        """Keep items whose condition is truthy (item and index bound)."""
        items = as_items(step.id, inputs.get("items", inputs.get("array")), "items")
        condition = inputs.get("condition")

        kept = [
            item for index, item in enumerate(items)
            if _condition(step.id, condition, context.child(item=item, index=index))
        ]
        return {
            "results": kept,
            "count": len(kept),
            "removed": len(items) - len(kept),
        }

    # ------------------------------------------------------------------
    # transform
    # ------------------------------------------------------------------

    async def transform(self, step, inputs, context, runtime) -> Dict[str, Any]:
        """
        Map every item, preserving order and length.

        - expression: evaluated per item (item and index bound)
        - fields: list of keys picked from dict items
        - mapping: {new_key: path within the item}
        """
        items = as_items(step.id, inputs.get("items"), "items")

        if inputs.get("expression") is not None:
            expression = inputs["expression"]
            results = [
                _expression(step.id, expression, context.child(item=item, index=index))
                for index, item in enumerate(items)
            ]
        elif inputs.get("fields") is not None:
            fields = inputs["fields"]
            if not isinstance(fields, list):
                raise StepError(step.id, "'fields' must be an array of keys")
            results = [
                {name: item.get(name) for name in fields} if isinstance(item, dict) else item
                for item in items
            ]
        elif inputs.get("mapping") is not None:
            mapping = inputs["mapping"]
            if not isinstance(mapping, dict):
                raise StepError(step.id, "'mapping' must be an object")
            results = [
                self._apply_mapping(step.id, mapping, item, index, context)
                for index, item in enumerate(items)
            ]
        else:
            raise StepError(step.id, "transform requires 'expression', 'fields' or 'mapping'")

        return {"results": results, "count": len(results)}

    @staticmethod
    def _apply_mapping(step_id, mapping, item, index, context) -> Dict[str, Any]:
        # Item keys are visible as roots, so "title" reads item.title
        scope = ChainMap({"item": item, "index": index}, item if isinstance(item, dict) else {}, context)
        mapped = {}
        for new_key, path in mapping.items():
            if not isinstance(path, str):
                mapped[new_key] = path
                continue
            try:
                mapped[new_key] = parse_expression(path).evaluate(scope)
            except ExpressionError as e:
                raise StepError(step_id, str(e), e)
        return mapped

    # ------------------------------------------------------------------
    # template
    # ------------------------------------------------------------------

    async def template(self, step, inputs, context, runtime) -> Dict[str, Any]:
        """Resolve a text template and report which steps it referenced."""
        references = set()
        text = get_resolver().resolve(inputs.get("template"), context, references)
        if not isinstance(text, str):
            text = to_text(text)
        return {"text": text, "references": sorted(references)}


def _is_scalar(value: Any) -> bool:
    return not isinstance(value, (list, dict)) and value is not None


__all__ = [
    "ControlFlowRunner",
    "as_items",
]
