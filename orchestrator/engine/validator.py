# ============================================================================
# WORKFLOW VALIDATOR
# ============================================================================
# STATUS: Core - Structural validation of workflow documents
# PURPOSE: Report unknown tools, dangling references, cycles, bad shapes
# CREATED: 19 OCT 2026
# ============================================================================
"""
Workflow Validator

Validates a raw workflow document (parsed JSON/YAML) before it is parsed
into models or executed. Every problem is collected; validation never
stops at the first one.

Modes:
- strict: any problem is an error; returns a flat list of messages
- draft:  problems an editor expects while a workflow is still being
          written (missing name, empty inputs, dangling references...)
          become warnings; returns ValidationReport(errors, warnings)

Unknown tools, duplicate IDs, malformed expressions, bad shapes and
cycles are errors in both modes.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Union

from core.contracts import ValidationMode
from core.models import (
    EXPRESSION_INPUTS,
    INPUT_TYPES,
    NO_INPUT_TOOLS,
    ToolName,
    WorkflowDefinition,
)
from orchestrator.engine.context import RESERVED_ROOTS
from orchestrator.engine.evaluator import GraphBuilder, find_cycle
from orchestrator.engine.expressions import check_syntax, has_template, scan_references

logger = logging.getLogger(__name__)


# Input keys each tool needs; a tuple entry means "any one of"
REQUIRED_TOOL_INPUTS: Dict[ToolName, List[Any]] = {
    ToolName.CONDITIONAL: ["condition", "then"],
    ToolName.LOOP: ["items", "step"],
    ToolName.MERGE: [("sources", "arrays")],
    ToolName.FILTER: [("items", "array"), "condition"],
    ToolName.TRANSFORM: ["items", ("expression", "fields", "mapping")],
    ToolName.TEMPLATE: ["template"],
    ToolName.HTTP: ["url"],
}

MERGE_STRATEGIES = ("concat", "interleave", "unique")


@dataclass
class ValidationReport:
    """Draft-mode validation result."""
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


class _Collector:
    """Routes each finding to errors or warnings by mode."""

    def __init__(self, mode: ValidationMode):
        self.mode = mode
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def error(self, message: str) -> None:
        self.errors.append(message)

    def incomplete(self, message: str) -> None:
        """A problem that is tolerated while drafting."""
        if self.mode == ValidationMode.DRAFT:
            self.warnings.append(message)
        else:
            self.errors.append(message)


class WorkflowValidator:
    """Validates workflow documents in strict or draft mode."""

    def __init__(self, mode: Union[str, ValidationMode] = ValidationMode.STRICT):
        self.mode = ValidationMode(mode)
        self._builder = GraphBuilder()

    def validate(self, document: Any) -> ValidationReport:
        """
        Validate a workflow document.

        Args:
            document: Raw document dict (or a WorkflowDefinition)

        Returns:
            ValidationReport with errors and warnings
        """
        if isinstance(document, WorkflowDefinition):
            document = document.to_document()

        out = _Collector(self.mode)

        if not isinstance(document, dict):
            out.error("Workflow must be an object")
            return ValidationReport(out.errors, out.warnings)

        name = document.get("name")
        if name is None or (isinstance(name, str) and not name.strip()):
            out.incomplete("Workflow is missing a name")
        elif not isinstance(name, str):
            out.error("Workflow name must be a string")

        self._check_input_schema(document.get("inputs"), out)

        defaults = document.get("defaults")
        if defaults is not None and not isinstance(defaults, dict):
            out.error("Workflow 'defaults' must be an object")

        steps = document.get("steps")
        if steps is None:
            out.incomplete("Workflow has no steps")
            steps = []
        elif not isinstance(steps, list):
            out.error("Workflow 'steps' must be an array")
            steps = []
        elif not steps:
            out.incomplete("Workflow has no steps")

        step_ids = self._collect_ids(steps, out)

        for index, step in enumerate(steps):
            if isinstance(step, dict):
                self._check_step(step, index, step_ids, out)

        self._check_cycles(steps, out)
        self._check_output(document.get("output"), step_ids, out)

        if out.errors:
            logger.debug(f"Validation found {len(out.errors)} error(s) in '{name}'")
        return ValidationReport(out.errors, out.warnings)

    # ------------------------------------------------------------------
    # Document-level checks
    # ------------------------------------------------------------------

    def _check_input_schema(self, inputs: Any, out: _Collector) -> None:
        if inputs is None:
            return
        if not isinstance(inputs, dict):
            out.error("Workflow 'inputs' must be an object")
            return
        for input_name, spec in inputs.items():
            if not isinstance(spec, dict):
                out.error(f"Input '{input_name}' must be an object")
                continue
            input_type = spec.get("type", "string")
            if input_type not in INPUT_TYPES:
                out.error(
                    f"Input '{input_name}' has invalid type '{input_type}' "
                    f"(expected one of: {', '.join(INPUT_TYPES)})"
                )
            if "required" in spec and not isinstance(spec["required"], bool):
                out.error(f"Input '{input_name}': 'required' must be a boolean")

    def _collect_ids(self, steps: List[Any], out: _Collector) -> Set[str]:
        seen: Set[str] = set()
        for index, step in enumerate(steps):
            if not isinstance(step, dict):
                out.error(f"Step {index} must be an object")
                continue
            step_id = step.get("id")
            if step_id is None or step_id == "":
                out.incomplete(f"Step {index} is missing an id")
                continue
            if not isinstance(step_id, str):
                out.error(f"Step {index}: id must be a string")
                continue
            if step_id in RESERVED_ROOTS:
                out.error(f"Step '{step_id}': id is reserved")
            if step_id in seen:
                out.error(f"Duplicate step id '{step_id}'")
            seen.add(step_id)
        return seen

    def _check_cycles(self, steps: List[Any], out: _Collector) -> None:
        documents = [s for s in steps if isinstance(s, dict) and isinstance(s.get("id"), str)]
        if not documents:
            return
        graph = self._builder.build(documents)
        cycle = find_cycle(graph)
        if cycle:
            out.error(f"Dependency cycle detected: {' -> '.join(cycle)}")

    def _check_output(self, output: Any, step_ids: Set[str], out: _Collector) -> None:
        if output is None:
            return
        for message in check_syntax(output):
            out.error(f"Workflow output: {message}")
        for reference in scan_references(output):
            if reference.root not in RESERVED_ROOTS and reference.root not in step_ids:
                out.incomplete(f"Workflow output references unknown step '{reference.root}'")

    # ------------------------------------------------------------------
    # Step checks
    # ------------------------------------------------------------------

    def _check_step(
        self,
        step: Dict[str, Any],
        index: int,
        step_ids: Set[str],
        out: _Collector,
        label: Optional[str] = None,
        nested: bool = False,
    ) -> None:
        step_id = step.get("id")
        if label is None:
            label = f"Step '{step_id}'" if isinstance(step_id, str) and step_id else f"Step {index}"

        tool = self._check_tool(step, label, out)

        inputs = step.get("inputs")
        if inputs is not None and not isinstance(inputs, dict):
            out.error(f"{label}: 'inputs' must be an object")
            inputs = None
        if not inputs and tool is not None and tool not in NO_INPUT_TOOLS:
            out.incomplete(f"{label}: has no inputs")
        inputs = inputs or {}

        expression_keys = EXPRESSION_INPUTS.get(tool, frozenset())
        for key, value in inputs.items():
            if tool == ToolName.LOOP and key == "step":
                continue
            for message in check_syntax(value, bare=key in expression_keys):
                out.error(f"{label}: input '{key}': {message}")

        if tool is not None and inputs:
            for requirement in REQUIRED_TOOL_INPUTS.get(tool, []):
                options = requirement if isinstance(requirement, tuple) else (requirement,)
                if tool == ToolName.LOOP and options == ("items",) and step.get("forEach"):
                    continue
                if not any(option in inputs for option in options):
                    out.incomplete(f"{label}: {tool.value} requires input '{' or '.join(options)}'")

        for key in ("condition", "forEach"):
            value = step.get(key)
            if value is None:
                continue
            if not isinstance(value, str):
                out.error(f"{label}: '{key}' must be a string expression")
                continue
            for message in check_syntax(value, bare=True):
                out.error(f"{label}: {key}: {message}")

        if "continueOnError" in step and not isinstance(step["continueOnError"], bool):
            out.error(f"{label}: 'continueOnError' must be a boolean")

        if tool == ToolName.CONDITIONAL:
            self._check_conditional(step_id, inputs, label, step_ids, out)
        elif tool == ToolName.LOOP:
            self._check_loop(inputs, label, step_ids, out)
        elif tool == ToolName.MERGE:
            strategy = inputs.get("strategy", "concat")
            if not has_template(strategy) and strategy not in MERGE_STRATEGIES:
                out.error(
                    f"{label}: unknown merge strategy '{strategy}' "
                    f"(expected one of: {', '.join(MERGE_STRATEGIES)})"
                )

        # Nested loop steps are checked through their parent's references
        if not nested:
            unknown: List[str] = []
            for reference in self._builder.step_references(step):
                if reference.root not in step_ids and reference.root not in unknown:
                    unknown.append(reference.root)
            for root in unknown:
                out.incomplete(f"{label}: references unknown step '{root}'")

    def _check_tool(self, step: Dict[str, Any], label: str, out: _Collector) -> Optional[ToolName]:
        tool = step.get("tool")
        if tool is None or tool == "":
            out.incomplete(f"{label}: missing tool")
            return None
        if not isinstance(tool, str) or tool not in ToolName.names():
            out.error(f"{label}: unknown tool '{tool}'")
            return None
        return ToolName(tool)

    def _check_conditional(
        self,
        step_id: Any,
        inputs: Dict[str, Any],
        label: str,
        step_ids: Set[str],
        out: _Collector,
    ) -> None:
        for branch in ("then", "else"):
            if branch not in inputs:
                continue
            targets = inputs[branch]
            if not isinstance(targets, list) or not all(isinstance(t, str) for t in targets):
                out.error(f"{label}: '{branch}' must be an array of step ids")
                continue
            for target in targets:
                if target == step_id:
                    out.error(f"{label}: '{branch}' cannot list the conditional itself")
                elif target not in step_ids:
                    out.incomplete(f"{label}: '{branch}' references unknown step '{target}'")

    def _check_loop(
        self,
        inputs: Dict[str, Any],
        label: str,
        step_ids: Set[str],
        out: _Collector,
    ) -> None:
        alias = inputs.get("as")
        if alias is not None and (not isinstance(alias, str) or not alias.isidentifier()):
            out.error(f"{label}: 'as' must be an identifier")

        max_iterations = inputs.get("maxIterations")
        if max_iterations is not None and (
            isinstance(max_iterations, bool)
            or not isinstance(max_iterations, int)
            or max_iterations <= 0
        ):
            out.error(f"{label}: 'maxIterations' must be a positive integer")

        if "step" not in inputs:
            return
        sub_step = inputs["step"]
        if not isinstance(sub_step, dict):
            out.error(f"{label}: 'step' must be an object defining a step")
            return
        if sub_step.get("tool") is None:
            out.error(f"{label}: loop step is missing a tool")
            return
        self._check_step(sub_step, 0, step_ids, out, label=f"{label} loop step", nested=True)


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

def validate_workflow(
    document: Any,
    mode: Union[str, ValidationMode] = ValidationMode.STRICT,
) -> Union[List[str], ValidationReport]:
    """
    Validate a workflow document.

    Args:
        document: Raw document dict or WorkflowDefinition
        mode: "strict" (default) or "draft"

    Returns:
        strict: list of error messages (empty when valid)
        draft: ValidationReport(errors, warnings)
    """
    report = WorkflowValidator(mode).validate(document)
    if ValidationMode(mode) == ValidationMode.STRICT:
        return report.errors
    return report


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ValidationReport",
    "WorkflowValidator",
    "REQUIRED_TOOL_INPUTS",
    "MERGE_STRATEGIES",
    "validate_workflow",
]
