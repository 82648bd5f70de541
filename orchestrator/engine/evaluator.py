# ============================================================================
# DEPENDENCY GRAPH AND EXECUTION PLANNER
# ============================================================================
# STATUS: Core - Dependency resolution and topological layering
# PURPOSE: Derive step dependencies from references; compute execution layers
# CREATED: 19 OCT 2026
# ============================================================================
"""
Dependency Graph and Execution Planner

Core logic for turning a list of steps into an ordered execution plan.

Features:
- Dependency graph construction from parsed template references
- Conditional gate edges (steps listed in then/else wait for their gate)
- Kahn layering (each step in the earliest layer its dependencies allow)
- Cycle detection with the offending path
- Read-only description for diagram and markdown consumers

Both the builder and the planner are pure: they take step definitions
(models or raw document dicts) and return new structures.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from pydantic import BaseModel

from core.models import (
    EXPRESSION_INPUTS,
    TOOL_CATEGORIES,
    ToolName,
    WorkflowDefinition,
)
from orchestrator.engine.context import RESERVED_ROOTS
from orchestrator.engine.errors import CycleError
from orchestrator.engine.expressions import Reference, scan_references

logger = logging.getLogger(__name__)


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class DependencyGraph:
    """
    Dependency graph for a workflow.

    dependencies[B] contains A when "B depends on A" (A must finish first).
    required[B] is the subset of those whose skip cascades to B.
    gates[B] holds the conditional steps whose then/else lists name B.
    """
    # Step IDs in authoring order
    steps: List[str] = field(default_factory=list)

    # Step ID -> step IDs it depends on
    dependencies: Dict[str, Set[str]] = field(default_factory=dict)

    # Step ID -> hard data dependencies
    required: Dict[str, Set[str]] = field(default_factory=dict)

    # Step ID -> gating conditional step IDs
    gates: Dict[str, Set[str]] = field(default_factory=dict)

    def add_step(self, step_id: str) -> None:
        if step_id not in self.dependencies:
            self.steps.append(step_id)
            self.dependencies[step_id] = set()
            self.required[step_id] = set()
            self.gates[step_id] = set()

    def add_edge(self, dependency: str, step_id: str, required: bool = False) -> None:
        """Add a dependency edge: step_id depends on dependency."""
        self.dependencies[step_id].add(dependency)
        if required:
            self.required[step_id].add(dependency)

    def add_gate(self, conditional_id: str, step_id: str) -> None:
        self.add_edge(conditional_id, step_id)
        self.gates[step_id].add(conditional_id)

    def dependencies_of(self, step_id: str) -> Set[str]:
        """Get steps that this step depends on."""
        return self.dependencies.get(step_id, set())

    def dependents(self, step_id: str) -> List[str]:
        """Get steps that depend on this step, in authoring order."""
        return [s for s in self.steps if step_id in self.dependencies[s]]

    def edges(self) -> List[Tuple[str, str]]:
        """(dependency, dependent) pairs in authoring order."""
        return [
            (dependency, step_id)
            for step_id in self.steps
            for dependency in self._ordered(self.dependencies[step_id])
        ]

    def _ordered(self, ids: Iterable[str]) -> List[str]:
        ids = set(ids)
        return [s for s in self.steps if s in ids]

    def to_dict(self) -> Dict[str, List[str]]:
        """Step ID -> dependency IDs (authoring order)."""
        return {step_id: self._ordered(self.dependencies[step_id]) for step_id in self.steps}

    def __len__(self) -> int:
        return len(self.steps)


@dataclass
class ExecutionPlan:
    """Ordered layers; every step appears in exactly one layer."""
    layers: List[List[str]] = field(default_factory=list)

    def layer_of(self, step_id: str) -> int:
        for index, layer in enumerate(self.layers):
            if step_id in layer:
                return index
        raise KeyError(f"Step '{step_id}' is not in the plan")

    @property
    def step_count(self) -> int:
        return sum(len(layer) for layer in self.layers)

    def __len__(self) -> int:
        return len(self.layers)

    def __iter__(self):
        return iter(self.layers)

    def to_list(self) -> List[List[str]]:
        return [list(layer) for layer in self.layers]


# ============================================================================
# GRAPH BUILDER
# ============================================================================

StepLike = Union[BaseModel, Dict[str, Any]]


def step_document(step: StepLike) -> Dict[str, Any]:
    """Normalize a StepDefinition or raw step dict to document form."""
    if isinstance(step, BaseModel):
        return step.model_dump(mode="json", by_alias=True)
    return step if isinstance(step, dict) else {}


def _tool_of(document: Dict[str, Any]) -> Optional[ToolName]:
    try:
        return ToolName(document.get("tool"))
    except ValueError:
        return None


class GraphBuilder:
    """Builds a dependency graph from step definitions."""

    def build(self, steps: Union[WorkflowDefinition, Sequence[StepLike]]) -> DependencyGraph:
        """
        Build dependency graph from steps.

        Args:
            steps: WorkflowDefinition, StepDefinitions or raw step dicts

        Returns:
            DependencyGraph instance
        """
        if isinstance(steps, WorkflowDefinition):
            steps = steps.steps

        documents = [step_document(step) for step in steps]
        graph = DependencyGraph()
        for document in documents:
            step_id = document.get("id")
            if isinstance(step_id, str):
                graph.add_step(step_id)

        known = set(graph.steps)

        for document in documents:
            step_id = document.get("id")
            if not isinstance(step_id, str):
                continue

            for reference in self.step_references(document):
                if reference.root == step_id or reference.root not in known:
                    continue
                graph.add_edge(reference.root, step_id, required=not reference.soft)

            if _tool_of(document) == ToolName.CONDITIONAL:
                inputs = document.get("inputs") or {}
                for branch in ("then", "else"):
                    targets = inputs.get(branch) if isinstance(inputs, dict) else None
                    if not isinstance(targets, list):
                        continue
                    for target in targets:
                        if isinstance(target, str) and target in known and target != step_id:
                            graph.add_gate(step_id, target)

        return graph

    def step_references(self, document: Dict[str, Any]) -> List[Reference]:
        """
        Collect references made by one step.

        Hard references: templates in inputs and forEach outside a ||
        fallback. Soft references: condition, bare expression inputs
        (filter/transform/conditional), the inline loop step and fallbacks.
        """
        references: List[Reference] = []
        tool = _tool_of(document)
        inputs = document.get("inputs")
        expression_keys = EXPRESSION_INPUTS.get(tool, frozenset())
        local_names: Set[str] = set()

        if isinstance(inputs, dict):
            if tool == ToolName.LOOP:
                local_names.add(inputs.get("as") if isinstance(inputs.get("as"), str) else "item")

            for key, value in inputs.items():
                if key in expression_keys:
                    references.extend(_soften(scan_references(value, bare=True)))
                elif tool == ToolName.LOOP and key == "step":
                    if isinstance(value, dict):
                        references.extend(_soften(self.step_references(value)))
                else:
                    references.extend(scan_references(value))

        condition = document.get("condition")
        if isinstance(condition, str):
            references.extend(_soften(scan_references(condition, bare=True)))

        for_each = document.get("forEach")
        if isinstance(for_each, str):
            references.extend(scan_references(for_each, bare=True))

        return [
            reference for reference in references
            if reference.root not in RESERVED_ROOTS and reference.root not in local_names
        ]


def _soften(references: Iterable[Reference]) -> List[Reference]:
    return [Reference(reference.root, True) for reference in references]


# ============================================================================
# EXECUTION PLANNER
# ============================================================================

class ExecutionPlanner:
    """Kahn layering over a dependency graph."""

    def plan(self, graph: DependencyGraph) -> ExecutionPlan:
        """
        Compute execution layers.

        Each round collects every step whose in-degree is zero, in
        authoring order. A round with no ready step while steps remain
        means a cycle.

        Raises:
            CycleError: Carrying the partial layers and unplaced steps
        """
        in_degree = {step_id: len(graph.dependencies[step_id]) for step_id in graph.steps}
        dependents: Dict[str, List[str]] = defaultdict(list)
        for dependency, step_id in graph.edges():
            dependents[dependency].append(step_id)

        layers: List[List[str]] = []
        remaining = list(graph.steps)

        while remaining:
            layer = [step_id for step_id in remaining if in_degree[step_id] == 0]
            if not layer:
                logger.debug(f"Cycle blocks planning: {remaining}")
                raise CycleError(layers, remaining)

            layers.append(layer)
            placed = set(layer)
            remaining = [step_id for step_id in remaining if step_id not in placed]
            for step_id in layer:
                for dependent in dependents[step_id]:
                    in_degree[dependent] -= 1

        return ExecutionPlan(layers=layers)


def find_cycle(graph: DependencyGraph) -> Optional[List[str]]:
    """
    Return one cycle as a path (first step repeated at the end), or None.
    """
    WHITE, GREY, BLACK = 0, 1, 2
    color = {step_id: WHITE for step_id in graph.steps}
    stack: List[str] = []

    def visit(step_id: str) -> Optional[List[str]]:
        color[step_id] = GREY
        stack.append(step_id)
        for dependency in graph._ordered(graph.dependencies[step_id]):
            if color[dependency] == GREY:
                return stack[stack.index(dependency):] + [dependency]
            if color[dependency] == WHITE:
                cycle = visit(dependency)
                if cycle:
                    return cycle
        stack.pop()
        color[step_id] = BLACK
        return None

    for step_id in graph.steps:
        if color[step_id] == WHITE:
            cycle = visit(step_id)
            if cycle:
                # Edges point at dependencies; report in execution direction
                return list(reversed(cycle))
    return None


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

_builder = GraphBuilder()
_planner = ExecutionPlanner()


def build_dependency_graph(
    steps: Union[WorkflowDefinition, Sequence[StepLike]],
) -> DependencyGraph:
    """Build the dependency graph for a workflow or list of steps."""
    return _builder.build(steps)


def build_execution_plan(
    steps: Union[DependencyGraph, WorkflowDefinition, Sequence[StepLike]],
) -> ExecutionPlan:
    """
    Build the layered execution plan.

    Raises:
        CycleError: If the steps contain a reference cycle
    """
    graph = steps if isinstance(steps, DependencyGraph) else _builder.build(steps)
    return _planner.plan(graph)


def describe_workflow(definition: WorkflowDefinition) -> Dict[str, Any]:
    """
    Describe a workflow's graph for diagram and markdown renderers.

    Returns:
        Dict with nodes (id, label, tool, category, layer), edges
        (from, to, kind) and layer count
    """
    graph = build_dependency_graph(definition)
    plan = build_execution_plan(graph)
    steps = definition.step_map()

    nodes = [
        {
            "id": step_id,
            "label": steps[step_id].label,
            "tool": steps[step_id].tool.value,
            "category": TOOL_CATEGORIES[steps[step_id].tool].value,
            "layer": plan.layer_of(step_id),
        }
        for step_id in graph.steps
    ]
    edges = [
        {
            "from": dependency,
            "to": step_id,
            "kind": "gate" if dependency in graph.gates[step_id] else "data",
        }
        for dependency, step_id in graph.edges()
    ]

    return {
        "name": definition.name,
        "nodes": nodes,
        "edges": edges,
        "layers": plan.to_list(),
        "layerCount": len(plan),
    }


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "DependencyGraph",
    "ExecutionPlan",
    "GraphBuilder",
    "ExecutionPlanner",
    "step_document",
    "find_cycle",
    "build_dependency_graph",
    "build_execution_plan",
    "describe_workflow",
]
