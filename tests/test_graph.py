# ============================================================================
# DEPENDENCY GRAPH AND PLANNER TESTS
# ============================================================================
# STATUS: Tests - Graph construction, layering, cycles, description
# PURPOSE: Verify dependencies are derived from references and layered
# CREATED: 19 OCT 2026
# ============================================================================
"""
Dependency Graph and Planner Tests

Tests:
1. Linear chain and fan-in layering
2. Hard vs soft edges (fallbacks, conditions, expression inputs)
3. Conditional gate edges and loop-local names
4. Plan properties: every step once, dependencies in earlier layers
5. Cycles: CycleError with partial layers, find_cycle path
6. describe_workflow output for diagram consumers

Run with:
    pytest tests/test_graph.py -v
"""

import pytest

from core.models import WorkflowDefinition
from orchestrator.engine.errors import CycleError
from orchestrator.engine.evaluator import (
    DependencyGraph,
    ExecutionPlan,
    build_dependency_graph,
    build_execution_plan,
    describe_workflow,
    find_cycle,
)


# ============================================================================
# FIXTURES
# ============================================================================

def search(step_id, query="{{ inputs.q }}", **extra):
    return {"id": step_id, "tool": "search", "inputs": {"query": query}, **extra}


@pytest.fixture
def chain_steps():
    """search -> rerank -> brief."""
    return [
        search("search"),
        {"id": "rerank", "tool": "rerank", "inputs": {"documents": "{{ search.output.results }}"}},
        {"id": "brief", "tool": "generate", "inputs": {"prompt": "Summarize {{ rerank.output.results }}"}},
    ]


@pytest.fixture
def fan_in_steps():
    """Two independent searches feeding a merge."""
    return [
        search("a"),
        search("b"),
        {
            "id": "merge",
            "tool": "merge",
            "inputs": {"sources": ["{{ a.output.results }}", "{{ b.output.results }}"]},
        },
    ]


@pytest.fixture
def branching_workflow():
    return WorkflowDefinition.model_validate({
        "name": "branching",
        "inputs": {"q": {"type": "string", "required": True}, "mode": {"type": "string"}},
        "steps": [
            search("search"),
            {
                "id": "gate",
                "tool": "conditional",
                "inputs": {"condition": "inputs.mode == 'deep'", "then": ["deep"], "else": ["quick"]},
            },
            {"id": "deep", "tool": "rerank", "name": "Deep rerank",
             "inputs": {"documents": "{{ search.output.results }}"}},
            {"id": "quick", "tool": "generate", "inputs": {"prompt": "{{ inputs.q }}"}},
            {"id": "brief", "tool": "generate",
             "inputs": {"prompt": "{{ deep.output.results || search.output.results }}"}},
        ],
    })


def assert_valid_plan(graph, plan):
    """Every step exactly once, every dependency in an earlier layer."""
    placed = [step_id for layer in plan for step_id in layer]
    assert sorted(placed) == sorted(graph.steps)
    assert len(placed) == len(set(placed))
    for step_id in graph.steps:
        for dependency in graph.dependencies_of(step_id):
            assert plan.layer_of(dependency) < plan.layer_of(step_id)


# ============================================================================
# LAYERING
# ============================================================================

class TestLayering:
    """Kahn layering in authoring order."""

    def test_linear_chain(self, chain_steps):
        plan = build_execution_plan(chain_steps)
        assert plan.layers == [["search"], ["rerank"], ["brief"]]
        assert len(plan) == 3

    def test_fan_in(self, fan_in_steps):
        plan = build_execution_plan(fan_in_steps)
        assert plan.layers == [["a", "b"], ["merge"]]
        assert len(plan) == 2
        assert plan.step_count == 3

    def test_independent_steps_keep_authoring_order(self):
        plan = build_execution_plan([search("b"), search("a")])
        assert plan.layers == [["b", "a"]]

    def test_plan_properties(self, branching_workflow):
        graph = build_dependency_graph(branching_workflow)
        plan = build_execution_plan(graph)
        assert_valid_plan(graph, plan)

    def test_layer_of_unknown_step(self, chain_steps):
        with pytest.raises(KeyError):
            build_execution_plan(chain_steps).layer_of("nope")

    def test_plan_iterates_layers(self, fan_in_steps):
        plan = build_execution_plan(fan_in_steps)
        assert isinstance(plan, ExecutionPlan)
        assert list(plan) == plan.to_list()


# ============================================================================
# EDGES
# ============================================================================

class TestEdges:
    """Dependencies derived from parsed references."""

    def test_hard_input_reference(self, chain_steps):
        graph = build_dependency_graph(chain_steps)
        assert graph.dependencies_of("rerank") == {"search"}
        assert graph.required["rerank"] == {"search"}
        assert graph.dependents("search") == ["rerank"]

    def test_fallback_references_are_soft(self, branching_workflow):
        graph = build_dependency_graph(branching_workflow)
        assert graph.dependencies_of("brief") == {"deep", "search"}
        assert graph.required["brief"] == set()

    def test_condition_reference_is_soft(self):
        graph = build_dependency_graph([
            search("search"),
            search("again", condition="search.output.count == 0"),
        ])
        assert graph.dependencies_of("again") == {"search"}
        assert graph.required["again"] == set()

    def test_for_each_reference_is_hard(self):
        graph = build_dependency_graph([
            search("search"),
            {"id": "each", "tool": "generate", "forEach": "search.output.results",
             "inputs": {"prompt": "{{ item.title }}"}},
        ])
        assert graph.required["each"] == {"search"}

    def test_filter_condition_is_soft(self):
        graph = build_dependency_graph([
            search("search"),
            search("other"),
            {"id": "keep", "tool": "filter",
             "inputs": {"items": "{{ search.output.results }}", "condition": "item.score > other.output.count"}},
        ])
        assert graph.required["keep"] == {"search"}
        assert graph.dependencies_of("keep") == {"search", "other"}

    def test_gate_edges(self, branching_workflow):
        graph = build_dependency_graph(branching_workflow)
        assert graph.gates["deep"] == {"gate"}
        assert graph.gates["quick"] == {"gate"}
        assert "gate" in graph.dependencies_of("quick")
        assert graph.gates["search"] == set()

    def test_loop_names_are_not_steps(self):
        graph = build_dependency_graph([
            search("search"),
            {
                "id": "each",
                "tool": "loop",
                "inputs": {
                    "items": "{{ search.output.results }}",
                    "as": "doc",
                    "step": {"tool": "generate", "inputs": {"prompt": "{{ doc.title }} {{ index }}"}},
                },
            },
        ])
        assert graph.dependencies_of("each") == {"search"}

    def test_loop_inline_step_reference_is_soft(self):
        graph = build_dependency_graph([
            search("search"),
            search("context"),
            {
                "id": "each",
                "tool": "loop",
                "inputs": {
                    "items": "{{ search.output.results }}",
                    "step": {"tool": "generate", "inputs": {"prompt": "{{ context.output.count }}"}},
                },
            },
        ])
        assert graph.dependencies_of("each") == {"search", "context"}
        assert graph.required["each"] == {"search"}

    def test_reserved_unknown_and_self_references_ignored(self):
        graph = build_dependency_graph([
            search("a", query="{{ inputs.q }} {{ defaults.x }} {{ nowhere.output }} {{ a.output }}"),
        ])
        assert graph.dependencies_of("a") == set()

    def test_accepts_models_and_dicts(self, branching_workflow):
        from_models = build_dependency_graph(branching_workflow.steps).to_dict()
        from_dicts = build_dependency_graph(branching_workflow.to_document()["steps"]).to_dict()
        assert from_models == from_dicts

    def test_edges_in_authoring_order(self, fan_in_steps):
        graph = build_dependency_graph(fan_in_steps)
        assert graph.edges() == [("a", "merge"), ("b", "merge")]
        assert len(graph) == 3


# ============================================================================
# CYCLES
# ============================================================================

class TestCycles:
    """Cyclic references block planning."""

    @pytest.fixture
    def cyclic_steps(self):
        return [
            search("z"),
            search("x", query="{{ y.output.text }}"),
            search("y", query="{{ x.output.text }}"),
        ]

    def test_cycle_error_carries_partial_plan(self, cyclic_steps):
        with pytest.raises(CycleError) as exc_info:
            build_execution_plan(cyclic_steps)
        assert exc_info.value.partial_layers == [["z"]]
        assert exc_info.value.remaining == ["x", "y"]

    def test_find_cycle_path(self, cyclic_steps):
        cycle = find_cycle(build_dependency_graph(cyclic_steps))
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"x", "y"}

    def test_acyclic_graph_has_no_cycle(self, chain_steps):
        assert find_cycle(build_dependency_graph(chain_steps)) is None

    def test_empty_graph(self):
        graph = DependencyGraph()
        assert build_execution_plan(graph).layers == []
        assert find_cycle(graph) is None


# ============================================================================
# DESCRIPTION
# ============================================================================

def test_describe_workflow(branching_workflow):
    description = describe_workflow(branching_workflow)

    nodes = {node["id"]: node for node in description["nodes"]}
    assert nodes["deep"]["label"] == "Deep rerank"
    assert nodes["deep"]["category"] == "retrieval"
    assert nodes["gate"]["category"] == "control"
    assert nodes["search"]["layer"] == 0
    assert nodes["deep"]["layer"] == 1

    edges = {(edge["from"], edge["to"]): edge["kind"] for edge in description["edges"]}
    assert edges[("gate", "deep")] == "gate"
    assert edges[("search", "deep")] == "data"

    assert description["layerCount"] == len(description["layers"]) == 3
    assert description["name"] == "branching"
