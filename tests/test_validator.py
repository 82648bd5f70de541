# ============================================================================
# WORKFLOW VALIDATOR TESTS
# ============================================================================
# STATUS: Tests - Strict and draft validation
# PURPOSE: Verify every structural rule and the draft downgrade
# CREATED: 19 OCT 2026
# ============================================================================
"""
Workflow Validator Tests

Run with:
    pytest tests/test_validator.py -v
"""

import copy

import pytest

from core.models import WorkflowDefinition
from orchestrator.engine.errors import WorkflowValidationError
from orchestrator.engine.validator import ValidationReport, WorkflowValidator, validate_workflow


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def document():
    """A valid workflow exercising most tools."""
    return {
        "name": "research-brief",
        "inputs": {
            "q": {"type": "string", "required": True},
            "limit": {"type": "integer", "default": 5},
        },
        "defaults": {"model": "small"},
        "steps": [
            {"id": "search", "tool": "search", "inputs": {"query": "{{ inputs.q }}", "limit": "{{ inputs.limit }}"}},
            {"id": "good", "tool": "filter",
             "inputs": {"items": "{{ search.output.results }}", "condition": "item.score > 0.5"}},
            {"id": "gate", "tool": "conditional",
             "inputs": {"condition": "{{ good.output.count }} > 0", "then": ["brief"], "else": []}},
            {"id": "each", "tool": "loop",
             "inputs": {"items": "{{ good.output.results }}", "as": "doc", "maxIterations": 20,
                        "step": {"tool": "generate", "inputs": {"prompt": "{{ doc.title }}"}}}},
            {"id": "brief", "tool": "generate", "continueOnError": True,
             "inputs": {"prompt": "Summarize {{ each.output.results }}"}},
            {"id": "catalog", "tool": "models"},
        ],
        "output": {"brief": "{{ brief.output }}", "count": "{{ good.output.count }}"},
    }


def errors_for(document, **changes):
    document = copy.deepcopy(document)
    document.update(changes)
    return validate_workflow(document)


def step(document, step_id):
    return next(s for s in document["steps"] if s["id"] == step_id)


# ============================================================================
# STRICT MODE
# ============================================================================

class TestStrict:
    """Strict mode returns a flat list of errors."""

    def test_valid_document(self, document):
        assert validate_workflow(document) == []

    def test_valid_definition_model(self, document):
        assert validate_workflow(WorkflowDefinition.model_validate(document)) == []

    def test_not_an_object(self):
        assert validate_workflow(["steps"]) == ["Workflow must be an object"]

    def test_missing_name_and_steps(self):
        errors = validate_workflow({})
        assert "Workflow is missing a name" in errors
        assert "Workflow has no steps" in errors

    def test_cycle_is_reported(self):
        errors = validate_workflow({
            "name": "cyclic",
            "steps": [
                {"id": "x", "tool": "search", "inputs": {"query": "{{ y.output.text }}"}},
                {"id": "y", "tool": "search", "inputs": {"query": "{{ x.output.text }}"}},
            ],
        })
        assert len(errors) == 1
        assert errors[0].startswith("Dependency cycle detected: ")
        assert "x" in errors[0] and "y" in errors[0]

    def test_unknown_tool(self, document):
        step(document, "search")["tool"] = "scrape"
        assert "Step 'search': unknown tool 'scrape'" in validate_workflow(document)

    def test_duplicate_and_reserved_ids(self, document):
        document["steps"].append({"id": "search", "tool": "search", "inputs": {"query": "x"}})
        document["steps"].append({"id": "inputs", "tool": "search", "inputs": {"query": "x"}})
        errors = validate_workflow(document)
        assert "Duplicate step id 'search'" in errors
        assert "Step 'inputs': id is reserved" in errors

    def test_unknown_step_reference(self, document):
        step(document, "brief")["inputs"]["prompt"] = "{{ serach.output.results }}"
        assert "Step 'brief': references unknown step 'serach'" in validate_workflow(document)

    def test_unknown_reference_reported_once(self, document):
        step(document, "brief")["inputs"]["prompt"] = "{{ nope.output.a }} {{ nope.output.b }}"
        errors = validate_workflow(document)
        assert errors.count("Step 'brief': references unknown step 'nope'") == 1

    def test_malformed_expression(self, document):
        step(document, "search")["inputs"]["query"] = "{{ inputs.q. }}"
        errors = validate_workflow(document)
        assert len(errors) == 1
        assert errors[0].startswith("Step 'search': input 'query': Invalid expression")

    def test_malformed_condition_and_for_each(self, document):
        step(document, "search")["condition"] = "inputs.q =="
        step(document, "brief")["forEach"] = 42
        errors = validate_workflow(document)
        assert any(e.startswith("Step 'search': condition:") for e in errors)
        assert "Step 'brief': 'forEach' must be a string expression" in errors

    def test_missing_required_tool_inputs(self, document):
        del step(document, "good")["inputs"]["condition"]
        del step(document, "each")["inputs"]["step"]
        errors = validate_workflow(document)
        assert "Step 'good': filter requires input 'condition'" in errors
        assert "Step 'each': loop requires input 'step'" in errors

    def test_loop_items_satisfied_by_for_each(self, document):
        loop = step(document, "each")
        del loop["inputs"]["items"]
        loop["forEach"] = "good.output.results"
        assert validate_workflow(document) == []

    def test_step_without_inputs(self, document):
        step(document, "brief")["inputs"] = {}
        assert "Step 'brief': has no inputs" in validate_workflow(document)

    def test_conditional_branch_shapes(self, document):
        gate = step(document, "gate")
        gate["inputs"]["then"] = "brief"
        gate["inputs"]["else"] = ["gate", "ghost"]
        errors = validate_workflow(document)
        assert "Step 'gate': 'then' must be an array of step ids" in errors
        assert "Step 'gate': 'else' cannot list the conditional itself" in errors
        assert "Step 'gate': 'else' references unknown step 'ghost'" in errors

    def test_loop_settings(self, document):
        loop = step(document, "each")
        loop["inputs"]["maxIterations"] = 0
        loop["inputs"]["as"] = "not valid"
        errors = validate_workflow(document)
        assert "Step 'each': 'maxIterations' must be a positive integer" in errors
        assert "Step 'each': 'as' must be an identifier" in errors

    def test_loop_step_checked(self, document):
        step(document, "each")["inputs"]["step"] = {"tool": "teleport", "inputs": {"x": 1}}
        assert "Step 'each' loop step: unknown tool 'teleport'" in validate_workflow(document)

    def test_merge_strategy(self):
        document = {
            "name": "m",
            "steps": [{"id": "m", "tool": "merge", "inputs": {"sources": [[1]], "strategy": "zip"}}],
        }
        errors = validate_workflow(document)
        assert len(errors) == 1
        assert errors[0].startswith("Step 'm': unknown merge strategy 'zip'")

    def test_templated_merge_strategy_allowed(self):
        document = {
            "name": "m",
            "steps": [{"id": "m", "tool": "merge", "inputs": {"sources": [[1]], "strategy": "{{ inputs.s }}"}}],
        }
        assert validate_workflow(document) == []

    def test_input_schema(self, document):
        document["inputs"]["bad"] = {"type": "date", "required": "yes"}
        errors = validate_workflow(document)
        assert any(e.startswith("Input 'bad' has invalid type 'date'") for e in errors)
        assert "Input 'bad': 'required' must be a boolean" in errors

    def test_continue_on_error_type(self, document):
        step(document, "brief")["continueOnError"] = "yes"
        assert "Step 'brief': 'continueOnError' must be a boolean" in validate_workflow(document)

    def test_output_references(self, document):
        errors = errors_for(document, output="{{ missing.output }}")
        assert errors == ["Workflow output references unknown step 'missing'"]


# ============================================================================
# DRAFT MODE
# ============================================================================

class TestDraft:
    """Draft mode downgrades incompleteness to warnings."""

    def test_returns_report(self, document):
        report = validate_workflow(document, mode="draft")
        assert isinstance(report, ValidationReport)
        assert report.valid
        assert report.to_dict() == {"valid": True, "errors": [], "warnings": []}

    def test_incomplete_document_is_valid_with_warnings(self):
        report = validate_workflow({
            "steps": [
                {"id": "brief", "tool": "generate", "inputs": {"prompt": "{{ search.output }}"}},
                {"id": "empty", "tool": "filter"},
            ],
        }, mode="draft")
        assert report.valid
        assert "Workflow is missing a name" in report.warnings
        assert "Step 'brief': references unknown step 'search'" in report.warnings
        assert "Step 'empty': has no inputs" in report.warnings

    def test_hard_errors_stay_errors(self):
        report = validate_workflow({
            "name": "draft",
            "steps": [
                {"id": "a", "tool": "nope", "inputs": {"x": 1}},
                {"id": "b", "tool": "search", "inputs": {"query": "{{ (inputs.q }}"}},
            ],
        }, mode="draft")
        assert not report.valid
        assert "Step 'a': unknown tool 'nope'" in report.errors
        assert len(report.errors) == 2

    def test_same_document_fails_strict(self):
        document = {"steps": [{"id": "brief", "tool": "generate", "inputs": {"prompt": "{{ search.output }}"}}]}
        assert WorkflowValidator("draft").validate(document).valid
        assert len(validate_workflow(document)) == 2


# ============================================================================
# PARSING THROUGH THE VALIDATOR
# ============================================================================

def test_from_document_rejects_invalid():
    with pytest.raises(WorkflowValidationError) as exc_info:
        WorkflowDefinition.from_document({"name": "x", "steps": [{"id": "a", "tool": "nope"}]})
    assert "Step 'a': unknown tool 'nope'" in exc_info.value.errors


def test_from_document_parses_aliases(document):
    step(document, "brief")["forEach"] = "good.output.results"
    definition = WorkflowDefinition.from_document(document)
    brief = definition.get_step("brief")
    assert brief.continue_on_error is True
    assert brief.for_each == "good.output.results"
    assert definition.inputs["limit"].has_default
