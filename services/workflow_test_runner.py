# ============================================================================
# WORKFLOW TEST RUNNER
# ============================================================================
# STATUS: Service - Mocked workflow test cases
# PURPOSE: Run *.test.json cases against a workflow with canned tool outputs
# CREATED: 19 OCT 2026
# ============================================================================
"""
Workflow Test Runner

A test case is a JSON document:

    {
        "name": "happy path",
        "inputs": {"query": "rag"},
        "mocks": {"search": {"results": [1, 2]}},
        "expect": {
            "steps": {"search": {"status": "completed"}},
            "output": {"results": {"type": "array", "minLength": 1}},
            "noErrors": true
        }
    }

Every tool named in `mocks` returns its canned output. Tools without a
mock are not registered, so a step that calls one fails.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from core.contracts import StepStatus
from core.models import ExecutionResult, WorkflowDefinition
from orchestrator import WorkflowOrchestrator
from orchestrator.engine.errors import WorkflowError
from tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

TEST_CASE_SUFFIX = ".test.json"

_TYPE_CHECKS = {
    "array": lambda value: isinstance(value, list),
    "string": lambda value: isinstance(value, str),
    "number": lambda value: isinstance(value, (int, float)) and not isinstance(value, bool),
    "boolean": lambda value: isinstance(value, bool),
    "object": lambda value: isinstance(value, dict),
}


# ============================================================================
# RESULT MODELS
# ============================================================================

@dataclass
class Assertion:
    """One checked expectation."""
    passed: bool
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"pass": self.passed, "message": self.message}


@dataclass
class TestCaseResult:
    """Outcome of one test case."""
    name: str
    passed: bool = True
    assertions: List[Assertion] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    file: Optional[str] = None

    __test__ = False

    def check(self, passed: bool, message: str) -> None:
        self.assertions.append(Assertion(passed, message))
        if not passed:
            self.passed = False

    def fail(self, message: str) -> None:
        self.errors.append(message)
        self.passed = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "file": self.file,
            "passed": self.passed,
            "assertions": [a.to_dict() for a in self.assertions],
            "errors": self.errors,
        }


@dataclass
class TestSuiteResult:
    """Aggregated outcome of a directory of test cases."""
    results: List[TestCaseResult] = field(default_factory=list)

    __test__ = False

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def failed(self) -> int:
        return self.total - self.passed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
        }


# ============================================================================
# RUNNER
# ============================================================================

def build_mock_registry(mocks: Dict[str, Any]) -> ToolRegistry:
    """Registry whose tools return canned outputs."""
    registry = ToolRegistry()
    for tool_name, output in (mocks or {}).items():
        registry.register(tool_name, _canned(output), description="mock")
    return registry


def _canned(output: Any):
    async def mock_tool(inputs: Dict[str, Any], context: Any) -> Any:
        return output
    return mock_tool


async def run_workflow_test(
    definition: Union[WorkflowDefinition, Dict[str, Any]],
    case: Dict[str, Any],
) -> TestCaseResult:
    """
    Run one test case against a workflow.

    Execution errors never propagate: they are reported on the result.
    """
    result = TestCaseResult(name=case.get("name") or "unnamed", file=case.get("_file"))

    orchestrator = WorkflowOrchestrator(tools=build_mock_registry(case.get("mocks") or {}))
    try:
        execution = await orchestrator.execute(definition, inputs=case.get("inputs") or {})
    except WorkflowError as e:
        result.fail(str(e))
        return result

    expect = case.get("expect") or {}
    _check_steps(result, execution, expect.get("steps") or {})
    _check_output(result, execution, expect.get("output") or {})
    if expect.get("noErrors"):
        errored = [f"{s.id}: {s.error}" for s in execution.steps if s.status == StepStatus.ERROR]
        if errored:
            result.check(False, f"Expected no errors but found: {'; '.join(errored)}")
        else:
            result.check(True, "No step errors")

    return result


def _check_steps(result: TestCaseResult, execution: ExecutionResult, expected: Dict[str, Any]) -> None:
    for step_id, expectation in expected.items():
        step = execution.get_step(step_id)
        if step is None:
            result.check(False, f"Step '{step_id}' not found in results")
            continue

        wanted = str((expectation or {}).get("status", "completed"))
        if step.status.value == wanted:
            result.check(True, f"Step '{step_id}' {wanted}")
        elif step.status == StepStatus.ERROR:
            result.check(False, f"Step '{step_id}' errored: {step.error}")
        else:
            result.check(False, f"Step '{step_id}' was {step.status.value}, expected {wanted}")


def _check_output(result: TestCaseResult, execution: ExecutionResult, expected: Dict[str, Any]) -> None:
    output = execution.output if isinstance(execution.output, dict) else {}
    for key, constraint in expected.items():
        value = output.get(key)
        expected_type = constraint.get("type")
        min_length = constraint.get("minLength")

        if expected_type:
            check = _TYPE_CHECKS.get(expected_type)
            if check is None:
                result.check(False, f"output.{key}: unknown type '{expected_type}'")
                continue
            if not check(value):
                result.check(False, f"output.{key} should be {expected_type}, got {type(value).__name__}")
                continue

        if min_length is not None:
            length = len(value) if isinstance(value, (list, str, dict)) else 0
            if length < min_length:
                result.check(False, f"output.{key} length {length} < {min_length}")
                continue

        if expected_type or min_length is not None:
            result.check(True, f"output.{key} matches expected shape")


# ============================================================================
# DISCOVERY
# ============================================================================

def load_test_cases(directory: Union[str, Path]) -> List[Dict[str, Any]]:
    """
    Load *.test.json cases from a directory, sorted by file name.

    Unreadable files become cases carrying an `_error`.
    """
    directory = Path(directory)
    if not directory.is_dir():
        return []

    cases = []
    for path in sorted(directory.glob(f"*{TEST_CASE_SUFFIX}")):
        try:
            with open(path, encoding="utf-8") as f:
                case = json.load(f)
            if not isinstance(case, dict):
                raise ValueError("test case must be a JSON object")
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load test case {path}: {e}")
            case = {"name": path.name, "_error": f"Failed to load: {e}"}
        case["_file"] = path.name
        cases.append(case)
    return cases


async def run_all_tests(
    definition: Union[WorkflowDefinition, Dict[str, Any]],
    directory: Union[str, Path],
    test_name: Optional[str] = None,
) -> TestSuiteResult:
    """Run every test case in a directory (or only the one named test_name)."""
    cases = load_test_cases(directory)
    if test_name:
        cases = [c for c in cases if c.get("name") == test_name]

    suite = TestSuiteResult()
    for case in cases:
        if "_error" in case:
            broken = TestCaseResult(name=case["name"], file=case["_file"])
            broken.fail(case["_error"])
            suite.results.append(broken)
            continue

        outcome = await run_workflow_test(definition, case)
        logger.info(f"Test '{outcome.name}': {'passed' if outcome.passed else 'failed'}")
        suite.results.append(outcome)

    return suite


__all__ = [
    "Assertion",
    "TestCaseResult",
    "TestSuiteResult",
    "build_mock_registry",
    "run_workflow_test",
    "load_test_cases",
    "run_all_tests",
]
