#!/usr/bin/env python3
# ============================================================================
# WORKFLOW ENGINE - COMMAND LINE
# ============================================================================
# STATUS: Entry point - Run, validate, plan and test workflows
# PURPOSE: Command-line access to the workflow engine
# CREATED: 19 OCT 2026
# ============================================================================
"""
Workflow Engine Command Line

Usage:
    # Run a workflow by catalogue name or path
    python main.py run search_pipeline query=rag limit=5

    # Print the full result as JSON
    python main.py run workflows/search_pipeline.json query=rag --json

    # Validate and plan only
    python main.py run search_pipeline query=rag --dry-run

    # Validate a document (draft mode reports warnings for incomplete steps)
    python main.py validate workflows/draft.json --draft

    # Show execution layers
    python main.py plan search_pipeline

    # Run mocked test cases (*.test.json)
    python main.py test search_pipeline --tests workflows/tests

Tools beyond the bundled `http` tool are provided by modules passed with
--tools; each module must define `register(registry)`.
"""

import argparse
import asyncio
import importlib
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from __version__ import __version__
from core.logging import configure_logging, get_logger, ComponentType
from orchestrator import ProgressCallbacks, WorkflowOrchestrator
from orchestrator.engine import (
    WorkflowError,
    WorkflowExecutionError,
    WorkflowValidationError,
    build_execution_plan,
    describe_workflow,
    validate_workflow,
)
from services import WorkflowNotFoundError, WorkflowService, run_all_tests
from tools import ToolRegistry, register_http_tool

logger = get_logger(__name__, ComponentType.CLI)


# ============================================================================
# HELPERS
# ============================================================================

def parse_assignments(pairs: List[str]) -> Dict[str, Any]:
    """
    Parse key=value arguments into an input map.

    Values stay strings; the orchestrator coerces them to the declared
    input types.
    """
    inputs: Dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected key=value, got '{pair}'")
        inputs[key.strip()] = value
    return inputs


def build_registry(modules: Optional[List[str]] = None) -> ToolRegistry:
    """Registry with the http tool plus every --tools module."""
    registry = ToolRegistry()
    register_http_tool(registry)
    for module_name in modules or []:
        module = importlib.import_module(module_name)
        register = getattr(module, "register", None)
        if register is None:
            raise ValueError(f"Tool module '{module_name}' has no register(registry) function")
        register(registry)
    return registry


def _load_document(service: WorkflowService, target: str) -> Dict[str, Any]:
    path = service.resolve_path(target)
    document = service.read_document(path)
    if not isinstance(document, dict):
        raise ValueError(f"{path}: workflow document must be an object")
    return document


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, default=str))


def _console_callbacks() -> ProgressCallbacks:
    return ProgressCallbacks(
        on_step_start=lambda step_id, step: print(f"  > {step_id} ({step.tool.value})", file=sys.stderr),
        on_step_complete=lambda step_id, summary, time_ms: print(
            f"  + {step_id} completed in {time_ms}ms", file=sys.stderr
        ),
        on_step_skip=lambda step_id, reason: print(f"  - {step_id} skipped: {reason}", file=sys.stderr),
        on_step_error=lambda step_id, message: print(f"  ! {step_id} failed: {message}", file=sys.stderr),
    )


# ============================================================================
# COMMANDS
# ============================================================================

def cmd_run(args: argparse.Namespace) -> int:
    service = WorkflowService(args.workflows_dir)
    inputs = parse_assignments(args.inputs)

    # Draft warnings are informational; execution always validates strictly
    if args.draft:
        report = validate_workflow(_load_document(service, args.workflow), mode="draft")
        for warning in report.warnings:
            print(f"WARNING: {warning}", file=sys.stderr)
    definition = service.load(args.workflow)

    orchestrator = WorkflowOrchestrator(tools=build_registry(args.tools))
    callbacks = None if args.json else _console_callbacks()

    try:
        result = asyncio.run(orchestrator.execute(
            definition,
            inputs=inputs,
            callbacks=callbacks,
            dry_run=args.dry_run,
            time_budget_seconds=args.time_budget,
        ))
    except WorkflowExecutionError as e:
        if e.result is not None and args.json:
            _print_json(e.result.to_dict())
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    if args.json:
        _print_json(result.to_dict())
    elif args.dry_run:
        for index, layer in enumerate(result.layers):
            print(f"Layer {index}: {', '.join(layer)}")
    else:
        _print_json(result.output)
    return 0 if result.succeeded else 1


def cmd_validate(args: argparse.Namespace) -> int:
    service = WorkflowService(args.workflows_dir)
    document = _load_document(service, args.workflow)

    if args.draft:
        report = validate_workflow(document, mode="draft")
        errors, warnings = report.errors, report.warnings
    else:
        errors, warnings = validate_workflow(document), []

    for warning in warnings:
        print(f"WARNING: {warning}")
    for error in errors:
        print(f"ERROR: {error}")
    if errors:
        print(f"Invalid: {len(errors)} error(s)")
        return 1
    print("Valid")
    return 0


def cmd_plan(args: argparse.Namespace) -> int:
    service = WorkflowService(args.workflows_dir)
    definition = service.load(args.workflow)

    if args.json:
        _print_json(describe_workflow(definition))
        return 0

    plan = build_execution_plan(definition)
    print(f"{definition.name}: {plan.step_count} steps in {len(plan)} layers")
    for index, layer in enumerate(plan):
        labels = [f"{step_id} ({definition.get_step(step_id).tool.value})" for step_id in layer]
        print(f"  Layer {index}: {', '.join(labels)}")
    return 0


def cmd_test(args: argparse.Namespace) -> int:
    service = WorkflowService(args.workflows_dir)
    path = service.resolve_path(args.workflow)
    definition = service.load_file(path)
    tests_dir = Path(args.tests) if args.tests else path.parent / "tests"

    suite = asyncio.run(run_all_tests(definition, tests_dir, test_name=args.name))

    if args.json:
        _print_json(suite.to_dict())
    else:
        for result in suite.results:
            print(f"{'PASS' if result.passed else 'FAIL'} {result.name}")
            for assertion in result.assertions:
                if not assertion.passed:
                    print(f"    {assertion.message}")
            for error in result.errors:
                print(f"    {error}")
        print(f"{suite.passed}/{suite.total} passed")
    return 0 if suite.failed == 0 else 1


# ============================================================================
# ENTRY POINT
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Declarative workflow engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s run search_pipeline query=rag --json
  %(prog)s validate workflows/draft.json --draft
  %(prog)s plan search_pipeline
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--workflows-dir", "-w",
        default=None,
        help="Workflow catalogue directory (default: WORKFLOWS_DIR or ./workflows)",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "WARNING"),
        help="Log level (default: WARNING)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Execute a workflow")
    run.add_argument("workflow", help="Workflow name or path")
    run.add_argument("inputs", nargs="*", help="Inputs as key=value")
    run.add_argument("--json", action="store_true", help="Print the full result as JSON")
    run.add_argument("--dry-run", action="store_true", help="Validate and plan without executing")
    run.add_argument("--draft", action="store_true", help="Validate in draft mode before running")
    run.add_argument("--time-budget", type=float, default=None, help="Wall-clock budget in seconds")
    run.add_argument(
        "--tools", "-t",
        action="append",
        default=[],
        help="Module providing register(registry); may be repeated",
    )
    run.set_defaults(handler=cmd_run)

    validate = subparsers.add_parser("validate", help="Validate a workflow document")
    validate.add_argument("workflow", help="Workflow name or path")
    validate.add_argument("--draft", action="store_true", help="Downgrade incomplete steps to warnings")
    validate.set_defaults(handler=cmd_validate)

    plan = subparsers.add_parser("plan", help="Show execution layers")
    plan.add_argument("workflow", help="Workflow name or path")
    plan.add_argument("--json", action="store_true", help="Print nodes, edges and layers as JSON")
    plan.set_defaults(handler=cmd_plan)

    test = subparsers.add_parser("test", help="Run mocked workflow test cases")
    test.add_argument("workflow", help="Workflow name or path")
    test.add_argument("--tests", help="Directory of *.test.json files (default: <workflow dir>/tests)")
    test.add_argument("--name", help="Run only the test case with this name")
    test.add_argument("--json", action="store_true", help="Print results as JSON")
    test.set_defaults(handler=cmd_test)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(
        level=args.log_level,
        json_output=os.environ.get("LOG_FORMAT", "").lower() == "json",
    )

    try:
        return args.handler(args)
    except WorkflowValidationError as e:
        for error in e.errors:
            print(f"ERROR: {error}", file=sys.stderr)
        return 1
    except (WorkflowError, WorkflowNotFoundError, ValueError, ImportError, OSError) as e:
        logger.debug(f"Command failed: {e!r}")
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
