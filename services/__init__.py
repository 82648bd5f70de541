# ============================================================================
# SERVICES MODULE
# ============================================================================
# STATUS: Service layer
# PURPOSE: Workflow loading and mocked workflow testing
# CREATED: 19 OCT 2026
# ============================================================================
"""
Services Module

Business logic layer on top of the engine.
"""

from .workflow_service import WorkflowService, WorkflowNotFoundError
from .workflow_test_runner import (
    TestCaseResult,
    TestSuiteResult,
    load_test_cases,
    run_all_tests,
    run_workflow_test,
)

__all__ = [
    "WorkflowService",
    "WorkflowNotFoundError",
    "TestCaseResult",
    "TestSuiteResult",
    "load_test_cases",
    "run_all_tests",
    "run_workflow_test",
]
