# ============================================================================
# ORCHESTRATOR MODULE
# ============================================================================
# STATUS: Core - Workflow execution loop
# PURPOSE: Validate, plan and run workflows
# CREATED: 19 OCT 2026
# ============================================================================
"""
Orchestrator Module

The execution loop that drives a workflow from document to result.

Usage:
    from orchestrator import WorkflowOrchestrator

    orchestrator = WorkflowOrchestrator(tools=registry)
    result = await orchestrator.execute(definition, inputs={"query": "rag"})
"""

from .loop import ProgressCallbacks, WorkflowOrchestrator, execute_workflow

__all__ = ["WorkflowOrchestrator", "ProgressCallbacks", "execute_workflow"]
