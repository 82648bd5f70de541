# ============================================================================
# EXECUTION RESULT MODELS
# ============================================================================
# STATUS: Core model - Per-run outcome
# PURPOSE: Step results, run results and payload summaries
# CREATED: 19 OCT 2026
# EXPORTS: StepResult, ExecutionResult, summarize_payload
# ============================================================================
"""
Execution Result Models

Created fresh for every run and discarded once the caller has consumed
them. Full step outputs live in the run's ExecutionContext; step results
only carry a size-bounded summary so they can be streamed to live UIs.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.contracts import ExecutionStatus, StepStatus


def summarize_payload(value: Any, max_items: int = 10, max_chars: int = 2000, max_depth: int = 4) -> Any:
    """
    Return a size-bounded copy of a step payload.

    Long strings are cut at max_chars. Lists keep their first max_items
    entries and objects their first max_items keys, each followed by a
    marker counting what was dropped. Containers nested deeper than
    max_depth are replaced by a short description. The original value is
    never modified.
    """
    if isinstance(value, str):
        if len(value) > max_chars:
            return f"{value[:max_chars]}... ({len(value)} chars)"
        return value

    if isinstance(value, (list, dict)) and max_depth <= 0:
        kind = "items" if isinstance(value, list) else "keys"
        return f"... {type(value).__name__} with {len(value)} {kind}"

    if isinstance(value, list):
        summary = [
            summarize_payload(item, max_items, max_chars, max_depth - 1)
            for item in value[:max_items]
        ]
        if len(value) > max_items:
            summary.append(f"... {len(value) - max_items} more items")
        return summary

    if isinstance(value, dict):
        kept = list(value.items())[:max_items]
        summary = {
            key: summarize_payload(item, max_items, max_chars, max_depth - 1)
            for key, item in kept
        }
        if len(value) > max_items:
            summary["..."] = f"{len(value) - max_items} more keys"
        return summary

    return value


@dataclass
class StepResult:
    """Outcome of one step in one run."""
    id: str
    tool: str
    status: StepStatus
    time_ms: int = 0
    summary: Any = None
    reason: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": self.id,
            "tool": self.tool,
            "status": self.status.value,
            "timeMs": self.time_ms,
        }
        if self.summary is not None:
            result["output"] = self.summary
        if self.reason:
            result["reason"] = self.reason
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class ExecutionResult:
    """
    Result of a workflow run.

    Partial runs (failed, cancelled) still carry every step result and
    context entry recorded before the run stopped.
    """
    workflow: str
    run_id: str
    status: ExecutionStatus
    output: Any = None
    steps: List[StepResult] = field(default_factory=list)
    layers: List[List[str]] = field(default_factory=list)
    total_time_ms: int = 0
    inputs: Dict[str, Any] = field(default_factory=dict)
    outputs: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    error: Optional[str] = None
    dry_run: bool = False

    @property
    def layer_count(self) -> int:
        return len(self.layers)

    @property
    def succeeded(self) -> bool:
        return self.status in (ExecutionStatus.COMPLETED, ExecutionStatus.PLANNED)

    def get_step(self, step_id: str) -> Optional[StepResult]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def step_ids_with_status(self, status: StepStatus) -> List[str]:
        return [step.id for step in self.steps if step.status == status]

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "workflow": self.workflow,
            "runId": self.run_id,
            "status": self.status.value,
            "output": self.output,
            "steps": [step.to_dict() for step in self.steps],
            "layers": self.layers,
            "totalTimeMs": self.total_time_ms,
        }
        if self.error:
            result["error"] = self.error
        if self.dry_run:
            result["dryRun"] = True
            result["inputs"] = self.inputs
        return result


__all__ = [
    "StepResult",
    "ExecutionResult",
    "summarize_payload",
]
