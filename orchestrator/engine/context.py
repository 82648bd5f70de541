# ============================================================================
# EXECUTION CONTEXT
# ============================================================================
# STATUS: Core - Per-run value store
# PURPOSE: Write-once mapping of inputs, defaults and step outputs
# CREATED: 19 OCT 2026
# ============================================================================
"""
Execution Context

Holds everything a template can see during one run:

    {
        "inputs":   {...},          # caller inputs merged over defaults
        "defaults": {...},          # workflow-level defaults
        "search":   {"output": {...}},
        "gate":     {"output": None, "skipped": True, "reason": "..."},
        "fetch":    {"output": None, "error": "..."},
    }

Each key is written once. Loop-local names (item, index, a loop's `as`
name) live in child overlays created with child(), which read through to
the parent and never write into it.

A context belongs to exactly one run and is never shared.
"""

from collections.abc import Mapping
from typing import Any, Dict, FrozenSet, Iterator, List, Optional

from orchestrator.engine.errors import ContextWriteError

# Root names that never refer to a step
RESERVED_ROOTS: FrozenSet[str] = frozenset({"inputs", "defaults", "item", "index"})


class ExecutionContext(Mapping):
    """
    Write-once mapping for one workflow run.

    Usage:
        context = ExecutionContext(inputs={"query": "rag"})
        context.record("search", {"results": [...]})
        context["search"]["output"]["results"]

        loop_context = context.child(item=doc, index=0)
    """

    def __init__(
        self,
        inputs: Optional[Dict[str, Any]] = None,
        defaults: Optional[Dict[str, Any]] = None,
    ):
        self._parent: Optional["ExecutionContext"] = None
        self._bindings: Dict[str, Any] = {}
        self._entries: Dict[str, Any] = {
            "inputs": dict(inputs or {}),
            "defaults": dict(defaults or {}),
        }
        self._step_ids: List[str] = []

    # ------------------------------------------------------------------
    # Mapping protocol
    # ------------------------------------------------------------------

    def __getitem__(self, key: str) -> Any:
        if key in self._bindings:
            return self._bindings[key]
        if self._parent is not None:
            return self._parent[key]
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        seen = set()
        for key in self._bindings:
            seen.add(key)
            yield key
        source = self._parent if self._parent is not None else self._entries
        for key in source:
            if key not in seen:
                yield key

    def __len__(self) -> int:
        return sum(1 for _ in self)

    # ------------------------------------------------------------------
    # Overlays
    # ------------------------------------------------------------------

    def child(self, **bindings: Any) -> "ExecutionContext":
        """Return an overlay with extra read-only names bound."""
        overlay = ExecutionContext.__new__(ExecutionContext)
        overlay._parent = self
        overlay._bindings = bindings
        overlay._entries = {}
        overlay._step_ids = []
        return overlay

    @property
    def is_overlay(self) -> bool:
        return self._parent is not None

    @property
    def binding_names(self) -> FrozenSet[str]:
        """Names bound by this overlay and its ancestors."""
        names = set(self._bindings)
        if self._parent is not None:
            names |= self._parent.binding_names
        return frozenset(names)

    def _root(self) -> "ExecutionContext":
        context = self
        while context._parent is not None:
            context = context._parent
        return context

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _write(self, key: str, entry: Dict[str, Any]) -> None:
        if self._parent is not None:
            raise ContextWriteError(key)
        if key in self._entries:
            raise ContextWriteError(key)
        self._entries[key] = entry
        self._step_ids.append(key)

    def record(self, step_id: str, output: Any) -> None:
        """Record a completed step's output."""
        self._write(step_id, {"output": output})

    def record_skip(self, step_id: str, reason: str) -> None:
        """Record a skipped step."""
        self._write(step_id, {"output": None, "skipped": True, "reason": reason})

    def record_error(self, step_id: str, message: str) -> None:
        """Record an error marker for a step that failed with continueOnError."""
        self._write(step_id, {"output": None, "error": message})

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def inputs(self) -> Dict[str, Any]:
        return self["inputs"]

    @property
    def defaults(self) -> Dict[str, Any]:
        return self["defaults"]

    def has_step(self, step_id: str) -> bool:
        return step_id in self._root()._step_ids

    def output_of(self, step_id: str) -> Any:
        """Get a step's recorded output (None if absent)."""
        entry = self._root()._entries.get(step_id)
        return entry.get("output") if entry and step_id not in ("inputs", "defaults") else None

    def is_skipped(self, step_id: str) -> bool:
        entry = self._root()._entries.get(step_id)
        return bool(entry and entry.get("skipped"))

    def has_error(self, step_id: str) -> bool:
        entry = self._root()._entries.get(step_id)
        return bool(entry and "error" in entry)

    def recorded_steps(self) -> List[str]:
        """Step IDs in the order they were recorded."""
        return list(self._root()._step_ids)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Shallow copy of every recorded step entry."""
        root = self._root()
        return {step_id: dict(root._entries[step_id]) for step_id in root._step_ids}

    def step_outputs(self) -> Dict[str, Any]:
        """Map of step ID to output, used when a workflow has no output expression."""
        root = self._root()
        return {step_id: root._entries[step_id].get("output") for step_id in root._step_ids}

    def __repr__(self) -> str:
        kind = "overlay" if self._parent is not None else "root"
        return f"<ExecutionContext {kind} steps={self.recorded_steps()}>"


__all__ = [
    "ExecutionContext",
    "RESERVED_ROOTS",
]
