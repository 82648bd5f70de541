# ============================================================================
# EXECUTION CONTEXT TESTS
# ============================================================================
# STATUS: Tests - Write-once run context
# PURPOSE: Verify recording, overlays and read helpers
# CREATED: 19 OCT 2026
# ============================================================================
"""
Execution Context Tests

Run with:
    pytest tests/test_context.py -v
"""

import pytest

from orchestrator.engine.context import RESERVED_ROOTS, ExecutionContext
from orchestrator.engine.errors import ContextWriteError


@pytest.fixture
def context():
    ctx = ExecutionContext(inputs={"q": "rag"}, defaults={"model": "small"})
    ctx.record("search", {"results": [1, 2, 3]})
    return ctx


class TestRecording:
    """Entries are written once per step."""

    def test_record_and_read(self, context):
        assert context["search"] == {"output": {"results": [1, 2, 3]}}
        assert context.output_of("search") == {"results": [1, 2, 3]}
        assert context.has_step("search")

    def test_second_write_rejected(self, context):
        with pytest.raises(ContextWriteError):
            context.record("search", {})
        with pytest.raises(ContextWriteError):
            context.record_skip("search", "again")

    def test_reserved_keys_cannot_be_recorded(self, context):
        with pytest.raises(ContextWriteError):
            context.record("inputs", {})

    def test_skip_marker(self, context):
        context.record_skip("rerank", "condition is false")
        assert context["rerank"] == {"output": None, "skipped": True, "reason": "condition is false"}
        assert context.is_skipped("rerank")
        assert not context.has_error("rerank")

    def test_error_marker(self, context):
        context.record_error("fetch", "boom")
        assert context.has_error("fetch")
        assert context.output_of("fetch") is None
        assert not context.is_skipped("fetch")

    def test_step_outputs_in_recording_order(self, context):
        context.record_skip("rerank", "off")
        context.record("brief", "text")
        assert list(context.step_outputs()) == ["search", "rerank", "brief"]
        assert context.step_outputs()["brief"] == "text"
        assert context.recorded_steps() == ["search", "rerank", "brief"]

    def test_snapshot_is_a_copy(self, context):
        snapshot = context.snapshot()
        snapshot["search"]["output"] = "changed"
        assert context.output_of("search") == {"results": [1, 2, 3]}

    def test_inputs_and_defaults(self, context):
        assert context.inputs == {"q": "rag"}
        assert context.defaults == {"model": "small"}
        assert context.output_of("inputs") is None
        assert set(context) == {"inputs", "defaults", "search"}
        assert len(context) == 3


class TestOverlays:
    """Loop-local bindings live in read-only child overlays."""

    def test_child_reads_bindings_and_parent(self, context):
        child = context.child(item={"id": 1}, index=0)
        assert child["item"] == {"id": 1}
        assert child["search"]["output"]["results"] == [1, 2, 3]
        assert child.is_overlay
        assert child.binding_names == frozenset({"item", "index"})

    def test_child_bindings_do_not_leak(self, context):
        context.child(item=1)
        assert "item" not in context

    def test_child_cannot_write(self, context):
        child = context.child(item=1)
        with pytest.raises(ContextWriteError):
            child.record("loop.step", {})

    def test_nested_overlays(self, context):
        inner = context.child(doc="a").child(index=3)
        assert inner["doc"] == "a"
        assert inner.binding_names == frozenset({"doc", "index"})
        assert inner.has_step("search")

    def test_parent_writes_visible_through_child(self, context):
        child = context.child(item=1)
        context.record("late", 5)
        assert child["late"] == {"output": 5}


def test_reserved_roots():
    assert RESERVED_ROOTS == frozenset({"inputs", "defaults", "item", "index"})
