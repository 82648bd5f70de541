# ============================================================================
# TEMPLATE RESOLUTION TESTS
# ============================================================================
# STATUS: Tests - Template resolver
# PURPOSE: Verify {{ }} resolution in step inputs and workflow output
# CREATED: 19 OCT 2026
# ============================================================================
"""
Template Resolution Tests

Tests:
1. Single markers keep their type, mixed text becomes a string
2. Nested structures are resolved without mutating the input
3. Missing paths resolve to None, malformed markers degrade to None
4. Referenced step IDs are reported (reserved roots and loop names excluded)
5. Resolution is idempotent

Run with:
    pytest tests/test_templates.py -v
"""

import logging

import pytest

from orchestrator.engine.context import ExecutionContext
from orchestrator.engine.templates import TemplateResolver, get_resolver, resolve_params


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def resolver():
    return TemplateResolver()


@pytest.fixture
def context():
    ctx = ExecutionContext(inputs={"question": "what is rag", "limit": 3}, defaults={"model": "small"})
    ctx.record("search", {"results": [{"title": "A"}, {"title": "B"}], "count": 2})
    ctx.record_skip("rerank", "condition is false")
    return ctx


# ============================================================================
# RESOLUTION
# ============================================================================

class TestResolve:
    """TemplateResolver.resolve over strings and structures."""

    def test_typed_single_marker(self, resolver, context):
        assert resolver.resolve("{{ inputs.limit }}", context) == 3
        assert resolver.resolve("{{ search.output.results }}", context) == [{"title": "A"}, {"title": "B"}]

    def test_mixed_text(self, resolver, context):
        value = resolver.resolve("Summarize {{ search.output.count }} docs about {{ inputs.question }}", context)
        assert value == "Summarize 2 docs about what is rag"

    def test_plain_string_untouched(self, resolver, context):
        assert resolver.resolve("no markers here", context) == "no markers here"

    def test_non_strings_untouched(self, resolver, context):
        assert resolver.resolve(7, context) == 7
        assert resolver.resolve(None, context) is None

    def test_nested_structure(self, resolver, context):
        value = {
            "query": "{{ inputs.question }}",
            "options": {"model": "{{ defaults.model }}", "k": "{{ inputs.limit }}"},
            "ids": ["{{ search.output.results[0].title }}", "literal"],
        }
        resolved = resolver.resolve(value, context)
        assert resolved == {
            "query": "what is rag",
            "options": {"model": "small", "k": 3},
            "ids": ["A", "literal"],
        }
        # Input is not modified
        assert value["query"] == "{{ inputs.question }}"

    def test_missing_path_is_none(self, resolver, context):
        assert resolver.resolve("{{ search.output.missing.field }}", context) is None
        assert resolver.resolve("x={{ search.output.missing }}", context) == "x="

    def test_fallback_to_earlier_step(self, resolver, context):
        value = resolver.resolve("{{ rerank.output.results || search.output.results }}", context)
        assert len(value) == 2

    def test_malformed_marker_degrades_to_none(self, resolver, context, caplog):
        with caplog.at_level(logging.WARNING, logger="orchestrator.engine.templates"):
            assert resolver.resolve("{{ search.output. }}", context) is None
        assert "Unresolvable template expression" in caplog.text

    def test_resolution_is_idempotent(self, resolver, context):
        value = {"q": "{{ inputs.question }}", "docs": "{{ search.output.results }}", "n": "{{ search.output.count }} docs"}
        once = resolver.resolve(value, context)
        assert resolver.resolve(once, context) == once

    def test_has_templates(self, resolver):
        assert resolver.has_templates({"a": ["x", "{{ y }}"]})
        assert not resolver.has_templates({"a": ["x", 1]})


# ============================================================================
# REFERENCES
# ============================================================================

class TestReferences:
    """Referenced step IDs collected during resolution."""

    def test_collects_step_roots_only(self, resolver, context):
        references = set()
        resolver.resolve({"a": "{{ inputs.question }}", "b": "{{ search.output.count }}"}, context, references)
        assert references == {"search"}

    def test_loop_bindings_excluded(self, resolver, context):
        references = set()
        child = context.child(doc={"title": "A"}, item={"title": "A"}, index=0)
        assert resolver.resolve("{{ doc.title }}/{{ item.title }}", child, references) == "A/A"
        assert references == set()


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

def test_resolve_params_skips_deferred_keys(context):
    params = {"items": "{{ search.output.results }}", "condition": "{{ item.title }} == 'A'"}
    resolved = resolve_params(params, context, skip=["condition"])
    assert resolved["items"] == [{"title": "A"}, {"title": "B"}]
    assert resolved["condition"] == "{{ item.title }} == 'A'"


def test_get_resolver_is_shared():
    assert get_resolver() is get_resolver()
