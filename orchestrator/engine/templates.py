# ============================================================================
# TEMPLATE RESOLUTION ENGINE
# ============================================================================
# STATUS: Core - Template resolution over the expression AST
# PURPOSE: Resolve {{ }} expressions in step inputs and workflow output
# CREATED: 19 OCT 2026
# ============================================================================
"""
Template Resolution Engine

Resolves template expressions in step inputs.

Supported patterns:
- {{ inputs.param_name }} - Workflow inputs (merged over defaults)
- {{ defaults.key }} - Workflow-level defaults
- {{ step_id.output.field }} - Output from a completed step
- {{ item.field }} / {{ index }} - Loop-local bindings
- {{ a.output.results || b.output.results }} - Fallback alternatives

Examples:
    inputs:
      query: "{{ inputs.question }}"
      documents: "{{ search.output.results }}"
      prompt: "Summarize {{ search.output.results.length }} documents"

A string that is exactly one expression resolves to the typed value
(list, dict, number...). Mixed text resolves to a string. Missing paths
resolve to None and never raise.
"""

import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Set

from orchestrator.engine.context import RESERVED_ROOTS, ExecutionContext
from orchestrator.engine.errors import ExpressionError
from orchestrator.engine.expressions import (
    TEMPLATE_PATTERN,
    Node,
    parse_expression,
    sole_expression,
    to_text,
)

logger = logging.getLogger(__name__)


class TemplateResolver:
    """
    Expression-based template resolver for step inputs.

    Stateless apart from the shared parse cache, can be reused across
    many resolutions and runs.
    """

    def resolve(
        self,
        value: Any,
        context: Mapping[str, Any],
        references: Optional[Set[str]] = None,
    ) -> Any:
        """
        Resolve all template expressions in a value.

        Args:
            value: String, list, dict or scalar holding {{ }} markers
            context: ExecutionContext (or any mapping) to resolve against
            references: Optional set that receives the step IDs referenced

        Returns:
            New value with all templates resolved (input is not modified)
        """
        if isinstance(value, str):
            return self._resolve_string(value, context, references)
        elif isinstance(value, dict):
            return {k: self.resolve(v, context, references) for k, v in value.items()}
        elif isinstance(value, list):
            return [self.resolve(item, context, references) for item in value]
        else:
            return value

    def _resolve_string(
        self,
        value: str,
        context: Mapping[str, Any],
        references: Optional[Set[str]],
    ) -> Any:
        """Resolve template expressions in a string value."""
        # Quick check: if no template markers, return as-is
        if "{{" not in value:
            return value

        # A single expression keeps its type
        inner = sole_expression(value)
        if inner is not None:
            return self._evaluate(inner, context, references)

        return TEMPLATE_PATTERN.sub(
            lambda match: to_text(self._evaluate(match.group(1), context, references)),
            value,
        )

    def _evaluate(
        self,
        expression: str,
        context: Mapping[str, Any],
        references: Optional[Set[str]],
    ) -> Any:
        try:
            node = parse_expression(expression)
        except ExpressionError as e:
            # Reported as an error by the validator; degrade at runtime
            logger.warning(f"Unresolvable template expression: {e}")
            return None

        if references is not None:
            references.update(self._step_roots(node, context))
        return node.evaluate(context)

    @staticmethod
    def _step_roots(node: Node, context: Mapping[str, Any]) -> Set[str]:
        local = context.binding_names if isinstance(context, ExecutionContext) else frozenset()
        return {
            reference.root
            for reference in node.references()
            if reference.root not in RESERVED_ROOTS and reference.root not in local
        }

    def has_templates(self, value: Any) -> bool:
        """Check if a value contains any template expressions."""
        if isinstance(value, str):
            return bool(TEMPLATE_PATTERN.search(value))
        elif isinstance(value, dict):
            return any(self.has_templates(v) for v in value.values())
        elif isinstance(value, list):
            return any(self.has_templates(item) for item in value)
        return False


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

_resolver: Optional[TemplateResolver] = None


def get_resolver() -> TemplateResolver:
    """Get shared template resolver instance."""
    global _resolver
    if _resolver is None:
        _resolver = TemplateResolver()
    return _resolver


def resolve_params(
    params: Dict[str, Any],
    context: Mapping[str, Any],
    skip: Iterable[str] = (),
    references: Optional[Set[str]] = None,
) -> Dict[str, Any]:
    """
    Resolve a step's input map.

    Args:
        params: Step inputs with template expressions
        context: Context to resolve against
        skip: Keys left unresolved (evaluated later by the tool itself)
        references: Optional set that receives referenced step IDs

    Returns:
        Resolved inputs
    """
    skip = set(skip)
    resolver = get_resolver()
    return {
        key: value if key in skip else resolver.resolve(value, context, references)
        for key, value in params.items()
    }


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "TemplateResolver",
    "get_resolver",
    "resolve_params",
]
