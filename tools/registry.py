# ============================================================================
# TOOL REGISTRY
# ============================================================================
# STATUS: Core - Tool registration, lookup and invocation
# PURPOSE: Bundled tool collaborator for the workflow engine
# CREATED: 19 OCT 2026
# ============================================================================
"""
Tool Registry

Registry for the tools the engine delegates to (search, rerank, embed,
generate, http...). The step executor only knows the ToolCollaborator
protocol; ToolRegistry is the bundled implementation.

Design:
- Tools are registered via decorator or direct call
- Registry is an object (one per deployment, or per test)
- Fail-fast on duplicate registration
- Supports both sync and async tools (sync tools run in a thread pool)

Tool functions take (inputs, context) and return the output, or a
ToolResult when they want to report a failure without raising.
"""

import asyncio
import functools
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Protocol, Union

logger = logging.getLogger(__name__)


# ============================================================================
# TOOL TYPES
# ============================================================================

@dataclass
class ToolContext:
    """
    Runtime context passed to tool functions.

    Carries identifiers only; resolved inputs are passed separately.
    """
    tool: str
    step_id: str
    workflow: Optional[str] = None
    run_id: Optional[str] = None

    # Position within a forEach / loop iteration
    index: Optional[int] = None

    # Free-form values a caller wants every tool to see
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResult:
    """
    Explicit result a tool may return instead of a bare output.
    """
    success: bool = True
    output: Any = None
    error_message: Optional[str] = None

    @classmethod
    def success_result(cls, output: Any = None) -> "ToolResult":
        """Create a success result."""
        return cls(success=True, output=output)

    @classmethod
    def failure_result(cls, error_message: str, output: Any = None) -> "ToolResult":
        """Create a failure result."""
        return cls(success=False, error_message=error_message, output=output)


# Tool function type
ToolFunc = Callable[[Dict[str, Any], ToolContext], Union[Any, Awaitable[Any]]]


class ToolCollaborator(Protocol):
    """What the step executor needs from a tool provider."""

    def invoke(
        self,
        tool: str,
        inputs: Dict[str, Any],
        context: ToolContext,
    ) -> Union[Any, Awaitable[Any]]:
        ...


# ============================================================================
# EXCEPTIONS
# ============================================================================

class ToolError(Exception):
    """Raised when a tool fails."""
    def __init__(self, tool: str, message: str):
        self.tool = tool
        self.message = message
        super().__init__(f"Tool '{tool}' failed: {message}")


class ToolNotFoundError(ToolError):
    """Raised when a tool is not found in the registry."""
    def __init__(self, tool: str):
        self.tool = tool
        self.message = f"Tool not registered: {tool}"
        Exception.__init__(self, self.message)


class DuplicateToolError(ToolError):
    """Raised when a tool name is already registered."""
    def __init__(self, tool: str):
        self.tool = tool
        self.message = f"Tool already registered: {tool}"
        Exception.__init__(self, self.message)


# ============================================================================
# REGISTRY
# ============================================================================

class ToolRegistry:
    """
    Name -> tool function registry implementing ToolCollaborator.

    Example:
        registry = ToolRegistry()

        @registry.register("search", description="Vector search")
        async def search(inputs, ctx):
            return {"results": await index.query(inputs["query"])}

        output = await registry.invoke("search", {"query": "rag"}, ctx)
    """

    def __init__(self):
        self._tools: Dict[str, ToolFunc] = {}
        self._metadata: Dict[str, Dict[str, Any]] = {}

    def register(
        self,
        name: str,
        func: Optional[ToolFunc] = None,
        *,
        description: str = "",
        tags: Optional[List[str]] = None,
    ) -> Callable[[ToolFunc], ToolFunc]:
        """
        Register a tool function (usable as a decorator).

        Args:
            name: Tool name (must be unique)
            func: Tool function, when not used as a decorator
            description: Human-readable description
            tags: Optional tags for categorization

        Returns:
            Decorator function (or func itself when passed directly)
        """
        def decorator(tool_func: ToolFunc) -> ToolFunc:
            if name in self._tools:
                raise DuplicateToolError(name)

            self._tools[name] = tool_func
            self._metadata[name] = {
                "name": name,
                "description": description,
                "tags": tags or [],
                "function": getattr(tool_func, "__name__", type(tool_func).__name__),
                "module": getattr(tool_func, "__module__", None),
                "is_async": _is_async(tool_func),
                "registered_at": datetime.now(timezone.utc).isoformat(),
            }

            logger.debug(f"Registered tool: {name}")
            return tool_func

        if func is not None:
            return decorator(func)
        return decorator

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)
        self._metadata.pop(name, None)

    def get(self, name: str) -> Optional[ToolFunc]:
        """Get a tool by name, or None."""
        return self._tools.get(name)

    def get_or_raise(self, name: str) -> ToolFunc:
        """
        Get a tool by name, raising if not found.

        Raises:
            ToolNotFoundError if tool not found
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    def has(self, name: str) -> bool:
        return name in self._tools

    def list_tools(self) -> List[Dict[str, Any]]:
        """List all registered tools with metadata."""
        return list(self._metadata.values())

    def get_metadata(self, name: str) -> Optional[Dict[str, Any]]:
        return self._metadata.get(name)

    def missing(self, tool_names: Iterable[str]) -> List[str]:
        """
        Return the names that are not registered.

        Args:
            tool_names: Tool names used by a workflow

        Returns:
            List of missing tool names (empty if all present)
        """
        return [name for name in tool_names if name not in self._tools]

    def clear(self) -> None:
        """Clear all registered tools. Primarily for testing."""
        self._tools.clear()
        self._metadata.clear()
        logger.debug("Cleared all tools")

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    async def invoke(
        self,
        tool: str,
        inputs: Dict[str, Any],
        context: ToolContext,
    ) -> Any:
        """
        Invoke a tool by name.

        Handles both sync and async tools.

        Returns:
            The tool's output

        Raises:
            ToolNotFoundError: If the tool is not registered
            ToolError: If the tool raised or returned a failure result
        """
        func = self.get_or_raise(tool)

        try:
            if _is_async(func):
                result = await func(inputs, context)
            else:
                # Run sync tool in thread pool
                loop = asyncio.get_running_loop()
                result = await loop.run_in_executor(None, functools.partial(func, inputs, context))
                if inspect.isawaitable(result):
                    result = await result
        except ToolError:
            raise
        except Exception as e:
            logger.exception(f"Tool {tool} failed: {e}")
            raise ToolError(tool, str(e) or type(e).__name__) from e

        if isinstance(result, ToolResult):
            if not result.success:
                raise ToolError(tool, result.error_message or "tool reported failure")
            return result.output
        return result


def _is_async(func: Any) -> bool:
    if inspect.iscoroutinefunction(func):
        return True
    # Callable objects with an async __call__
    return inspect.iscoroutinefunction(getattr(func, "__call__", None))


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ToolRegistry",
    "ToolCollaborator",
    "ToolFunc",
    "ToolContext",
    "ToolResult",
    "ToolError",
    "ToolNotFoundError",
    "DuplicateToolError",
]
