# ============================================================================
# TOOL REGISTRY
# ============================================================================
# STATUS: Core - Tool registration and lookup
# PURPOSE: Register and discover the tools workflow steps delegate to
# CREATED: 19 OCT 2026
# ============================================================================
"""
Tool Registry

Provides a registry of tool functions the engine delegates to.

Usage:
    from tools import ToolRegistry, register_http_tool

    registry = ToolRegistry()

    @registry.register("search")
    async def search(inputs, ctx):
        return {"results": [...]}

    register_http_tool(registry)
"""

from tools.registry import (
    ToolRegistry,
    ToolCollaborator,
    ToolFunc,
    ToolContext,
    ToolResult,
    ToolError,
    ToolNotFoundError,
    DuplicateToolError,
)
from tools.http import HttpTool, register_http_tool

__all__ = [
    "ToolRegistry",
    "ToolCollaborator",
    "ToolFunc",
    "ToolContext",
    "ToolResult",
    "ToolError",
    "ToolNotFoundError",
    "DuplicateToolError",
    "HttpTool",
    "register_http_tool",
]
