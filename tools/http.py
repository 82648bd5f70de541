# ============================================================================
# HTTP TOOL
# ============================================================================
# STATUS: Tool - Outbound HTTP requests
# PURPOSE: Bundled implementation of the `http` tool using httpx
# CREATED: 19 OCT 2026
# ============================================================================
"""
HTTP Tool

Makes one outbound HTTP request per invocation.

Inputs:
    url:      Absolute URL (required)
    method:   GET (default), POST, PUT, PATCH, DELETE, HEAD
    headers:  Optional header map
    params:   Optional query parameters
    json:     Optional JSON body
    body:     Optional raw body (dict/list bodies are sent as JSON)
    timeout:  Seconds, overrides the configured default

Output:
    {"status": 200, "ok": true, "headers": {...}, "body": <json or text>}

Non-2xx responses are returned, not raised; the workflow decides what to
do with them. Transport failures (DNS, connect, timeout) raise ToolError.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from core.config import HttpToolDefaults, get_defaults
from tools.registry import ToolContext, ToolError, ToolRegistry

logger = logging.getLogger(__name__)

ALLOWED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD")


class HttpTool:
    """
    Callable tool wrapping httpx.AsyncClient.

    A transport can be injected for tests (httpx.MockTransport).
    """

    def __init__(
        self,
        defaults: Optional[HttpToolDefaults] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.defaults = defaults or get_defaults().http
        self._transport = transport

    async def __call__(self, inputs: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        url = inputs.get("url")
        if not isinstance(url, str) or not url:
            raise ToolError("http", "input 'url' is required")

        method = str(inputs.get("method") or "GET").upper()
        if method not in ALLOWED_METHODS:
            raise ToolError("http", f"unsupported method '{method}'")

        timeout = inputs.get("timeout") or self.defaults.timeout_seconds
        headers = {"User-Agent": self.defaults.user_agent, **(inputs.get("headers") or {})}

        request_kwargs: Dict[str, Any] = {
            "headers": headers,
            "params": inputs.get("params") or None,
        }
        body = inputs.get("body")
        if inputs.get("json") is not None:
            request_kwargs["json"] = inputs["json"]
        elif isinstance(body, (dict, list)):
            request_kwargs["json"] = body
        elif body is not None:
            request_kwargs["content"] = str(body)

        logger.debug(f"[{context.step_id}] {method} {url}")

        try:
            async with httpx.AsyncClient(
                timeout=float(timeout),
                follow_redirects=self.defaults.follow_redirects,
                transport=self._transport,
            ) as client:
                response = await client.request(method, url, **request_kwargs)
        except httpx.TimeoutException:
            raise ToolError("http", f"{method} {url} timed out after {timeout}s")
        except httpx.HTTPError as e:
            raise ToolError("http", f"{method} {url} failed: {e}")

        if not response.is_success:
            logger.info(f"[{context.step_id}] {method} {url} returned {response.status_code}")

        return {
            "status": response.status_code,
            "ok": response.is_success,
            "headers": dict(response.headers),
            "body": self._decode(response),
        }

    def _decode(self, response: httpx.Response) -> Any:
        content_type = response.headers.get("content-type", "")
        if "json" in content_type:
            try:
                return response.json()
            except ValueError:
                pass
        text = response.text
        limit = self.defaults.max_body_chars
        if len(text) > limit:
            return f"{text[:limit]}... ({len(text)} chars)"
        return text


def register_http_tool(
    registry: ToolRegistry,
    defaults: Optional[HttpToolDefaults] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> HttpTool:
    """Register the bundled http tool on a registry."""
    tool = HttpTool(defaults=defaults, transport=transport)
    registry.register("http", tool, description="Outbound HTTP request", tags=["utility"])
    return tool


__all__ = [
    "HttpTool",
    "ALLOWED_METHODS",
    "register_http_tool",
]
