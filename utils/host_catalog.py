"""
FastMCP host catalog

Registers forwarding tools on a running FastMCP server and removes them
again, so the host's tool list follows the child servers that are live.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Protocol

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.server.dependencies import get_context
from fastmcp.tools import Tool
from fastmcp.tools.tool import ToolResult
from mcp.types import CallToolResult, TextContent
from pydantic import PrivateAttr

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], Awaitable[Any]]

EMPTY_SCHEMA = {"type": "object", "properties": {}}


class CapabilityHandle(Protocol):
    name: str

    def remove(self) -> None: ...


class HostCatalog(Protocol):
    def register_capability(
        self, name: str, description: str, schema: Dict[str, Any], handler: Handler
    ) -> CapabilityHandle: ...

    async def notify_catalog_changed(self) -> None: ...


class ForwardingTool(Tool):
    """A tool whose calls are handed to a child server untouched."""

    _handler: Handler = PrivateAttr()

    async def run(self, arguments: Dict[str, Any]) -> ToolResult:
        result = await self._handler(arguments)
        if isinstance(result, CallToolResult):
            if result.isError:
                text = "\n".join(c.text for c in result.content if isinstance(c, TextContent))
                raise ToolError(text or f"Tool '{self.name}' failed")
            return ToolResult(content=result.content, structured_content=result.structuredContent)
        return ToolResult(content=result)


class FastMCPHandle:
    def __init__(self, server: FastMCP, name: str):
        self._server = server
        self.name = name

    def remove(self) -> None:
        self._server.remove_tool(self.name)


class FastMCPHostCatalog:
    """HostCatalog backed by a FastMCP server instance."""

    def __init__(self, server: FastMCP):
        self.server = server

    def register_capability(
        self, name: str, description: str, schema: Dict[str, Any], handler: Handler
    ) -> FastMCPHandle:
        tool = ForwardingTool(name=name, description=description, parameters=schema or EMPTY_SCHEMA)
        tool._handler = handler
        self.server.add_tool(tool)
        return FastMCPHandle(self.server, name)

    async def notify_catalog_changed(self) -> None:
        """
        Queue one tools/list_changed on the active request.

        add_tool and remove_tool queue the same notification, and the request
        context sends its queue once on exit, so a batch of registrations
        reaches the client as a single notification.
        """
        try:
            context = get_context()
        except RuntimeError:
            # Outside a request (startup); clients fetch the list on connect
            logger.debug("No active request, skipping tools/list_changed")
            return
        context._queue_tool_list_changed()
