"""
Stdio transport sessions

One session is one MCP client connection to one child process. The protocol
itself (initialize handshake, tools/list, tools/call) is handled by
fastmcp's Client over a StdioTransport; this module only launches it,
classifies failures, and owns the connection until close.
"""

import asyncio
import logging
import os
import shutil
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple

from fastmcp import Client
from fastmcp.client.transports import StdioTransport
from mcp.types import CallToolResult

from .errors import HandshakeError, LaunchError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerSpec:
    """Everything needed to launch a child capability-server."""

    name: str
    command: str
    args: Tuple[str, ...] = ()
    env: Dict[str, str] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class Capability:
    """A tool reported by a child server at connect time."""

    name: str
    description: str = ""
    input_schema: Dict[str, Any] = field(default_factory=dict, compare=False)


class Session(Protocol):
    async def list_capabilities(self) -> List[Capability]: ...

    async def call(self, name: str, arguments: Dict[str, Any]) -> Any: ...

    async def close(self) -> None: ...


class StdioSession:
    """An initialized MCP client connection to a child process."""

    def __init__(self, name: str, client: Client, stack: AsyncExitStack):
        self.name = name
        self._client = client
        self._stack = stack

    async def list_capabilities(self) -> List[Capability]:
        tools = await self._client.list_tools()
        return [
            Capability(
                name=tool.name,
                description=tool.description or "",
                input_schema=dict(tool.inputSchema or {}),
            )
            for tool in tools
        ]

    async def call(self, name: str, arguments: Dict[str, Any]) -> CallToolResult:
        # call_tool_mcp hands back the raw result, isError included
        return await self._client.call_tool_mcp(name=name, arguments=arguments)

    async def close(self) -> None:
        await self._stack.aclose()


def child_environment(overrides: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """The proxy's own environment overlaid with per-server overrides."""
    return {**os.environ, **(overrides or {})}


def _caused_by_os_error(exc: BaseException) -> bool:
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, OSError):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


async def connect_stdio(spec: ServerSpec, handshake_timeout: float = 30.0) -> StdioSession:
    """
    Spawn a child server and complete the MCP handshake.

    Args:
        spec: Launch command, arguments and environment overrides
        handshake_timeout: Seconds allowed for spawn + initialize

    Returns:
        Connected StdioSession

    Raises:
        LaunchError: The command could not be found or spawned
        HandshakeError: Initialization failed or timed out
    """
    if shutil.which(spec.command) is None:
        raise LaunchError(f"Command not found: {spec.command}", spec.name)

    transport = StdioTransport(
        command=spec.command,
        args=list(spec.args),
        env=child_environment(spec.env),
        keep_alive=False,
    )
    client = Client(transport)
    stack = AsyncExitStack()

    logger.info("Starting %s: %s %s", spec.name, spec.command, " ".join(spec.args))
    try:
        await asyncio.wait_for(stack.enter_async_context(client), timeout=handshake_timeout)
    except asyncio.TimeoutError as e:
        await _discard(spec.name, stack)
        raise HandshakeError(
            f"Handshake with '{spec.name}' timed out after {handshake_timeout}s", spec.name
        ) from e
    except Exception as e:
        await _discard(spec.name, stack)
        if _caused_by_os_error(e):
            raise LaunchError(f"Failed to spawn '{spec.name}': {e}", spec.name) from e
        raise HandshakeError(f"Handshake with '{spec.name}' failed: {e}", spec.name) from e

    return StdioSession(spec.name, client, stack)


async def _discard(name: str, stack: AsyncExitStack) -> None:
    try:
        await stack.aclose()
    except Exception as e:
        logger.debug("Ignoring cleanup error for %s: %s", name, e)
