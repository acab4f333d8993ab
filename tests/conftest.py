"""Shared fakes for forage tests."""

from typing import Any, Dict, List, Optional

import pytest
from mcp.types import CallToolResult, TextContent

from forage.utils.process_registry import ProcessRegistry
from forage.utils.transport import Capability, ServerSpec


def text_result(text: str, is_error: bool = False) -> CallToolResult:
    return CallToolResult(content=[TextContent(type="text", text=text)], isError=is_error)


class FakeSession:
    """In-memory stand-in for a connected child server."""

    def __init__(self, capabilities: List[Capability], list_error: Optional[Exception] = None,
                 close_error: Optional[Exception] = None):
        self.capabilities = capabilities
        self.list_error = list_error
        self.close_error = close_error
        self.calls: List[tuple] = []
        self.close_count = 0

    async def list_capabilities(self) -> List[Capability]:
        if self.list_error:
            raise self.list_error
        return list(self.capabilities)

    async def call(self, name: str, arguments: Dict[str, Any]) -> CallToolResult:
        self.calls.append((name, arguments))
        return text_result(f"{name}:{arguments}")

    async def close(self) -> None:
        self.close_count += 1
        if self.close_error:
            raise self.close_error


class FakeConnector:
    """Connector that hands out FakeSessions and counts spawns."""

    def __init__(self, capabilities: Optional[List[Capability]] = None, **session_kwargs):
        self.capabilities = capabilities or [
            Capability("query", "Run a query", {"type": "object", "properties": {"sql": {"type": "string"}}}),
            Capability("db__query", "Separator in name"),
        ]
        self.session_kwargs = session_kwargs
        self.spawned: List[ServerSpec] = []
        self.sessions: List[FakeSession] = []
        self.error: Optional[Exception] = None

    async def __call__(self, spec: ServerSpec) -> FakeSession:
        if self.error:
            raise self.error
        self.spawned.append(spec)
        session = FakeSession(self.capabilities, **self.session_kwargs)
        self.sessions.append(session)
        return session


class FakeHandle:
    def __init__(self, host: "FakeHost", name: str):
        self.host = host
        self.name = name

    def remove(self) -> None:
        self.host.removed.append(self.name)
        del self.host.tools[self.name]


class FakeHost:
    """HostCatalog that records registrations, removals and notifications."""

    def __init__(self):
        self.tools: Dict[str, dict] = {}
        self.removed: List[str] = []
        self.notifications = 0

    def register_capability(self, name, description, schema, handler) -> FakeHandle:
        self.tools[name] = {"description": description, "schema": schema, "handler": handler}
        return FakeHandle(self, name)

    async def notify_catalog_changed(self) -> None:
        self.notifications += 1


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def registry(connector):
    return ProcessRegistry(connector=connector, discovery_timeout=1.0)


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def spec():
    return ServerSpec(name="server-postgres", command="npx", args=("-y", "server-postgres"))
