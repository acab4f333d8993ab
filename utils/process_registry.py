"""
Process Registry

Owns the running child capability-servers, keyed by logical name.
Servers can be started, called, and stopped at runtime without restarting
the host. A server is only published once its session is connected and its
tools are discovered; stop always removes the entry.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple

from .errors import CloseError, DiscoveryError, ForageError, NotRunningError
from .transport import Capability, ServerSpec, Session, connect_stdio

logger = logging.getLogger(__name__)

Connector = Callable[[ServerSpec], Awaitable[Session]]


@dataclass(frozen=True)
class ManagedServer:
    """One running child server and the tools it reported at connect time."""

    name: str
    session: Session
    capabilities: Tuple[Capability, ...]


class ProcessRegistry:
    """Start, stop, and call child MCP servers at runtime."""

    def __init__(
        self,
        connector: Optional[Connector] = None,
        handshake_timeout: float = 30.0,
        discovery_timeout: float = 30.0,
    ):
        """
        Initialize the registry.

        Args:
            connector: Coroutine turning a ServerSpec into a connected session
                (default: spawn over stdio)
            handshake_timeout: Seconds allowed for spawn + initialize
            discovery_timeout: Seconds allowed for the tool listing
        """
        self._connector = connector or self._connect_stdio
        self.handshake_timeout = handshake_timeout
        self.discovery_timeout = discovery_timeout
        self._servers: Dict[str, ManagedServer] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    async def _connect_stdio(self, spec: ServerSpec) -> Session:
        return await connect_stdio(spec, handshake_timeout=self.handshake_timeout)

    @asynccontextmanager
    async def _locked(self, name: str):
        """Hold the per-name lock; the entry is dropped once nobody uses it."""
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = asyncio.Lock()
        self._lock_users[name] = self._lock_users.get(name, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[name] -= 1
            if not self._lock_users[name]:
                del self._lock_users[name]
                del self._locks[name]

    def is_running(self, name: str) -> bool:
        return name in self._servers

    def get(self, name: str) -> Optional[ManagedServer]:
        return self._servers.get(name)

    def list(self) -> Mapping[str, ManagedServer]:
        """Live read-only view; entries may change across awaits."""
        return MappingProxyType(self._servers)

    async def start(self, spec: ServerSpec) -> ManagedServer:
        """
        Start a server and discover its tools.

        Starting a name that is already running returns the existing entry
        without spawning anything.

        Args:
            spec: Launch request

        Returns:
            The ManagedServer registered under spec.name

        Raises:
            LaunchError: The process could not be spawned
            HandshakeError: Protocol negotiation failed or timed out
            DiscoveryError: The tool listing failed
        """
        async with self._locked(spec.name):
            existing = self._servers.get(spec.name)
            if existing is not None:
                return existing

            session = await self._connector(spec)

            try:
                capabilities = await asyncio.wait_for(
                    session.list_capabilities(), timeout=self.discovery_timeout
                )
            except asyncio.TimeoutError as e:
                await self._close_quietly(spec.name, session)
                raise DiscoveryError(
                    f"Listing tools of '{spec.name}' timed out after {self.discovery_timeout}s",
                    spec.name,
                ) from e
            except Exception as e:
                await self._close_quietly(spec.name, session)
                raise DiscoveryError(
                    f"Listing tools of '{spec.name}' failed: {e}", spec.name
                ) from e

            managed = ManagedServer(
                name=spec.name, session=session, capabilities=tuple(capabilities)
            )
            self._servers[spec.name] = managed
            logger.info("Started %s (%d tools)", spec.name, len(managed.capabilities))
            return managed

    async def stop(self, name: str) -> bool:
        """
        Stop a server and forget it.

        Returns:
            True if a server was registered under name, False otherwise
        """
        async with self._locked(name):
            managed = self._servers.pop(name, None)
            if managed is None:
                return False

            await self._close_quietly(name, managed.session)
            logger.info("Stopped %s", name)
            return True

    async def call(self, name: str, capability: str, arguments: Optional[Dict[str, Any]] = None) -> Any:
        """
        Forward a tool call to a running server.

        The child is the source of truth for tool names and argument shapes;
        its result (errors included) comes back unchanged.

        Raises:
            NotRunningError: No server is registered under name
        """
        managed = self._servers.get(name)
        if managed is None:
            raise NotRunningError(name)
        return await managed.session.call(capability, arguments or {})

    async def stop_all(self, timeout: Optional[float] = 10.0) -> None:
        """Stop every registered server concurrently, bounded by timeout."""
        names = list(self._servers)
        if not names:
            return

        logger.info("Stopping %d server(s)", len(names))
        pending = set(names)

        async def stop_one(name: str) -> None:
            await self.stop(name)
            pending.discard(name)

        try:
            await asyncio.wait_for(
                asyncio.gather(*(stop_one(name) for name in names)), timeout=timeout
            )
        except asyncio.TimeoutError:
            unfinished = [name for name in names if name in pending]
            logger.warning("Timed out stopping servers: %s", ", ".join(unfinished))

    async def _close_quietly(self, name: str, session: Session) -> None:
        try:
            await session.close()
        except Exception as e:
            error = e if isinstance(e, ForageError) else CloseError(str(e), name)
            logger.warning("Ignoring close error for %s: %s", name, error)
