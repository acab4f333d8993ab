"""
Dynamic catalog synchronization

Keeps the host's advertised tool list in step with the running child
servers: publish on start, retract on stop, one catalog-changed
notification per event.
"""

import logging
from functools import partial
from typing import Any, Dict, Iterable, List, Optional

from .errors import NotRunningError
from .host_catalog import CapabilityHandle, HostCatalog
from .namespace import WrappedCapability, unwrap, wrap
from .process_registry import ManagedServer, ProcessRegistry

logger = logging.getLogger(__name__)


class CatalogSynchronizer:
    """Registers wrapped child tools with the host and removes them again."""

    def __init__(self, registry: ProcessRegistry, host: HostCatalog):
        self.registry = registry
        self.host = host
        self._handles: Dict[str, List[CapabilityHandle]] = {}
        self._wrapped: Dict[str, WrappedCapability] = {}

    def is_published(self, server_name: str) -> bool:
        return server_name in self._handles

    def wrapped_for(self, server_name: str) -> List[WrappedCapability]:
        return [w for w in self._wrapped.values() if w.server_name == server_name]

    async def publish(self, managed: ManagedServer, notify: bool = True) -> List[WrappedCapability]:
        """
        Register every tool of a started server under its wrapped name.

        Args:
            managed: Server returned by ProcessRegistry.start
            notify: Send the catalog-changed notification afterwards

        Returns:
            The wrapped tools now advertised for this server
        """
        if managed.name in self._handles:
            return self.wrapped_for(managed.name)

        # Visible to retract() even if a registration below fails
        handles = self._handles[managed.name] = []
        for capability in managed.capabilities:
            wrapped = wrap(managed.name, capability)
            handle = self.host.register_capability(
                wrapped.wrapped_name,
                wrapped.description,
                wrapped.input_schema,
                partial(self.dispatch, wrapped.wrapped_name),
            )
            handles.append(handle)
            self._wrapped[wrapped.wrapped_name] = wrapped

        logger.info("Published %d tool(s) from %s", len(handles), managed.name)

        if notify:
            await self.host.notify_catalog_changed()
        return self.wrapped_for(managed.name)

    async def retract(self, server_name: str, notify: bool = True) -> int:
        """
        Remove every tool previously published for a server.

        Returns:
            Number of tools removed; 0 (and no notification) if none were published
        """
        handles = self._handles.pop(server_name, None)
        if handles is None:
            return 0

        for handle in handles:
            handle.remove()
            self._wrapped.pop(handle.name, None)

        logger.info("Retracted %d tool(s) from %s", len(handles), server_name)
        if notify:
            await self.host.notify_catalog_changed()
        return len(handles)

    async def dispatch(self, wrapped_name: str, arguments: Optional[Dict[str, Any]] = None) -> Any:
        """Forward a call made under a wrapped name to the owning server."""
        wrapped = self._wrapped.get(wrapped_name)
        if wrapped is not None:
            target = (wrapped.server_name, wrapped.original_name)
        else:
            target = unwrap(wrapped_name)
            if target is None:
                raise NotRunningError(wrapped_name)

        server_name, capability = target
        return await self.registry.call(server_name, capability, arguments or {})

    async def resume(self, records: Iterable) -> Dict[str, Any]:
        """
        Start and publish previously installed servers, one at a time.

        A failing server is logged and skipped; the rest still start.

        Args:
            records: Manifest records exposing name and to_server_spec()

        Returns:
            Dictionary with started and failed server names
        """
        records = list(records)
        if records:
            logger.info("Auto-starting %d tool(s) from manifest...", len(records))

        started, failed = [], {}
        for record in records:
            try:
                managed = await self.registry.start(record.to_server_spec())
                await self.publish(managed, notify=False)
                started.append(record.name)
                logger.info("Started %s (%d tools)", record.name, len(managed.capabilities))
            except Exception as e:
                failed[record.name] = str(e)
                logger.error("Failed to start %s: %s", record.name, e)

        return {"started": started, "failed": failed}
