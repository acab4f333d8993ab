#!/usr/bin/env python3
"""
Forage MCP Server

Provides meta-tools to search registries for MCP servers, install them as
proxied subprocesses, and use their tools immediately. Installed servers'
tools appear under forage__<server>__<tool> without restarting the agent.

Usage:
    python -m forage.servers.proxy_server
"""

import asyncio
import logging
import os
import signal
from dataclasses import dataclass
from typing import Callable, Dict, List, Literal, Optional

from fastmcp import FastMCP

from ..utils.catalog_sync import CatalogSynchronizer
from ..utils.config import ForageConfig, configure_logging
from ..utils.host_catalog import FastMCPHostCatalog
from ..utils.installer import ToolInstaller
from ..utils.manifest import Manifest
from ..utils.process_registry import ProcessRegistry
from ..utils.registries import RegistryClient
from ..utils.search_aggregator import SearchAggregator

logger = logging.getLogger(__name__)

Source = Literal["official-registry", "npm", "smithery"]


@dataclass
class ForageApp:
    """The FastMCP server and the components behind its tools."""

    config: ForageConfig
    mcp: FastMCP
    registry: ProcessRegistry
    synchronizer: CatalogSynchronizer
    manifest: Manifest
    installer: ToolInstaller
    registries: RegistryClient
    aggregator: SearchAggregator

    async def resume(self) -> Dict:
        """Relaunch every auto-start tool recorded in the manifest."""
        return await self.synchronizer.resume(self.manifest.list_auto_start_records())

    async def shutdown(self):
        await self.registry.stop_all(timeout=self.config.shutdown_timeout)


def create_app(
    config: Optional[ForageConfig] = None,
    registry: Optional[ProcessRegistry] = None,
    registries: Optional[RegistryClient] = None,
) -> ForageApp:
    """
    Build the forage server with its tools registered.

    Args:
        config: Settings (default: from FORAGE_* environment variables)
        registry: Process registry to use (default: stdio-spawning registry)
        registries: Registry client to use (default: public registries)

    Returns:
        ForageApp ready to resume and serve
    """
    config = config or ForageConfig()
    mcp = FastMCP("forage")

    registry = registry or ProcessRegistry(
        handshake_timeout=config.handshake_timeout,
        discovery_timeout=config.discovery_timeout,
    )
    synchronizer = CatalogSynchronizer(registry, FastMCPHostCatalog(mcp))
    manifest = Manifest(config.manifest_path, config.log_path)
    installer = ToolInstaller(registry, synchronizer, manifest, verify_timeout=config.verify_timeout)
    registries = registries or RegistryClient(timeout=config.search_timeout)
    aggregator = SearchAggregator(registries.backends(), timeout=config.search_timeout)

    @mcp.tool()
    async def forage_search(query: str, sources: Optional[List[Source]] = None) -> dict:
        """
        Search for MCP servers across registries (Official MCP Registry, Smithery, npm).

        Describe the capability you need and get ranked, deduplicated results.
        Official registry results come first.

        Args:
            query: Natural language description of the capability (e.g. 'query postgres database')
            sources: Which registries to search (default: all)

        Returns:
            Dictionary with the query and matching servers
        """
        results = await aggregator.search(query, sources)
        return {
            "query": query,
            "results": [r.to_dict() for r in results],
            "count": len(results),
        }

    @mcp.tool()
    async def forage_evaluate(package_name: str) -> dict:
        """
        Get details about a package before installing it.

        Shows version, weekly downloads, repository, a README excerpt, and the
        install command.

        Args:
            package_name: npm package name (e.g. '@modelcontextprotocol/server-postgres')
        """
        try:
            return await registries.evaluate(package_name)
        except Exception as e:
            logger.exception("Evaluating %s failed", package_name)
            return {"success": False, "error": f"Failed to evaluate package: {e}"}

    @mcp.tool()
    async def forage_install(
        package_name: str,
        confirm: bool,
        command: Optional[str] = None,
        args: Optional[List[str]] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> dict:
        """
        Install an MCP server and start it as a proxied subprocess.

        The server's tools become available immediately as
        forage__<server>__<tool>. No restart needed!

        Args:
            package_name: npm package name to install
            confirm: Must be true to proceed. This is a safety gate the user approves.
            command: Command to run the server (default: 'npx')
            args: Arguments for the command (default: ['-y', package_name])
            env: Environment variables for the server process

        Returns:
            Dictionary with install status and the tools now available
        """
        try:
            return await installer.install(package_name, command, args, env, confirm)
        except Exception as e:
            logger.exception("Installing %s failed", package_name)
            return {"success": False, "error": f"Installation failed: {e}"}

    @mcp.tool()
    async def forage_uninstall(name: str, confirm: bool = False) -> dict:
        """
        Remove a previously installed tool.

        Stops the server, withdraws its tools, and removes it from the manifest.

        Args:
            name: Installed tool name (as shown by forage_status)
            confirm: Must be true to proceed
        """
        try:
            return await installer.uninstall(name, confirm)
        except Exception as e:
            logger.exception("Uninstalling %s failed", name)
            return {"success": False, "error": f"Failed to uninstall: {e}"}

    @mcp.tool()
    def forage_status() -> dict:
        """
        List installed tools and the servers currently being proxied.

        Shows which servers are running, what tools they provide, and whether
        each installed tool starts automatically.
        """
        try:
            return installer.status()
        except Exception as e:
            logger.exception("Reading status failed")
            return {"success": False, "error": str(e)}

    return ForageApp(
        config=config,
        mcp=mcp,
        registry=registry,
        synchronizer=synchronizer,
        manifest=manifest,
        installer=installer,
        registries=registries,
        aggregator=aggregator,
    )


async def serve(app: ForageApp, exit_process: Callable[[int], None] = os._exit):
    """
    Resume installed tools, serve over stdio, and stop children on exit.

    SIGINT and SIGTERM are handled from before the resume, so a signal that
    arrives while tools are still starting stops them as well. After a
    signal every child is stopped and the process ends through exit_process:
    the stdio reader thread is blocked on stdin and cannot be unwound.
    """
    loop = asyncio.get_running_loop()
    stopping = asyncio.Event()
    serving = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stopping.set)
        except NotImplementedError:
            pass  # Windows

    async def run():
        await app.resume()
        serving.set()
        logger.info("MCP server running on stdio")
        await app.mcp.run_stdio_async()

    server = asyncio.ensure_future(run())
    signalled = asyncio.ensure_future(stopping.wait())
    try:
        await asyncio.wait({server, signalled}, return_when=asyncio.FIRST_COMPLETED)
        if stopping.is_set():
            logger.info("Received shutdown signal")
            if not serving.is_set():
                server.cancel()
                await asyncio.gather(server, return_exceptions=True)
    finally:
        signalled.cancel()
        await app.shutdown()

    if not server.done():
        exit_process(0)
    elif not server.cancelled():
        server.result()


def main():
    config = ForageConfig()
    configure_logging(config.log_level)
    asyncio.run(serve(create_app(config)))


if __name__ == "__main__":
    # Run the MCP server
    main()
