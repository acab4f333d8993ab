"""
MCP Server Installer

Install npm-published MCP servers as proxied subprocesses and remove them
again. Installing verifies the package, starts it, publishes its tools to the
host, and records it so it auto-starts next time. Both operations are gated
behind an explicit confirm flag.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from .catalog_sync import CatalogSynchronizer
from .errors import ForageError
from .manifest import InstalledToolRecord, InstallLogEntry, Manifest, tool_name_for
from .process_registry import ProcessRegistry

logger = logging.getLogger(__name__)


class ToolInstaller:
    """Install, uninstall, and report on proxied MCP servers."""

    def __init__(
        self,
        registry: ProcessRegistry,
        synchronizer: CatalogSynchronizer,
        manifest: Manifest,
        verify_timeout: float = 15.0,
    ):
        self.registry = registry
        self.synchronizer = synchronizer
        self.manifest = manifest
        self.verify_timeout = verify_timeout

    async def verify_package(self, package_name: str) -> Optional[Dict[str, Any]]:
        """
        Ask npm whether a package exists.

        Returns:
            npm's name/version metadata, or None if the package is unknown
            or npm is unavailable
        """
        try:
            process = await asyncio.create_subprocess_exec(
                "npm", "view", package_name, "name", "version", "--json",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            logger.warning("Could not run npm: %s", e)
            return None

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=self.verify_timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning("npm view %s timed out", package_name)
            return None

        if process.returncode != 0:
            return None
        try:
            info = json.loads(stdout.decode() or "null")
        except ValueError:
            return None
        return info if isinstance(info, dict) else None

    async def install(
        self,
        package_name: str,
        command: Optional[str] = None,
        args: Optional[List[str]] = None,
        env: Optional[Dict[str, str]] = None,
        confirm: bool = False,
    ) -> Dict[str, Any]:
        """
        Install an MCP server package and start proxying its tools.

        Args:
            package_name: npm package name
            command: Command to run the server (default: npx)
            args: Command arguments (default: ['-y', package_name])
            env: Extra environment variables for the server process
            confirm: Must be True to actually install

        Returns:
            Dictionary with success flag, installed name, tools and message
        """
        if not confirm:
            return {
                "success": False,
                "name": package_name,
                "tools": [],
                "needs_confirmation": True,
                "message": (
                    f"Install requires confirmation. Call forage_install again with "
                    f"confirm=true to install '{package_name}'."
                ),
            }

        if await self.verify_package(package_name) is None:
            self._log("install", package_name, False, error="Package not found on npm")
            return {
                "success": False,
                "name": package_name,
                "tools": [],
                "message": f"Package '{package_name}' not found on npm.",
            }

        record = InstalledToolRecord(
            name=tool_name_for(package_name),
            package_name=package_name,
            command=command or "npx",
            args=list(args) if args is not None else ["-y", package_name],
            env=dict(env or {}),
        )

        try:
            managed = await self.registry.start(record.to_server_spec())
        except ForageError as e:
            self._log("install", package_name, False, error=str(e))
            return {
                "success": False,
                "name": package_name,
                "tools": [],
                "message": f"Failed to start '{package_name}': {e}",
            }

        try:
            wrapped = await self.synchronizer.publish(managed)
            self.manifest.record_installed(record)
        except Exception as e:
            logger.warning("Publishing %s failed, stopping it: %s", record.name, e)
            await self.synchronizer.retract(record.name)
            await self.registry.stop(record.name)
            self._log("install", package_name, False, error=str(e))
            return {
                "success": False,
                "name": package_name,
                "tools": [],
                "message": f"Failed to install '{package_name}': {e}",
            }

        self._log("install", package_name, True, version=record.version, source=record.source)

        return {
            "success": True,
            "name": record.name,
            "tools": [
                {"name": w.wrapped_name, "original_name": w.original_name, "description": w.description}
                for w in wrapped
            ],
            "message": (
                f"Installed and started '{package_name}'. {len(wrapped)} tools now available."
            ),
        }

    async def uninstall(self, name: str, confirm: bool = False) -> Dict[str, Any]:
        """
        Stop a proxied server, withdraw its tools, and forget it.

        Cleanup is best effort: the server is stopped and its tools retracted
        even when the manifest has no record of it.

        Args:
            name: Installed tool name (as shown by status)
            confirm: Must be True to actually uninstall

        Returns:
            Dictionary with success flag and message
        """
        if not confirm:
            record = self.manifest.get(name)
            if record is None:
                return {"success": False, "message": f"Tool '{name}' is not installed."}
            return {
                "success": False,
                "needs_confirmation": True,
                "message": (
                    f"Uninstall requires confirmation. Call forage_uninstall again with "
                    f"confirm=true to remove '{name}' ({record.package_name})."
                ),
            }

        stopped = await self.registry.stop(name)
        retracted = await self.synchronizer.retract(name)

        record = self.manifest.record_removed(name)
        if record is None:
            return {
                "success": False,
                "stopped": stopped,
                "message": f"Tool '{name}' is not installed.",
            }

        self._log("uninstall", record.package_name, True)
        return {
            "success": True,
            "stopped": stopped,
            "removed_tools": retracted,
            "message": f"Uninstalled '{name}' ({record.package_name}). Stopped server and removed its tools.",
        }

    def status(self) -> Dict[str, Any]:
        """Running servers with their tools, and every installed record."""
        records = {r.name: r for r in self.manifest.list_records()}
        running_servers = self.registry.list()

        running = []
        for name, managed in list(running_servers.items()):
            record = records.get(name)
            running.append({
                "name": name,
                "package_name": record.package_name if record else name,
                "tools": [{"name": c.name, "description": c.description} for c in managed.capabilities],
                "installed_at": record.installed_at if record else "unknown",
            })

        installed = [
            {
                "name": r.name,
                "package_name": r.package_name,
                "auto_start": r.auto_start,
                "installed_at": r.installed_at,
                "running": r.name in running_servers,
            }
            for r in records.values()
        ]
        return {"running": running, "installed": installed}

    def _log(self, action: str, package_name: str, success: bool, **extra):
        try:
            self.manifest.append_log(InstallLogEntry(
                action=action, package_name=package_name, success=success, **extra
            ))
        except OSError as e:
            logger.warning("Could not write install log: %s", e)
