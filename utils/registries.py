"""
Discovery registries

Thin httpx adapters for the places MCP servers are published: the official
MCP registry, Smithery, and npm. Search functions raise on transport or
status errors; the aggregator decides what a failure means.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from .search_aggregator import Backend, SearchResult

logger = logging.getLogger(__name__)

OFFICIAL_URL = "https://registry.modelcontextprotocol.io/v0"
SMITHERY_URL = "https://registry.smithery.ai"
NPM_URL = "https://registry.npmjs.org"
NPM_DOWNLOADS_URL = "https://api.npmjs.org/downloads/point/last-week"

README_LIMIT = 3000


def _npm_package(server: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    for package in server.get("packages") or []:
        if package.get("registryType") == "npm":
            return package
    return None


def _looks_like_mcp(package: Dict[str, Any]) -> bool:
    name = package.get("name", "").lower()
    description = (package.get("description") or "").lower()
    return "mcp" in name or "mcp" in description or "model context protocol" in description


class RegistryClient:
    """Search and look up MCP servers across public registries."""

    def __init__(
        self,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the registry client.

        Args:
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            headers={"Accept": "application/json"},
            transport=self._transport,
            follow_redirects=True,
        )

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        async with self._client() as client:
            response = await client.get(url, params=params)
            response.raise_for_status()
            return response.json()

    def backends(self) -> Dict[str, Backend]:
        return {
            "official-registry": self.search_official,
            "npm": self.search_npm,
            "smithery": self.search_smithery,
        }

    async def search_official(self, query: str) -> List[SearchResult]:
        data = await self._get_json(f"{OFFICIAL_URL}/servers", {"search": query, "limit": 10})

        results = []
        for entry in data.get("servers") or []:
            server = entry.get("server", entry)
            if not server.get("name"):
                continue

            npm = _npm_package(server)
            identifier = (npm and (npm.get("identifier") or npm.get("name"))) or server["name"]
            results.append(SearchResult(
                name=server["name"],
                package_identifier=identifier,
                description=server.get("description") or "",
                source="official-registry",
                url=(server.get("repository") or {}).get("url"),
                version=server.get("version") or (npm or {}).get("version"),
                command="npx" if npm else None,
                args=["-y", identifier, *(npm.get("arguments") or [])] if npm else None,
            ))
        return results

    async def search_smithery(self, query: str) -> List[SearchResult]:
        data = await self._get_json(f"{SMITHERY_URL}/servers", {"q": query, "pageSize": 10})

        return [
            SearchResult(
                name=server.get("displayName") or server["qualifiedName"],
                package_identifier=server["qualifiedName"],
                description=server.get("description") or "",
                source="smithery",
                url=server.get("homepage") or f"https://smithery.ai/server/{server['qualifiedName']}",
                downloads=server.get("useCount"),
            )
            for server in data.get("servers") or []
            if server.get("qualifiedName")
        ]

    async def search_npm(self, query: str) -> List[SearchResult]:
        data = await self._get_json(
            f"{NPM_URL}/-/v1/search", {"text": f"{query} mcp server", "size": 10}
        )

        results = []
        for obj in data.get("objects") or []:
            package = obj.get("package") or {}
            if not package.get("name") or not _looks_like_mcp(package):
                continue
            links = package.get("links") or {}
            results.append(SearchResult(
                name=package["name"],
                package_identifier=package["name"],
                description=package.get("description") or "",
                source="npm",
                url=links.get("repository") or links.get("npm"),
                version=package.get("version"),
                command="npx",
                args=["-y", package["name"]],
            ))
        return results

    async def server_details(self, name: str) -> Optional[Dict[str, Any]]:
        """Official registry entry for a server, or None."""
        try:
            data = await self._get_json(f"{OFFICIAL_URL}/servers/{quote(name, safe='')}")
        except (httpx.HTTPError, ValueError) as e:
            logger.debug("Official registry lookup for %s failed: %s", name, e)
            return None
        return data.get("server", data) if isinstance(data, dict) else None

    async def package_details(self, package_name: str) -> Optional[Dict[str, Any]]:
        """npm metadata for a package plus last week's download count, or None."""
        try:
            data = await self._get_json(f"{NPM_URL}/{quote(package_name, safe='@')}")
        except (httpx.HTTPError, ValueError) as e:
            logger.debug("npm lookup for %s failed: %s", package_name, e)
            return None

        repository = data.get("repository")
        details = {
            "description": data.get("description") or "",
            "version": (data.get("dist-tags") or {}).get("latest", ""),
            "readme": data.get("readme"),
            "repository": repository.get("url") if isinstance(repository, dict) else None,
            "weeklyDownloads": None,
        }

        try:
            downloads = await self._get_json(f"{NPM_DOWNLOADS_URL}/{quote(package_name, safe='@')}")
            details["weeklyDownloads"] = downloads.get("downloads")
        except (httpx.HTTPError, ValueError) as e:
            logger.debug("Download count for %s unavailable: %s", package_name, e)

        return details

    async def evaluate(self, package_name: str) -> Dict[str, Any]:
        """
        Collect what the registries know about a package before installing it.

        Args:
            package_name: npm package name (e.g. '@modelcontextprotocol/server-postgres')

        Returns:
            Dictionary with version, description, README excerpt and install
            command, or {"error": ...} when no registry knows the package
        """
        official, npm = await asyncio.gather(
            self.server_details(package_name), self.package_details(package_name)
        )
        if not official and not npm:
            return {"error": f"Package '{package_name}' not found in any registry"}

        official = official or {}
        npm = npm or {}
        npm_package = _npm_package(official) or {}

        readme = npm.get("readme")
        if readme and len(readme) > README_LIMIT:
            readme = readme[:README_LIMIT] + "\n\n... (truncated)"

        if npm_package:
            install_command = f"npx -y {npm_package.get('identifier')}"
        elif npm:
            install_command = f"npx -y {package_name}"
        else:
            install_command = None

        result = {
            "name": official.get("name") or package_name,
            "description": official.get("description") or npm.get("description") or "",
            "version": npm.get("version") or npm_package.get("version") or official.get("version") or "unknown",
            "repository": npm.get("repository") or (official.get("repository") or {}).get("url"),
            "weeklyDownloads": npm.get("weeklyDownloads"),
            "readme": readme,
            "installCommand": install_command,
            "source": "official-registry" if official else "npm",
        }
        return {k: v for k, v in result.items() if v is not None}
