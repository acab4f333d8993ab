"""
Forage command line

Search the registries and inspect installed tools from a terminal, without
an agent attached.

Usage:
    forage search "postgres database"
    forage search github --source npm --source smithery
    forage list
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from .utils.config import ForageConfig, configure_logging
from .utils.manifest import Manifest
from .utils.registries import RegistryClient
from .utils.search_aggregator import SOURCE_RANKS, SearchAggregator

BADGES = {
    "official-registry": "[official]",
    "smithery": "[smithery]",
    "npm": "[npm]",
}


async def search(query: str, sources: Optional[List[str]], config: ForageConfig) -> int:
    registries = RegistryClient(timeout=config.search_timeout)
    aggregator = SearchAggregator(registries.backends(), timeout=config.search_timeout)

    print(f'Searching for "{query}"...\n')
    results = await aggregator.search(query, sources)
    if not results:
        print("No results found.")
        return 0

    for result in results:
        print(f"  {BADGES.get(result.source, '[' + result.source + ']')} {result.package_identifier}")
        print(f"    {result.description}")
        if result.url:
            print(f"    {result.url}")
        print()
    return 0


def list_installed(config: ForageConfig) -> int:
    records = Manifest(config.manifest_path).list_records()
    if not records:
        print("No tools installed via Forage.")
        return 0

    print("Installed tools:\n")
    for record in records:
        print(f"  {record.name}")
        print(f"    Package: {record.package_name}")
        print(f"    Installed: {record.installed_at}")
        print(f"    Auto-start: {str(record.auto_start).lower()}")
        print()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """CLI interface for forage."""
    parser = argparse.ArgumentParser(prog="forage", description="Discover and manage MCP servers for AI agents")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Search command
    search_parser = subparsers.add_parser("search", help="Search registries for MCP servers")
    search_parser.add_argument("query", nargs="+", help="What the server should do")
    search_parser.add_argument(
        "--source",
        action="append",
        choices=list(SOURCE_RANKS),
        help="Registry to search (repeatable, default: all)",
    )

    # List command
    subparsers.add_parser("list", help="List installed tools")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    config = ForageConfig()
    configure_logging(config.log_level)

    if args.command == "search":
        code = asyncio.run(search(" ".join(args.query), args.source, config))
    else:
        code = list_installed(config)
    return code


if __name__ == "__main__":
    sys.exit(main())
