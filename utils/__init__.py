"""Forage proxy utility modules."""

from .catalog_sync import CatalogSynchronizer
from .config import ForageConfig
from .host_catalog import FastMCPHostCatalog
from .installer import ToolInstaller
from .manifest import InstalledToolRecord, Manifest
from .process_registry import ManagedServer, ProcessRegistry
from .registries import RegistryClient
from .search_aggregator import SearchAggregator, SearchResult
from .transport import Capability, ServerSpec

__all__ = [
    "CatalogSynchronizer",
    "Capability",
    "FastMCPHostCatalog",
    "ForageConfig",
    "InstalledToolRecord",
    "ManagedServer",
    "Manifest",
    "ProcessRegistry",
    "RegistryClient",
    "SearchAggregator",
    "SearchResult",
    "ServerSpec",
    "ToolInstaller",
]
