"""
Installed tool manifest

Remembers which MCP servers forage installed so they can be relaunched on the
next start, plus an append-only log of install/uninstall attempts.
Both are plain JSON files under the forage home directory.
"""

import json
import logging
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .transport import ServerSpec

logger = logging.getLogger(__name__)

MANIFEST_VERSION = 1


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def tool_name_for(package_name: str) -> str:
    """'@scope/pkg' -> 'scope__pkg'"""
    return package_name.removeprefix("@").replace("/", "__")


@dataclass
class InstalledToolRecord:
    """One installed server as persisted in the manifest."""

    name: str
    package_name: str
    command: str
    args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    version: str = "latest"
    source: str = "npm"
    auto_start: bool = True
    installed_at: str = field(default_factory=utc_now)
    rules: Optional[str] = None

    def to_server_spec(self) -> ServerSpec:
        return ServerSpec(
            name=self.name,
            command=self.command,
            args=tuple(self.args),
            env=dict(self.env),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InstalledToolRecord":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class InstallLogEntry:
    action: str
    package_name: str
    success: bool
    timestamp: str = field(default_factory=utc_now)
    version: Optional[str] = None
    source: Optional[str] = None
    error: Optional[str] = None


class Manifest:
    """Read and write the installed-tool manifest and install log."""

    def __init__(self, manifest_path: Path, log_path: Optional[Path] = None):
        """
        Initialize the manifest store.

        Args:
            manifest_path: Path to manifest.json
            log_path: Path to install-log.json (default: next to the manifest)
        """
        self.manifest_path = Path(manifest_path)
        self.log_path = Path(log_path) if log_path else self.manifest_path.with_name("install-log.json")

    def _load(self) -> Dict:
        """Load the manifest, treating a missing or corrupt file as empty."""
        if self.manifest_path.exists():
            try:
                with open(self.manifest_path, "r") as f:
                    data = json.load(f)
                if isinstance(data.get("tools"), dict):
                    return data
            except (OSError, ValueError, AttributeError) as e:
                logger.warning("Ignoring unreadable manifest %s: %s", self.manifest_path, e)
        return {"version": MANIFEST_VERSION, "tools": {}}

    def _save(self, data: Dict):
        self.manifest_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.manifest_path, "w") as f:
            json.dump(data, f, indent=2)

    def list_records(self) -> List[InstalledToolRecord]:
        return [InstalledToolRecord.from_dict(t) for t in self._load()["tools"].values()]

    def list_auto_start_records(self) -> List[InstalledToolRecord]:
        return [r for r in self.list_records() if r.auto_start]

    def get(self, name: str) -> Optional[InstalledToolRecord]:
        data = self._load()["tools"].get(name)
        return InstalledToolRecord.from_dict(data) if data else None

    def record_installed(self, record: InstalledToolRecord):
        data = self._load()
        data["tools"][record.name] = asdict(record)
        self._save(data)

    def record_removed(self, name: str) -> Optional[InstalledToolRecord]:
        """Remove a record; returns it, or None if it was not installed."""
        data = self._load()
        removed = data["tools"].pop(name, None)
        if removed is None:
            return None
        self._save(data)
        return InstalledToolRecord.from_dict(removed)

    def read_log(self) -> List[Dict[str, Any]]:
        if not self.log_path.exists():
            return []
        try:
            with open(self.log_path, "r") as f:
                entries = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable install log %s: %s", self.log_path, e)
            return []
        return entries if isinstance(entries, list) else []

    def append_log(self, entry: InstallLogEntry):
        entries = self.read_log()
        entries.append({k: v for k, v in asdict(entry).items() if v is not None})
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.log_path, "w") as f:
            json.dump(entries, f, indent=2)
