"""
Forage configuration

Settings come from FORAGE_* environment variables with sensible defaults.
Everything forage persists lives under a single home directory (~/.forage).
"""

import logging
import sys
from pathlib import Path

from pydantic import Field, PositiveFloat, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_FORMAT = "[forage] %(levelname)s %(name)s: %(message)s"


def _default_home() -> Path:
    return Path.home() / ".forage"


class ForageConfig(BaseSettings):
    """
    Runtime settings for the proxy server.

    Each field reads FORAGE_<FIELD> from the environment, for example
    FORAGE_HOME or FORAGE_SEARCH_TIMEOUT. Empty variables fall back to the
    default; a timeout that is not a positive number raises ValidationError.
    """

    model_config = SettingsConfigDict(
        env_prefix="FORAGE_",
        env_ignore_empty=True,
        extra="ignore",
    )

    home: Path = Field(default_factory=_default_home, description="Directory for the manifest and install log.")
    search_timeout: PositiveFloat = Field(default=10.0, description="Seconds each registry gets per search.")
    handshake_timeout: PositiveFloat = Field(default=30.0, description="Seconds allowed for spawn + initialize.")
    discovery_timeout: PositiveFloat = Field(default=30.0, description="Seconds allowed for a child's tool listing.")
    shutdown_timeout: PositiveFloat = Field(default=10.0, description="Seconds allowed for stopping every child.")
    verify_timeout: PositiveFloat = Field(default=15.0, description="Seconds allowed for the npm package check.")
    log_level: str = Field(default="INFO", description="Root log level.")

    @field_validator("home", mode="after")
    @classmethod
    def expand_home(cls, v: Path) -> Path:
        return v.expanduser()

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return str(v).upper()

    @property
    def manifest_path(self) -> Path:
        return self.home / "manifest.json"

    @property
    def log_path(self) -> Path:
        return self.home / "install-log.json"


def configure_logging(level: str = "INFO") -> None:
    """Send log records to stderr; stdout belongs to the MCP stdio protocol."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )
