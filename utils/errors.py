"""
Forage error types

Start-time errors abort a single start attempt and never leave a partial
registry entry. Call-time errors go back to the invoking host call.
Search and close errors are logged and downgraded by their callers.
"""

from typing import Optional


class ForageError(Exception):
    """Base class for all proxy errors."""

    def __init__(self, message: str, server_name: Optional[str] = None):
        super().__init__(message)
        self.server_name = server_name


class LaunchError(ForageError):
    """The child process could not be spawned."""


class HandshakeError(ForageError):
    """Protocol negotiation with the child failed or timed out."""


class DiscoveryError(ForageError):
    """The child's tool listing failed."""


class NotRunningError(ForageError):
    """No session is registered under the requested server name."""

    def __init__(self, server_name: str):
        super().__init__(f"Server '{server_name}' is not running", server_name)


class BackendError(ForageError):
    """A discovery backend failed; the aggregator turns this into no results."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class CloseError(ForageError):
    """Closing a child session failed. Stop proceeds regardless."""
