"""
Tool namespace wrapping

Child servers' tools are merged into one flat catalog under names of the form
``forage__<sanitized server>__<tool>``. Unwrapping splits on the first
separator only, so tool names that contain ``__`` survive the round trip.

Sanitizing is many-to-one: two server names that differ only in characters
outside ``[A-Za-z0-9_-]`` produce the same prefix and their tools collide.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

PREFIX = "forage__"
SEPARATOR = "__"

_UNSAFE = re.compile(r"[^A-Za-z0-9_-]")


@dataclass(frozen=True)
class WrappedCapability:
    """A child tool as advertised to the host."""

    wrapped_name: str
    description: str
    server_name: str
    original_name: str
    input_schema: Dict[str, Any] = field(default_factory=dict, compare=False)


def sanitize(name: str) -> str:
    """Replace every character outside [A-Za-z0-9_-] with an underscore."""
    return _UNSAFE.sub("_", name)


def format_wrapped_name(server_name: str, capability_name: str) -> str:
    return f"{PREFIX}{sanitize(server_name)}{SEPARATOR}{capability_name}"


def wrap(server_name: str, capability) -> WrappedCapability:
    """
    Build the namespaced view of one child tool.

    Args:
        server_name: Logical name of the owning server
        capability: Object with name, description and input_schema

    Returns:
        WrappedCapability with the namespaced name and attributed description
    """
    description = f"[via {server_name}] {capability.description or ''}".strip()
    return WrappedCapability(
        wrapped_name=format_wrapped_name(server_name, capability.name),
        description=description,
        server_name=server_name,
        original_name=capability.name,
        input_schema=dict(capability.input_schema or {}),
    )


def unwrap(wrapped_name: str) -> Optional[Tuple[str, str]]:
    """
    Reverse a wrapped name into (sanitized server name, tool name).

    Returns None if the prefix is missing or the rest does not hold both parts.
    """
    if not wrapped_name.startswith(PREFIX):
        return None

    rest = wrapped_name[len(PREFIX):]
    server, sep, capability = rest.partition(SEPARATOR)
    if not sep or not server or not capability:
        return None
    return server, capability
