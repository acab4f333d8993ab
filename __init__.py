"""
Forage - Runtime MCP Server Discovery and Proxying

Enables:
- Searching MCP registries for servers that provide a capability
- Installing MCP servers without restarting the agent
- Proxying child servers' tools under collision-safe names
- Auto-starting previously installed servers
"""

__version__ = "0.1.0"
