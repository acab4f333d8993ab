"""Forage MCP server entry points."""
