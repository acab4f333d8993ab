#!/usr/bin/env python3
"""
Example child MCP server

A minimal capability-server that forage can install and proxy. Use it as a
starting point for your own servers, or to try the proxy locally:

    forage_install(package_name="example", command="python",
                   args=["templates/example_server.py"], confirm=True)
"""

from typing import List, Optional

from fastmcp import FastMCP

mcp = FastMCP("example-server")


@mcp.tool()
def echo(text: str) -> str:
    """Return the text unchanged."""
    return text


@mcp.tool()
def add_numbers(a: int, b: int) -> dict:
    """
    Add two numbers together.

    Args:
        a: First number
        b: Second number
    """
    return {"result": a + b}


@mcp.tool(name="db__query")
def db_query(table: str, prefix: Optional[str] = None) -> List[str]:
    """
    List rows of a fake table, optionally filtered by prefix.

    The name contains the namespace separator on purpose.
    """
    rows = [f"{table}-{i}" for i in range(3)]
    if prefix:
        rows = [row for row in rows if row.startswith(prefix)]
    return rows


@mcp.tool()
def fail(reason: str = "boom") -> str:
    """Always raise, to exercise error pass-through."""
    raise ValueError(reason)


if __name__ == "__main__":
    # Run the MCP server
    mcp.run()
