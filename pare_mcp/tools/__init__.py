"""pare-mcp tool catalog: tool definitions grouped by server."""

from __future__ import annotations

from pare_mcp.tools import process
from pare_mcp.tools.base import ToolDefinition  # noqa: F401


def catalog() -> dict[str, list[ToolDefinition]]:
    """Built-in tool definitions by server name."""
    return {
        process.SERVER: process.definitions(),
    }


def server_names() -> list[str]:
    return sorted(catalog())
