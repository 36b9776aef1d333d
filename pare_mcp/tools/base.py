"""Tool definition shared by every server's tool modules."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from mcp.types import Tool

from pare_mcp.runner import CommandRunner

Handler = Callable[[dict[str, Any], CommandRunner], Awaitable[Any]]


@dataclass(frozen=True)
class ToolDefinition:
    """An advertised tool plus the coroutine that answers calls to it."""

    server: str
    tool: Tool
    handler: Handler

    @property
    def name(self) -> str:
        return self.tool.name

    @property
    def key(self) -> str:
        """Name as used in PARE_TOOLS and profiles, e.g. "process:run"."""
        return f"{self.server}:{self.tool.name}"
