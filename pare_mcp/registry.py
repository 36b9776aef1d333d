"""
Tool visibility, computed once per server at startup.

A disabled tool is invisible: it is not advertised and a call to it is
answered exactly like a call to a tool that does not exist.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
import logging
from types import MappingProxyType
from typing import Any, TypeVar

from pare_mcp.config import ToolFilterConfig

logger = logging.getLogger("pare-mcp.server")

D = TypeVar("D")


def should_register_tool(server: str, tool: str, tool_filter: ToolFilterConfig) -> bool:
    """
    Decide whether a (server, tool) pair is visible.

    Levels never merge: the first one that is set decides alone.
        1. PARE_TOOLS ("server:tool" entries)
        2. PARE_PROFILE (unless it is "full")
        3. PARE_{SERVER}_TOOLS
        4. everything enabled
    """
    key = f"{server}:{tool}"
    if tool_filter.explicit_tools is not None:
        return key in tool_filter.explicit_tools
    if tool_filter.profile_tools is not None:
        return key in tool_filter.profile_tools
    server_tools = tool_filter.tools_for(server)
    if server_tools is not None:
        return tool in server_tools
    return True


class ToolRegistry:
    """Read-only enabled/disabled map for one server's tools."""

    def __init__(self, server: str, states: Mapping[str, bool]):
        self.server = server
        self._states = MappingProxyType(dict(states))

    @classmethod
    def build(cls, server: str, tool_names: Iterable[str], tool_filter: ToolFilterConfig) -> ToolRegistry:
        states = {name: should_register_tool(server, name, tool_filter) for name in tool_names}
        registry = cls(server, states)
        disabled = registry.disabled_tools()
        if disabled:
            logger.info(f"{server}: {len(disabled)} tool(s) disabled by filter: {', '.join(disabled)}")
        return registry

    @property
    def states(self) -> Mapping[str, bool]:
        return self._states

    def is_enabled(self, tool: str) -> bool:
        """Unknown tools are reported as disabled."""
        return self._states.get(tool, False)

    def enabled_tools(self) -> list[str]:
        return [name for name, enabled in self._states.items() if enabled]

    def disabled_tools(self) -> list[str]:
        return [name for name, enabled in self._states.items() if not enabled]

    def advertise(self, definitions: Sequence[D], name_of: Any = None) -> list[D]:
        """
        Filter tool definitions to enabled ones, preserving order.

        Args:
            definitions: Tool definitions (anything with a .name, or strings)
            name_of: Optional key function returning a definition's name
        """
        if name_of is None:
            name_of = _default_name
        return [d for d in definitions if self.is_enabled(name_of(d))]


def _default_name(definition: Any) -> str:
    if isinstance(definition, str):
        return definition
    return definition.name
