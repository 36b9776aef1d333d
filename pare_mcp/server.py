"""
MCP adapter: exposes one server's enabled tools over stdio.

Run with: pare-mcp serve process
"""

from __future__ import annotations

from collections.abc import Sequence
import logging
import time
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from pare_mcp import __version__
from pare_mcp.config import ResolvedConfig
from pare_mcp.errors import PolicyViolation, classify_response, policy_error
from pare_mcp.observability import generate_correlation_id
from pare_mcp.output import to_json
from pare_mcp.process import ProcessExecutor
from pare_mcp.registry import ToolRegistry
from pare_mcp.runner import CommandRunner
from pare_mcp.tools.base import ToolDefinition

logger = logging.getLogger("pare-mcp.server")


class PareMcpServer:
    """One MCP server (e.g. "process") with its tool registry fixed at startup."""

    def __init__(
        self,
        server_name: str,
        definitions: Sequence[ToolDefinition],
        config: ResolvedConfig,
        executor: ProcessExecutor | None = None,
    ):
        self.name = server_name
        self.config = config
        self.registry = ToolRegistry.build(server_name, [d.name for d in definitions], config.tool_filter)
        self.definitions = {d.name: d for d in self.registry.advertise(definitions)}
        self.tools: list[Tool] = [d.tool for d in self.definitions.values()]
        self.runner = CommandRunner(server_name, config, executor)
        self.server = Server(f"pare-{server_name}", version=__version__)
        self._register_handlers()

        keys = ", ".join(d.key for d in self.definitions.values())
        logger.info(f"{server_name}: advertising {len(self.tools)} tool(s): {keys}")

    def _register_handlers(self):
        """Register MCP protocol handlers."""

        @self.server.list_tools()
        async def list_tools() -> list[Tool]:
            logger.debug("list_tools called")
            return self.tools

        @self.server.call_tool()
        async def call_tool(name: str, arguments: dict | None) -> list[TextContent]:
            return await self.call_tool(name, arguments)

    async def call_tool(self, name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
        """Dispatch a call. Disabled tools are indistinguishable from unknown ones."""
        cid = generate_correlation_id()
        start_time = time.time()
        error_msg = None

        logger.info(f"call_tool: {name}", extra={"correlation_id": cid, "tool": name})

        definition = self.definitions.get(name) if self.registry.is_enabled(name) else None
        if definition is None:
            error_msg = f"Unknown tool: {name}"
            data: Any = {"error": error_msg}
        else:
            try:
                data = await definition.handler(arguments or {}, self.runner)
            except PolicyViolation as e:
                logger.warning(f"{name} rejected: {e}", extra={"correlation_id": cid, "tool": name})
                command = (arguments or {}).get("command")
                data = policy_error(e, command if isinstance(command, str) else None)
                error_msg = str(e)
            else:
                if isinstance(data, dict) and data.get("success") is False:
                    error_msg = self._describe_failure(data)

        latency_ms = (time.time() - start_time) * 1000
        logger.info(
            f"call_tool done: {name}",
            extra={
                "correlation_id": cid,
                "tool": name,
                "latency_ms": round(latency_ms, 2),
                "status": "ok" if error_msg is None else "error",
                "error": error_msg,
            },
        )

        return [TextContent(type="text", text=to_json(data))]

    @staticmethod
    def _describe_failure(data: dict[str, Any]) -> str:
        """Category plus message for the call log."""
        classified = classify_response(data, data.get("command", ""))
        return f"{classified['category']}: {classified['message'][:200]}"

    async def run(self):
        """Run the server with stdio transport."""
        logger.info(f"Starting pare-{self.name} MCP server (stdio transport)")
        async with stdio_server() as (read_stream, write_stream):
            await self.server.run(
                read_stream,
                write_stream,
                self.server.create_initialization_options(),
            )

