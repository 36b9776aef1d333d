"""
process server: run an allowlisted command and report how it went.

Tools:
- run: exit code, output, duration and timeout status of one command
"""

from __future__ import annotations

from typing import Any

from mcp.types import Tool

from pare_mcp.errors import InvalidInput
from pare_mcp.output import FunctionReducer, compact_output
from pare_mcp.runner import CommandRunner
from pare_mcp.tools.base import ToolDefinition
from pare_mcp.validation import INPUT_LIMITS, TIMEOUT_MAX_MS

SERVER = "process"

RUN_TOOL = Tool(
    name="run",
    description=(
        "Runs a command and returns structured output "
        "(stdout, stderr, exit code, duration, timeout status)."
    ),
    inputSchema={
        "type": "object",
        "properties": {
            "command": {
                "type": "string",
                "maxLength": INPUT_LIMITS["SHORT_STRING_MAX"],
                "description": "Command to run (e.g. 'node', 'python', 'echo')",
            },
            "args": {
                "type": "array",
                "items": {"type": "string", "maxLength": INPUT_LIMITS["STRING_MAX"]},
                "maxItems": INPUT_LIMITS["ARRAY_MAX"],
                "description": "Arguments to pass to the command",
                "default": [],
            },
            "cwd": {
                "type": "string",
                "maxLength": INPUT_LIMITS["PATH_MAX"],
                "description": "Working directory (default: server cwd)",
            },
            "timeout": {
                "type": "integer",
                "minimum": 1,
                "maximum": TIMEOUT_MAX_MS,
                "description": f"Timeout in milliseconds (default: 60000, max: {TIMEOUT_MAX_MS})",
            },
            "env": {
                "type": "object",
                "additionalProperties": {"type": "string", "maxLength": INPUT_LIMITS["STRING_MAX"]},
                "description": "Additional environment variables as key-value pairs",
            },
            "compact": {
                "anyOf": [{"type": "boolean"}, {"type": "string", "enum": ["auto"]}],
                "description": 'Prefer compact output when it is smaller: true or "auto" (default), false for full',
                "default": True,
            },
        },
        "required": ["command"],
    },
)


def full_run(data: dict[str, Any]) -> dict[str, Any]:
    """Full shape. Empty streams are omitted."""
    out: dict[str, Any] = {
        "command": data["command"],
        "exitCode": data["exitCode"],
        "success": data["success"],
    }
    if data.get("stdout"):
        out["stdout"] = data["stdout"]
    if data.get("stderr"):
        out["stderr"] = data["stderr"]
    out["duration"] = data["duration"]
    out["timedOut"] = data["timedOut"]
    for key in ("signal", "truncated", "error"):
        if data.get(key):
            out[key] = data[key]
    return out


def compact_run(data: dict[str, Any]) -> dict[str, Any]:
    out = {
        "exitCode": data["exitCode"],
        "success": data["success"],
        "timedOut": data["timedOut"],
    }
    if data.get("signal"):
        out["signal"] = data["signal"]
    return out


RUN_REDUCER = FunctionReducer(full=full_run, compact=compact_run)


def format_run(data: dict[str, Any]) -> str:
    """Human-readable summary of a full or compact run result."""
    command = data.get("command", "command")
    if data["timedOut"]:
        sig = f" ({data['signal']})" if data.get("signal") else ""
        duration = data.get("duration")
        head = f"{command}: timed out after {duration}ms{sig}." if duration is not None else f"{command}: timed out{sig}."
    elif data["success"]:
        head = f"{command}: success ({data.get('duration', 0)}ms)."
    else:
        head = f"{command}: exit code {data['exitCode']} ({data.get('duration', 0)}ms)."

    parts = [head]
    for key in ("stdout", "stderr", "error"):
        text = (data.get(key) or "").strip()
        if text and not (key == "error" and text == (data.get("stderr") or "").strip()):
            parts.append(text)
    return "\n".join(parts)


def _require_str(arguments: dict[str, Any], name: str, required: bool = False) -> str | None:
    value = arguments.get(name)
    if value is None:
        if required:
            raise InvalidInput(f"{name} is required")
        return None
    if not isinstance(value, str):
        raise InvalidInput(f"{name} must be a string")
    return value


async def handle_run(arguments: dict[str, Any], runner: CommandRunner) -> dict[str, Any]:
    """
    Run a command through the runner and reduce the result.

    args are passed through untouched; the command allowlist governs them.
    """
    command = _require_str(arguments, "command", required=True)
    cwd = _require_str(arguments, "cwd")
    args = arguments.get("args") or []
    if not isinstance(args, list):
        raise InvalidInput("args must be an array of strings")
    env = arguments.get("env")
    if env is not None and not isinstance(env, dict):
        raise InvalidInput("env must be an object of string values")
    compact = arguments.get("compact", True)
    if not isinstance(compact, bool) and compact != "auto":
        raise InvalidInput('compact must be a boolean or "auto"')

    response = await runner.run_async(command, args, cwd, arguments.get("timeout"), env=env)
    data = {"command": command, **response}
    value, _ = compact_output(data, RUN_REDUCER, compact)
    return value


def definitions() -> list[ToolDefinition]:
    return [ToolDefinition(server=SERVER, tool=RUN_TOOL, handler=handle_run)]
