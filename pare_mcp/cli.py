"""CLI for running pare-mcp servers and inspecting their resolved policy."""

from __future__ import annotations

import asyncio
from dataclasses import asdict

from rich.console import Console
from rich.table import Table
import typer

from pare_mcp.config import ResolvedConfig, load_config
from pare_mcp.errors import ConfigurationError, PolicyViolation, format_error, policy_error

app = typer.Typer(
    name="pare-mcp",
    help="Structured-output MCP servers for developer CLIs",
    add_completion=False,
)
console = Console()
err_console = Console(stderr=True)

EXIT_CONFIG_ERROR = 2


def _load(servers: list[str]) -> ResolvedConfig:
    """Resolve config or exit with code 2."""
    try:
        return load_config(servers)
    except ConfigurationError as e:
        err_console.print(f"[red]✗[/] Configuration error: {e}")
        raise typer.Exit(EXIT_CONFIG_ERROR) from None


@app.command()
def serve(
    server: str = typer.Argument("process", help="Server to run"),
) -> None:
    """Run one MCP server over stdio."""
    from pare_mcp.observability import setup_logging
    from pare_mcp.server import PareMcpServer
    from pare_mcp.tools import catalog

    definitions = catalog().get(server)
    if definitions is None:
        err_console.print(f"[red]✗[/] Unknown server: {server}. Available: {', '.join(sorted(catalog()))}")
        raise typer.Exit(1)

    config = _load([server])
    setup_logging(config.settings)

    mcp_server = PareMcpServer(server, definitions, config)
    asyncio.run(mcp_server.run())


@app.command()
def tools() -> None:
    """Show which built-in tools are enabled under the current environment."""
    from pare_mcp.profiles import PROFILES
    from pare_mcp.registry import ToolRegistry
    from pare_mcp.tools import catalog

    servers = catalog()
    config = _load(list(servers))

    table = Table(title="Tools")
    table.add_column("Server")
    table.add_column("Tool")
    table.add_column("Status")
    for server, definitions in servers.items():
        registry = ToolRegistry.build(server, [d.name for d in definitions], config.tool_filter)
        for name, enabled in registry.states.items():
            status = "[green]enabled[/]" if enabled else "[dim]disabled[/]"
            table.add_row(server, name, status)
    console.print(table)

    filt = config.tool_filter
    if filt.explicit_tools is not None:
        console.print("Filter: [bold]PARE_TOOLS[/]")
    elif filt.profile is not None:
        console.print(f"Filter: profile [bold]{filt.profile}[/]")

    presets = Table(title="Profiles")
    presets.add_column("Profile")
    presets.add_column("Tools", justify="right")
    for name, members in PROFILES.items():
        presets.add_row(name, "all" if members is None else str(len(members)))
    console.print(presets)


@app.command()
def policy(
    server: str = typer.Argument(..., help="Server name, e.g. git or my-server"),
) -> None:
    """Print the resolved execution policy for a server as JSON."""
    from pare_mcp.output import to_json

    config = _load([server])
    resolved = config.policy_for(server)
    data = asdict(resolved)
    data["allowed_commands"] = None if resolved.allowed_commands is None else sorted(resolved.allowed_commands)
    data["allowed_roots"] = None if resolved.allowed_roots is None else [str(r) for r in resolved.allowed_roots]
    console.print_json(to_json(data))


@app.command(context_settings={"allow_interspersed_args": False, "ignore_unknown_options": True})
def run(
    command: str = typer.Argument(..., help="Command to run"),
    args: list[str] | None = typer.Argument(None, help="Arguments passed to the command"),
    server: str = typer.Option("process", "--server", "-s", help="Server whose policy applies"),
    cwd: str | None = typer.Option(None, "--cwd", "-C", help="Working directory"),
    timeout_ms: int | None = typer.Option(None, "--timeout-ms", "-t", help="Timeout in milliseconds"),
    compact: bool = typer.Option(True, "--compact/--full", help="Prefer compact output when it is smaller"),
    json_output: bool = typer.Option(False, "--json", help="Print the JSON result"),
) -> None:
    """Run a command through the policy pipeline and print the result."""
    from pare_mcp.errors import classify_response
    from pare_mcp.output import compact_output, to_json
    from pare_mcp.runner import CommandRunner
    from pare_mcp.tools.process import RUN_REDUCER, format_run

    config = _load([server])
    runner = CommandRunner(server, config)

    try:
        response = runner.run(command, args or [], cwd, timeout_ms)
    except PolicyViolation as e:
        error = policy_error(e, command)
        if json_output:
            console.print_json(to_json(error))
        else:
            err_console.print(f"[red]✗[/] {format_error(error)}")
        raise typer.Exit(1) from None

    data = {"command": command, **response}
    value, _ = compact_output(data, RUN_REDUCER, compact)

    if json_output:
        console.print_json(to_json(value))
    else:
        console.print(format_run(value), markup=False, highlight=False)
        if not response["success"]:
            err_console.print(format_error(classify_response(response, command)), markup=False, highlight=False)

    if not response["success"]:
        raise typer.Exit(1)


def main():
    """Entry point for the pare-mcp command."""
    app()


if __name__ == "__main__":
    main()
