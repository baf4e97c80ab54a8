"""Main CLI entry point - one subcommand per daemon operation."""

import binascii
import json
from enum import Enum
from pathlib import Path
from typing import List, Optional

import typer

from mcpskill.core.configs import load_config
from mcpskill.core.content import format_call_result, format_tools
from mcpskill.core.errors import (
    ConfigError,
    DaemonHTTPError,
    NotRunningError,
    PortExhaustedError,
    UnreachableError,
)
from mcpskill.daemon.ports import DEFAULT_PORT
from mcpskill.daemon.protocol import parse_tool_arguments
from mcpskill.daemon.supervisor import (
    ALREADY_RUNNING,
    DEFAULT_SESSION,
    FAILED,
    NOT_RUNNING,
    RUNNING,
    Supervisor,
)
from mcpskill.ui.output import UIManager

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Keep one MCP server session alive and call its tools from the shell.",
)
ui = UIManager()


class OutputFormat(str, Enum):
    auto = "auto"
    json = "json"


# ============================================================================
# Shared setup
# ============================================================================

@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Server config file (or set MCP_SKILL_CONFIG)",
    ),
) -> None:
    """Universal MCP skill client."""
    ctx.obj = {"config_path": config}


def _get_supervisor(ctx: typer.Context) -> Supervisor:
    """Load config and build the supervisor. Exits on config errors."""
    try:
        config = load_config(ctx.obj["config_path"])
    except ConfigError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    return Supervisor(config)


def _fail(message: str) -> None:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(1)


def _print_json(data) -> None:
    typer.echo(json.dumps(data, indent=2))


def _request_error(error: Exception, session: str) -> None:
    """Report a failed daemon request and exit non-zero."""
    if isinstance(error, DaemonHTTPError) and error.unavailable:
        _fail(f"{error.message}. Run 'status {session}' for details")
    if isinstance(error, UnreachableError):
        _fail(f"Daemon for session '{session}' is not responding")
    _fail(str(error))


# ============================================================================
# Commands
# ============================================================================

@app.command()
def start(
    ctx: typer.Context,
    session: str = typer.Argument(DEFAULT_SESSION, help="Session name"),
    port: int = typer.Option(DEFAULT_PORT, "--port", help="First port to try"),
) -> None:
    """
    Start the daemon for a session (no-op if it is already running).

    Example: mcp_skill --config config.json start dev
    """
    supervisor = _get_supervisor(ctx)

    try:
        result = supervisor.start(session, port=port)
    except PortExhaustedError as e:
        _fail(str(e))
    except OSError as e:
        _fail(f"Could not launch daemon: {e}")

    info = result.session
    if result.status == ALREADY_RUNNING:
        ui.info(f"Daemon already running (PID: {info.pid}, port: {info.port})")
        return
    if result.status == FAILED:
        _fail(f"Failed to start daemon. Check logs: {result.log_path}")

    ui.success(f"Daemon started (PID: {info.pid}, port: {info.port})")
    ui.plain(f"Server: {supervisor.config.name}")


@app.command()
def stop(
    ctx: typer.Context,
    session: str = typer.Argument(DEFAULT_SESSION, help="Session name"),
) -> None:
    """Stop the daemon for a session."""
    supervisor = _get_supervisor(ctx)
    result = supervisor.stop(session)

    if result.status == NOT_RUNNING:
        ui.plain("Daemon not running")
    elif result.signalled:
        ui.success(f"Daemon stopped (PID: {result.session.pid})")
    else:
        ui.warning(f"Daemon process not found (PID: {result.session.pid})")


@app.command()
def status(
    ctx: typer.Context,
    session: str = typer.Argument(DEFAULT_SESSION, help="Session name"),
    output_format: OutputFormat = typer.Option(OutputFormat.auto, "--format"),
) -> None:
    """Show whether the daemon runs and whether it reached its MCP server."""
    supervisor = _get_supervisor(ctx)
    result = supervisor.status(session)

    if output_format == OutputFormat.json:
        payload = {"session": session, "state": result.status}
        if result.session:
            payload.update(pid=result.session.pid, port=result.session.port)
        if result.daemon is not None:
            payload["daemon"] = result.daemon
        if result.error:
            payload["error"] = result.error
        _print_json(payload)
    elif result.status == NOT_RUNNING:
        ui.plain("Daemon not running")
    elif result.status == RUNNING:
        daemon = result.daemon
        ui.success(f"Daemon running (PID: {result.session.pid}, port: {result.session.port})")
        ui.plain(f"Server: {daemon.get('server')}")
        ui.plain(f"Connected: {str(daemon.get('connected')).lower()}")
        if daemon.get("lastError"):
            ui.warning(f"Last error: {daemon['lastError']}")
    else:
        ui.warning(f"Daemon not responding (PID: {result.session.pid})")

    if result.status not in (NOT_RUNNING, RUNNING):
        raise typer.Exit(1)


@app.command()
def tools(
    ctx: typer.Context,
    session: str = typer.Option(DEFAULT_SESSION, "--session", "-s", help="Session name"),
    output_format: OutputFormat = typer.Option(OutputFormat.auto, "--format"),
) -> None:
    """List the tools exposed by the MCP server."""
    supervisor = _get_supervisor(ctx)

    try:
        client = supervisor.client(session)
    except NotRunningError:
        _fail("Daemon not running. Start it first.")

    try:
        result = client.tools()
    except (DaemonHTTPError, UnreachableError) as e:
        _request_error(e, session)

    if output_format == OutputFormat.json:
        _print_json(result)
    else:
        typer.echo(format_tools(result))


@app.command()
def call(
    ctx: typer.Context,
    tool: str = typer.Argument(..., help="Tool name"),
    arguments: Optional[List[str]] = typer.Argument(None, help="key=value arguments"),
    session: str = typer.Option(DEFAULT_SESSION, "--session", "-s", help="Session name"),
    output_dir: Optional[Path] = typer.Option(
        None, "--output-dir", help="Directory for saved images/audio/resources"
    ),
    output_format: OutputFormat = typer.Option(OutputFormat.auto, "--format"),
) -> None:
    """
    Call an MCP tool. Values are parsed as JSON when possible.

    Example: mcp_skill --config config.json call browser_navigate url=https://example.com
    """
    supervisor = _get_supervisor(ctx)

    try:
        client = supervisor.client(session)
    except NotRunningError:
        _fail("Daemon not running. Start it first.")

    try:
        tool_arguments = parse_tool_arguments(arguments or [])
    except ValueError as e:
        _fail(str(e))

    try:
        result = client.call(tool, tool_arguments)
    except (DaemonHTTPError, UnreachableError) as e:
        _request_error(e, session)

    if output_format == OutputFormat.json:
        _print_json(result)
    else:
        target = output_dir or supervisor.config.output_dir(session)
        try:
            rendered = format_call_result(result, target)
        except (binascii.Error, OSError) as e:
            _fail(f"Could not save tool output to {target}: {e}")
        typer.echo(rendered)


@app.command()
def sessions(
    ctx: typer.Context,
    output_format: OutputFormat = typer.Option(OutputFormat.auto, "--format"),
) -> None:
    """List registered sessions and whether their daemon is alive."""
    supervisor = _get_supervisor(ctx)
    entries = supervisor.sessions()

    if output_format == OutputFormat.json:
        _print_json([
            {
                "name": entry.name,
                "pid": entry.pid,
                "port": entry.port,
                "started_at": entry.started_at,
                "alive": alive,
            }
            for entry, alive in entries
        ])
        return

    if not entries:
        ui.plain("No sessions")
        return

    for entry, alive in entries:
        state = "alive" if alive else "dead"
        ui.plain(
            f"{entry.name.ljust(20)} pid={entry.pid:<8} port={entry.port:<6} "
            f"{state:<6} started {entry.started_at}"
        )


def run() -> None:
    """Entry point for console script mapping."""
    app()


if __name__ == "__main__":
    run()
