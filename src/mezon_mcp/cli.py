"""Command-line interface for running and inspecting the Mezon MCP server."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from . import rich_logger
from .app import build_mcp_server
from .config import Settings, clear_settings_cache, get_settings
from .directory import DirectoryClient, MezonDirectoryClient
from .errors import DirectoryError, ResolutionError
from .resolver import DirectoryResolver

console = Console()

app = typer.Typer(help="Mezon MCP server and directory utilities.", invoke_without_command=True)


@app.callback()
def _app_callback(ctx: typer.Context) -> None:
    """Default to ``serve-stdio`` when no subcommand is given."""
    if ctx.invoked_subcommand is None:
        serve_stdio()


def _configure_logging(settings: Settings) -> None:
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def _require_token(settings: Settings) -> None:
    if not settings.mezon.token:
        rich_logger.log_error("MEZON_TOKEN environment variable is not set")
        raise typer.Exit(code=1)


def _directory_from_settings(settings: Settings) -> DirectoryClient:
    return MezonDirectoryClient(settings.mezon)


def _run_server(transport: str, **kwargs: Any) -> None:
    settings = get_settings()
    _configure_logging(settings)
    _require_token(settings)
    server = build_mcp_server(_directory_from_settings(settings), settings)
    try:
        server.run(transport=transport, **kwargs)
    except Exception as exc:
        rich_logger.log_error("Fatal error while running the Mezon MCP server", error=exc)
        raise typer.Exit(code=1) from exc


@app.command("serve-stdio")
def serve_stdio() -> None:
    """Run the MCP server over stdio transport.

    stdout is reserved for the protocol: rich tool-call panels are disabled and
    all logging goes to stderr.
    """
    os.environ["TOOLS_LOG_ENABLED"] = "false"
    clear_settings_cache()
    settings = get_settings()
    if settings.log_rich_enabled:
        rich_logger.display_startup_banner(settings, "stdio")
    print("Mezon MCP server running on stdio", file=sys.stderr)
    _run_server("stdio")


@app.command("serve-http")
def serve_http(
    host: Optional[str] = typer.Option(None, help="Host interface for HTTP transport. Defaults to HTTP_HOST setting."),
    port: Optional[int] = typer.Option(None, help="Port for HTTP transport. Defaults to HTTP_PORT setting."),
    path: Optional[str] = typer.Option(None, help="HTTP path where the MCP endpoint is exposed."),
) -> None:
    """Run the MCP server over the Streamable HTTP transport."""
    settings = get_settings()
    resolved_host = host or settings.http.host
    resolved_port = port or settings.http.port
    resolved_path = path or settings.http.path
    if settings.log_rich_enabled:
        rich_logger.display_startup_banner(settings, "http")
    _run_server("http", host=resolved_host, port=resolved_port, path=resolved_path)


async def _with_directory(settings: Settings, action: Any) -> Any:
    directory = _directory_from_settings(settings)
    try:
        await directory.connect()
        return await action(directory)
    finally:
        await directory.close()


@app.command("list-clans")
def list_clans() -> None:
    """List the clans visible to the bot and their channels."""
    settings = get_settings()
    _require_token(settings)

    async def _collect(directory: DirectoryClient) -> list[tuple[Any, list[Any]]]:
        rows = []
        for clan in await directory.list_clans():
            rows.append((clan, await directory.list_channels(clan.id)))
        return rows

    try:
        rows = asyncio.run(_with_directory(settings, _collect))
    except DirectoryError as exc:
        rich_logger.log_error("Could not reach the Mezon directory", error=exc)
        raise typer.Exit(code=1) from exc

    table = Table(title="Clans")
    table.add_column("Clan")
    table.add_column("ID")
    table.add_column("Text channels")
    for clan, channels in rows:
        labels = ", ".join(f"{channel.label} ({channel.id})" for channel in channels if channel.is_text)
        table.add_row(clan.name, clan.id, labels or "-")
    console.print(table)


@app.command("resolve")
def resolve(
    channel: str = typer.Argument(..., help='Channel name (e.g., "general") or ID.'),
    server: Optional[str] = typer.Option(None, "--server", "-s", help="Clan name or ID."),
) -> None:
    """Show which clan and channel an identifier resolves to."""
    settings = get_settings()
    _require_token(settings)

    async def _resolve(directory: DirectoryClient) -> Any:
        return await DirectoryResolver(directory).resolve_channel(channel, server)

    try:
        clan, target = asyncio.run(_with_directory(settings, _resolve))
    except ResolutionError as exc:
        rich_logger.log_error(str(exc), kind=exc.kind.value, candidates=exc.candidates)
        raise typer.Exit(code=1) from exc
    except DirectoryError as exc:
        rich_logger.log_error("Could not reach the Mezon directory", error=exc)
        raise typer.Exit(code=1) from exc

    table = Table(show_header=False)
    table.add_row("Server", f"{clan.name} ({clan.id})")
    table.add_row("Channel", f"{target.label} ({target.id})")
    console.print(table)
