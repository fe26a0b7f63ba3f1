"""Rich-based console logging for MCP tool calls and server lifecycle events.

Everything renders to stderr so the stdio transport keeps stdout for the
protocol. Panels are only printed when ``TOOLS_LOG_ENABLED`` / ``LOG_RICH_ENABLED``
allow it; callers check the settings.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from rich import box
from rich.console import Console, Group, RenderableType
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

console = Console(stderr=True, soft_wrap=True)


@dataclass
class ToolCallContext:
    """Context information for a tool call."""

    tool_name: str
    kwargs: dict[str, Any]
    server: Optional[str] = None
    channel: Optional[str] = None
    start_time: float = field(default_factory=time.perf_counter)
    end_time: Optional[float] = None
    result: Any = None
    error: Optional[Exception] = None
    success: bool = True
    _created_at: datetime = field(default_factory=datetime.now)

    @property
    def duration_ms(self) -> float:
        end = self.end_time if self.end_time else time.perf_counter()
        return (end - self.start_time) * 1000

    @property
    def timestamp(self) -> str:
        """Get formatted timestamp (captured at creation)."""
        return self._created_at.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]


def _safe_json_format(data: Any, max_length: int = 2000) -> str:
    """Format data as JSON with truncation."""
    json_str = json.dumps(data, indent=2, default=str, ensure_ascii=False)
    if len(json_str) > max_length:
        json_str = json_str[:max_length] + "\n... (truncated)"
    return json_str


def _json_panel(title: str, content: str, *, border_style: str, theme: str = "dracula") -> Panel:
    syntax = Syntax(content, "json", theme=theme, line_numbers=False, word_wrap=True, background_color="default")
    return Panel(syntax, title=title, border_style=border_style, box=box.ROUNDED, padding=(0, 1))


def _duration_markup(duration_ms: float) -> str:
    if duration_ms < 100:
        return f"[bold bright_green]{duration_ms:.2f}ms[/bold bright_green]"
    if duration_ms < 1000:
        return f"[bold yellow]{duration_ms:.2f}ms[/bold yellow]"
    return f"[bold red]{duration_ms:.2f}ms[/bold red]"


def _create_info_table(ctx: ToolCallContext) -> Table:
    """Create a table with tool call metadata."""
    table = Table(show_header=False, box=box.SIMPLE, padding=(0, 1), show_edge=False)
    table.add_column("Key", style="bold bright_yellow", width=12)
    table.add_column("Value", style="white", overflow="fold")

    table.add_row("Tool", f"[bold bright_green]{escape(ctx.tool_name)}[/bold bright_green]")
    table.add_row("Timestamp", f"[dim]{ctx.timestamp}[/dim]")
    if ctx.server:
        table.add_row("Server", f"[bright_cyan]{escape(ctx.server)}[/bright_cyan]")
    if ctx.channel:
        table.add_row("Channel", f"[bright_magenta]{escape(ctx.channel)}[/bright_magenta]")
    if ctx.end_time:
        table.add_row("Duration", _duration_markup(ctx.duration_ms))
        if ctx.success:
            table.add_row("Status", "[bold bright_green]SUCCESS[/bold bright_green]")
        else:
            table.add_row("Status", "[bold bright_red]FAILED[/bold bright_red]")
    return table


def _create_result_display(ctx: ToolCallContext) -> Panel:
    if ctx.error is not None:
        error_info: dict[str, Any] = {
            "error_type": type(ctx.error).__name__,
            "error_message": str(ctx.error),
        }
        if hasattr(ctx.error, "error_type"):
            error_info["error_code"] = ctx.error.error_type
        if hasattr(ctx.error, "data"):
            error_info["error_data"] = ctx.error.data
        return _json_panel(
            "[bold bright_red]Error Details[/bold bright_red]",
            _safe_json_format(error_info),
            border_style="bright_red",
            theme="monokai",
        )
    return _json_panel("[bold bright_white]Result[/bold bright_white]", _safe_json_format(ctx.result), border_style="bright_green")


def log_tool_call_start(ctx: ToolCallContext) -> None:
    """Log the start of a tool call with its parameters."""
    components: list[RenderableType] = [Rule(style="bright_blue"), _create_info_table(ctx)]
    params = {k: v for k, v in ctx.kwargs.items() if k not in {"ctx", "context", "_ctx"}}
    if params:
        components.append(_json_panel("[bold bright_white]Input Parameters[/bold bright_white]", _safe_json_format(params), border_style="bright_blue"))
    console.print(
        Panel(
            Group(*components),
            title="[bold bright_white on bright_blue]MCP TOOL CALL STARTED[/bold bright_white on bright_blue]",
            border_style="bright_blue",
            box=box.DOUBLE,
            padding=(1, 2),
        )
    )


def log_tool_call_end(ctx: ToolCallContext) -> None:
    """Log the end of a tool call with results."""
    if not ctx.end_time:
        ctx.end_time = time.perf_counter()
    if ctx.success:
        title = "[bold bright_white on bright_green]MCP TOOL CALL COMPLETED[/bold bright_white on bright_green]"
        border_style = "bright_green"
    else:
        title = "[bold bright_white on bright_red]MCP TOOL CALL FAILED[/bold bright_white on bright_red]"
        border_style = "bright_red"
    group = Group(Rule(style=border_style, characters="═"), _create_info_table(ctx), Text(), _create_result_display(ctx))
    console.print(Panel(group, title=title, border_style=border_style, box=box.DOUBLE, padding=(1, 2)))
    console.print()


def log_info(message: str, **kwargs: Any) -> None:
    """Log an informational message with Rich formatting."""
    console.print(Text(message, style="bold bright_cyan"))
    if kwargs:
        console.print(_json_panel("[bold bright_cyan]Details[/bold bright_cyan]", _safe_json_format(kwargs, max_length=500), border_style="bright_cyan"))


def log_warning(message: str, **kwargs: Any) -> None:
    """Log a warning message with Rich formatting."""
    console.print(Text(message, style="bold bright_yellow"))
    if kwargs:
        console.print(
            _json_panel(
                "[bold bright_yellow]Warning Details[/bold bright_yellow]",
                _safe_json_format(kwargs, max_length=500),
                border_style="bright_yellow",
                theme="monokai",
            )
        )


def log_error(message: str, error: Optional[Exception] = None, **kwargs: Any) -> None:
    """Log an error message with Rich formatting."""
    console.print(Text(message, style="bold bright_red"))
    if error or kwargs:
        error_data = kwargs.copy()
        if error:
            error_data["error_type"] = type(error).__name__
            error_data["error_message"] = str(error)
        console.print(
            _json_panel(
                "[bold bright_red]Error Details[/bold bright_red]",
                _safe_json_format(error_data, max_length=500),
                border_style="bright_red",
                theme="monokai",
            )
        )


def create_startup_panel(config: dict[str, Any]) -> Panel:
    """Create a startup panel showing configuration, masking secrets."""
    tree = Tree("[bold bright_white]Mezon MCP Server[/bold bright_white]")
    for section, values in config.items():
        branch = tree.add(f"[bold bright_cyan]{section}[/bold bright_cyan]")
        if isinstance(values, dict):
            for key, value in values.items():
                if "token" in key.lower() or "secret" in key.lower():
                    display_value = "[dim red]●●●●●●●●[/dim red]" if value else "[dim]not set[/dim]"
                else:
                    display_value = escape(str(value))
                branch.add(f"[bright_yellow]{key}[/bright_yellow]: [white]{display_value}[/white]")
        else:
            branch.add(f"[white]{escape(str(values))}[/white]")
    return Panel(
        tree,
        title="[bold bright_white on bright_blue]Server Configuration[/bold bright_white on bright_blue]",
        border_style="bright_blue",
        box=box.DOUBLE,
        padding=(1, 2),
    )


def display_startup_banner(settings: Any, transport: str) -> None:
    config: dict[str, Any] = {
        "environment": settings.environment,
        "server": {"transport": transport},
        "mezon": {
            "api_url": settings.mezon.api_url,
            "bot_id": settings.mezon.bot_id,
            "token": settings.mezon.token,
        },
        "logging": {"level": settings.log_level, "tools_log_enabled": settings.tools_log_enabled},
    }
    if transport == "http":
        config["server"].update({"host": settings.http.host, "port": settings.http.port, "path": settings.http.path})
    console.print(create_startup_panel(config))
