"""Shared UI components for the pgportal CLI."""

from __future__ import annotations

from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from pgportal.config.settings import Settings, resolve_database_url
from pgportal.db.targets import TargetIdentity
from pgportal.errors import GatewayError

theme = Theme(
    {
        "info": "dim cyan",
        "warning": "yellow",
        "error": "bold red",
        "tip": "blue",
        "heading": "bold cyan",
    }
)

console = Console(theme=theme)
error_console = Console(theme=theme, stderr=True)


def _default_target(settings: Settings) -> str:
    try:
        return TargetIdentity.parse(resolve_database_url(settings)).display_url
    except GatewayError:
        return "[dim]none (clients must pass ?db=)[/dim]"


def print_banner(settings: Settings, config_path: Path | None) -> None:
    """Print the HTTP-mode startup panel. Never shows credentials."""
    from pgportal import __version__

    http = settings.http
    base_url = f"http://{http.host}:{http.port}"

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="bold white", justify="right")
    table.add_column("Value", style="cyan")
    table.add_row("SSE", f"{base_url}{http.sse_path}?secret=...&db=...&permissions=read")
    table.add_row("Messages", f"{base_url}{http.message_path}?sessionId=...")
    table.add_row("Health", f"{base_url}{http.health_path}")
    table.add_row("Default target", _default_target(settings))
    table.add_row("Config", str(config_path) if config_path else "[dim]defaults[/dim]")

    console.print(
        Panel(
            table,
            title=f"[bold cyan]pgportal {__version__}[/bold cyan]",
            subtitle="[dim]Postgres MCP gateway[/dim]",
            border_style="cyan",
            padding=(1, 1),
        )
    )


def print_error(title: str, message: str, tip: str | None = None) -> None:
    """Print a styled error message with an optional actionable tip."""
    content = Text()
    content.append(f"{message}\n", style="white")

    if tip:
        content.append("\nTip: ", style="bold blue")
        content.append(tip, style="blue")

    error_console.print(
        Panel(
            content,
            title=f"[bold red]Error: {title}[/bold red]",
            border_style="red",
            padding=(1, 1),
        )
    )
