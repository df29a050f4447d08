"""Shared rich console and message helpers for the CLI."""

from rich.console import Console
from rich.markup import escape

from sneakytunnel.models.config import StatusEvent
from sneakytunnel.models.enums import ConnectionStatus

console = Console()
err_console = Console(stderr=True)

STATUS_STYLES = {
    ConnectionStatus.CONNECTED: "green",
    ConnectionStatus.CONNECTING: "yellow",
    ConnectionStatus.DISCONNECTED: "red",
}

LEVEL_STYLES = {
    "error": "red",
    "warning": "yellow",
    "success": "green",
}


def print_error(message: str) -> None:
    err_console.print(f"[bold red]Error:[/bold red] {escape(message)}")


def print_success(message: str) -> None:
    console.print(f"[bold green]✓[/bold green] {escape(message)}")


def print_event(event: StatusEvent) -> None:
    """Print one status event with its coarse status tag."""
    status_style = STATUS_STYLES[event.status]
    message = escape(event.message)
    message_style = LEVEL_STYLES.get(event.level)
    if message_style:
        message = f"[{message_style}]{message}[/{message_style}]"

    console.print(
        f"[dim]{event.timestamp.strftime('%H:%M:%S')}[/dim] "
        f"[{status_style}]{event.status.value.upper():<12}[/{status_style}] "
        f"{message}",
        highlight=False,
    )
