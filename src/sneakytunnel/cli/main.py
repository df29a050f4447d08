"""
SneakyTunnel CLI entry point.

Usage:
    sneakytunnel [OPTIONS] COMMAND [ARGS]...

Commands:
    connect   Open a tunnel and relay a local UDP service
    config    Configuration
    version   Show version information
"""

import typer

from sneakytunnel.cli.commands import config_cmd, connect
from sneakytunnel.cli.output import console

app = typer.Typer(
    name="sneakytunnel",
    help="SneakyTunnel NAT traversal UDP tunnel",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Register command groups
app.add_typer(connect.app, name="connect", help="Connect to a remote server")
app.add_typer(config_cmd.app, name="config", help="Configuration")


@app.command("version")
def version():
    """Show version information."""
    from sneakytunnel import __version__

    console.print(f"SneakyTunnel v{__version__}")


def run():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
