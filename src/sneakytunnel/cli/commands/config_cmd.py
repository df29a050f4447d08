"""Config management commands."""

from dataclasses import fields, replace
from enum import Enum

import typer

from sneakytunnel.cli.output import console
from sneakytunnel.config import ENV_PREFIX, config

app = typer.Typer(help="Configuration commands")


@app.command("show")
def show_config():
    """Show effective client settings and where they come from."""
    from rich.table import Table

    settings = replace(config)
    from_env = set(settings.load_from_env())

    table = Table(title="Current Configuration", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Source")

    for f in fields(settings):
        value = getattr(settings, f.name)
        if isinstance(value, Enum):
            value = value.value
        source = f"env ({ENV_PREFIX}{f.name})" if f.name in from_env else "default"
        table.add_row(f.name, str(value), source)

    console.print(table)
