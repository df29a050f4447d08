"""
Tunnel connect command.

Negotiates a path to the remote server and relays the local UDP service
until Ctrl+C, a keep-alive timeout or a negotiation failure.

Example:
    # Relay local UDP port 51820 through the server at 203.0.113.7
    sneakytunnel connect 203.0.113.7 https://negotiator.example.com 51820

    # Talk to a relay that expects the legacy ANNOUNCE byte order
    sneakytunnel connect 203.0.113.7 https://negotiator.example.com 51820 \\
        --byte-order little
"""

import asyncio
import signal
from dataclasses import replace
from typing import Annotated

import typer
from pydantic import ValidationError

from sneakytunnel.cli.output import console, print_error, print_event
from sneakytunnel.config import ClientConfig, config
from sneakytunnel.models.config import TunnelConfig
from sneakytunnel.models.enums import DisconnectReason, LogLevel
from sneakytunnel.relay.controller import TunnelController
from sneakytunnel.tunnel.protocol import PortByteOrder
from sneakytunnel.utils.logger import configure_logging

app = typer.Typer(help="Open a tunnel to a remote server")


def build_settings(
    log_level: LogLevel | None = None,
    byte_order: PortByteOrder | None = None,
    keepalive_timeout: float | None = None,
    settle_delay: float | None = None,
    public_ip_url: str | None = None,
) -> ClientConfig:
    """Copy the global config, apply env overrides, then CLI options."""
    settings = replace(config)
    settings.load_from_env()

    if log_level is not None:
        settings.LOG_LEVEL = log_level
    if byte_order is not None:
        settings.ANNOUNCE_PORT_BYTE_ORDER = byte_order
    if keepalive_timeout is not None:
        settings.KEEPALIVE_TIMEOUT_SECONDS = keepalive_timeout
    if settle_delay is not None:
        settings.SETTLE_DELAY_SECONDS = settle_delay
    if public_ip_url is not None:
        settings.PUBLIC_IP_URL = public_ip_url

    settings.validate()
    return settings


@app.callback(invoke_without_command=True)
def connect(
    server_address: Annotated[
        str,
        typer.Argument(help="IP address of the remote server", envvar="SNEAKYTUNNEL_SERVER"),
    ],
    negotiator_url: Annotated[
        str,
        typer.Argument(help="Negotiator base URL", envvar="SNEAKYTUNNEL_NEGOTIATOR"),
    ],
    service_port: Annotated[
        int,
        typer.Argument(
            help="Local UDP service port to relay", envvar="SNEAKYTUNNEL_SERVICE_PORT"
        ),
    ],
    log_level: Annotated[
        LogLevel | None,
        typer.Option("--log-level", "-L", help="Logging verbosity"),
    ] = None,
    byte_order: Annotated[
        PortByteOrder | None,
        typer.Option("--byte-order", help="ANNOUNCE port byte order"),
    ] = None,
    keepalive_timeout: Annotated[
        float | None,
        typer.Option("--keepalive-timeout", help="Seconds of server silence before giving up"),
    ] = None,
    settle_delay: Annotated[
        float | None,
        typer.Option("--settle-delay", help="Seconds between our dummy and the dummy request"),
    ] = None,
    public_ip_url: Annotated[
        str | None,
        typer.Option("--public-ip-url", help="Plain-text public IP resolver"),
    ] = None,
):
    """
    Connect to a remote server and relay a local UDP service.

    Prints status lines until the tunnel stops. Exits with status 1 if the
    tunnel ended because of an error.
    """
    try:
        settings = build_settings(
            log_level, byte_order, keepalive_timeout, settle_delay, public_ip_url
        )
    except ValueError as e:
        print_error(f"Invalid configuration: {e}")
        raise typer.Exit(1)

    configure_logging(settings.LOG_LEVEL)

    try:
        tunnel_config = TunnelConfig(
            server_address=server_address,
            negotiator_url=negotiator_url,
            service_port=service_port,
        )
    except ValidationError as e:
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"])
            print_error(f"{field}: {error['msg']}")
        raise typer.Exit(1)

    console.print(
        f"[bold green]Tunneling[/bold green] "
        f"[cyan]udp:{tunnel_config.service_port}[/cyan] "
        f"[dim]→[/dim] "
        f"[yellow]{tunnel_config.server_address}[/yellow] "
        f"[dim](via {tunnel_config.negotiator_url})[/dim]"
    )
    console.print("[dim]Press Ctrl+C to stop.[/dim]")

    try:
        reason = asyncio.run(_run_tunnel(tunnel_config, settings))
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")
        return

    if reason is not None and reason.is_error:
        raise typer.Exit(1)


async def _print_events(queue: asyncio.Queue) -> None:
    while True:
        print_event(await queue.get())


async def _run_tunnel(
    tunnel_config: TunnelConfig, settings: ClientConfig
) -> DisconnectReason | None:
    """Run one session, printing its events, until it disconnects."""
    controller = TunnelController(settings)
    queue = controller.events.subscribe()
    loop = asyncio.get_running_loop()

    try:
        loop.add_signal_handler(signal.SIGINT, controller.stop)
    except NotImplementedError:
        # Windows: fall back to KeyboardInterrupt
        pass

    controller.start(tunnel_config)
    printer = asyncio.create_task(_print_events(queue))

    try:
        return await controller.wait()
    finally:
        printer.cancel()
        await asyncio.gather(printer, return_exceptions=True)
        while not queue.empty():
            print_event(queue.get_nowait())
        controller.events.unsubscribe(queue)
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except NotImplementedError:
            pass
