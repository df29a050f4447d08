"""
Caller-facing tunnel API.

    controller = TunnelController()
    queue = controller.events.subscribe()
    controller.start(TunnelConfig(...))
    ...
    controller.stop()
    reason = await controller.wait()

The controller keeps at most one live RelaySession. Every start() builds
a fresh session; nothing carries over from a previous run.
"""

import asyncio

import httpx

from sneakytunnel.config import ClientConfig, config as default_config
from sneakytunnel.exceptions import TunnelBusyError
from sneakytunnel.models.config import TunnelConfig
from sneakytunnel.models.enums import ConnectionStatus, DisconnectReason
from sneakytunnel.relay.events import EventStream
from sneakytunnel.relay.session import RelaySession
from sneakytunnel.relay.state import is_terminal
from sneakytunnel.utils.logger import get_logger

logger = get_logger(__name__)


class TunnelController:
    """Starts, stops and reports on tunnel sessions."""

    def __init__(
        self,
        settings: ClientConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or default_config
        self.events = EventStream(self.settings.EVENT_HISTORY_SIZE)
        self._transport = transport
        self.session: RelaySession | None = None
        self._task: asyncio.Task | None = None

    @property
    def active(self) -> bool:
        """True while a session exists and has not disconnected."""
        return self.session is not None and not is_terminal(self.session.state)

    @property
    def status(self) -> ConnectionStatus:
        """Coarse status derived from the current session state."""
        if self.session is None:
            return ConnectionStatus.DISCONNECTED
        return ConnectionStatus.from_state(self.session.state)

    def start(self, tunnel_config: TunnelConfig) -> RelaySession:
        """
        Start a new session in the background.

        Must be called from a running event loop.

        Raises:
            TunnelBusyError: If a session is already active.
        """
        if self.active:
            raise TunnelBusyError("A tunnel session is already running")

        self.settings.validate()
        self.session = RelaySession(
            tunnel_config,
            settings=self.settings,
            events=self.events,
            transport=self._transport,
        )
        self._task = asyncio.create_task(
            self.session.run(), name=f"tunnel-{tunnel_config.server_address}"
        )
        logger.debug(
            f"Started tunnel to {tunnel_config.server_address} "
            f"for service port {tunnel_config.service_port}"
        )
        return self.session

    def stop(self) -> None:
        """Stop the current session. Safe to call at any time."""
        if self.session is not None:
            self.session.stop()

    async def wait(self) -> DisconnectReason | None:
        """Wait for the current session's run task to finish."""
        if self._task is None:
            return None
        return await self._task
