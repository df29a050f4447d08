"""
Relay session.

Drives one tunnel run from negotiation to disconnect:

    1. Probe the negotiator and resolve our public IP
    2. Bind the server-facing socket and negotiate the server port
    3. Send a DUMMY to punch our NAT, wait, then ask the server for its DUMMY
    4. Bind the service-facing socket and relay packets both ways

All Session mutation happens on the event loop thread (datagram callbacks,
the run coroutine and the keep-alive task), so no locking is needed.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable

import httpx

from sneakytunnel.config import ClientConfig, config as default_config
from sneakytunnel.exceptions import (
    DummyRequestFailed,
    MalformedPacket,
    NegotiationFailed,
    NegotiatorUnreachable,
    PublicIPUnavailable,
    SocketBindFailed,
    SocketSendFailed,
    TunnelError,
)
from sneakytunnel.models.config import TunnelConfig
from sneakytunnel.models.enums import ConnectionStatus, DisconnectReason, SessionState
from sneakytunnel.negotiator.client import NegotiatorClient
from sneakytunnel.relay.endpoints import Address, EndpointSocket, SendResult
from sneakytunnel.relay.events import EventStream
from sneakytunnel.relay.keepalive import KeepAliveSupervisor
from sneakytunnel.relay.state import SessionEvent, is_terminal, next_state
from sneakytunnel.tunnel.protocol import (
    PacketFlag,
    build_announce,
    build_data,
    build_dummy,
    build_keepalive_ack,
    flag_name,
    parse,
)
from sneakytunnel.utils.logger import format_traceback, get_logger

logger = get_logger(__name__)

# Checked in order, so subclasses must precede their bases
_ERROR_REASONS: list[tuple[type[TunnelError], DisconnectReason]] = [
    (NegotiatorUnreachable, DisconnectReason.NEGOTIATOR_UNREACHABLE),
    (PublicIPUnavailable, DisconnectReason.PUBLIC_IP_UNAVAILABLE),
    (NegotiationFailed, DisconnectReason.NEGOTIATION_FAILED),
    (DummyRequestFailed, DisconnectReason.DUMMY_REQUEST_FAILED),
    (SocketSendFailed, DisconnectReason.SOCKET_SEND_FAILED),
    (SocketBindFailed, DisconnectReason.SOCKET_BIND_FAILED),
]


def reason_for_error(error: TunnelError) -> DisconnectReason:
    """Map a tunnel exception to the disconnect reason it causes."""
    for error_type, reason in _ERROR_REASONS:
        if isinstance(error, error_type):
            return reason
    return DisconnectReason.INTERNAL_ERROR


class _SessionClosed(Exception):
    """Raised inside run() when the session was disconnected mid-step."""


@dataclass
class Session:
    """Mutable state of one tunnel run."""

    config: TunnelConfig
    state: SessionState = SessionState.IDLE
    client_port: int | None = None
    server_port: int | None = None
    public_address: str | None = None
    remote_peer: Address | None = None
    last_activity: float | None = None
    announced: bool = False
    reason: DisconnectReason | None = None

    @property
    def server_endpoint(self) -> Address | None:
        if self.server_port is None:
            return None
        return (self.config.server_address, self.server_port)


class RelaySession:
    """
    Owns one Session, its two sockets and its keep-alive supervisor.

    A RelaySession runs once. Starting over means building a new one.
    """

    def __init__(
        self,
        tunnel_config: TunnelConfig,
        settings: ClientConfig | None = None,
        events: EventStream | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize relay session.

        Args:
            tunnel_config: Server address, negotiator URL and service port.
            settings: Client tunables (defaults to the global config).
            events: Event stream to publish status lines to.
            transport: Optional httpx transport for the negotiator client.
            clock: Monotonic time source for keep-alive bookkeeping.
        """
        self.settings = settings or default_config
        self.session = Session(config=tunnel_config)
        self.events = events or EventStream(self.settings.EVENT_HISTORY_SIZE)
        self._clock = clock
        self._log_prefix = f"[Session {tunnel_config.server_address}]"

        self._negotiator = NegotiatorClient(
            tunnel_config.negotiator_url,
            public_ip_url=self.settings.PUBLIC_IP_URL,
            timeout=self.settings.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )
        self.server_socket = EndpointSocket("server", self._on_server_packet)
        self.service_socket = EndpointSocket("service", self._on_service_packet)
        self.keepalive = KeepAliveSupervisor(
            lambda: self.session.last_activity,
            self._on_keepalive_timeout,
            interval=self.settings.KEEPALIVE_INTERVAL_SECONDS,
            timeout=self.settings.KEEPALIVE_TIMEOUT_SECONDS,
            clock=clock,
        )

        self._closed = asyncio.Event()
        self._inflight: asyncio.Future | None = None

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def reason(self) -> DisconnectReason | None:
        return self.session.reason

    # =========================================================================
    # State Machine
    # =========================================================================

    def _fire(
        self, event: SessionEvent, reason: DisconnectReason | None = None
    ) -> SessionState:
        old = self.session.state
        new = next_state(old, event)
        if new is old:
            return old

        self.session.state = new
        logger.debug(f"{self._log_prefix} {old.value} -> {new.value} ({event.value})")

        if is_terminal(new):
            self.session.reason = reason
            self.keepalive.stop()
            self.server_socket.close()
            self.service_socket.close()
            self._closed.set()
        return new

    def _mark_connected(self, event: SessionEvent, message: str) -> None:
        was_connected = self.session.state is SessionState.CONNECTED
        if self._fire(event) is SessionState.CONNECTED and not was_connected:
            self.events.emit(message, ConnectionStatus.CONNECTED, level="success")

    def disconnect(self, reason: DisconnectReason, message: str | None = None) -> bool:
        """
        Force the session into DISCONNECTED.

        Closes both sockets and stops the keep-alive supervisor. Does nothing
        if the session is already disconnected.

        Returns:
            True if this call performed the transition.
        """
        if is_terminal(self.session.state):
            return False

        if reason is DisconnectReason.USER_REQUESTED:
            event = SessionEvent.STOP
        elif reason is DisconnectReason.KEEPALIVE_TIMEOUT:
            event = SessionEvent.TIMED_OUT
        else:
            event = SessionEvent.FAILED

        self._fire(event, reason)
        self.events.emit(
            message or f"Disconnected ({reason.value})",
            ConnectionStatus.DISCONNECTED,
            level="error" if reason.is_error else "info",
        )
        return True

    def stop(self) -> None:
        """Stop at the user's request. Idempotent, does not wait for HTTP."""
        self.disconnect(DisconnectReason.USER_REQUESTED, "Disconnected")

    # =========================================================================
    # Run
    # =========================================================================

    async def run(self) -> DisconnectReason | None:
        """
        Negotiate and relay until disconnected.

        Returns:
            The reason the session ended.
        """
        cfg = self.session.config
        settings = self.settings

        try:
            if self._fire(SessionEvent.START) is not SessionState.TESTING_NEGOTIATOR:
                # Stopped before the run got scheduled
                raise _SessionClosed()
            self.events.emit(
                f"Testing negotiator {cfg.negotiator_url}", ConnectionStatus.CONNECTING
            )
            await self._step(self._negotiator.probe())
            self.events.emit("Negotiator ok")

            public_address = await self._step(
                self._negotiator.resolve_public_address()
            )
            self.session.public_address = public_address
            self.events.emit(f"Public address: {public_address}")
            self._fire(SessionEvent.PROBE_OK)

            client_port = await self._step(
                self.server_socket.bind_random(
                    settings.SERVER_BIND_HOST,
                    settings.CLIENT_PORT_MIN,
                    settings.CLIENT_PORT_MAX,
                    settings.BIND_ATTEMPTS,
                ),
                cancel_on_stop=True,
            )
            self.session.client_port = client_port
            self.events.emit(f"Client port selected: {client_port}")

            server_port = await self._step(
                self._negotiator.negotiate_port(
                    cfg.server_address, public_address, client_port
                )
            )
            self.session.server_port = server_port
            self.events.emit(f"Negotiated server port: {server_port}")
            self._fire(SessionEvent.PORT_NEGOTIATED)
            self.keepalive.start()

            result = self._send_to_server(build_dummy())
            if not result:
                raise SocketSendFailed("dummy", result.error)
            logger.debug(f"{self._log_prefix} Sent dummy packet to port {server_port}")

            await self._step(
                asyncio.sleep(settings.SETTLE_DELAY_SECONDS), cancel_on_stop=True
            )
            await self._step(
                self._negotiator.request_peer_dummy(
                    cfg.server_address, public_address, client_port
                )
            )
            self.events.emit("Asked server for dummy packet")

            await self._step(
                self.service_socket.bind(settings.SERVICE_BIND_HOST, cfg.service_port),
                cancel_on_stop=True,
            )
            self.events.emit(f"Relaying service port {cfg.service_port}")

            await self._closed.wait()

        except _SessionClosed:
            pass

        except TunnelError as e:
            self.disconnect(reason_for_error(e), str(e))

        except Exception as e:
            logger.error(f"{self._log_prefix} Unexpected error: {e}")
            logger.debug(format_traceback(e))
            self.disconnect(DisconnectReason.INTERNAL_ERROR, f"Internal error: {e}")

        finally:
            if not is_terminal(self.session.state):
                # Run task cancelled from outside
                self.stop()
            await self._release_negotiator()

        logger.info(f"{self._log_prefix} Session finished ({self.session.reason.value})")
        return self.session.reason

    async def _step(self, awaitable, cancel_on_stop: bool = False):
        """
        Await one run step, giving up as soon as the session is disconnected.

        In-flight HTTP requests are left to finish on their own and their
        result is dropped; sleeps and binds are cancelled.
        """
        task = asyncio.ensure_future(awaitable)
        if self._closed.is_set():
            task.cancel()
            raise _SessionClosed()

        closed_waiter = asyncio.ensure_future(self._closed.wait())
        try:
            await asyncio.wait(
                {task, closed_waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            closed_waiter.cancel()

        if self._closed.is_set():
            if cancel_on_stop:
                task.cancel()
            elif not task.done():
                logger.debug(f"{self._log_prefix} Dropping in-flight request result")
                self._inflight = task
            task.add_done_callback(_discard_result)
            raise _SessionClosed()

        return task.result()

    async def _release_negotiator(self) -> None:
        if self._inflight is not None and not self._inflight.done():
            await asyncio.wait({self._inflight}, timeout=self.settings.HTTP_TIMEOUT_SECONDS)
        await self._negotiator.aclose()

    def _on_keepalive_timeout(self) -> None:
        self.disconnect(
            DisconnectReason.KEEPALIVE_TIMEOUT,
            f"Keep-alive timeout: no packet from server for "
            f"{self.settings.KEEPALIVE_TIMEOUT_SECONDS:g}s",
        )

    # =========================================================================
    # Packet Handling
    # =========================================================================

    def _send_to_server(self, packet: bytes) -> SendResult:
        endpoint = self.session.server_endpoint
        if endpoint is None:
            return SendResult(False, "server port not negotiated")
        return self.server_socket.send(packet, endpoint)

    def _touch(self) -> None:
        self.session.last_activity = self._clock()

    def _on_server_packet(self, data: bytes, addr: Address) -> None:
        """Handle a datagram on the server-facing socket."""
        session = self.session
        # Only the configured server may talk to us
        if addr[0] != session.config.server_address:
            return
        if is_terminal(session.state):
            return

        try:
            flag, payload = parse(data)
        except MalformedPacket as e:
            logger.debug(f"{self._log_prefix} Dropping packet from {addr}: {e}")
            return

        logger.trace(
            f"{self._log_prefix} Server→Client: {flag_name(flag)} len={len(payload)}"
        )

        if flag == PacketFlag.DUMMY:
            self._touch()
            self._mark_connected(
                SessionEvent.DUMMY_RECEIVED, "Received dummy packet from server"
            )

        elif flag == PacketFlag.SERVER_KEEPALIVE:
            self._touch()
            endpoint = session.server_endpoint or (session.config.server_address, addr[1])
            result = self.server_socket.send(build_keepalive_ack(), endpoint)
            if not result:
                logger.warning(
                    f"{self._log_prefix} Error sending keep-alive ack: {result.error}"
                )

        elif flag == PacketFlag.DATA:
            self._touch()
            self._forward_to_service(payload)

    def _forward_to_service(self, payload: bytes) -> None:
        peer = self.session.remote_peer
        if peer is None:
            logger.debug(f"{self._log_prefix} No service peer yet, dropping data")
            return
        if not self.service_socket.bound:
            logger.debug(f"{self._log_prefix} Service socket not bound, dropping data")
            return

        result = self.service_socket.send(payload, peer)
        if not result:
            logger.warning(
                f"{self._log_prefix} Error sending data packet to service: {result.error}"
            )

    def _on_service_packet(self, data: bytes, addr: Address) -> None:
        """Handle a datagram from the local service."""
        session = self.session
        if is_terminal(session.state):
            return

        if session.remote_peer != addr:
            if session.remote_peer is None:
                self.events.emit(f"Service client {addr[0]}:{addr[1]} connected")
            else:
                logger.info(
                    f"{self._log_prefix} Service client changed "
                    f"{session.remote_peer[0]}:{session.remote_peer[1]} -> "
                    f"{addr[0]}:{addr[1]}"
                )
            session.remote_peer = addr

        if not session.announced:
            result = self._send_to_server(
                build_announce(
                    session.config.service_port,
                    self.settings.ANNOUNCE_PORT_BYTE_ORDER,
                )
            )
            if not result:
                self.disconnect(
                    DisconnectReason.SOCKET_SEND_FAILED,
                    f"Error sending announcement packet: {result.error}",
                )
                return
            session.announced = True
            self.events.emit("Sent announcement packet to server")
            self._mark_connected(SessionEvent.ANNOUNCED, "Connected")

        result = self._send_to_server(build_data(data))
        if not result:
            logger.warning(
                f"{self._log_prefix} Error sending data packet to server: {result.error}"
            )


def _discard_result(task: asyncio.Future) -> None:
    # Mark the exception retrieved so asyncio does not warn about it
    if not task.cancelled():
        task.exception()
