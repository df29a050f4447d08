"""
UDP endpoint sockets.

Two independent sockets are owned by a relay session: one facing the
remote server, one facing the local service. Both wrap an asyncio
datagram endpoint and hand every received datagram to a callback that
runs on the event loop.
"""

import asyncio
import errno
import random
from dataclasses import dataclass
from typing import Callable

from sneakytunnel.exceptions import SocketBindFailed
from sneakytunnel.utils.logger import get_logger

logger = get_logger(__name__)

Address = tuple[str, int]
DatagramHandler = Callable[[bytes, Address], None]


@dataclass
class SendResult:
    """Outcome of a non-blocking datagram send."""

    ok: bool
    error: str | None = None

    def __bool__(self) -> bool:
        return self.ok


class _EndpointProtocol(asyncio.DatagramProtocol):
    def __init__(self, endpoint: "EndpointSocket"):
        self._endpoint = endpoint

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        # IPv4 addr is (host, port); keep only the first two fields
        self._endpoint._on_datagram(data, (addr[0], addr[1]))

    def error_received(self, exc: Exception) -> None:
        # ICMP errors from earlier sends land here; UDP has no connection to fail
        logger.warning(f"[{self._endpoint.name}] Socket error: {exc}")

    def connection_lost(self, exc: Exception | None) -> None:
        if exc:
            logger.debug(f"[{self._endpoint.name}] Socket closed with error: {exc}")


class EndpointSocket:
    """A bindable UDP socket with a single receive callback."""

    def __init__(self, name: str, on_datagram: DatagramHandler):
        """
        Initialize endpoint socket (unbound).

        Args:
            name: Label used in log messages ("server", "service").
            on_datagram: Called with (data, (host, port)) for every datagram.
        """
        self.name = name
        self._on_datagram = on_datagram
        self._transport: asyncio.DatagramTransport | None = None
        self._closed = False

    @property
    def bound(self) -> bool:
        return self._transport is not None and not self._transport.is_closing()

    @property
    def port(self) -> int | None:
        """Local port reported by the OS, or None if unbound."""
        if self._transport is None:
            return None
        return self._transport.get_extra_info("sockname")[1]

    async def bind(self, host: str, port: int) -> int:
        """
        Bind to (host, port).

        Returns:
            Port reported by the OS.

        Raises:
            SocketBindFailed: If the socket was closed or the bind failed.
        """
        if self._closed:
            raise SocketBindFailed(f"{self.name} socket already closed", port)
        if self._transport is not None:
            raise SocketBindFailed(f"{self.name} socket already bound", port)

        loop = asyncio.get_running_loop()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _EndpointProtocol(self), local_addr=(host, port)
            )
        except OSError as e:
            raise SocketBindFailed(
                f"Failed to bind {self.name} socket to {host}:{port}: {e}", port
            ) from e

        if self._closed:
            # stop() raced the bind
            transport.close()
            raise SocketBindFailed(f"{self.name} socket closed during bind", port)

        self._transport = transport
        bound_port = self.port
        logger.debug(f"[{self.name}] Bound to {host}:{bound_port}")
        return bound_port

    async def bind_random(
        self, host: str, port_min: int, port_max: int, attempts: int = 5
    ) -> int:
        """
        Bind to a random port in [port_min, port_max].

        Retries with a new random port when the chosen one is in use.
        """
        last_error: SocketBindFailed | None = None
        for _ in range(attempts):
            port = random.randint(port_min, port_max)
            try:
                return await self.bind(host, port)
            except SocketBindFailed as e:
                cause = e.__cause__
                if not (isinstance(cause, OSError) and cause.errno == errno.EADDRINUSE):
                    raise
                logger.debug(f"[{self.name}] Port {port} in use, picking another")
                last_error = e
        raise SocketBindFailed(
            f"No free {self.name} port in {port_min}-{port_max} "
            f"after {attempts} attempts"
        ) from last_error

    def send(self, data: bytes, addr: Address) -> SendResult:
        """
        Send a datagram without blocking.

        Returns:
            SendResult; never raises.
        """
        if self._transport is None:
            return SendResult(False, f"{self.name} socket not bound")
        if self._transport.is_closing():
            return SendResult(False, f"{self.name} socket closed")
        try:
            self._transport.sendto(data, addr)
        except (OSError, ValueError, TypeError) as e:
            return SendResult(False, str(e))
        return SendResult(True)

    def close(self) -> None:
        """Close the socket. Idempotent."""
        self._closed = True
        if self._transport is not None and not self._transport.is_closing():
            self._transport.close()
            logger.debug(f"[{self.name}] Socket closed")
