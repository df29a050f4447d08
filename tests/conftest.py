"""
SneakyTunnel test configuration.

Fixtures:
- settings: ClientConfig with loopback binds and shrunk timings
- negotiator: httpx.MockTransport-backed fake negotiator + IP resolver
- udp_peer: factory for loopback UDP peers (fake server, fake service client)
- service_port: a currently free UDP port on 127.0.0.1
"""

import asyncio
import socket

import httpx
import pytest
import pytest_asyncio

from sneakytunnel.config import ClientConfig
from sneakytunnel.models.enums import SessionState

NEGOTIATOR_URL = "http://negotiator.test"
PUBLIC_IP_URL = "http://ipify.test/"
PUBLIC_IP = "198.51.100.7"
SERVER_ADDRESS = "127.0.0.1"


# ============================================================================
# Fake Negotiator
# ============================================================================


class NegotiatorStub:
    """Answers HEAD/GET/POST like a negotiator and GET like an IP resolver."""

    def __init__(
        self,
        server_port: int = 51820,
        head_status: int = 200,
        get_status: int = 200,
        post_status: int = 200,
        ip_status: int = 200,
        port_body: str | None = None,
        ip_body: str = PUBLIC_IP + "\n",
    ):
        self.server_port = server_port
        self.head_status = head_status
        self.get_status = get_status
        self.post_status = post_status
        self.ip_status = ip_status
        self.port_body = port_body
        self.ip_body = ip_body
        self.requests: list[httpx.Request] = []
        # When set, the port negotiation GET blocks until the event fires
        self.hold_negotiation: asyncio.Event | None = None

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.host == "ipify.test":
            return httpx.Response(self.ip_status, text=self.ip_body)

        if request.method == "HEAD":
            return httpx.Response(self.head_status)

        if request.method == "GET":
            if self.hold_negotiation is not None:
                await self.hold_negotiation.wait()
            body = self.port_body if self.port_body is not None else str(self.server_port)
            return httpx.Response(self.get_status, text=body)

        if request.method == "POST":
            return httpx.Response(self.post_status)

        return httpx.Response(405)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self) -> list[tuple[str, str]]:
        return [(r.method, str(r.url)) for r in self.requests]


# ============================================================================
# UDP Peers
# ============================================================================


class UdpPeer(asyncio.DatagramProtocol):
    """Loopback UDP endpoint that queues everything it receives."""

    def __init__(self):
        self.packets: asyncio.Queue = asyncio.Queue()
        self.transport: asyncio.DatagramTransport | None = None

    def connection_made(self, transport) -> None:
        self.transport = transport

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        self.packets.put_nowait((data, addr))

    @property
    def port(self) -> int:
        return self.transport.get_extra_info("sockname")[1]

    def send(self, data: bytes, addr: tuple) -> None:
        self.transport.sendto(data, addr)

    async def recv(self, timeout: float = 2.0) -> tuple[bytes, tuple]:
        return await asyncio.wait_for(self.packets.get(), timeout)

    async def assert_silent(self, duration: float = 0.1) -> None:
        await asyncio.sleep(duration)
        assert self.packets.empty(), f"unexpected packet: {self.packets.get_nowait()}"

    def close(self) -> None:
        if self.transport is not None:
            self.transport.close()


@pytest_asyncio.fixture
async def udp_peer():
    peers: list[UdpPeer] = []

    async def make(host: str = "127.0.0.1", port: int = 0) -> UdpPeer:
        loop = asyncio.get_running_loop()
        _, peer = await loop.create_datagram_endpoint(UdpPeer, local_addr=(host, port))
        peers.append(peer)
        return peer

    yield make

    for peer in peers:
        peer.close()


# ============================================================================
# Settings / Helpers
# ============================================================================


@pytest.fixture
def settings() -> ClientConfig:
    return ClientConfig(
        PUBLIC_IP_URL=PUBLIC_IP_URL,
        HTTP_TIMEOUT_SECONDS=2.0,
        SETTLE_DELAY_SECONDS=0.05,
        SERVER_BIND_HOST="127.0.0.1",
        SERVICE_BIND_HOST="127.0.0.1",
        KEEPALIVE_INTERVAL_SECONDS=0.05,
        KEEPALIVE_TIMEOUT_SECONDS=0.5,
    )


@pytest.fixture
def service_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01) -> None:
    """Poll predicate until it is true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not reached in time")
        await asyncio.sleep(interval)


async def wait_for_state(relay, state: SessionState, timeout: float = 2.0) -> None:
    await wait_until(lambda: relay.state is state, timeout)
