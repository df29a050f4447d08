#!/usr/bin/env python3
"""
Manual end-to-end check for the relay session.

This script sets up:
1. A mock negotiator (FastAPI served by uvicorn) that also answers the
   public IP lookup
2. A mock relay server (UDP) that answers DUMMY requests, sends
   keep-alives and echoes DATA back
3. An in-process TunnelController relaying a local service port

Then performs tests to verify:
- The session negotiates and reaches CONNECTED
- Service traffic is announced and echoed back through the tunnel
- Keep-alives are acknowledged
- The session times out once the relay goes silent

Usage:
    python scripts/test_relay_session.py [--service-port PORT]

Requirements:
    pip install -e ".[dev]"
"""

import argparse
import asyncio
import sys

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse

from sneakytunnel.config import ClientConfig
from sneakytunnel.models.config import TunnelConfig
from sneakytunnel.models.enums import DisconnectReason, LogLevel, SessionState
from sneakytunnel.relay.controller import TunnelController
from sneakytunnel.tunnel.protocol import (
    PacketFlag,
    build_data,
    build_dummy,
    decode_port,
    frame,
    parse,
)
from sneakytunnel.utils.logger import configure_logging

# =============================================================================
# Configuration
# =============================================================================

NEGOTIATOR_PORT = 19878
RELAY_HOST = "127.0.0.1"
DEFAULT_SERVICE_PORT = 19879

# Colors for output
GREEN = "\033[92m"
RED = "\033[91m"
CYAN = "\033[96m"
RESET = "\033[0m"


def log_info(msg: str) -> None:
    print(f"{CYAN}[INFO]{RESET} {msg}")


def log_ok(msg: str) -> None:
    print(f"{GREEN}[PASS]{RESET} {msg}")


def log_fail(msg: str) -> None:
    print(f"{RED}[FAIL]{RESET} {msg}")


# =============================================================================
# Mock Relay Server
# =============================================================================


class MockRelay(asyncio.DatagramProtocol):
    """UDP side of the remote server."""

    def __init__(self):
        self.transport: asyncio.DatagramTransport | None = None
        self.client: tuple[str, int] | None = None
        self.announced_port: int | None = None
        self.acks = 0
        self.silent = False
        self._keepalive_task: asyncio.Task | None = None

    @property
    def port(self) -> int:
        return self.transport.get_extra_info("sockname")[1]

    def connection_made(self, transport) -> None:
        self.transport = transport
        self._keepalive_task = asyncio.create_task(self._send_keepalives())

    def datagram_received(self, data: bytes, addr) -> None:
        flag, payload = parse(data)
        if flag == PacketFlag.DUMMY:
            self.client = addr
            log_info(f"Relay: dummy from {addr[0]}:{addr[1]}")
        elif flag == PacketFlag.KEEPALIVE_ACK:
            self.acks += 1
        elif flag == PacketFlag.ANNOUNCE:
            self.announced_port = decode_port(payload)
            log_info(f"Relay: service port announced as {self.announced_port}")
        elif flag == PacketFlag.DATA and not self.silent:
            self.transport.sendto(build_data(payload), addr)

    def send_dummy(self) -> None:
        if self.client is not None:
            self.transport.sendto(build_dummy(), self.client)

    async def _send_keepalives(self) -> None:
        while True:
            await asyncio.sleep(0.5)
            if self.client is not None and not self.silent:
                self.transport.sendto(frame(PacketFlag.SERVER_KEEPALIVE), self.client)

    def close(self) -> None:
        if self._keepalive_task:
            self._keepalive_task.cancel()
        if self.transport:
            self.transport.close()


# =============================================================================
# Mock Negotiator
# =============================================================================


def create_negotiator(relay: MockRelay) -> FastAPI:
    app = FastAPI()

    @app.head("/")
    async def probe():
        return PlainTextResponse("")

    @app.get("/ip")
    async def public_ip():
        return PlainTextResponse("127.0.0.1")

    @app.get("/{server}/{mapping}")
    async def negotiate(server: str, mapping: str):
        log_info(f"Negotiator: {mapping} wants {server}")
        return PlainTextResponse(str(relay.port))

    @app.post("/{server}/{mapping}")
    async def request_dummy(server: str, mapping: str):
        if relay.client is None:
            raise HTTPException(status_code=409, detail="No dummy seen yet")
        relay.send_dummy()
        return PlainTextResponse("ok")

    return app


class ServiceClient(asyncio.DatagramProtocol):
    """Local application talking to the relayed service port."""

    def __init__(self):
        self.received: asyncio.Queue = asyncio.Queue()

    def datagram_received(self, data: bytes, addr) -> None:
        self.received.put_nowait(data)


# =============================================================================
# Tests
# =============================================================================


async def wait_for(predicate, timeout: float) -> bool:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            return False
        await asyncio.sleep(0.05)
    return True


async def run_tests(service_port: int) -> bool:
    loop = asyncio.get_running_loop()
    relay_transport, relay = await loop.create_datagram_endpoint(
        MockRelay, local_addr=(RELAY_HOST, 0)
    )

    server = uvicorn.Server(
        uvicorn.Config(
            create_negotiator(relay),
            host="127.0.0.1",
            port=NEGOTIATOR_PORT,
            log_level="warning",
        )
    )
    server_task = asyncio.create_task(server.serve())
    await wait_for(lambda: server.started, 5.0)
    log_info(f"Negotiator listening on http://127.0.0.1:{NEGOTIATOR_PORT}")

    settings = ClientConfig(
        PUBLIC_IP_URL=f"http://127.0.0.1:{NEGOTIATOR_PORT}/ip",
        SERVER_BIND_HOST="127.0.0.1",
        SERVICE_BIND_HOST="127.0.0.1",
        SETTLE_DELAY_SECONDS=0.2,
        KEEPALIVE_INTERVAL_SECONDS=0.5,
        KEEPALIVE_TIMEOUT_SECONDS=2.0,
        LOG_LEVEL=LogLevel.DEBUG,
    )
    controller = TunnelController(settings)
    session = controller.start(
        TunnelConfig(
            server_address=RELAY_HOST,
            negotiator_url=f"http://127.0.0.1:{NEGOTIATOR_PORT}",
            service_port=service_port,
        )
    )

    all_passed = True

    # Test 1: Negotiation
    log_info("=" * 50)
    log_info("Test 1: Negotiate and receive the relay's dummy")
    log_info("=" * 50)

    if await wait_for(lambda: session.state is SessionState.CONNECTED, 5.0):
        log_ok(f"Test 1: Connected on client port {session.session.client_port}")
    else:
        log_fail(f"Test 1: Stuck in {session.state.value}")
        all_passed = False

    # Test 2: Echo through the tunnel
    log_info("=" * 50)
    log_info("Test 2: Service traffic round trip")
    log_info("=" * 50)

    await wait_for(lambda: session.service_socket.bound, 2.0)
    client_transport, client = await loop.create_datagram_endpoint(
        ServiceClient, local_addr=("127.0.0.1", 0)
    )
    try:
        for i in range(3):
            payload = f"Packet {i}".encode()
            client_transport.sendto(payload, ("127.0.0.1", service_port))
            echoed = await asyncio.wait_for(client.received.get(), timeout=2.0)
            if echoed != payload:
                log_fail(f"Test 2: Echo mismatch - got {echoed!r}, expected {payload!r}")
                all_passed = False
                break
        else:
            log_ok("Test 2: Data echoed correctly through tunnel")
        if relay.announced_port != service_port:
            log_fail(f"Test 2: Announced port {relay.announced_port}, expected {service_port}")
            all_passed = False
    except asyncio.TimeoutError:
        log_fail("Test 2: Never received echoed data")
        all_passed = False

    # Test 3: Keep-alive acknowledgements
    log_info("=" * 50)
    log_info("Test 3: Keep-alive acknowledgements")
    log_info("=" * 50)

    if await wait_for(lambda: relay.acks >= 2, 3.0):
        log_ok(f"Test 3: {relay.acks} keep-alives acknowledged")
    else:
        log_fail("Test 3: No keep-alive acknowledgements")
        all_passed = False

    # Test 4: Keep-alive timeout
    log_info("=" * 50)
    log_info("Test 4: Relay goes silent")
    log_info("=" * 50)

    relay.silent = True
    try:
        reason = await asyncio.wait_for(controller.wait(), timeout=5.0)
        if reason is DisconnectReason.KEEPALIVE_TIMEOUT:
            log_ok("Test 4: Session timed out")
        else:
            log_fail(f"Test 4: Session ended with {reason}")
            all_passed = False
    except asyncio.TimeoutError:
        log_fail("Test 4: Session never timed out")
        controller.stop()
        await controller.wait()
        all_passed = False

    # Cleanup
    log_info("Cleaning up...")
    client_transport.close()
    relay.close()
    relay_transport.close()
    server.should_exit = True
    await server_task

    return all_passed


async def main() -> int:
    parser = argparse.ArgumentParser(description="End-to-end relay session check")
    parser.add_argument(
        "--service-port",
        type=int,
        default=DEFAULT_SERVICE_PORT,
        help="Local UDP port to relay",
    )
    args = parser.parse_args()

    configure_logging(LogLevel.DEBUG)
    success = await run_tests(args.service_port)

    print()
    if success:
        log_ok("All tests passed!")
        return 0
    else:
        log_fail("Some tests failed!")
        return 1


if __name__ == "__main__":
    try:
        exit_code = asyncio.run(main())
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(130)
