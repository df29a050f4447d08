"""
Negotiator HTTP client.

Performs the rendezvous exchange that tells us which UDP port on the
remote relay to talk to:

    HEAD {negotiator}                                  -> 200 reachable
    GET  {negotiator}/{server}/{public_ip}:{port}      -> 200, body = server port
    POST {negotiator}/{server}/{public_ip}:{port}      -> 200, peer asked for dummy

Each call is a single request. Nothing is retried here; retrying means
starting a new session.
"""

import ipaddress

import httpx

from sneakytunnel.exceptions import (
    DummyRequestFailed,
    NegotiationFailed,
    NegotiatorUnreachable,
    PublicIPUnavailable,
)
from sneakytunnel.utils.logger import get_logger

logger = get_logger(__name__)


class NegotiatorClient:
    """Async client for the negotiator and the public IP resolver."""

    def __init__(
        self,
        negotiator_url: str,
        public_ip_url: str = "https://api.ipify.org",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize negotiator client.

        Args:
            negotiator_url: Base URL of the negotiator (no trailing slash).
            public_ip_url: Endpoint returning our public IP as plain text.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.negotiator_url = negotiator_url.rstrip("/")
        self.public_ip_url = public_ip_url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def __aenter__(self) -> "NegotiatorClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def mapping_url(
        self, server_address: str, public_address: str, client_port: int
    ) -> str:
        """URL identifying our (server, public endpoint) mapping."""
        return f"{self.negotiator_url}/{server_address}/{public_address}:{client_port}"

    # =========================================================================
    # Rendezvous Steps
    # =========================================================================

    async def probe(self) -> None:
        """
        Check the negotiator answers a HEAD request with 200.

        Raises:
            NegotiatorUnreachable: On any other status or transport error.
        """
        try:
            response = await self._client.head(self.negotiator_url)
        except httpx.RequestError as e:
            raise NegotiatorUnreachable(f"Negotiator unreachable: {e}") from e

        if response.status_code != 200:
            raise NegotiatorUnreachable(
                "Negotiator not ok", status_code=response.status_code
            )
        logger.debug(f"Negotiator {self.negotiator_url} ok")

    async def resolve_public_address(self) -> str:
        """
        Ask the public IP resolver for our address.

        Returns:
            Public IP address as a string.

        Raises:
            PublicIPUnavailable: On transport error, non-200 or garbage body.
        """
        try:
            response = await self._client.get(self.public_ip_url)
        except httpx.RequestError as e:
            raise PublicIPUnavailable(f"Public IP lookup failed: {e}") from e

        if response.status_code != 200:
            raise PublicIPUnavailable(
                "Public IP lookup failed", status_code=response.status_code
            )

        text = response.text.strip()
        try:
            return str(ipaddress.IPv4Address(text))
        except ValueError as e:
            raise PublicIPUnavailable(
                f"Public IP resolver returned invalid address: {text[:64]!r}"
            ) from e

    async def negotiate_port(
        self, server_address: str, public_address: str, client_port: int
    ) -> int:
        """
        Ask the negotiator which server port to talk to.

        Returns:
            Server port assigned by the relay.

        Raises:
            NegotiationFailed: On transport error, non-200 or invalid port.
        """
        url = self.mapping_url(server_address, public_address, client_port)
        try:
            response = await self._client.get(url)
        except httpx.RequestError as e:
            raise NegotiationFailed(f"Could not negotiate server port: {e}") from e

        if response.status_code != 200:
            raise NegotiationFailed(
                "Could not negotiate server port", status_code=response.status_code
            )

        body = response.text.strip()
        if not (body.isascii() and body.isdecimal()) or not 1 <= int(body) <= 65535:
            raise NegotiationFailed(
                f"Negotiator returned invalid server port: {body[:32]!r}"
            )
        return int(body)

    async def request_peer_dummy(
        self, server_address: str, public_address: str, client_port: int
    ) -> None:
        """
        Ask the negotiator to have the server send us its dummy packet.

        Raises:
            DummyRequestFailed: On transport error or non-200.
        """
        url = self.mapping_url(server_address, public_address, client_port)
        try:
            response = await self._client.post(url)
        except httpx.RequestError as e:
            raise DummyRequestFailed(f"Failed to ask for dummy packet: {e}") from e

        if response.status_code != 200:
            raise DummyRequestFailed(
                "Failed to ask for dummy packet", status_code=response.status_code
            )
