"""
Pydantic models for tunnel input and output records.

Model Categories:
    - TunnelConfig: Immutable per-session configuration supplied by the caller
    - StatusEvent: Timestamped status/log entry published to the caller
"""

import datetime
import ipaddress

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sneakytunnel.models.enums import ConnectionStatus


# =============================================================================
# Session Input
# =============================================================================


class TunnelConfig(BaseModel):
    """
    Configuration record for one tunnel session.

    Supplied by the caller at start and never changed while the
    session runs.
    """

    model_config = ConfigDict(frozen=True)

    server_address: str = Field(..., description="IP address of the remote server")
    negotiator_url: str = Field(..., description="Base URL of the negotiator")
    service_port: int = Field(
        ...,
        ge=1,
        le=65535,
        description="Local UDP port the tunnel relays to",
    )

    @field_validator("server_address")
    @classmethod
    def _validate_server_address(cls, value: str) -> str:
        # Normalized so it compares equal to datagram source addresses
        return str(ipaddress.IPv4Address(value.strip()))

    @field_validator("negotiator_url")
    @classmethod
    def _validate_negotiator_url(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value.startswith(("http://", "https://")):
            raise ValueError("negotiator_url must be an http(s) URL")
        return value


# =============================================================================
# Status Output
# =============================================================================


class StatusEvent(BaseModel):
    """One entry of the status/log stream."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime.datetime = Field(default_factory=datetime.datetime.now)
    message: str
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    level: str = "info"

    def format(self) -> str:
        """Render as '[HH:MM:SS] message'."""
        return f"[{self.timestamp.strftime('%H:%M:%S')}] {self.message}"
