"""
Tunnel client configuration.

A global Config instance that can be modified at runtime.

Usage:
    from sneakytunnel.config import config

    # Modify configuration before starting a tunnel
    config.KEEPALIVE_TIMEOUT_SECONDS = 30.0
    config.LOG_LEVEL = LogLevel.DEBUG

The per-session TunnelConfig (server address, negotiator URL, service
port) is a separate record handed to TunnelController.start().
"""

import os
from dataclasses import dataclass, fields

from sneakytunnel.models.enums import LogLevel
from sneakytunnel.tunnel.protocol import PortByteOrder

ENV_PREFIX = "SNEAKYTUNNEL_"


@dataclass
class ClientConfig:
    """Tunnel client tunables."""

    # Negotiation Configuration
    PUBLIC_IP_URL: str = "https://api.ipify.org"
    HTTP_TIMEOUT_SECONDS: float = 10.0
    SETTLE_DELAY_SECONDS: float = 3.0  # Between our DUMMY and the POST to the negotiator

    # Socket Configuration
    SERVER_BIND_HOST: str = "0.0.0.0"
    SERVICE_BIND_HOST: str = "0.0.0.0"
    CLIENT_PORT_MIN: int = 5000
    CLIENT_PORT_MAX: int = 65535
    BIND_ATTEMPTS: int = 5

    # Keepalive Configuration
    KEEPALIVE_INTERVAL_SECONDS: float = 15.0
    KEEPALIVE_TIMEOUT_SECONDS: float = 15.0

    # Protocol Configuration
    ANNOUNCE_PORT_BYTE_ORDER: PortByteOrder = PortByteOrder.BIG

    # Event / Logging Configuration
    EVENT_HISTORY_SIZE: int = 200
    LOG_LEVEL: LogLevel = LogLevel.INFO

    def load_from_env(self, environ: dict[str, str] | None = None) -> list[str]:
        """
        Apply SNEAKYTUNNEL_<FIELD> environment overrides.

        Returns:
            Names of the fields that were overridden.
        """
        environ = os.environ if environ is None else environ
        applied = []
        for f in fields(self):
            raw = environ.get(ENV_PREFIX + f.name)
            if raw is None:
                continue
            current = getattr(self, f.name)
            if isinstance(current, LogLevel):
                value = LogLevel(raw.lower())
            elif isinstance(current, PortByteOrder):
                value = PortByteOrder(raw.lower())
            elif isinstance(current, bool):
                value = raw.lower() in ("1", "true", "yes", "on")
            else:
                value = type(current)(raw)
            setattr(self, f.name, value)
            applied.append(f.name)
        return applied

    def validate(self) -> None:
        """Raise ValueError on inconsistent settings."""
        if not 1 <= self.CLIENT_PORT_MIN <= self.CLIENT_PORT_MAX <= 65535:
            raise ValueError(
                f"Invalid client port range "
                f"{self.CLIENT_PORT_MIN}-{self.CLIENT_PORT_MAX}"
            )
        if self.BIND_ATTEMPTS < 1:
            raise ValueError("BIND_ATTEMPTS must be at least 1")
        if self.KEEPALIVE_INTERVAL_SECONDS <= 0 or self.KEEPALIVE_TIMEOUT_SECONDS <= 0:
            raise ValueError("Keepalive interval and timeout must be positive")


# Global config instance
config = ClientConfig()
