"""
SneakyTunnel: NAT traversal UDP tunnel client.

Negotiates a port mapping through an HTTP negotiator, hole-punches a UDP
path to a remote server and relays packets between that server and a
local UDP service.
"""

__version__ = "0.2.0"

from sneakytunnel.models import ConnectionStatus, DisconnectReason, TunnelConfig
from sneakytunnel.relay import TunnelController

__all__ = [
    "ConnectionStatus",
    "DisconnectReason",
    "TunnelConfig",
    "TunnelController",
    "__version__",
]
