from sneakytunnel.models.config import StatusEvent, TunnelConfig
from sneakytunnel.models.enums import (
    ConnectionStatus,
    DisconnectReason,
    LogLevel,
    SessionState,
)

__all__ = [
    "ConnectionStatus",
    "DisconnectReason",
    "LogLevel",
    "SessionState",
    "StatusEvent",
    "TunnelConfig",
]
