"""
Enumeration types for SneakyTunnel.

This module defines the enumeration types used across the tunnel client
for session state tracking, disconnect causes, and configuration options.
"""

from enum import Enum


# =============================================================================
# Session-Related Enums
# =============================================================================


class SessionState(str, Enum):
    """
    Relay session lifecycle state.

    State transitions:
        IDLE -> TESTING_NEGOTIATOR -> NEGOTIATING -> AWAITING_DUMMY_ACK
        AWAITING_DUMMY_ACK -> CONNECTED (peer dummy or announce sent)
        Any -> DISCONNECTED (failure, timeout or stop; terminal)
    """

    IDLE = "idle"
    TESTING_NEGOTIATOR = "testing_negotiator"
    NEGOTIATING = "negotiating"
    AWAITING_DUMMY_ACK = "awaiting_dummy_ack"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class DisconnectReason(str, Enum):
    """Why a session reached DISCONNECTED."""

    NEGOTIATOR_UNREACHABLE = "negotiator_unreachable"
    PUBLIC_IP_UNAVAILABLE = "public_ip_unavailable"
    NEGOTIATION_FAILED = "negotiation_failed"
    DUMMY_REQUEST_FAILED = "dummy_request_failed"
    SOCKET_SEND_FAILED = "socket_send_failed"
    SOCKET_BIND_FAILED = "socket_bind_failed"
    KEEPALIVE_TIMEOUT = "keepalive_timeout"
    USER_REQUESTED = "user_requested"  # Normal stop, not an error
    INTERNAL_ERROR = "internal_error"

    @property
    def is_error(self) -> bool:
        return self is not DisconnectReason.USER_REQUESTED


class ConnectionStatus(str, Enum):
    """
    Coarse connection state for display.

    - DISCONNECTED: No session, or session ended
    - CONNECTING: Negotiation in progress
    - CONNECTED: Path to the server confirmed
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"

    @classmethod
    def from_state(cls, state: SessionState) -> "ConnectionStatus":
        if state is SessionState.CONNECTED:
            return cls.CONNECTED
        if state in (SessionState.IDLE, SessionState.DISCONNECTED):
            return cls.DISCONNECTED
        return cls.CONNECTING


# =============================================================================
# Configuration Enums
# =============================================================================


class LogLevel(str, Enum):
    """
    Logging verbosity levels for SneakyTunnel.

    Levels (from most to least verbose):
        - FULL: Complete trace including per-packet messages
        - DEBUG: Debug messages and above
        - INFO: Informational messages and above
        - WARNING: Only warnings and errors
    """

    FULL = "full"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
