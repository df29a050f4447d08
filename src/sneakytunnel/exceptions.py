"""Tunnel exception classes."""


class TunnelError(Exception):
    """Base exception for tunnel operations."""

    pass


# =============================================================================
# Negotiation Errors
# =============================================================================


class NegotiatorError(TunnelError):
    """HTTP rendezvous step failed."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        if status_code is not None:
            message = f"{message} (HTTP {status_code})"
        super().__init__(message)


class NegotiatorUnreachable(NegotiatorError):
    """HEAD probe of the negotiator did not return 200."""

    pass


class PublicIPUnavailable(NegotiatorError):
    """Public IP resolver failed or returned garbage."""

    pass


class NegotiationFailed(NegotiatorError):
    """Negotiator did not hand out a server port."""

    pass


class DummyRequestFailed(NegotiatorError):
    """Negotiator refused to ask the peer for its dummy packet."""

    pass


# =============================================================================
# Socket / Packet Errors
# =============================================================================


class SocketBindFailed(TunnelError):
    """Could not bind one of the endpoint sockets."""

    def __init__(self, message: str, port: int | None = None):
        self.port = port
        super().__init__(message)


class SocketSendFailed(TunnelError):
    """A control packet could not be sent."""

    def __init__(self, packet: str, reason: str):
        self.packet = packet
        super().__init__(f"Failed to send {packet} packet: {reason}")


class MalformedPacket(TunnelError):
    """Datagram too short to carry the tunnel header."""

    pass


class TunnelBusyError(TunnelError):
    """A session is already active on this tunnel."""

    pass
