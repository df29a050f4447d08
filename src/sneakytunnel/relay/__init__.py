"""
Relay session and its collaborators.

This module provides the NAT traversal client proper: the endpoint
sockets, the session state machine, the keep-alive supervisor and the
caller-facing TunnelController.
"""

from sneakytunnel.relay.controller import TunnelController
from sneakytunnel.relay.endpoints import EndpointSocket, SendResult
from sneakytunnel.relay.events import EventStream, format_event
from sneakytunnel.relay.keepalive import KeepAliveSupervisor
from sneakytunnel.relay.session import RelaySession, Session
from sneakytunnel.relay.state import SessionEvent, next_state

__all__ = [
    "EndpointSocket",
    "EventStream",
    "KeepAliveSupervisor",
    "RelaySession",
    "SendResult",
    "Session",
    "SessionEvent",
    "TunnelController",
    "format_event",
    "next_state",
]
