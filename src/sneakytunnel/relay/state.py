"""
Relay session state machine.

next_state() is a total function over (state, event): any pair missing
from the table leaves the state unchanged. DISCONNECTED is terminal; a
new negotiation needs a new Session.
"""

from enum import Enum

from sneakytunnel.models.enums import SessionState


class SessionEvent(str, Enum):
    """Inputs to the session state machine."""

    START = "start"
    PROBE_OK = "probe_ok"
    PORT_NEGOTIATED = "port_negotiated"
    DUMMY_RECEIVED = "dummy_received"
    ANNOUNCED = "announced"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    STOP = "stop"


_TERMINATING_EVENTS = (SessionEvent.FAILED, SessionEvent.TIMED_OUT, SessionEvent.STOP)

_TRANSITIONS: dict[tuple[SessionState, SessionEvent], SessionState] = {
    (SessionState.IDLE, SessionEvent.START): SessionState.TESTING_NEGOTIATOR,
    (
        SessionState.TESTING_NEGOTIATOR,
        SessionEvent.PROBE_OK,
    ): SessionState.NEGOTIATING,
    (
        SessionState.NEGOTIATING,
        SessionEvent.PORT_NEGOTIATED,
    ): SessionState.AWAITING_DUMMY_ACK,
    (SessionState.NEGOTIATING, SessionEvent.DUMMY_RECEIVED): SessionState.CONNECTED,
    (
        SessionState.AWAITING_DUMMY_ACK,
        SessionEvent.DUMMY_RECEIVED,
    ): SessionState.CONNECTED,
    (SessionState.AWAITING_DUMMY_ACK, SessionEvent.ANNOUNCED): SessionState.CONNECTED,
}

for _state in SessionState:
    if _state is not SessionState.DISCONNECTED:
        for _event in _TERMINATING_EVENTS:
            _TRANSITIONS[(_state, _event)] = SessionState.DISCONNECTED


def next_state(state: SessionState, event: SessionEvent) -> SessionState:
    """Return the state reached from `state` on `event`."""
    return _TRANSITIONS.get((state, event), state)


def is_terminal(state: SessionState) -> bool:
    return state is SessionState.DISCONNECTED
