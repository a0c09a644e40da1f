"""Session lifecycle state machine.

Defines valid transitions and enforces them. Invalid transitions
raise InvalidTransitionError (a ValueError) rather than silently
proceeding.

State Diagram:

    DISCONNECTED ──> CONNECTING ──> BOOTSTRAPPING ──> LIVE
                          │               │          │   ^
                          │               │          v   │
                          │               │      RECONNECTING
                          │               │          │
                          └───────────────┴──────────┴──> DISCONNECTED

    CONNECTING ──> LIVE  (mock mode: the driver's "connected" event)
    Any state ──> DISCONNECTED  (user teardown)
"""
from __future__ import annotations

from enum import Enum

from .errors import InvalidTransitionError


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    BOOTSTRAPPING = "bootstrapping"
    LIVE = "live"
    RECONNECTING = "reconnecting"


VALID_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.DISCONNECTED: {
        SessionState.CONNECTING,
    },
    SessionState.CONNECTING: {
        SessionState.BOOTSTRAPPING,
        SessionState.LIVE,
        SessionState.DISCONNECTED,
    },
    SessionState.BOOTSTRAPPING: {
        SessionState.LIVE,
        SessionState.DISCONNECTED,
    },
    SessionState.LIVE: {
        SessionState.RECONNECTING,
        SessionState.DISCONNECTED,
    },
    SessionState.RECONNECTING: {
        SessionState.LIVE,
        SessionState.DISCONNECTED,
    },
}


def validate_transition(current: SessionState, target: SessionState) -> None:
    """Raise InvalidTransitionError if current -> target is not allowed.

    A self-transition to DISCONNECTED is permitted so teardown is
    idempotent.
    """
    if current == target == SessionState.DISCONNECTED:
        return
    if target not in VALID_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(current.value, target.value)


def is_active(state: SessionState) -> bool:
    """True while the session holds resources that need teardown."""
    return state != SessionState.DISCONNECTED
