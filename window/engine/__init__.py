"""Window session engine: lifecycle, timeline reconciliation and timers."""
from .config import MockTimings, SessionConfig
from .errors import (
    DuplicateEntryError,
    InvalidTransitionError,
    TransportError,
    WindowError,
)
from .lifecycle import SessionState, validate_transition
from .timeline import Timeline, TimelineEntry
from .timers import DelayedCall, PeriodicTimer

__all__ = [
    # Controller (lazy import to avoid circular deps with adapters)
    "SessionController",
    # Config
    "MockTimings",
    "SessionConfig",
    "load_yaml_config",
    # Lifecycle
    "SessionState",
    "validate_transition",
    # Timeline
    "Timeline",
    "TimelineEntry",
    # Timers
    "DelayedCall",
    "PeriodicTimer",
    # Errors
    "DuplicateEntryError",
    "InvalidTransitionError",
    "TransportError",
    "WindowError",
]


def __getattr__(name: str):
    if name == "SessionController":
        from .controller import SessionController
        return SessionController
    if name == "load_yaml_config":
        from .yaml_config import load_yaml_config
        return load_yaml_config
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
