"""Exception hierarchy for the session engine.

Network faults never surface as exceptions from the controller; they
degrade to reachability and connection-error flags. These classes cover
failures inside a single component and programming errors.
"""
from __future__ import annotations


class WindowError(Exception):
    """Base exception for all session engine errors."""


class TransportError(WindowError):
    """The realtime channel could not be opened."""
    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Realtime channel to {url} failed: {reason}")


class InvalidTransitionError(WindowError, ValueError):
    """A session state change that the lifecycle table does not allow."""
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(
            f"Invalid session transition: {current} -> {target}"
        )


class DuplicateEntryError(WindowError, ValueError):
    """An entry with the same identity key is already in the timeline."""
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Timeline already contains {key}")
