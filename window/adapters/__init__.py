"""Adapters package - Bridge between the session engine and the agent.

This package contains the wire event codec, the event bus, the REST and
realtime transports, the scripted mock driver and credential storage.
"""
from __future__ import annotations

__all__ = [
    "EventBus",
    "FileCredentialStore",
    "MockDriver",
    "RealtimeTransport",
    "RestClient",
    "parse_event",
]

from window.adapters.credential_store import FileCredentialStore
from window.adapters.event_bus import EventBus
from window.adapters.events import parse_event
from window.adapters.mock_driver import MockDriver
from window.adapters.rest_client import RestClient
from window.adapters.transport import RealtimeTransport
