"""Persistent storage for the agent host and API key.

Stored as JSON at ~/.window/credentials.json, readable by the owner
only. The session controller treats the store as opaque: it saves on
reaching a live session, loads for auto-connect, and clears on
"forget agent".
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Protocol

from window.engine.config import DEFAULT_CREDENTIALS_PATH

logger = logging.getLogger(__name__)

_HOST_KEY = "host"
_API_KEY = "api_key"


class CredentialStore(Protocol):
    """What the controller needs from a credential store."""

    def save(self, host: str, api_key: str) -> None: ...

    def load_host(self) -> str | None: ...

    def load_api_key(self) -> str | None: ...

    def clear(self) -> None: ...

    @property
    def has_saved_credentials(self) -> bool: ...


class FileCredentialStore:
    """Load and save credentials in a JSON file."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or DEFAULT_CREDENTIALS_PATH

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text())
        except (json.JSONDecodeError, OSError):
            logger.warning("Failed to load %s", self._path)
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str) and v}

    def save(self, host: str, api_key: str) -> None:
        """Persist host and key, replacing any previous pair."""
        payload = json.dumps({_HOST_KEY: host, _API_KEY: api_key}, indent=2) + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self._path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w") as f:
                f.write(payload)
            os.chmod(self._path, 0o600)
        except OSError:
            logger.warning("Failed to write %s", self._path)

    def load_host(self) -> str | None:
        return self._load().get(_HOST_KEY)

    def load_api_key(self) -> str | None:
        return self._load().get(_API_KEY)

    def clear(self) -> None:
        try:
            self._path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Failed to remove %s", self._path)
        else:
            logger.info("Stored credentials cleared")

    @property
    def has_saved_credentials(self) -> bool:
        data = self._load()
        return _HOST_KEY in data and _API_KEY in data
