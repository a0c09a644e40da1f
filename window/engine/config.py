"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via WINDOW_* env vars,
or with a YAML file (see yaml_config.py).
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_CREDENTIALS_PATH = Path.home() / ".window" / "credentials.json"


@dataclass
class MockTimings:
    """Delays (seconds) used by the scripted mock driver."""

    connect_delay: float = 0.5
    think_delay: float = 0.3
    step_delay: float = 0.6
    word_delay: float = 0.08
    finalize_delay: float = 0.3

    @classmethod
    def instant(cls) -> MockTimings:
        """Zero delays everywhere; the script still yields between events."""
        return cls(
            connect_delay=0.0,
            think_delay=0.0,
            step_delay=0.0,
            word_delay=0.0,
            finalize_delay=0.0,
        )


@dataclass
class SessionConfig:
    """Session controller configuration."""

    # REST bootstrap
    request_timeout_seconds: float = 10.0
    history_limit: int = 20

    # Liveness
    health_check_interval_seconds: float = 10.0
    reconnect_delay_seconds: float = 3.0

    # Inbound events waiting to be applied by the controller.
    event_queue_size: int = 1000

    # Logging
    log_level: str = "INFO"

    credentials_path: Path = field(
        default_factory=lambda: DEFAULT_CREDENTIALS_PATH,
    )

    mock: MockTimings = field(default_factory=MockTimings)

    @classmethod
    def from_env(cls) -> SessionConfig:
        """Load configuration from WINDOW_* environment variables."""
        window_vars = {
            k: v for k, v in os.environ.items() if k.startswith("WINDOW_")
        }
        if window_vars:
            logger.info(
                "SessionConfig.from_env: WINDOW_* env overrides: %s",
                ", ".join(sorted(window_vars)),
            )
        else:
            logger.debug("SessionConfig.from_env: no WINDOW_* env vars set, using defaults")

        credentials = os.getenv("WINDOW_CREDENTIALS_PATH")
        config = cls(
            request_timeout_seconds=float(os.getenv(
                "WINDOW_REQUEST_TIMEOUT", str(cls.request_timeout_seconds)
            )),
            history_limit=int(os.getenv(
                "WINDOW_HISTORY_LIMIT", str(cls.history_limit)
            )),
            health_check_interval_seconds=float(os.getenv(
                "WINDOW_HEALTH_INTERVAL",
                str(cls.health_check_interval_seconds),
            )),
            reconnect_delay_seconds=float(os.getenv(
                "WINDOW_RECONNECT_DELAY", str(cls.reconnect_delay_seconds)
            )),
            event_queue_size=int(os.getenv(
                "WINDOW_QUEUE_SIZE", str(cls.event_queue_size)
            )),
            log_level=os.getenv("WINDOW_LOG_LEVEL", cls.log_level),
        )
        if credentials:
            config.credentials_path = Path(credentials).expanduser()
        logger.debug(
            "SessionConfig.from_env: timeout=%ss health=%ss reconnect=%ss",
            config.request_timeout_seconds,
            config.health_check_interval_seconds,
            config.reconnect_delay_seconds,
        )
        return config
