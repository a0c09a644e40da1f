"""YAML configuration loader.

Example YAML:
    session:
      request_timeout_seconds: 10
      history_limit: 50
      health_check_interval_seconds: 10
      reconnect_delay_seconds: 3
      credentials_path: ~/.window/credentials.json
      log_level: DEBUG

    mock:
      connect_delay: 0.5
      word_delay: 0.02

Keys that are missing keep the SessionConfig defaults.
"""
from __future__ import annotations

import logging
from pathlib import Path

import yaml

from .config import MockTimings, SessionConfig

logger = logging.getLogger(__name__)


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        logger.warning("load_yaml_config: '%s' is not a mapping, ignoring", name)
        return {}
    return value


def load_yaml_config(path: str | Path) -> SessionConfig:
    """Load and parse a YAML config file into a SessionConfig.

    Raises FileNotFoundError and yaml.YAMLError to the caller; the CLI
    reports them before any connection is attempted.
    """
    path = Path(path)
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error("load_yaml_config: config file not found at %s", path)
        raise
    except yaml.YAMLError as exc:
        logger.error("load_yaml_config: YAML parse error in %s: %s", path, exc)
        raise

    if not isinstance(raw, dict):
        logger.warning("load_yaml_config: %s has no top-level mapping", path)
        raw = {}

    logger.info(
        "Parsed YAML config %s, sections: %s",
        path.name, ", ".join(sorted(raw)) if raw else "(empty)",
    )

    # ── Session ────────────────────────────────────────────────
    session_raw = _section(raw, "session")
    config = SessionConfig(
        request_timeout_seconds=float(session_raw.get(
            "request_timeout_seconds", SessionConfig.request_timeout_seconds
        )),
        history_limit=int(session_raw.get(
            "history_limit", SessionConfig.history_limit
        )),
        health_check_interval_seconds=float(session_raw.get(
            "health_check_interval_seconds",
            SessionConfig.health_check_interval_seconds,
        )),
        reconnect_delay_seconds=float(session_raw.get(
            "reconnect_delay_seconds", SessionConfig.reconnect_delay_seconds
        )),
        event_queue_size=int(session_raw.get(
            "event_queue_size", SessionConfig.event_queue_size
        )),
        log_level=str(session_raw.get("log_level", SessionConfig.log_level)),
    )
    credentials = session_raw.get("credentials_path")
    if credentials:
        config.credentials_path = Path(str(credentials)).expanduser()

    # ── Mock driver ────────────────────────────────────────────
    mock_raw = _section(raw, "mock")
    defaults = MockTimings()
    config.mock = MockTimings(
        connect_delay=float(mock_raw.get("connect_delay", defaults.connect_delay)),
        think_delay=float(mock_raw.get("think_delay", defaults.think_delay)),
        step_delay=float(mock_raw.get("step_delay", defaults.step_delay)),
        word_delay=float(mock_raw.get("word_delay", defaults.word_delay)),
        finalize_delay=float(mock_raw.get("finalize_delay", defaults.finalize_delay)),
    )
    return config
