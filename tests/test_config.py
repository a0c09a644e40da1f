"""SessionConfig defaults, WINDOW_* overrides and YAML loading."""
from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from window.engine.config import DEFAULT_CREDENTIALS_PATH, MockTimings, SessionConfig
from window.engine.yaml_config import load_yaml_config


def test_defaults():
    config = SessionConfig()
    assert config.request_timeout_seconds == 10.0
    assert config.history_limit == 20
    assert config.health_check_interval_seconds == 10.0
    assert config.reconnect_delay_seconds == 3.0
    assert config.credentials_path == DEFAULT_CREDENTIALS_PATH
    assert config.mock == MockTimings()


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("WINDOW_REQUEST_TIMEOUT", "2.5")
    monkeypatch.setenv("WINDOW_HISTORY_LIMIT", "50")
    monkeypatch.setenv("WINDOW_HEALTH_INTERVAL", "1")
    monkeypatch.setenv("WINDOW_RECONNECT_DELAY", "0.5")
    monkeypatch.setenv("WINDOW_QUEUE_SIZE", "10")
    monkeypatch.setenv("WINDOW_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("WINDOW_CREDENTIALS_PATH", str(tmp_path / "creds.json"))

    config = SessionConfig.from_env()
    assert config.request_timeout_seconds == 2.5
    assert config.history_limit == 50
    assert config.health_check_interval_seconds == 1.0
    assert config.reconnect_delay_seconds == 0.5
    assert config.event_queue_size == 10
    assert config.log_level == "DEBUG"
    assert config.credentials_path == tmp_path / "creds.json"


def test_from_env_without_overrides(monkeypatch):
    for name in (
        "WINDOW_REQUEST_TIMEOUT", "WINDOW_HISTORY_LIMIT", "WINDOW_HEALTH_INTERVAL",
        "WINDOW_RECONNECT_DELAY", "WINDOW_QUEUE_SIZE", "WINDOW_LOG_LEVEL",
        "WINDOW_CREDENTIALS_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
    assert SessionConfig.from_env() == SessionConfig()


def test_instant_timings():
    timings = MockTimings.instant()
    assert timings.connect_delay == timings.word_delay == 0.0


def test_load_yaml_config(tmp_path):
    path = tmp_path / "window.yaml"
    path.write_text(
        "session:\n"
        "  history_limit: 5\n"
        "  reconnect_delay_seconds: 1\n"
        "  credentials_path: ~/creds.json\n"
        "mock:\n"
        "  word_delay: 0.01\n"
    )
    config = load_yaml_config(path)
    assert config.history_limit == 5
    assert config.reconnect_delay_seconds == 1.0
    assert config.request_timeout_seconds == 10.0
    assert config.credentials_path == Path("~/creds.json").expanduser()
    assert config.mock.word_delay == 0.01
    assert config.mock.connect_delay == MockTimings().connect_delay


def test_load_yaml_config_empty_and_bad_sections(tmp_path):
    empty = tmp_path / "empty.yaml"
    empty.write_text("")
    assert load_yaml_config(empty) == SessionConfig()

    odd = tmp_path / "odd.yaml"
    odd.write_text("session: [1, 2]\nmock: fast\n")
    assert load_yaml_config(odd) == SessionConfig()


def test_load_yaml_config_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_yaml_config(tmp_path / "missing.yaml")

    broken = tmp_path / "broken.yaml"
    broken.write_text("session: [unclosed\n")
    with pytest.raises(yaml.YAMLError):
        load_yaml_config(broken)
