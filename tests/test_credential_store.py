from __future__ import annotations

import json
import stat

from window.adapters.credential_store import FileCredentialStore


def test_save_and_load(tmp_path):
    store = FileCredentialStore(tmp_path / "nested" / "credentials.json")
    assert not store.has_saved_credentials

    store.save("127.0.0.1:8080", "secret")
    assert store.load_host() == "127.0.0.1:8080"
    assert store.load_api_key() == "secret"
    assert store.has_saved_credentials
    assert json.loads(store.path.read_text()) == {
        "host": "127.0.0.1:8080", "api_key": "secret",
    }


def test_file_is_private(tmp_path):
    store = FileCredentialStore(tmp_path / "credentials.json")
    store.save("host", "key")
    mode = stat.S_IMODE(store.path.stat().st_mode)
    assert mode == 0o600


def test_save_replaces_previous_pair(tmp_path):
    store = FileCredentialStore(tmp_path / "credentials.json")
    store.save("a", "1")
    store.save("b", "2")
    assert (store.load_host(), store.load_api_key()) == ("b", "2")


def test_clear(tmp_path):
    store = FileCredentialStore(tmp_path / "credentials.json")
    store.save("host", "key")
    store.clear()
    assert store.load_host() is None
    assert not store.path.exists()
    store.clear()


def test_corrupt_file_reads_as_empty(tmp_path):
    path = tmp_path / "credentials.json"
    path.write_text("{not json")
    store = FileCredentialStore(path)
    assert store.load_host() is None
    assert not store.has_saved_credentials


def test_partial_file_is_not_saved_credentials(tmp_path):
    path = tmp_path / "credentials.json"
    path.write_text(json.dumps({"host": "h", "api_key": ""}))
    store = FileCredentialStore(path)
    assert store.load_host() == "h"
    assert store.load_api_key() is None
    assert not store.has_saved_credentials


def test_save_to_unwritable_location_is_logged_not_raised(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    store = FileCredentialStore(blocker / "sub" / "credentials.json")
    store.save("host", "key")
    assert store.load_host() is None
    assert not store.has_saved_credentials
