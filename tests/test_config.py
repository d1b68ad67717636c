"""Tests for configuration loading and credential storage."""

import json
import stat

import pytest

from peaklog.config import (
    get_peaklog_home,
    load_config,
    save_credentials,
    validate_backend_url,
)


def _write(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


class TestValidateBackendUrl:
    @pytest.mark.parametrize(
        "url",
        ["https://sync.example.com", "http://localhost:8000", "http://127.0.0.1/api"],
    )
    def test_accepted(self, url):
        assert validate_backend_url(url) == url

    @pytest.mark.parametrize(
        "url", ["", "http://sync.example.com", "ftp://example.com", "https://", "not a url"]
    )
    def test_rejected(self, url):
        assert validate_backend_url(url) is None

    def test_localhost_http_can_be_disallowed(self):
        assert validate_backend_url("http://localhost", allow_localhost_http=False) is None


class TestLoadConfig:
    def test_defaults(self, peaklog_home):
        config = load_config()
        assert config.data_dir == peaklog_home
        assert config.backend_url is None
        assert config.has_remote is False
        assert config.sync_retries == 1
        assert config.auto_sync is True
        assert config.log_level == "INFO"

    def test_home_defaults_to_dot_peaklog(self, monkeypatch, tmp_path):
        monkeypatch.delenv("PEAKLOG_DATA_DIR")
        monkeypatch.setenv("HOME", str(tmp_path))
        assert get_peaklog_home() == tmp_path / ".peaklog"

    def test_credentials_file(self, peaklog_home):
        _write(
            peaklog_home / "credentials.json",
            {"backend_url": "https://sync.example.com/", "auth_token": "tok", "user_id": "u1"},
        )
        config = load_config()
        assert config.backend_url == "https://sync.example.com"
        assert config.auth_token == "tok"
        assert config.user_id == "u1"
        assert config.has_remote is True

    def test_legacy_token_key(self, peaklog_home):
        _write(peaklog_home / "credentials.json", {"token": "old-style"})
        assert load_config().auth_token == "old-style"

    def test_priority_env_then_credentials_then_config(self, peaklog_home, monkeypatch):
        _write(peaklog_home / "config.json", {"user_id": "from-config", "log_level": "debug"})
        _write(peaklog_home / "credentials.json", {"user_id": "from-creds"})
        assert load_config().user_id == "from-creds"
        assert load_config().log_level == "DEBUG"
        monkeypatch.setenv("PEAKLOG_USER_ID", "from-env")
        assert load_config().user_id == "from-env"

    def test_unsafe_backend_url_is_dropped(self, monkeypatch):
        monkeypatch.setenv("PEAKLOG_BACKEND_URL", "http://sync.example.com")
        assert load_config().backend_url is None

    @pytest.mark.parametrize("raw,expected", [("3", 3), ("0", 1), ("lots", 1)])
    def test_sync_retries(self, monkeypatch, raw, expected):
        monkeypatch.setenv("PEAKLOG_SYNC_RETRIES", raw)
        assert load_config().sync_retries == expected

    def test_auto_sync_off(self, peaklog_home):
        _write(peaklog_home / "config.json", {"auto_sync": False})
        assert load_config().auto_sync is False

    def test_corrupt_file_is_ignored(self, peaklog_home):
        peaklog_home.mkdir(parents=True)
        (peaklog_home / "config.json").write_text("{not json", encoding="utf-8")
        assert load_config().user_id is None

    def test_explicit_data_dir(self, tmp_path):
        other = tmp_path / "elsewhere"
        _write(other / "credentials.json", {"user_id": "u9"})
        config = load_config(other)
        assert config.data_dir == other
        assert config.user_id == "u9"


class TestSaveCredentials:
    def test_writes_owner_only_file(self, peaklog_home):
        path = save_credentials("https://sync.example.com", "tok", "u1")
        assert path == peaklog_home / "credentials.json"
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        config = load_config()
        assert (config.backend_url, config.auth_token, config.user_id) == (
            "https://sync.example.com",
            "tok",
            "u1",
        )

    def test_rejects_unsafe_url(self, peaklog_home):
        with pytest.raises(ValueError):
            save_credentials("http://sync.example.com", "tok", "u1")
        assert not (peaklog_home / "credentials.json").exists()
