from pathlib import Path

from voicetypr_remote.config import DEFAULT_PORT, ServerConfig


def test_defaults(monkeypatch):
    monkeypatch.delenv("VOICETYPR_REMOTE_STORE")

    config = ServerConfig.from_env()

    assert config.port == DEFAULT_PORT == 47842
    assert config.password is None
    assert config.server_name
    assert config.log_level == "INFO"
    assert config.status_timeout_seconds == 5.0
    assert config.resolved_store_path == Path(
        "~/.voicetypr/voicetypr-store.json"
    ).expanduser()


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("VOICETYPR_REMOTE_PORT", "47900")
    monkeypatch.setenv("VOICETYPR_REMOTE_PASSWORD", "secret123")
    monkeypatch.setenv("VOICETYPR_REMOTE_SERVER_NAME", "Studio")
    monkeypatch.setenv("VOICETYPR_REMOTE_STORE", str(tmp_path / "store.json"))
    monkeypatch.setenv("VOICETYPR_REMOTE_LOG_LEVEL", "debug")
    monkeypatch.setenv("VOICETYPR_REMOTE_STATUS_TIMEOUT", "2.5")

    config = ServerConfig.from_env()

    assert config.port == 47900
    assert config.password == "secret123"
    assert config.server_name == "Studio"
    assert config.resolved_store_path == tmp_path / "store.json"
    assert config.log_level == "DEBUG"
    assert config.status_timeout_seconds == 2.5


def test_invalid_numbers_fall_back(monkeypatch):
    monkeypatch.setenv("VOICETYPR_REMOTE_PORT", "not-a-port")
    monkeypatch.setenv("VOICETYPR_REMOTE_STATUS_TIMEOUT", "soon")

    config = ServerConfig.from_env()

    assert config.port == DEFAULT_PORT
    assert config.status_timeout_seconds == 5.0


def test_empty_password_means_no_auth(monkeypatch):
    monkeypatch.setenv("VOICETYPR_REMOTE_PASSWORD", "")

    assert ServerConfig.from_env().password is None
