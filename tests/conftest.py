import pytest

import voicetypr_remote.backends as backends


@pytest.fixture(autouse=True)
def reset_voicetypr_env(monkeypatch, tmp_path):
    for name in (
        "VOICETYPR_REMOTE_PORT",
        "VOICETYPR_REMOTE_PASSWORD",
        "VOICETYPR_REMOTE_SERVER_NAME",
        "VOICETYPR_REMOTE_LOG_LEVEL",
        "VOICETYPR_REMOTE_STATUS_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("VOICETYPR_REMOTE_STORE", str(tmp_path / "store.json"))


@pytest.fixture
def reset_engine_registry():
    registered = dict(backends._registered_engines)
    loaded = dict(backends._backends)
    backends._backends.clear()
    yield
    backends._registered_engines.clear()
    backends._registered_engines.update(registered)
    backends._backends.clear()
    backends._backends.update(loaded)
