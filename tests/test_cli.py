import json

from typer.testing import CliRunner

from voicetypr_remote import cli, service
from voicetypr_remote.errors import (
    AuthenticationError,
    ConnectionFailedError,
    ServerStartError,
)
from voicetypr_remote.models import StatusResponse
from voicetypr_remote.store import REMOTE_SETTINGS_KEY


runner = CliRunner()


class FakeRemoteClient:
    status = StatusResponse(status="ok", version="1.0.0", model="base.en", name="Desk")
    error = None
    transcribed = []

    def __init__(self, connection, **kwargs):
        self.connection = connection

    async def get_status(self):
        if self.error is not None:
            raise self.error
        return self.status

    async def transcribe(self, audio, *, audio_duration_ms, source):
        self.transcribed.append((self.connection, audio, audio_duration_ms, source))
        return "hello from remote"


def _fake_client(monkeypatch, error=None):
    client = type("Client", (FakeRemoteClient,), {"error": error, "transcribed": []})
    monkeypatch.setattr(cli, "RemoteClient", client)
    monkeypatch.setattr(service, "RemoteClient", client)
    return client


def test_serve_passes_args(monkeypatch):
    calls = {}

    async def serve_until_interrupted(manager, *args):
        calls["args"] = args

    monkeypatch.setattr(cli, "_serve_until_interrupted", serve_until_interrupted)
    monkeypatch.setenv("VOICETYPR_REMOTE_PASSWORD", "from-env")

    result = runner.invoke(
        cli.app,
        ["serve", "--port", "47900", "--name", "Studio", "--model", "large-v3"],
    )

    assert result.exit_code == 0
    assert calls["args"] == (47900, "from-env", "Studio", None, "large-v3", "whisper")


def test_serve_reports_start_failure(monkeypatch):
    async def serve_until_interrupted(manager, *args):
        raise ServerStartError("127.0.0.1", 47842, "address in use")

    monkeypatch.setattr(cli, "_serve_until_interrupted", serve_until_interrupted)

    result = runner.invoke(cli.app, ["serve"])

    assert result.exit_code == 1
    assert "address in use" in result.output


def test_serve_rejects_unknown_engine(monkeypatch):
    async def serve_until_interrupted(manager, *args):
        raise AssertionError("server should not start")

    monkeypatch.setattr(cli, "_serve_until_interrupted", serve_until_interrupted)

    result = runner.invoke(cli.app, ["serve", "--engine", "cloud"])

    assert result.exit_code == 1
    assert "Unsupported engine 'cloud'" in result.output
    assert "whisper (Whisper (faster-whisper))" in result.output


def test_probe_prints_status(monkeypatch):
    _fake_client(monkeypatch)

    result = runner.invoke(cli.app, ["probe", "192.168.1.10"])

    assert result.exit_code == 0
    assert "Desk: base.en" in result.output


def test_probe_auth_failure(monkeypatch):
    _fake_client(monkeypatch, AuthenticationError("192.168.1.10:47842"))

    result = runner.invoke(cli.app, ["probe", "192.168.1.10", "--password", "bad"])

    assert result.exit_code == 1
    assert "Authentication failed" in result.output


def test_transcribe_with_host(monkeypatch, tmp_path):
    client = _fake_client(monkeypatch)
    audio = tmp_path / "clip.wav"
    audio.write_bytes(b"not really a wav")

    result = runner.invoke(
        cli.app,
        ["transcribe", str(audio), "--host", "192.168.1.10", "--source", "upload"],
    )

    assert result.exit_code == 0
    assert "hello from remote" in result.output
    connection, data, duration_ms, source = client.transcribed[0]
    assert connection.host == "192.168.1.10"
    assert data == b"not really a wav"
    assert duration_ms == 0
    assert source.value == "Upload"


def test_transcribe_without_active_server(tmp_path):
    audio = tmp_path / "clip.wav"
    audio.write_bytes(b"audio")

    result = runner.invoke(cli.app, ["transcribe", str(audio)])

    assert result.exit_code == 1
    assert "No active remote server" in result.output


def test_servers_workflow(monkeypatch, tmp_path):
    _fake_client(monkeypatch, ConnectionFailedError("192.168.1.10:47842", "refused"))
    store = tmp_path / "custom-store.json"

    empty = runner.invoke(cli.app, ["--store", str(store), "servers", "list"])
    added = runner.invoke(
        cli.app, ["--store", str(store), "servers", "add", "192.168.1.10"]
    )
    document = json.loads(store.read_text(encoding="utf-8"))[REMOTE_SETTINGS_KEY]
    server_id = document["saved_connections"][0]["id"]
    used = runner.invoke(cli.app, ["--store", str(store), "servers", "use", server_id])
    listed = runner.invoke(cli.app, ["--store", str(store), "servers", "list"])
    removed = runner.invoke(
        cli.app, ["--store", str(store), "servers", "remove", server_id]
    )

    assert "No saved servers" in empty.output
    assert added.exit_code == 0
    assert "Offline" in added.output
    assert used.exit_code == 0
    assert f"* {server_id}" in listed.output
    assert "192.168.1.10:47842" in listed.output
    assert removed.exit_code == 0
    document = json.loads(store.read_text(encoding="utf-8"))[REMOTE_SETTINGS_KEY]
    assert document["saved_connections"] == []
    assert document["active_connection_id"] is None


def test_servers_refresh(monkeypatch):
    client = _fake_client(monkeypatch, ConnectionFailedError("desk:47842", "refused"))
    runner.invoke(cli.app, ["servers", "add", "desk", "--name", "Desk"])
    client.error = None

    result = runner.invoke(cli.app, ["servers", "refresh"])

    assert result.exit_code == 0
    assert "Desk  Online  base.en" in result.output


def test_unknown_server_id():
    result = runner.invoke(cli.app, ["servers", "remove", "conn_missing"])

    assert result.exit_code == 1
    assert "Server 'conn_missing' not found" in result.output
