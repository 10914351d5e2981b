import asyncio
import io
import wave

import httpx
import pytest

from voicetypr_remote.app import create_app
from voicetypr_remote.client import (
    ConnectionDescriptor,
    RemoteClient,
    TranscriptionSource,
    calculate_timeout_ms,
    wav_duration_ms,
)
from voicetypr_remote.errors import (
    AuthenticationError,
    ConnectionFailedError,
    ProtocolViolationError,
    ServerError,
)
from voicetypr_remote.models import TranscribeResponse

LIVE = TranscriptionSource.LIVE_RECORDING
UPLOAD = TranscriptionSource.UPLOAD


def _wav(seconds: float, rate: int = 16000) -> bytes:
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(rate)
        wav.writeframes(b"\x00\x00" * int(rate * seconds))
    return buffer.getvalue()


def _client(handler, password=None) -> RemoteClient:
    return RemoteClient(
        ConnectionDescriptor("192.168.1.10", 47842, password),
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.parametrize(
    ("duration_ms", "source", "expected"),
    [
        (0, LIVE, 30_000),
        (30_000, LIVE, 90_000),
        (45_000, LIVE, 120_000),
        (120_000, LIVE, 120_000),
        (0, UPLOAD, 60_000),
        (60_000, UPLOAD, 240_000),
        (3_600_000, UPLOAD, 10_860_000),
    ],
)
def test_calculate_timeout(duration_ms, source, expected):
    assert calculate_timeout_ms(duration_ms, source) == expected


def test_connection_urls():
    connection = ConnectionDescriptor("192.168.1.10", 47842)

    assert connection.status_url() == "http://192.168.1.10:47842/api/v1/status"
    assert connection.transcribe_url() == "http://192.168.1.10:47842/api/v1/transcribe"
    assert connection.display_name() == "192.168.1.10:47842"
    assert connection.headers == {}
    assert ConnectionDescriptor("host", 1, "pw").headers == {"X-VoiceTypr-Key": "pw"}


def test_wav_duration():
    assert wav_duration_ms(_wav(1.5)) == 1500
    assert wav_duration_ms(b"not a wav file") == 0
    assert wav_duration_ms(b"") == 0


def test_status_sends_password_header():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["key"] = request.headers.get("X-VoiceTypr-Key")
        return httpx.Response(
            200,
            json={"status": "ok", "version": "1.0.0", "model": "base.en", "name": "Desk"},
        )

    status = asyncio.run(_client(handler, password="secret123").get_status())

    assert status.name == "Desk"
    assert status.model == "base.en"
    assert seen == {"url": "http://192.168.1.10:47842/api/v1/status", "key": "secret123"}


def test_status_unauthorized():
    client = _client(lambda request: httpx.Response(401, json={"error": "unauthorized"}))

    with pytest.raises(AuthenticationError):
        asyncio.run(client.get_status())


def test_status_connect_failure():
    def handler(request):
        raise httpx.ConnectError("Connection refused", request=request)

    with pytest.raises(ConnectionFailedError) as excinfo:
        asyncio.run(_client(handler).get_status())

    assert not excinfo.value.timed_out
    assert "192.168.1.10:47842" in str(excinfo.value)


def test_status_timeout():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(ConnectionFailedError) as excinfo:
        asyncio.run(_client(handler).get_status())

    assert excinfo.value.timed_out


def test_status_missing_fields():
    client = _client(lambda request: httpx.Response(200, json={"status": "ok"}))

    with pytest.raises(ProtocolViolationError):
        asyncio.run(client.get_status())


def test_transcribe_sends_raw_audio():
    seen = {}
    audio = _wav(1.0)

    def handler(request):
        seen["content_type"] = request.headers["content-type"]
        seen["body"] = request.content
        seen["timeout"] = request.extensions["timeout"]["read"]
        return httpx.Response(
            200, json={"text": "hello world", "duration_ms": 321, "model": "base.en"}
        )

    text = asyncio.run(
        _client(handler).transcribe(
            audio, audio_duration_ms=wav_duration_ms(audio), source=LIVE
        )
    )

    assert text == "hello world"
    assert seen["content_type"] == "audio/wav"
    assert seen["body"] == audio
    assert seen["timeout"] == 32.0


def test_transcribe_unauthorized():
    client = _client(lambda request: httpx.Response(401, json={"error": "unauthorized"}))

    with pytest.raises(AuthenticationError):
        asyncio.run(client.transcribe(b"audio", audio_duration_ms=0, source=LIVE))


def test_transcribe_server_error_keeps_message():
    client = _client(lambda request: httpx.Response(500, json={"error": "Empty audio data"}))

    with pytest.raises(ServerError) as excinfo:
        asyncio.run(client.transcribe(b"audio", audio_duration_ms=0, source=UPLOAD))

    assert excinfo.value.status_code == 500
    assert excinfo.value.message == "Empty audio data"


def test_transcribe_unsupported_media_type():
    client = _client(
        lambda request: httpx.Response(415, json={"error": "unsupported_media_type"})
    )

    with pytest.raises(ServerError) as excinfo:
        asyncio.run(
            client.transcribe(
                b"audio", audio_duration_ms=0, source=LIVE, content_type="text/plain"
            )
        )

    assert excinfo.value.status_code == 415


def test_transcribe_missing_text():
    client = _client(lambda request: httpx.Response(200, json={"duration_ms": 1}))

    with pytest.raises(ProtocolViolationError, match="missing 'text' field"):
        asyncio.run(client.transcribe(b"audio", audio_duration_ms=0, source=LIVE))


def test_transcribe_non_json_body():
    client = _client(lambda request: httpx.Response(200, content=b"<html>"))

    with pytest.raises(ProtocolViolationError):
        asyncio.run(client.transcribe(b"audio", audio_duration_ms=0, source=LIVE))


class EchoBridge:
    def get_model_name(self):
        return "base.en"

    def get_server_name(self):
        return "Desk"

    def get_password(self):
        return "secret123"

    async def transcribe(self, audio):
        return TranscribeResponse(text=f"{len(audio)} bytes", duration_ms=5, model="base.en")


def test_client_against_sharing_app():
    transport = httpx.ASGITransport(app=create_app(EchoBridge()))
    good = RemoteClient(ConnectionDescriptor("desk", 47842, "secret123"), transport=transport)
    bad = RemoteClient(ConnectionDescriptor("desk", 47842, "nope"), transport=transport)

    async def scenario():
        status = await good.get_status()
        text = await good.transcribe(b"12345", audio_duration_ms=0, source=UPLOAD)
        with pytest.raises(AuthenticationError):
            await bad.get_status()
        return status, text

    status, text = asyncio.run(scenario())

    assert status.name == "Desk"
    assert text == "5 bytes"
