"""HTTP client for transcribing on another instance's sharing server."""

from __future__ import annotations

import io
import logging
import wave
from dataclasses import dataclass
from enum import Enum

import httpx
from pydantic import ValidationError

from .config import API_PREFIX, AUTH_HEADER, DEFAULT_PORT
from .errors import (
    AuthenticationError,
    ConnectionFailedError,
    ProtocolViolationError,
    ServerError,
)
from .models import StatusResponse

logger = logging.getLogger(__name__)

STATUS_TIMEOUT_SECONDS = 5.0
LIVE_BASE_TIMEOUT_MS = 30_000
LIVE_MAX_TIMEOUT_MS = 120_000
UPLOAD_BASE_TIMEOUT_MS = 60_000


class TranscriptionSource(str, Enum):
    """Where the audio came from; decides how long a transcription may take."""

    LIVE_RECORDING = "LiveRecording"
    UPLOAD = "Upload"


def calculate_timeout_ms(audio_duration_ms: int, source: TranscriptionSource) -> int:
    """Request timeout for a transcription of ``audio_duration_ms`` of audio.

    Live recordings get 30s plus twice the audio length, capped at two
    minutes. Uploads get 60s plus three times the audio length, uncapped.
    """
    if source == TranscriptionSource.LIVE_RECORDING:
        return min(LIVE_BASE_TIMEOUT_MS + 2 * audio_duration_ms, LIVE_MAX_TIMEOUT_MS)
    return UPLOAD_BASE_TIMEOUT_MS + 3 * audio_duration_ms


def wav_duration_ms(audio: bytes) -> int:
    """Duration from a WAV header, or 0 when the bytes are not a readable WAV."""
    try:
        with wave.open(io.BytesIO(audio), "rb") as wav:
            rate = wav.getframerate()
            if rate <= 0:
                return 0
            return int(wav.getnframes() * 1000 / rate)
    except (wave.Error, EOFError):
        return 0


@dataclass(frozen=True)
class ConnectionDescriptor:
    """Address and shared secret of a remote sharing server."""

    host: str
    port: int = DEFAULT_PORT
    password: str | None = None

    def _url(self, route: str) -> str:
        return f"http://{self.host}:{self.port}{API_PREFIX}/{route}"

    def status_url(self) -> str:
        return self._url("status")

    def transcribe_url(self) -> str:
        return self._url("transcribe")

    def display_name(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def headers(self) -> dict[str, str]:
        if self.password is None:
            return {}
        return {AUTH_HEADER: self.password}


def _error_message(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return response.text or None
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        return body["error"]
    return None


class RemoteClient:
    """Talks to one remote server described by a ``ConnectionDescriptor``.

    A fresh ``httpx.AsyncClient`` is used per request so each call carries
    its own timeout. ``transport`` lets tests route requests to an in-process
    app or a mock.
    """

    def __init__(
        self,
        connection: ConnectionDescriptor,
        *,
        status_timeout: float = STATUS_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.connection = connection
        self.status_timeout = status_timeout
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    def _check_response(self, response: httpx.Response) -> None:
        target = self.connection.display_name()
        if response.status_code == 401:
            logger.warning("Authentication FAILED to %s", target)
            raise AuthenticationError(target)
        if not response.is_success:
            message = _error_message(response)
            logger.warning(
                "Server error from %s: %d %s",
                target,
                response.status_code,
                message or "",
            )
            raise ServerError(target, response.status_code, message)

    async def _request(
        self, method: str, url: str, timeout: float, **kwargs
    ) -> httpx.Response:
        target = self.connection.display_name()
        try:
            async with self._client(timeout) as client:
                response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("Request to %s timed out after %.1fs", target, timeout)
            raise ConnectionFailedError(
                target, str(exc) or "timed out", timed_out=True
            ) from exc
        except httpx.TransportError as exc:
            logger.warning("Connection FAILED to %s: %s", target, exc)
            raise ConnectionFailedError(target, str(exc) or type(exc).__name__) from exc
        self._check_response(response)
        return response

    async def get_status(self) -> StatusResponse:
        """Probe the server's status route."""
        logger.info("Testing connection to %s", self.connection.display_name())
        response = await self._request(
            "GET",
            self.connection.status_url(),
            self.status_timeout,
            headers=self.connection.headers,
        )
        try:
            status = StatusResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ProtocolViolationError(f"Invalid status response: {exc}") from exc
        logger.info(
            "Connection test SUCCEEDED to '%s' (%s) - model: '%s', version: %s",
            status.name,
            self.connection.display_name(),
            status.model,
            status.version,
        )
        return status

    async def transcribe(
        self,
        audio: bytes,
        *,
        audio_duration_ms: int,
        source: TranscriptionSource,
        content_type: str = "audio/wav",
    ) -> str:
        """Send ``audio`` to the remote server and return the transcript."""
        timeout_ms = calculate_timeout_ms(audio_duration_ms, source)
        target = self.connection.display_name()
        logger.info(
            "Sending %.1f KB audio to %s (%s, timeout %dms)",
            len(audio) / 1024,
            target,
            source.value,
            timeout_ms,
        )
        headers = {"Content-Type": content_type, **self.connection.headers}
        response = await self._request(
            "POST",
            self.connection.transcribe_url(),
            timeout_ms / 1000,
            headers=headers,
            content=audio,
        )

        try:
            body = response.json()
        except ValueError as exc:
            raise ProtocolViolationError(f"Failed to parse response: {exc}") from exc
        text = body.get("text") if isinstance(body, dict) else None
        if not isinstance(text, str):
            raise ProtocolViolationError("Invalid response: missing 'text' field")

        logger.info(
            "Transcription COMPLETED from %s: %d chars received", target, len(text)
        )
        return text
