"""Transcription bridge between the HTTP routes and the local engines."""

from __future__ import annotations

import logging
import tempfile
import threading
import time
from pathlib import Path
from typing import Protocol

from fastapi.concurrency import run_in_threadpool

from . import backends
from .errors import TranscriptionError
from .models import TranscribeResponse
from .state import ModelIdentity, ServerIdentity, SharedModelState

logger = logging.getLogger(__name__)

# Local inference saturates the CPU/GPU, so transcriptions never overlap.
_transcription_lock = threading.Lock()


class TranscriptionBridge(Protocol):
    """What the routes need from whatever engine is serving."""

    def get_model_name(self) -> str: ...

    def get_server_name(self) -> str: ...

    def get_password(self) -> str | None: ...

    async def transcribe(self, audio: bytes) -> TranscribeResponse:
        """Transcribe raw audio bytes, raising ``TranscriptionError`` on failure."""
        ...


def _write_tempfile(audio: bytes) -> Path:
    tmp = tempfile.NamedTemporaryFile(suffix=".wav", delete=False)
    tmp_path = Path(tmp.name)
    try:
        tmp.write(audio)
    except Exception:
        tmp.close()
        tmp_path.unlink(missing_ok=True)
        raise
    tmp.close()
    return tmp_path


def _run_engine(audio: bytes, model: ModelIdentity) -> str:
    try:
        tmp_path = _write_tempfile(audio)
    except OSError as exc:
        raise TranscriptionError(f"Failed to write audio data: {exc}") from exc

    try:
        with _transcription_lock:
            try:
                backend = backends.get_backend(model)
            except backends.EngineNotFoundError as exc:
                raise TranscriptionError(str(exc)) from exc
            except Exception as exc:
                raise TranscriptionError(f"Failed to load model: {exc}") from exc
            try:
                result = backend.transcribe(tmp_path)
            except Exception as exc:
                raise TranscriptionError(
                    f"{model.engine.capitalize()} transcription failed: {exc}"
                ) from exc
    finally:
        tmp_path.unlink(missing_ok=True)
    return result.text


class EngineTranscriptionBridge:
    """Bridge backed by the engine registry.

    The model identity is read once per request; a concurrent model swap only
    affects later requests.
    """

    def __init__(self, identity: ServerIdentity, state: SharedModelState):
        self.identity = identity
        self.state = state

    def get_model_name(self) -> str:
        return self.state.model_name

    def get_server_name(self) -> str:
        return self.identity.server_name

    def get_password(self) -> str | None:
        return self.identity.password

    async def transcribe(self, audio: bytes) -> TranscribeResponse:
        start = time.perf_counter()
        model = self.state.snapshot()
        logger.info(
            "Starting remote transcription: %d bytes, engine='%s', model='%s'",
            len(audio),
            model.engine,
            model.name,
        )
        if not audio:
            raise TranscriptionError("Empty audio data")

        text = await run_in_threadpool(_run_engine, audio, model)

        duration_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "Remote transcription completed: %d chars in %dms using %s (%s)",
            len(text),
            duration_ms,
            model.name,
            model.engine,
        )
        return TranscribeResponse(text=text, duration_ms=duration_ms, model=model.name)
