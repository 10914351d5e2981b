"""Whisper engine powered by faster-whisper."""

from __future__ import annotations

import logging
from pathlib import Path

from ..state import ModelIdentity
from .base import TranscriptionResult

logger = logging.getLogger(__name__)


class FasterWhisperBackend:
    """Local Whisper inference on the model selected in the app."""

    def __init__(
        self,
        model: str,
        compute_type: str = "int8",
        device: str = "auto",
        beam_size: int = 5,
    ) -> None:
        from faster_whisper import WhisperModel

        self.model_id = model
        self.compute_type = compute_type
        self.device = device
        self.beam_size = beam_size
        self.model = WhisperModel(
            model,
            device=device,
            compute_type=compute_type,
        )

    def transcribe(self, audio_path: Path) -> TranscriptionResult:
        """Transcribe audio file using faster-whisper."""
        segments, info = self.model.transcribe(
            str(audio_path),
            beam_size=self.beam_size,
        )

        text_parts: list[str] = []
        duration = 0.0
        for segment in segments:
            text_parts.append(segment.text.strip())
            duration = segment.end

        return TranscriptionResult(
            text=" ".join(part for part in text_parts if part).strip(),
            language=getattr(info, "language", None),
            duration=duration,
        )


def _create_faster_whisper_backend(model: ModelIdentity) -> FasterWhisperBackend:
    # faster-whisper only loads CTranslate2 directories or hub names, not ggml files.
    if model.path is None:
        return FasterWhisperBackend(model=model.name)
    if not model.path.exists():
        raise FileNotFoundError(f"Model file not found: {model.path}")
    if model.path.is_dir():
        return FasterWhisperBackend(model=str(model.path))
    logger.info(
        "%s is not a CTranslate2 model directory, loading '%s' by name",
        model.path,
        model.name,
    )
    return FasterWhisperBackend(model=model.name)


from . import EngineDescriptor, register_engine

FASTER_WHISPER_DESCRIPTOR = EngineDescriptor(
    id="whisper",
    display_name="Whisper (faster-whisper)",
    optional_dependencies=["faster-whisper"],
    metadata={"family": "whisper"},
)

register_engine(FASTER_WHISPER_DESCRIPTOR, _create_faster_whisper_backend)
