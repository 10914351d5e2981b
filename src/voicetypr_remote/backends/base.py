"""Common types for transcription engines."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass
class TranscriptionResult:
    """Output of one engine run."""

    text: str
    language: str | None = None
    duration: float = 0.0


class TranscriptionBackend(Protocol):
    """A loaded model able to transcribe an audio file."""

    def transcribe(self, audio_path: Path) -> TranscriptionResult:
        """Transcribe the audio file at ``audio_path``."""
        ...
