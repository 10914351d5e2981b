"""Parakeet engine powered by NVIDIA NeMo ASR."""

from __future__ import annotations

from pathlib import Path

from ..state import ModelIdentity
from .base import TranscriptionResult


def _load_nemo_model(model_id: str):
    from nemo.collections.asr.models import ASRModel  # type: ignore[import-not-found]

    if model_id.endswith(".nemo"):
        return ASRModel.restore_from(model_id)
    return ASRModel.from_pretrained(model_name=model_id)


def _normalize_transcript(value) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    text = getattr(value, "text", None)
    if isinstance(text, str):
        return text
    if isinstance(value, dict):
        text = value.get("text")
        if isinstance(text, str):
            return text
    return str(value)


class NemoParakeetBackend:
    """Parakeet models loaded through NeMo."""

    def __init__(self, model_id: str = "nvidia/parakeet-tdt-0.6b-v3") -> None:
        self.model_id = model_id
        self._model = _load_nemo_model(model_id)

    def transcribe(self, audio_path: Path) -> TranscriptionResult:
        results = self._model.transcribe([str(audio_path)])
        text = _normalize_transcript(results[0]) if results else ""
        return TranscriptionResult(text=text.strip())


def _create_parakeet_backend(model: ModelIdentity) -> NemoParakeetBackend:
    # A local .nemo checkpoint wins over the hub name.
    if model.path is not None and model.path.suffix == ".nemo":
        return NemoParakeetBackend(model_id=str(model.path))
    return NemoParakeetBackend(model_id=model.name)


from . import EngineDescriptor, register_engine

PARAKEET_DESCRIPTOR = EngineDescriptor(
    id="parakeet",
    display_name="NVIDIA NeMo Parakeet",
    optional_dependencies=["nemo_toolkit[asr]"],
    metadata={
        "family": "parakeet",
        "notes": "Requires CUDA-enabled PyTorch + NeMo ASR toolkit",
    },
)

register_engine(PARAKEET_DESCRIPTOR, _create_parakeet_backend)
