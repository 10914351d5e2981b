"""Engine registry for the transcription bridge."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field

from ..state import ModelIdentity
from .base import TranscriptionBackend, TranscriptionResult

logger = logging.getLogger(__name__)


class EngineDescriptor(BaseModel):
    """Descriptor for a transcription engine kind."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(pattern=r"^[a-z0-9][a-z0-9-_]+$")
    display_name: str
    optional_dependencies: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


@dataclass(frozen=True)
class RegisteredEngine:
    descriptor: EngineDescriptor
    factory: Callable[[ModelIdentity], TranscriptionBackend]


class EngineResolutionError(Exception):
    """Base error for engine resolution issues."""


class EngineNotFoundError(EngineResolutionError):
    """No engine is registered for the requested kind."""

    def __init__(self, engine: str, registered: list[str]):
        super().__init__(f"Unsupported engine '{engine}'")
        self.engine = engine
        self.registered = registered


# At most one loaded model per engine kind.
_backends: dict[str, tuple[ModelIdentity, TranscriptionBackend]] = {}
_registered_engines: dict[str, RegisteredEngine] = {}
_cache_lock = threading.Lock()


def register_engine(
    descriptor: EngineDescriptor,
    factory: Callable[[ModelIdentity], TranscriptionBackend],
) -> None:
    """Register an engine factory.

    Args:
        descriptor: Engine descriptor; ``descriptor.id`` is the engine kind.
        factory: Callable that takes the served model identity and returns a
            loaded backend.
    """
    if descriptor.id in _registered_engines:
        raise ValueError(f"Engine '{descriptor.id}' is already registered")
    _registered_engines[descriptor.id] = RegisteredEngine(descriptor, factory)


def get_backend(model: ModelIdentity) -> TranscriptionBackend:
    """Get or load the backend serving ``model`` (lazy loading).

    Loading a different model for an engine kind evicts the previous one.
    """
    registered = _registered_engines.get(model.engine)
    if registered is None:
        raise EngineNotFoundError(model.engine, list_registered_engines())

    with _cache_lock:
        cached = _backends.get(model.engine)
        if cached is not None and cached[0] == model:
            return cached[1]
        if cached is not None:
            logger.info(
                "Evicting %s model '%s' for '%s'",
                model.engine,
                cached[0].name,
                model.name,
            )
            del _backends[model.engine]
        logger.info("Loading %s model '%s'", model.engine, model.name)
        backend = registered.factory(model)
        _backends[model.engine] = (model, backend)
        return backend


def unload_all() -> list[str]:
    """Drop every loaded backend and return the model names released."""
    with _cache_lock:
        released = [identity.name for identity, _ in _backends.values()]
        _backends.clear()
    return released


def list_engine_descriptors() -> list[EngineDescriptor]:
    return [engine.descriptor for engine in _registered_engines.values()]


def list_registered_engines() -> list[str]:
    return list(_registered_engines.keys())


def list_loaded_models() -> list[str]:
    """List loaded models as ``engine:name``."""
    return [f"{engine}:{identity.name}" for engine, (identity, _) in _backends.items()]


# Import engines to trigger registration
from . import faster_whisper as _faster_whisper  # noqa: F401, E402
from . import nemo_asr as _nemo_asr  # noqa: F401, E402

__all__ = [
    "EngineDescriptor",
    "EngineNotFoundError",
    "EngineResolutionError",
    "TranscriptionBackend",
    "TranscriptionResult",
    "get_backend",
    "list_engine_descriptors",
    "list_loaded_models",
    "list_registered_engines",
    "register_engine",
    "unload_all",
]
