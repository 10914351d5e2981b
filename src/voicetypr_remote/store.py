"""Key-value settings store and persistence of the remote settings document."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from .settings import RemoteSettings

logger = logging.getLogger(__name__)

REMOTE_SETTINGS_KEY = "remote_settings"


class KeyValueStore(Protocol):
    """Application settings store the registry is persisted into."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def save(self) -> None: ...


class JsonFileStore:
    """Store backed by a single JSON object on disk."""

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()
        self._data: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable settings store %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring settings store %s: not a JSON object", self.path)
            return {}
        return data

    def get(self, key: str) -> Any | None:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", dir=str(self.path.parent)
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(self._data, handle, indent=2)
            os.replace(tmp_path, self.path)
        except Exception:
            tmp_path.unlink(missing_ok=True)
            raise


def load_remote_settings(store: KeyValueStore) -> RemoteSettings:
    """Read the remote settings document, falling back to defaults."""
    raw = store.get(REMOTE_SETTINGS_KEY)
    if raw is None:
        return RemoteSettings()
    try:
        settings = RemoteSettings.model_validate(raw)
    except ValidationError as exc:
        logger.warning("Invalid remote settings document, using defaults: %s", exc)
        return RemoteSettings()
    logger.info(
        "Loaded remote settings: %d connections, active_id=%s",
        len(settings.saved_connections),
        settings.active_connection_id,
    )
    return settings


def save_remote_settings(store: KeyValueStore, settings: RemoteSettings) -> None:
    store.set(REMOTE_SETTINGS_KEY, settings.to_document())
    store.save()
