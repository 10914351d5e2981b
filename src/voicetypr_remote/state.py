"""Identity and hot-swappable model state of a running sharing server."""

from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ServerIdentity:
    """Name and shared secret of one sharing session."""

    server_name: str
    password: str | None = None

    def validate_password(self, provided: str | None) -> bool:
        if self.password is None:
            return True
        if provided is None:
            return False
        return secrets.compare_digest(
            provided.encode("utf-8"), self.password.encode("utf-8")
        )


def _as_path(value: Path | str | None) -> Path | None:
    # Engines other than whisper are started without a model file.
    if value is None or str(value) == "":
        return None
    return Path(value)


@dataclass(frozen=True)
class ModelIdentity:
    """The model currently being served."""

    name: str
    path: Path | None
    engine: str = "whisper"


class SharedModelState:
    """Model identity shared by every listener of one sharing session.

    The name, path and engine are swapped together under one lock, so a
    reader never pairs a name from one update with a path from another.
    """

    def __init__(
        self, name: str, path: Path | str | None, engine: str = "whisper"
    ):
        self._lock = threading.Lock()
        self._current = ModelIdentity(name=name, path=_as_path(path), engine=engine)

    def snapshot(self) -> ModelIdentity:
        with self._lock:
            return self._current

    def update(
        self, name: str, path: Path | str | None, engine: str
    ) -> ModelIdentity:
        identity = ModelIdentity(name=name, path=_as_path(path), engine=engine)
        with self._lock:
            self._current = identity
        return identity

    @property
    def model_name(self) -> str:
        return self.snapshot().name

    @property
    def model_path(self) -> Path | None:
        return self.snapshot().path

    @property
    def engine(self) -> str:
        return self.snapshot().engine


class RequestTracker:
    """Counts requests currently being handled across all listeners."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active = 0

    def __enter__(self) -> "RequestTracker":
        with self._lock:
            self._active += 1
        return self

    def __exit__(self, *exc_info) -> None:
        with self._lock:
            self._active -= 1

    @property
    def active(self) -> int:
        with self._lock:
            return self._active
