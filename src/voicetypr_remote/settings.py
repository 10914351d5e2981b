"""Registry of known remote servers and the persisted sharing configuration."""

from __future__ import annotations

import itertools
import logging
import time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .config import DEFAULT_PORT
from .errors import UnknownConnectionError

logger = logging.getLogger(__name__)


class RemoteServerConfig(BaseModel):
    """Persisted configuration for sharing this machine's model."""

    port: int = DEFAULT_PORT
    password: str | None = None
    enabled: bool = False


class ConnectionStatus(str, Enum):
    """Result of the most recent status probe of a saved connection."""

    UNKNOWN = "Unknown"
    ONLINE = "Online"
    OFFLINE = "Offline"
    AUTH_FAILED = "AuthFailed"
    SELF_CONNECTION = "SelfConnection"


_id_counter = itertools.count()


def current_timestamp_ms() -> int:
    return int(time.time() * 1000)


def generate_connection_id() -> str:
    """Unique id built from the current time and a process-wide counter."""
    return f"conn_{current_timestamp_ms()}_{next(_id_counter)}"


class SavedConnection(BaseModel):
    """A remote server known to this instance.

    Serialized with the wire names ``name`` and ``model`` for the display name
    and the cached model.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    host: str
    port: int = DEFAULT_PORT
    password: str | None = None
    display_name: str | None = Field(default=None, alias="name")
    created_at: int = Field(default_factory=current_timestamp_ms)
    cached_model: str | None = Field(default=None, alias="model")
    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    last_checked: int | None = None

    def label(self) -> str:
        return self.display_name or f"{self.host}:{self.port}"


class RemoteSettings(BaseModel):
    """All remote transcription settings, persisted as one JSON document.

    ``active_connection_id`` always references an entry of
    ``saved_connections`` or is ``None``.
    """

    model_config = ConfigDict(populate_by_name=True)

    server_config: RemoteServerConfig = Field(default_factory=RemoteServerConfig)
    saved_connections: list[SavedConnection] = Field(default_factory=list)
    active_connection_id: str | None = None
    sharing_was_active: bool = False

    @model_validator(mode="after")
    def _check_references(self) -> "RemoteSettings":
        unique: dict[str, SavedConnection] = {}
        for connection in self.saved_connections:
            if connection.id in unique:
                logger.warning("Dropping duplicate connection '%s'", connection.id)
                continue
            unique[connection.id] = connection
        if len(unique) != len(self.saved_connections):
            self.saved_connections = list(unique.values())
        ids = set(unique)
        if self.active_connection_id is not None and self.active_connection_id not in ids:
            logger.warning(
                "Clearing dangling active connection '%s'", self.active_connection_id
            )
            self.active_connection_id = None
        return self

    def add_connection(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        password: str | None = None,
        name: str | None = None,
        model: str | None = None,
    ) -> SavedConnection:
        """Append a new connection with a freshly generated id."""
        connection = SavedConnection(
            id=generate_connection_id(),
            host=host,
            port=port,
            password=password,
            display_name=name,
            cached_model=model,
        )
        self.saved_connections.append(connection)
        return connection

    def get_connection(self, connection_id: str) -> SavedConnection | None:
        for connection in self.saved_connections:
            if connection.id == connection_id:
                return connection
        return None

    def require_connection(self, connection_id: str) -> SavedConnection:
        connection = self.get_connection(connection_id)
        if connection is None:
            raise UnknownConnectionError(connection_id)
        return connection

    def remove_connection(self, connection_id: str) -> SavedConnection:
        """Delete a connection, clearing the active selection if it pointed at it."""
        connection = self.require_connection(connection_id)
        self.saved_connections = [
            saved for saved in self.saved_connections if saved.id != connection_id
        ]
        if self.active_connection_id == connection_id:
            self.active_connection_id = None
        return connection

    def update_connection(
        self,
        connection_id: str,
        host: str,
        port: int,
        password: str | None = None,
        name: str | None = None,
    ) -> SavedConnection:
        """Edit a connection in place, keeping its id and creation time."""
        connection = self.require_connection(connection_id)
        moved = (connection.host, connection.port) != (host, port)
        connection.host = host
        connection.port = port
        connection.password = password
        connection.display_name = name
        if moved:
            connection.status = ConnectionStatus.UNKNOWN
            connection.cached_model = None
            connection.last_checked = None
        return connection

    def record_probe(
        self,
        connection_id: str,
        status: ConnectionStatus,
        model: str | None = None,
    ) -> SavedConnection:
        connection = self.require_connection(connection_id)
        connection.status = status
        connection.last_checked = current_timestamp_ms()
        if model is not None:
            connection.cached_model = model
        return connection

    def set_active_connection(self, connection_id: str | None) -> None:
        if connection_id is not None:
            self.require_connection(connection_id)
        self.active_connection_id = connection_id

    def get_active_connection(self) -> SavedConnection | None:
        if self.active_connection_id is None:
            return None
        return self.get_connection(self.active_connection_id)

    def list_connections(self) -> list[SavedConnection]:
        return list(self.saved_connections)

    def to_document(self) -> dict:
        """JSON-compatible document using the persisted field names."""
        return self.model_dump(mode="json", by_alias=True)
