"""Application logic tying sharing, the remote client and the registry together.

``RemoteService`` owns the persisted ``RemoteSettings`` and the local
``RemoteServerManager``. It enforces that this instance never shares its
model while it is itself using a remote server.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .client import (
    ConnectionDescriptor,
    RemoteClient,
    TranscriptionSource,
    wav_duration_ms,
)
from .config import DEFAULT_PORT, default_server_name
from .errors import (
    AuthenticationError,
    RemoteError,
    UnknownConnectionError,
)
from .lifecycle import RemoteServerManager
from .models import SharingStatus, StatusResponse
from .network import is_local_host
from .settings import ConnectionStatus, RemoteSettings, SavedConnection
from .store import KeyValueStore, load_remote_settings, save_remote_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurrentModel:
    """The model this instance would serve if it started sharing now."""

    name: str
    path: Path | None = None
    engine: str = "whisper"


ModelProvider = Callable[[], "CurrentModel | None"]
ClientFactory = Callable[[ConnectionDescriptor], RemoteClient]


def _descriptor(connection: SavedConnection) -> ConnectionDescriptor:
    return ConnectionDescriptor(
        host=connection.host, port=connection.port, password=connection.password
    )


class RemoteService:
    def __init__(
        self,
        store: KeyValueStore,
        model_provider: ModelProvider,
        *,
        manager: RemoteServerManager | None = None,
        server_name: str | None = None,
        client_factory: ClientFactory | None = None,
        status_timeout: float = 5.0,
    ):
        self.store = store
        self.model_provider = model_provider
        self.manager = manager or RemoteServerManager()
        self.server_name = server_name or default_server_name()
        self.status_timeout = status_timeout
        self._client_factory = client_factory or self._default_client
        self.settings: RemoteSettings = load_remote_settings(store)
        # Serializes sharing and active-server transitions across awaits.
        self._transition_lock = asyncio.Lock()

    def _default_client(self, descriptor: ConnectionDescriptor) -> RemoteClient:
        return RemoteClient(descriptor, status_timeout=self.status_timeout)

    def _save(self) -> None:
        save_remote_settings(self.store, self.settings)

    def _current_model(self) -> CurrentModel:
        model = self.model_provider()
        if model is None:
            raise RemoteError("No model downloaded. Please download a model first.")
        return model

    # Sharing

    async def start_sharing(
        self,
        port: int | None = None,
        password: str | None = None,
        server_name: str | None = None,
    ) -> SharingStatus:
        """Share the current model and remember to do so on the next launch."""
        async with self._transition_lock:
            return await self._start_sharing(port, password, server_name)

    async def _start_sharing(
        self, port: int | None, password: str | None, server_name: str | None
    ) -> SharingStatus:
        active = self.settings.get_active_connection()
        if active is not None:
            raise RemoteError(
                f"Cannot share while using remote server '{active.label()}'"
            )
        port = port if port is not None else DEFAULT_PORT
        model = self._current_model()
        await self.manager.start(
            port,
            password,
            server_name or self.server_name,
            model.path,
            model.name,
            model.engine,
        )

        config = self.settings.server_config
        config.enabled = True
        config.port = port
        config.password = password
        self._save()
        logger.info("Saved sharing state: enabled=true, port=%d", port)
        return self.manager.get_status()

    async def stop_sharing(self) -> None:
        """Stop sharing and keep it off on the next launch."""
        async with self._transition_lock:
            self.manager.stop()
            self.settings.server_config.enabled = False
            self.settings.sharing_was_active = False
            self._save()
        logger.info("Saved sharing state: enabled=false")

    def get_sharing_status(self) -> SharingStatus:
        return self.manager.get_status()

    def on_model_changed(self, model: CurrentModel) -> None:
        """Serve ``model`` from now on if sharing is running."""
        if not self.manager.is_running():
            return
        self.manager.update_model(model.path, model.name, model.engine)

    async def restore_on_launch(self) -> bool:
        """Resume sharing if it was on at shutdown and no remote server is active.

        Returns True if sharing was started.
        """
        async with self._transition_lock:
            return await self._restore_on_launch()

    async def _restore_on_launch(self) -> bool:
        config = self.settings.server_config
        if not config.enabled:
            return False
        if self.settings.get_active_connection() is not None:
            logger.info("Not restoring sharing: a remote server is active")
            return False
        try:
            model = self._current_model()
            await self.manager.start(
                config.port,
                config.password,
                self.server_name,
                model.path,
                model.name,
                model.engine,
            )
        except RemoteError as exc:
            logger.warning("Failed to restore sharing on port %d: %s", config.port, exc)
            return False
        logger.info("Sharing restored on port %d", config.port)
        return True

    # Saved servers

    async def test_connection(
        self, host: str, port: int = DEFAULT_PORT, password: str | None = None
    ) -> StatusResponse:
        client = self._client_factory(ConnectionDescriptor(host, port, password))
        return await client.get_status()

    async def add_server(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        password: str | None = None,
        name: str | None = None,
    ) -> SavedConnection:
        """Save a server, probing it first; an unreachable server is still saved."""
        descriptor = ConnectionDescriptor(host, port, password)
        status, server_status = await self._probe(descriptor)
        if server_status is not None:
            display_name = name or server_status.name
            model = server_status.model
        else:
            logger.info(
                "Connection test failed for %s:%d, adding server anyway", host, port
            )
            display_name = name or f"{host}:{port}"
            model = None

        connection = self.settings.add_connection(
            host, port, password, display_name, model
        )
        self.settings.record_probe(connection.id, status)
        self._save()
        logger.info("Added remote server: %s (model: %s)", connection.label(), model)
        return connection

    async def update_server(
        self,
        server_id: str,
        host: str,
        port: int = DEFAULT_PORT,
        password: str | None = None,
        name: str | None = None,
    ) -> SavedConnection:
        self.settings.require_connection(server_id)
        descriptor = ConnectionDescriptor(host, port, password)
        status, server_status = await self._probe(descriptor)
        connection = self.settings.update_connection(
            server_id, host, port, password, name or f"{host}:{port}"
        )
        self.settings.record_probe(
            server_id, status, server_status.model if server_status else None
        )
        self._save()
        logger.info("Updated remote server: %s", connection.label())
        return connection

    def remove_server(self, server_id: str) -> SavedConnection:
        connection = self.settings.remove_connection(server_id)
        self._save()
        logger.info("Removed remote server: %s", server_id)
        return connection

    def list_servers(self) -> list[SavedConnection]:
        return self.settings.list_connections()

    def get_active_server(self) -> SavedConnection | None:
        return self.settings.get_active_connection()

    def is_self_connection(self, host: str, port: int) -> bool:
        """True if ``host:port`` is this instance's own sharing server."""
        sharing_port = self.manager.get_port()
        return sharing_port is not None and port == sharing_port and is_local_host(host)

    async def _probe(
        self, descriptor: ConnectionDescriptor
    ) -> tuple[ConnectionStatus, StatusResponse | None]:
        if self.is_self_connection(descriptor.host, descriptor.port):
            logger.info("%s is this machine's own server", descriptor.display_name())
            return ConnectionStatus.SELF_CONNECTION, None
        try:
            server_status = await self._client_factory(descriptor).get_status()
        except AuthenticationError:
            return ConnectionStatus.AUTH_FAILED, None
        except RemoteError as exc:
            logger.info("%s is offline: %s", descriptor.display_name(), exc)
            return ConnectionStatus.OFFLINE, None
        return ConnectionStatus.ONLINE, server_status

    async def refresh_server(self, server_id: str) -> SavedConnection:
        """Probe a saved server and record its status and current model."""
        connection = self.settings.require_connection(server_id)
        previous_model = connection.cached_model
        status, server_status = await self._probe(_descriptor(connection))
        if self.settings.get_connection(server_id) is None:
            raise UnknownConnectionError(server_id)
        model = server_status.model if server_status else None
        if model is not None and model != previous_model:
            logger.info(
                "Model changed for '%s': %s -> %s",
                connection.label(),
                previous_model,
                model,
            )
        connection = self.settings.record_probe(server_id, status, model)
        self._save()
        return connection

    async def refresh_all(self) -> list[SavedConnection]:
        """Probe every saved server concurrently."""
        connections = self.settings.list_connections()
        results = await asyncio.gather(
            *(self._probe(_descriptor(connection)) for connection in connections)
        )
        for connection, (status, server_status) in zip(connections, results):
            if self.settings.get_connection(connection.id) is None:
                continue
            self.settings.record_probe(
                connection.id, status, server_status.model if server_status else None
            )
        self._save()
        return self.settings.list_connections()

    async def set_active_server(self, server_id: str | None) -> None:
        """Route transcription to ``server_id``, or back to local when None.

        Activating a server stops local sharing and remembers that it was on;
        clearing the selection restarts it.
        """
        async with self._transition_lock:
            await self._set_active_server(server_id)

    async def _set_active_server(self, server_id: str | None) -> None:
        if server_id is not None:
            self.settings.require_connection(server_id)
            if self.manager.is_running():
                logger.info("Stopping network sharing while using a remote server")
                self.manager.stop()
                self.settings.sharing_was_active = True
            self.settings.set_active_connection(server_id)
            self._save()
            logger.info("Active remote server set to: %s", server_id)
            return

        restore = self.settings.sharing_was_active
        self.settings.set_active_connection(None)
        self.settings.sharing_was_active = False
        self._save()
        logger.info("Active remote server cleared")
        if not restore:
            return

        config = self.settings.server_config
        logger.info("Auto-restoring network sharing on port %d", config.port)
        try:
            model = self._current_model()
            await self.manager.start(
                config.port,
                config.password,
                self.server_name,
                model.path,
                model.name,
                model.engine,
            )
        except RemoteError as exc:
            logger.warning("Failed to auto-restore sharing: %s", exc)

    # Transcription

    async def transcribe_remote(
        self,
        server_id: str,
        audio_path: Path | str,
        source: TranscriptionSource = TranscriptionSource.LIVE_RECORDING,
    ) -> str:
        connection = self.settings.require_connection(server_id)
        try:
            audio = Path(audio_path).read_bytes()
        except OSError as exc:
            raise RemoteError(f"Failed to read audio file: {exc}") from exc
        client = self._client_factory(_descriptor(connection))
        return await client.transcribe(
            audio, audio_duration_ms=wav_duration_ms(audio), source=source
        )

    async def transcribe_with_active(
        self,
        audio_path: Path | str,
        source: TranscriptionSource = TranscriptionSource.LIVE_RECORDING,
    ) -> str:
        active = self.settings.get_active_connection()
        if active is None:
            raise RemoteError("No active remote server")
        return await self.transcribe_remote(active.id, audio_path, source)
