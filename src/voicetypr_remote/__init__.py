"""Share a local speech recognition model over the LAN."""

from .app import create_app
from .client import (
    ConnectionDescriptor,
    RemoteClient,
    TranscriptionSource,
    calculate_timeout_ms,
)
from .config import ServerConfig
from .lifecycle import RemoteServerManager
from .service import CurrentModel, RemoteService
from .settings import ConnectionStatus, RemoteSettings, SavedConnection
from .version import __version__

__all__ = [
    "ConnectionDescriptor",
    "ConnectionStatus",
    "CurrentModel",
    "RemoteClient",
    "RemoteServerManager",
    "RemoteService",
    "RemoteSettings",
    "SavedConnection",
    "ServerConfig",
    "TranscriptionSource",
    "__version__",
    "calculate_timeout_ms",
    "create_app",
]
