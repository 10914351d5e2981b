"""Server configuration."""

import os
import socket
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_PORT = 47842
AUTH_HEADER = "X-VoiceTypr-Key"
API_PREFIX = "/api/v1"
DEFAULT_SERVER_NAME = "VoiceTypr Server"
DEFAULT_STORE_PATH = Path("~/.voicetypr/voicetypr-store.json")


def default_server_name() -> str:
    """Display name for this instance, derived from the hostname."""
    try:
        hostname = socket.gethostname()
    except OSError:
        return DEFAULT_SERVER_NAME
    return hostname or DEFAULT_SERVER_NAME


def _parse_env_int(value: str | None, default: int) -> int:
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_env_float(value: str | None, default: float) -> float:
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass
class ServerConfig:
    """Configuration for sharing and for the remote client."""

    port: int = DEFAULT_PORT
    password: str | None = None
    server_name: str = field(default_factory=default_server_name)
    store_path: Path = DEFAULT_STORE_PATH
    log_level: str = "INFO"
    status_timeout_seconds: float = 5.0

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Create configuration from environment variables."""
        defaults = cls()
        return cls(
            port=_parse_env_int(os.getenv("VOICETYPR_REMOTE_PORT"), defaults.port),
            password=os.getenv("VOICETYPR_REMOTE_PASSWORD") or None,
            server_name=os.getenv("VOICETYPR_REMOTE_SERVER_NAME")
            or defaults.server_name,
            store_path=Path(os.getenv("VOICETYPR_REMOTE_STORE") or defaults.store_path),
            log_level=os.getenv("VOICETYPR_REMOTE_LOG_LEVEL", defaults.log_level).upper(),
            status_timeout_seconds=_parse_env_float(
                os.getenv("VOICETYPR_REMOTE_STATUS_TIMEOUT"),
                defaults.status_timeout_seconds,
            ),
        )

    @property
    def resolved_store_path(self) -> Path:
        return Path(self.store_path).expanduser()
