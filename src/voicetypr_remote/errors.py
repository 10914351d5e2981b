"""Exception hierarchy for sharing, the remote client and the registry."""

from __future__ import annotations


class RemoteError(Exception):
    """Base error for the remote transcription subsystem."""


class ServerStartError(RemoteError):
    """The sharing server could not be started."""

    def __init__(self, address: str, port: int, reason: str):
        super().__init__(f"Failed to bind {address}:{port}: {reason}")
        self.address = address
        self.port = port
        self.reason = reason


class TranscriptionError(RemoteError):
    """The local engine failed to produce a transcript."""


class ConnectionFailedError(RemoteError):
    """The remote server could not be reached or did not answer in time."""

    def __init__(self, target: str, reason: str, *, timed_out: bool = False):
        prefix = "Timed out waiting for" if timed_out else "Failed to connect to"
        super().__init__(f"{prefix} {target}: {reason}")
        self.target = target
        self.reason = reason
        self.timed_out = timed_out


class AuthenticationError(RemoteError):
    """The remote server rejected the shared secret."""

    def __init__(self, target: str):
        super().__init__(f"Authentication failed for {target}")
        self.target = target


class ServerError(RemoteError):
    """The remote server answered with an unexpected status code."""

    def __init__(self, target: str, status_code: int, message: str | None = None):
        detail = f"Server error {status_code} from {target}"
        if message:
            detail = f"{detail}: {message}"
        super().__init__(detail)
        self.target = target
        self.status_code = status_code
        self.message = message


class ProtocolViolationError(RemoteError):
    """The remote server answered 200 with a body this client cannot use."""


class UnknownConnectionError(RemoteError):
    """No saved connection exists with the requested id."""

    def __init__(self, connection_id: str):
        super().__init__(f"Server '{connection_id}' not found")
        self.connection_id = connection_id
