"""Lifecycle of the sharing server.

One uvicorn server runs per bound address, all serving the same FastAPI app,
model state and transcription bridge. ``RemoteServerManager`` owns at most one
such group at a time through a ``ServerHandle``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import uvicorn

from .app import create_app
from .bridge import EngineTranscriptionBridge, TranscriptionBridge
from .errors import ServerStartError
from .models import SharingStatus
from .network import LOOPBACK_ADDRESS, list_bind_addresses
from .state import RequestTracker, ServerIdentity, SharedModelState

logger = logging.getLogger(__name__)

STARTUP_TIMEOUT_SECONDS = 5.0
RESTART_GRACE_SECONDS = 2.0
_BACKLOG = 128

BridgeFactory = Callable[[ServerIdentity, SharedModelState], TranscriptionBridge]


class _ListenerServer(uvicorn.Server):
    """uvicorn server that leaves process signal handling to its owner."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self) -> None:
        pass


def _bind_socket(address: str, port: int) -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((address, port))
        sock.listen(_BACKLOG)
    except OSError:
        sock.close()
        raise
    return sock


def _describe_failure(task: asyncio.Task) -> str:
    if task.cancelled():
        return "listener cancelled"
    exc = task.exception()
    return str(exc) if exc else "listener exited during startup"


@dataclass
class Listener:
    address: str
    server: uvicorn.Server
    task: asyncio.Task


class ServerHandle:
    """Shutdown handles of every listener of one sharing session."""

    def __init__(self, port: int, listeners: list[Listener]):
        self.port = port
        self._listeners = listeners
        self._stopped = False

    @property
    def addresses(self) -> list[str]:
        return [listener.address for listener in self._listeners]

    @property
    def closed(self) -> bool:
        return all(listener.task.done() for listener in self._listeners)

    def stop(self) -> None:
        """Signal every listener to exit. Only the first call has an effect."""
        if self._stopped:
            return
        self._stopped = True
        for listener in self._listeners:
            listener.server.should_exit = True
        logger.info(
            "Shutdown signal sent to %d listener(s) on port %d",
            len(self._listeners),
            self.port,
        )

    async def wait_started(self, timeout: float = STARTUP_TIMEOUT_SECONDS) -> None:
        """Wait for the listeners to accept connections.

        A non-loopback listener that dies during startup is dropped; the
        loopback listener failing or not starting in time is fatal.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            for listener in list(self._listeners):
                if listener.server.started or not listener.task.done():
                    continue
                reason = _describe_failure(listener.task)
                if listener.address == LOOPBACK_ADDRESS:
                    raise ServerStartError(listener.address, self.port, reason)
                logger.warning(
                    "Skipping %s:%d, listener failed: %s",
                    listener.address,
                    self.port,
                    reason,
                )
                self._listeners.remove(listener)

            pending = [
                listener for listener in self._listeners if not listener.server.started
            ]
            if not pending:
                return
            if loop.time() >= deadline:
                for listener in pending:
                    if listener.address == LOOPBACK_ADDRESS:
                        raise ServerStartError(
                            listener.address, self.port, "listener did not start in time"
                        )
                    logger.warning(
                        "Listener on %s:%d still starting after %.1fs",
                        listener.address,
                        self.port,
                        timeout,
                    )
                return
            await asyncio.sleep(0.01)

    async def wait_closed(self, timeout: float | None = None) -> bool:
        """Wait for the listener tasks to finish; True if all did."""
        tasks = [
            listener.task for listener in self._listeners if not listener.task.done()
        ]
        if not tasks:
            return True
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        return not pending

    def __del__(self) -> None:
        self.stop()


def _log_listener_exit(address: str, port: int, task: asyncio.Task) -> None:
    if task.cancelled():
        logger.info("Listener on %s:%d cancelled", address, port)
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Listener on %s:%d failed: %s", address, port, exc)
    else:
        logger.info("Listener on %s:%d stopped", address, port)


class RemoteServerManager:
    """Starts, stops and hot-swaps the model of the local sharing server."""

    def __init__(
        self,
        *,
        bind_addresses: Callable[[], list[str]] = list_bind_addresses,
        bridge_factory: BridgeFactory = EngineTranscriptionBridge,
        startup_timeout: float = STARTUP_TIMEOUT_SECONDS,
    ):
        self._bind_addresses = bind_addresses
        self._bridge_factory = bridge_factory
        self._startup_timeout = startup_timeout
        self._handle: ServerHandle | None = None
        self._identity: ServerIdentity | None = None
        self._state: SharedModelState | None = None
        self._tracker: RequestTracker | None = None
        self._retired: list[ServerHandle] = []

    def is_running(self) -> bool:
        return self._handle is not None

    def get_port(self) -> int | None:
        return self._handle.port if self._handle else None

    def get_bound_addresses(self) -> list[str]:
        return self._handle.addresses if self._handle else []

    @property
    def shared_state(self) -> SharedModelState | None:
        return self._state

    async def start(
        self,
        port: int,
        password: str | None,
        server_name: str,
        model_path: Path | str | None,
        model_name: str,
        engine: str = "whisper",
    ) -> None:
        """Start sharing ``model_name`` on every local interface.

        Any server already running is stopped first. Raises
        ``ServerStartError`` if the loopback address cannot be bound; other
        interfaces that fail to bind are skipped.
        """
        if self._handle is not None:
            self.stop()
        await self._wait_retired()

        identity = ServerIdentity(server_name=server_name, password=password)
        state = SharedModelState(model_name, model_path, engine)
        tracker = RequestTracker()
        app = create_app(self._bridge_factory(identity, state), tracker)

        bound: list[tuple[str, socket.socket]] = []
        for address in self._bind_addresses():
            try:
                sock = _bind_socket(address, port)
            except OSError as exc:
                if address == LOOPBACK_ADDRESS:
                    for _, other in bound:
                        other.close()
                    raise ServerStartError(address, port, str(exc)) from exc
                logger.warning("Skipping %s:%d, bind failed: %s", address, port, exc)
                continue
            bound.append((address, sock))

        listeners = []
        for address, sock in bound:
            config = uvicorn.Config(
                app,
                host=address,
                port=port,
                log_config=None,
                access_log=False,
                lifespan="off",
            )
            server = _ListenerServer(config)
            task = asyncio.create_task(
                server.serve(sockets=[sock]), name=f"remote-listener-{address}:{port}"
            )
            task.add_done_callback(
                lambda done, address=address: _log_listener_exit(address, port, done)
            )
            listeners.append(Listener(address=address, server=server, task=task))

        handle = ServerHandle(port, listeners)
        try:
            await handle.wait_started(self._startup_timeout)
        except ServerStartError:
            handle.stop()
            self._retired.append(handle)
            raise

        self._handle = handle
        self._identity = identity
        self._state = state
        self._tracker = tracker
        logger.info(
            "Server STARTED on port %d as '%s' with model '%s' (%s), listening on %s",
            port,
            server_name,
            model_name,
            engine,
            ", ".join(handle.addresses),
        )

    def stop(self) -> None:
        """Signal all listeners to exit; a no-op when not running.

        Does not wait for in-flight requests to drain.
        """
        handle = self._handle
        if handle is None:
            return
        self._handle = None
        self._identity = None
        self._state = None
        self._tracker = None
        handle.stop()
        self._retired = [old for old in self._retired if not old.closed] + [handle]
        logger.info("Server STOPPED (was on port %d)", handle.port)

    async def aclose(self, timeout: float = RESTART_GRACE_SECONDS) -> None:
        """Stop and wait (bounded) for the listeners to exit."""
        self.stop()
        await self._wait_retired(timeout)

    async def _wait_retired(self, timeout: float = RESTART_GRACE_SECONDS) -> None:
        retired, self._retired = self._retired, []
        for handle in retired:
            if not await handle.wait_closed(timeout):
                logger.warning("Listeners on port %d still closing", handle.port)

    def update_model(
        self, model_path: Path | str | None, model_name: str, engine: str
    ) -> None:
        """Serve a different model without restarting the listeners."""
        if self._state is None:
            logger.debug("Not sharing; ignoring model update to '%s'", model_name)
            return
        self._state.update(model_name, model_path, engine)
        logger.info("Model dynamically updated to '%s' (engine: %s)", model_name, engine)

    def get_status(self) -> SharingStatus:
        if self._handle is None or self._identity is None or self._state is None:
            return SharingStatus(enabled=False)
        return SharingStatus(
            enabled=True,
            port=self._handle.port,
            model_name=self._state.model_name,
            server_name=self._identity.server_name,
            active_connections=self._tracker.active if self._tracker else 0,
            password=self._identity.password,
            bound_addresses=self._handle.addresses,
        )
