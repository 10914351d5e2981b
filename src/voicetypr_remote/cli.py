"""CLI entry point for sharing and remote transcription."""

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Annotated, NoReturn, Optional

import typer

from .backends import list_engine_descriptors
from .client import (
    ConnectionDescriptor,
    RemoteClient,
    TranscriptionSource,
    wav_duration_ms,
)
from .config import DEFAULT_PORT, ServerConfig
from .errors import RemoteError
from .lifecycle import RemoteServerManager
from .network import list_local_ips
from .service import RemoteService
from .store import JsonFileStore

app = typer.Typer(
    name="voicetypr-remote",
    help="Share a speech recognition model on the LAN and transcribe remotely.",
)
servers_app = typer.Typer(help="Manage saved remote servers.")
app.add_typer(servers_app, name="servers")


class Source(str, Enum):
    live = "live"
    upload = "upload"

    def to_transcription_source(self) -> TranscriptionSource:
        if self is Source.upload:
            return TranscriptionSource.UPLOAD
        return TranscriptionSource.LIVE_RECORDING


def _fail(exc: Exception) -> NoReturn:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


def _config(ctx: typer.Context) -> ServerConfig:
    return ctx.obj if isinstance(ctx.obj, ServerConfig) else ServerConfig.from_env()


def _service(ctx: typer.Context) -> RemoteService:
    config = _config(ctx)
    return RemoteService(
        JsonFileStore(config.resolved_store_path),
        lambda: None,
        server_name=config.server_name,
        status_timeout=config.status_timeout_seconds,
    )


@app.callback()
def configure(
    ctx: typer.Context,
    log_level: Annotated[
        Optional[str], typer.Option("--log-level", help="Logging level")
    ] = None,
    store: Annotated[
        Optional[Path], typer.Option("--store", help="Settings store file")
    ] = None,
):
    """Load configuration from the environment and set up logging."""
    config = ServerConfig.from_env()
    if log_level:
        config.log_level = log_level.upper()
    if store is not None:
        config.store_path = store
    level = logging.getLevelName(config.log_level)
    logging.basicConfig(
        level=level if isinstance(level, int) else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = config


async def _serve_until_interrupted(
    manager: RemoteServerManager,
    port: int,
    password: Optional[str],
    server_name: str,
    model_path: Optional[Path],
    model: str,
    engine: str,
) -> None:
    await manager.start(port, password, server_name, model_path, model, engine)
    status = manager.get_status()
    typer.echo(f"Sharing '{model}' ({engine}) as '{server_name}' on port {port}")
    for address in list_local_ips():
        typer.echo(f"  {address}")
    if status.password:
        typer.echo("  Password protected")
    try:
        await asyncio.Event().wait()
    finally:
        await manager.aclose()


@app.command()
def serve(
    ctx: typer.Context,
    model: Annotated[
        str, typer.Option("--model", "-m", help="Model to share")
    ] = "base.en",
    model_path: Annotated[
        Optional[Path], typer.Option("--model-path", help="Local model file")
    ] = None,
    engine: Annotated[
        str, typer.Option("--engine", "-e", help="Engine serving the model")
    ] = "whisper",
    port: Annotated[Optional[int], typer.Option("--port", "-p", help="Port")] = None,
    password: Annotated[
        Optional[str], typer.Option("--password", help="Shared secret")
    ] = None,
    name: Annotated[
        Optional[str], typer.Option("--name", help="Server display name")
    ] = None,
):
    """Share a model on every local interface until interrupted."""
    config = _config(ctx)
    descriptors = list_engine_descriptors()
    if engine not in [descriptor.id for descriptor in descriptors]:
        available = ", ".join(
            f"{descriptor.id} ({descriptor.display_name})" for descriptor in descriptors
        )
        _fail(RemoteError(f"Unsupported engine '{engine}', available: {available}"))
    try:
        asyncio.run(
            _serve_until_interrupted(
                RemoteServerManager(),
                port if port is not None else config.port,
                password if password is not None else config.password,
                name or config.server_name,
                model_path,
                model,
                engine,
            )
        )
    except KeyboardInterrupt:
        typer.echo("Sharing stopped")
    except RemoteError as exc:
        _fail(exc)


@app.command()
def probe(
    ctx: typer.Context,
    host: Annotated[str, typer.Argument(help="Server host or IP")],
    port: Annotated[int, typer.Option("--port", "-p")] = DEFAULT_PORT,
    password: Annotated[Optional[str], typer.Option("--password")] = None,
):
    """Check that a remote server is reachable and show its model."""
    config = _config(ctx)
    client = RemoteClient(
        ConnectionDescriptor(host, port, password),
        status_timeout=config.status_timeout_seconds,
    )
    try:
        status = asyncio.run(client.get_status())
    except RemoteError as exc:
        _fail(exc)
    typer.echo(f"{status.name}: {status.model} (version {status.version})")


@app.command()
def transcribe(
    ctx: typer.Context,
    audio: Annotated[
        Path, typer.Argument(help="Audio file", exists=True, dir_okay=False)
    ],
    host: Annotated[
        Optional[str],
        typer.Option("--host", help="Server host; defaults to the active saved server"),
    ] = None,
    port: Annotated[int, typer.Option("--port", "-p")] = DEFAULT_PORT,
    password: Annotated[Optional[str], typer.Option("--password")] = None,
    source: Annotated[Source, typer.Option("--source", "-s")] = Source.live,
):
    """Transcribe an audio file on a remote server."""
    transcription_source = source.to_transcription_source()
    try:
        if host is None:
            text = asyncio.run(
                _service(ctx).transcribe_with_active(audio, transcription_source)
            )
        else:
            data = audio.read_bytes()
            client = RemoteClient(ConnectionDescriptor(host, port, password))
            text = asyncio.run(
                client.transcribe(
                    data,
                    audio_duration_ms=wav_duration_ms(data),
                    source=transcription_source,
                )
            )
    except RemoteError as exc:
        _fail(exc)
    typer.echo(text)


@servers_app.command("list")
def list_servers(ctx: typer.Context):
    """List saved servers; the active one is marked with '*'."""
    service = _service(ctx)
    connections = service.list_servers()
    if not connections:
        typer.echo("No saved servers")
        return
    active_id = service.settings.active_connection_id
    for connection in connections:
        marker = "*" if connection.id == active_id else " "
        typer.echo(
            f"{marker} {connection.id}  {connection.label()}  "
            f"{connection.host}:{connection.port}  {connection.status.value}  "
            f"{connection.cached_model or '-'}"
        )


@servers_app.command("add")
def add_server(
    ctx: typer.Context,
    host: Annotated[str, typer.Argument(help="Server host or IP")],
    port: Annotated[int, typer.Option("--port", "-p")] = DEFAULT_PORT,
    password: Annotated[Optional[str], typer.Option("--password")] = None,
    name: Annotated[Optional[str], typer.Option("--name")] = None,
):
    """Save a remote server."""
    connection = asyncio.run(_service(ctx).add_server(host, port, password, name))
    typer.echo(
        f"Added {connection.id} ({connection.label()}): {connection.status.value}"
    )


@servers_app.command("remove")
def remove_server(ctx: typer.Context, server_id: Annotated[str, typer.Argument()]):
    """Delete a saved server."""
    try:
        connection = _service(ctx).remove_server(server_id)
    except RemoteError as exc:
        _fail(exc)
    typer.echo(f"Removed {connection.id} ({connection.label()})")


@servers_app.command("use")
def use_server(
    ctx: typer.Context,
    server_id: Annotated[
        Optional[str], typer.Argument(help="Server id; omit to transcribe locally")
    ] = None,
):
    """Select the server used for transcription."""
    try:
        asyncio.run(_service(ctx).set_active_server(server_id))
    except RemoteError as exc:
        _fail(exc)
    typer.echo(f"Active server: {server_id}" if server_id else "Active server cleared")


@servers_app.command("refresh")
def refresh_servers(
    ctx: typer.Context,
    server_id: Annotated[
        Optional[str], typer.Argument(help="Server id; omit for all")
    ] = None,
):
    """Probe saved servers and record their status."""
    service = _service(ctx)
    try:
        if server_id is None:
            connections = asyncio.run(service.refresh_all())
        else:
            connections = [asyncio.run(service.refresh_server(server_id))]
    except RemoteError as exc:
        _fail(exc)
    for connection in connections:
        typer.echo(
            f"{connection.id}  {connection.label()}  {connection.status.value}  "
            f"{connection.cached_model or '-'}"
        )


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
