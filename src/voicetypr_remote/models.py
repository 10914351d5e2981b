"""Pydantic models for the sharing API request and response bodies."""

from pydantic import BaseModel, ConfigDict, Field


class StatusResponse(BaseModel):
    """Response for GET /api/v1/status."""

    status: str
    version: str
    model: str
    name: str


class TranscribeResponse(BaseModel):
    """Response for POST /api/v1/transcribe."""

    text: str
    duration_ms: int
    model: str


class ErrorResponse(BaseModel):
    """Error body shared by both routes."""

    error: str


class SharingStatus(BaseModel):
    """Snapshot of the local sharing server."""

    model_config = ConfigDict(protected_namespaces=())

    enabled: bool = False
    port: int | None = None
    model_name: str | None = None
    server_name: str | None = None
    active_connections: int = 0
    password: str | None = None
    bound_addresses: list[str] = Field(default_factory=list)
