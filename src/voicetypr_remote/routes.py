"""API route handlers for the sharing server."""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from .bridge import TranscriptionBridge
from .config import API_PREFIX, AUTH_HEADER
from .models import ErrorResponse, StatusResponse, TranscribeResponse
from .state import ServerIdentity
from .version import __version__

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Rejection rendered as ``{"error": code}`` with the given status."""

    def __init__(self, status_code: int, code: str):
        super().__init__(code)
        self.status_code = status_code
        self.code = code


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.code).model_dump(),
    )


def _get_bridge(request: Request) -> TranscriptionBridge:
    return request.app.state.bridge


def _ensure_authorized(request: Request) -> None:
    bridge = _get_bridge(request)
    password = bridge.get_password()
    if password is None:
        return
    identity = ServerIdentity(bridge.get_server_name(), password)
    if not identity.validate_password(request.headers.get(AUTH_HEADER)):
        logger.warning(
            "%s %s rejected: authentication failed on '%s'",
            request.method,
            request.url.path,
            identity.server_name,
        )
        raise ApiError(401, "unauthorized")


router = APIRouter(prefix=API_PREFIX, dependencies=[Depends(_ensure_authorized)])


@router.get("/status", response_model=StatusResponse)
async def get_status(request: Request):
    """Report the served model and this server's display name."""
    bridge = _get_bridge(request)
    response = StatusResponse(
        status="ok",
        version=__version__,
        model=bridge.get_model_name(),
        name=bridge.get_server_name(),
    )
    logger.info(
        "Status response sent: model='%s', server='%s'", response.model, response.name
    )
    return response


@router.post(
    "/transcribe",
    response_model=TranscribeResponse,
    responses={415: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def transcribe(request: Request):
    """Transcribe the raw audio request body with the served model."""
    bridge = _get_bridge(request)
    content_type = request.headers.get("content-type", "")
    if not content_type.startswith("audio/"):
        logger.warning(
            "Transcription rejected: unsupported content type '%s'", content_type
        )
        raise ApiError(415, "unsupported_media_type")

    body = await request.body()
    logger.info(
        "Transcription request on '%s': %.1f KB audio, content-type='%s'",
        bridge.get_server_name(),
        len(body) / 1024,
        content_type,
    )

    try:
        result = await bridge.transcribe(body)
    except Exception as exc:
        logger.warning(
            "Transcription failed on '%s': %s", bridge.get_server_name(), exc
        )
        return JSONResponse(
            status_code=500, content=ErrorResponse(error=str(exc)).model_dump()
        )

    return result
