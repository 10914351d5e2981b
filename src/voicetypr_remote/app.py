"""FastAPI application factory."""

from fastapi import FastAPI

from .bridge import TranscriptionBridge
from .routes import ApiError, api_error_handler, router
from .state import RequestTracker
from .version import __version__


class _TrackRequests:
    """ASGI middleware counting in-flight HTTP requests."""

    def __init__(self, app, tracker: RequestTracker):
        self.app = app
        self.tracker = tracker

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        with self.tracker:
            await self.app(scope, receive, send)


def create_app(
    bridge: TranscriptionBridge, tracker: RequestTracker | None = None
) -> FastAPI:
    """Create the sharing API application.

    Args:
        bridge: Transcription bridge serving both routes.
        tracker: Optional counter of in-flight requests, shared by every
            listener of a sharing session.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="VoiceTypr Remote Transcription",
        description="Shares this machine's speech recognition model over the LAN",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    app.state.bridge = bridge
    app.state.tracker = tracker or RequestTracker()
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_middleware(_TrackRequests, tracker=app.state.tracker)
    app.include_router(router)

    return app
