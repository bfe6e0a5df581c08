"""
BotFlow editor server — FastAPI + Socket.IO.

Start with:
    python -m botflow.server.main

Or via uvicorn directly:
    uvicorn botflow.server.main:create_asgi_app --factory --port 3001 --reload
"""
from __future__ import annotations

import logging
from typing import Optional

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from botflow import __version__
from botflow.config import Settings
from botflow.server.routes.graph_routes import router
from botflow.server.state import EditorState
from botflow.server.trace.socket_server import create_socket_app

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI app with a fresh EditorState on `app.state.editor`."""
    settings = settings or Settings.from_env()

    app = FastAPI(title="BotFlow API", version=__version__)
    app.state.settings = settings
    app.state.editor = EditorState(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app


def create_asgi_app(settings: Optional[Settings] = None) -> socketio.ASGIApp:
    """
    Top-level ASGI app passed to uvicorn.  Socket.IO connections are handled
    at the root; all other requests are forwarded to the inner FastAPI app.
    """
    settings = settings or Settings.from_env()
    app = create_app(settings)
    return create_socket_app(app, app.state.editor.tracer, settings.cors_origins)


def run() -> None:
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = Settings.from_env()
    logger.info("starting BotFlow editor on %s:%d", settings.host, settings.port)
    uvicorn.run(
        "botflow.server.main:create_asgi_app",
        factory=True,
        host=settings.host,
        port=settings.port,
    )


if __name__ == "__main__":
    run()
