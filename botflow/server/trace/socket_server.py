"""
Socket.IO fan-out of preview trace events.

Uses python-socketio in ASGI mode so it can wrap FastAPI.
`create_socket_app(app, tracer)` returns the composite ASGI application to
pass to uvicorn.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

import socketio

from .trace_emitter import TraceEmitter
from .trace_types import TraceEvent

logger = logging.getLogger(__name__)


def create_socket_server(tracer: TraceEmitter, cors_origins: Any = "*") -> socketio.AsyncServer:
    """Build an AsyncServer that forwards every trace event as a `trace` message."""
    sio = socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=cors_origins,
        logger=False,
        engineio_logger=False,
    )

    def _on_trace(event: TraceEvent) -> None:
        # TraceEmitter.fire() is synchronous; schedule the emit on the running loop.
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("no running loop, dropping trace %s", event.get("type"))
            return
        loop.create_task(sio.emit("trace", event))

    tracer.on_trace(_on_trace)

    @sio.event
    async def connect(sid: str, environ: dict) -> None:
        logger.info("trace client connected: %s", sid)

    @sio.event
    async def disconnect(sid: str) -> None:
        # A paused preview would otherwise wait for a client that is gone.
        logger.info("trace client disconnected: %s", sid)
        tracer.resume()

    return sio


def create_socket_app(fastapi_app: Any, tracer: TraceEmitter, cors_origins: Any = "*") -> socketio.ASGIApp:
    """Wrap *fastapi_app* inside a Socket.IO ASGI application."""
    if cors_origins == ["*"]:
        cors_origins = "*"
    sio = create_socket_server(tracer, cors_origins)
    return socketio.ASGIApp(sio, other_asgi_app=fastapi_app)
