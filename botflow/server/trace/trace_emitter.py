"""
TraceEmitter — fan-out of preview trace events plus the step gate.

Manages two concerns:
1. Fan-out of trace events to registered listeners (Socket.IO, loggers, tests).
2. Step-pause gate: the simulator awaits `wait_for_step()` before each node;
   while step mode is on it parks until `resume()` is called.  The gate is
   built from asyncio.Event objects so it lives on uvicorn's event loop.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, List

from .trace_types import TraceEvent

logger = logging.getLogger(__name__)


class TraceEmitter:
    def __init__(self) -> None:
        self._listeners: List[Callable[[TraceEvent], None]] = []
        self._step_mode: bool = False
        self._step_events: List[asyncio.Event] = []

    # ── Listener registration ───────────────────────────────────────────────

    def on_trace(self, callback: Callable[[TraceEvent], None]) -> None:
        """Register a callback that receives every emitted trace event."""
        self._listeners.append(callback)

    # ── Emit ────────────────────────────────────────────────────────────────

    def fire(self, payload: TraceEvent) -> None:
        """Stamp the payload with a millisecond timestamp and broadcast it."""
        payload.setdefault("ts", _now_ms())
        for cb in self._listeners:
            try:
                cb(payload)
            except Exception:
                logger.exception("trace listener failed on %s", payload.get("type"))

    # ── Step-pause control ──────────────────────────────────────────────────

    @property
    def step_mode(self) -> bool:
        return self._step_mode

    @property
    def waiting(self) -> int:
        return len(self._step_events)

    def enable_step(self) -> None:
        self._step_mode = True

    def disable_step(self) -> None:
        """Disable step mode and release any waiting coroutines immediately."""
        self._step_mode = False
        self.resume()

    async def wait_for_step(self) -> None:
        if not self._step_mode:
            return
        event = asyncio.Event()
        self._step_events.append(event)
        await event.wait()

    def resume(self) -> None:
        """Release all coroutines currently waiting on a step gate."""
        for event in self._step_events:
            event.set()
        self._step_events.clear()


def _now_ms() -> int:
    return int(time.time() * 1000)
