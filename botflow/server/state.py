"""
EditorState — everything one editor session owns.

The FastAPI app keeps a single instance on `app.state.editor`; routes reach it
through the `get_editor` dependency.  A fresh state holds just a start node so
the UI has something to display on first load.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

from botflow.compiler import compile_bot, program_filename
from botflow.config import Settings
from botflow.core.Completion import mock_completion, request_completion
from botflow.core.FlowGraph import GraphStore
from botflow.core.History import HistoryStore
from botflow.core.Simulator import Simulator
from botflow.core.Snapshot import deserialize, serialize
from botflow.core.Types import NodeKind
from botflow.server.trace.trace_emitter import TraceEmitter

logger = logging.getLogger(__name__)


class EditorState:
    """Holds the graph, its undo history, the preview simulator and its tracer."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or Settings()
        self.graph = GraphStore()
        self.history = HistoryStore(self.settings.history_size)
        self.tracer = TraceEmitter()
        llm = request_completion if self.settings.preview_llm else mock_completion
        self.simulator = Simulator(self.graph, llm=llm, tracer=self.tracer)
        # One preview event at a time; step/resume bypasses it.
        self.preview_lock = asyncio.Lock()

        self.graph.create_node(NodeKind.START, 100, 100)
        self.history.record(self.graph)

    # ── Graph helpers ───────────────────────────────────────────────────────

    def snapshot(self) -> Dict[str, Any]:
        return serialize(self.graph)

    def block(self, node_id: str) -> Dict[str, Any]:
        return self.snapshot()["blocks"][node_id]

    def commit(self) -> None:
        """Record the current graph as a new undo step."""
        self.history.record(self.graph)

    def load(self, data: Dict[str, Any]) -> None:
        """Replace the graph with a snapshot.  Raises SchemaError on bad structure."""
        deserialize(data, self.graph)
        self.simulator.reset()
        self.commit()
        logger.info("loaded snapshot: %d blocks, %d connections", len(self.graph), len(self.graph.edges))

    def undo(self) -> bool:
        return self.history.undo(self.graph)

    def redo(self) -> bool:
        return self.history.redo(self.graph)

    def history_status(self) -> Dict[str, bool]:
        return {"canUndo": self.history.can_undo, "canRedo": self.history.can_redo}

    # ── Compile ─────────────────────────────────────────────────────────────

    def compile(self, bot_name: Optional[str] = None, bot_token: Optional[str] = None) -> Tuple[str, str]:
        """Returns (filename, source).  Raises CompileError."""
        name = bot_name or self.settings.bot_name
        source = compile_bot(self.graph, bot_name=name, bot_token=bot_token or self.settings.bot_token)
        return program_filename(name), source

    # ── Preview ─────────────────────────────────────────────────────────────

    def preview_state(self) -> Dict[str, Any]:
        sim = self.simulator
        return {
            "transcript": [entry.to_dict() for entry in sim.transcript],
            "current":    sim.current,
            "waiting":    sim.waiting,
            "variables":  dict(sim.variables),
            "cart":       dict(sim.cart),
        }
