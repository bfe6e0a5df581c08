"""
BotFlow Compiler — Intermediate Representation
===============================================
BotIR is a decoupled snapshot of a GraphStore, resolved and checked:

    GraphStore  →  [extractor]  →  BotIR  →  [emitter]  →  Python source str

Design goals:
  - No live references into the editing session (plain dicts and dataclasses).
  - Everything the emitter needs is already resolved: entry node, per-node
    outputs, and the callback routes of button-driven nodes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from botflow.core.NodeCatalog import CallbackRoute
from botflow.core.Types import NodeKind


# ── Node ─────────────────────────────────────────────────────────────────────

@dataclass
class IRNode:
    id: str
    kind: NodeKind
    config: Dict[str, Any]
    outputs: Dict[str, Optional[str]] = field(default_factory=dict)
    routes: List[CallbackRoute] = field(default_factory=list)

    def to_table_entry(self) -> Dict[str, Any]:
        """The node's row in the compiled BLOCKS_GRAPH table."""
        return {
            "id":        self.id,
            "type":      self.kind.value,
            "config":    self.config,
            "outputs":   dict(self.outputs),
            # Routes cross the runtime boundary as plain tag -> port strings.
            "callbacks": {route.tag: route.port for route in self.routes},
        }


# ── Bot ──────────────────────────────────────────────────────────────────────

@dataclass
class BotIR:
    name: str
    token: str
    entry_id: Optional[str]
    start_message: str = ""
    # Every node except the start node, in graph order.
    nodes: Dict[str, IRNode] = field(default_factory=dict)

    def kinds(self) -> List[NodeKind]:
        """Node kinds present, in first-seen order."""
        seen: List[NodeKind] = []
        for node in self.nodes.values():
            if node.kind not in seen:
                seen.append(node.kind)
        return seen

    def table(self) -> Dict[str, Dict[str, Any]]:
        return {node_id: node.to_table_entry() for node_id, node in self.nodes.items()}


__all__ = ["BotIR", "IRNode"]
