"""
BotFlow Compiler — Graph Extractor
===================================
Walks a GraphStore and produces a BotIR, failing fast on anything the
compiled program could not resolve at runtime:

  - no start node, or more than one
  - an edge whose endpoint node is missing
  - an edge on a port its node does not have
  - an edge into the start node
  - an output slot pointing at a missing node

No partial IR is ever returned.
"""

from __future__ import annotations

import logging
from typing import Optional

from botflow.core.FlowGraph import GraphStore
from botflow.core.NodeCatalog import available_ports, callback_routes
from botflow.core.Types import DEFAULT_PORT, NodeKind

from .ir import BotIR, IRNode

logger = logging.getLogger(__name__)


class CompileError(ValueError):
    """Raised when a graph cannot be compiled.  Carries the offending node/edge id."""

    def __init__(self, message: str, *, node_id: Optional[str] = None, edge_id: Optional[str] = None):
        super().__init__(message)
        self.node_id = node_id
        self.edge_id = edge_id


def extract(graph: GraphStore, bot_name: str = "MyBot", bot_token: str = "YOUR_BOT_TOKEN") -> BotIR:
    with graph.lock:
        starts = graph.start_nodes()
        if not starts:
            raise CompileError("The flow has no start node")
        if len(starts) > 1:
            raise CompileError(
                f"The flow has {len(starts)} start nodes; exactly one is required",
                node_id=starts[1].id,
            )
        start = starts[0]

        # ── Edges ───────────────────────────────────────────────────────────
        for edge in graph.edges:
            source = graph.get_node(edge.from_node_id)
            target = graph.get_node(edge.to_node_id)
            if source is None:
                raise CompileError(
                    f"Connection {edge.id} starts at missing node '{edge.from_node_id}'",
                    edge_id=edge.id,
                )
            if target is None:
                raise CompileError(
                    f"Connection {edge.id} points at missing node '{edge.to_node_id}'",
                    edge_id=edge.id,
                )
            if edge.from_port not in available_ports(source.kind, source.config):
                raise CompileError(
                    f"Connection {edge.id} uses port '{edge.from_port}' which node "
                    f"{source.id} ({source.kind.value}) does not have",
                    node_id=source.id,
                    edge_id=edge.id,
                )
            if target.kind is NodeKind.START:
                raise CompileError(
                    f"Connection {edge.id} points into the start node",
                    node_id=target.id,
                    edge_id=edge.id,
                )

        # ── Nodes ───────────────────────────────────────────────────────────
        nodes = {}
        for node in graph.nodes.values():
            for port, target_id in node.outputs.items():
                if target_id is not None and target_id not in graph:
                    raise CompileError(
                        f"Port '{port}' of node {node.id} points at missing node '{target_id}'",
                        node_id=node.id,
                    )
            if node is start:
                continue
            nodes[node.id] = IRNode(
                id=node.id,
                kind=node.kind,
                config=node.config.model_dump(mode="json"),
                outputs=dict(node.outputs),
                routes=callback_routes(node.id, node.kind, node.config),
            )

        entry_id = start.outputs.get(DEFAULT_PORT)
        if entry_id is None:
            logger.warning("start node %s is not connected; the bot will only greet", start.id)

        return BotIR(
            name=bot_name,
            token=bot_token,
            entry_id=entry_id,
            start_message=start.config.message,
            nodes=nodes,
        )


__all__ = ["CompileError", "extract"]
