"""
GraphStore — the flow graph an editing session owns.

Holds nodes, edges and the id counter, and enforces the two structural
invariants on every edit:

  - a node has at most one inbound edge (its `input` slot)
  - an output port carries at most one edge

Edits that would break an invariant return a `Rejection` and leave the graph
untouched.  All mutations run under one re-entrant lock.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from .GraphPrimitives import Edge, FlowNode, Rejection
from .NodeCatalog import available_ports, default_config
from .NodeConfig import BlockConfig
from .Normalizer import normalize_node
from .Types import NodeKind

logger = logging.getLogger(__name__)

NodeListener = Callable[[FlowNode], None]
EdgeListener = Callable[[str, Edge], None]        # ("added" | "removed", edge)
ConfigListener = Callable[[FlowNode, str], None]  # (node, field)


class GraphStore:

    def __init__(self) -> None:
        self.nodes: Dict[str, FlowNode] = {}
        self.edges: List[Edge] = []
        self.block_counter: int = 0
        self.edge_counter: int = 0
        self.lock = threading.RLock()

        self._node_listeners: List[NodeListener] = []
        self._edge_listeners: List[EdgeListener] = []
        self._config_listeners: List[ConfigListener] = []

    # ── Listener registration ───────────────────────────────────────────────

    def on_node_created(self, callback: NodeListener) -> None:
        self._node_listeners.append(callback)

    def on_edge_changed(self, callback: EdgeListener) -> None:
        self._edge_listeners.append(callback)

    def on_config_changed(self, callback: ConfigListener) -> None:
        self._config_listeners.append(callback)

    def _notify(self, listeners: List[Callable[..., None]], *args: Any) -> None:
        for cb in listeners:
            try:
                cb(*args)
            except Exception:
                logger.exception("graph listener %r failed", cb)

    # ── Queries ─────────────────────────────────────────────────────────────

    def get_node(self, node_id: str) -> Optional[FlowNode]:
        return self.nodes.get(node_id)

    def get_edge(self, edge_id: str) -> Optional[Edge]:
        for edge in self.edges:
            if edge.id == edge_id:
                return edge
        return None

    def edge_on_port(self, node_id: str, port: str) -> Optional[Edge]:
        for edge in self.edges:
            if edge.from_node_id == node_id and edge.from_port == port:
                return edge
        return None

    def incoming_edge(self, node_id: str) -> Optional[Edge]:
        for edge in self.edges:
            if edge.to_node_id == node_id:
                return edge
        return None

    def edges_touching(self, node_id: str) -> List[Edge]:
        return [e for e in self.edges if node_id in (e.from_node_id, e.to_node_id)]

    def ports(self, node_id: str) -> tuple:
        node = self.nodes[node_id]
        return available_ports(node.kind, node.config)

    def start_nodes(self) -> List[FlowNode]:
        return [n for n in self.nodes.values() if n.kind is NodeKind.START]

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes

    # ── Nodes ───────────────────────────────────────────────────────────────

    def create_node(self,
                    kind: Union[NodeKind, str],
                    x: float = 0,
                    y: float = 0,
                    *,
                    node_id: Optional[str] = None,
                    config: Optional[BlockConfig] = None) -> str:
        """
        Create a node with a fresh `block_{n}` id and the kind's default config.

        `node_id` and `config` are only passed when restoring a snapshot.

        Raises:
            UnknownNodeKindError: `kind` is not a NodeKind.
            ValueError:           `node_id` is already taken.
        """
        kind = NodeKind.parse(kind)
        with self.lock:
            if node_id is None:
                self.block_counter += 1
                node_id = f"block_{self.block_counter}"
                while node_id in self.nodes:
                    self.block_counter += 1
                    node_id = f"block_{self.block_counter}"
            elif node_id in self.nodes:
                raise ValueError(f"Node with id '{node_id}' already exists")

            if config is None:
                config = default_config(kind)
            node = FlowNode(node_id, kind, config, x, y, available_ports(kind, config))
            self.nodes[node_id] = node

        logger.debug("created %r", node)
        self._notify(self._node_listeners, node)
        return node_id

    def move_node(self, node_id: str, x: float, y: float) -> Optional[Rejection]:
        with self.lock:
            node = self.nodes.get(node_id)
            if node is None:
                return Rejection(f"Node '{node_id}' not found")
            node.x, node.y = x, y
        return None

    def update_field(self, node_id: str, field: str, value: Any) -> Optional[Rejection]:
        """
        Replace one config field.  The value goes through the kind's record
        type, and the node's ports are normalized afterwards so edges on
        vanished ports are torn down.
        """
        with self.lock:
            node = self.nodes.get(node_id)
            if node is None:
                return Rejection(f"Node '{node_id}' not found")

            cls = type(node.config)
            if field not in cls.model_fields:
                return Rejection(f"{node.kind.value} node has no field '{field}'")

            try:
                node.config = cls.model_validate({**node.config.model_dump(), field: value})
            except ValidationError as exc:
                return Rejection(f"Invalid value for '{field}': {exc.errors()[0]['msg']}")

            removed = normalize_node(self, node_id)

        if removed:
            logger.info("%s.%s changed; dropped edges %s", node_id, field, [e.id for e in removed])
        self._notify(self._config_listeners, node, field)
        return None

    def delete_node(self, node_id: str) -> Optional[Rejection]:
        with self.lock:
            if node_id not in self.nodes:
                return Rejection(f"Node '{node_id}' not found")
            for edge in self.edges_touching(node_id):
                self.disconnect(edge.id)
            del self.nodes[node_id]
        logger.debug("deleted node %s", node_id)
        return None

    # ── Edges ───────────────────────────────────────────────────────────────

    def connect(self,
                from_id: str,
                from_port: str,
                to_id: str,
                *,
                edge_id: Optional[str] = None) -> Union[str, Rejection]:
        """Connect `from_id.from_port` to `to_id`.  Returns the edge id or a Rejection."""
        with self.lock:
            source = self.nodes.get(from_id)
            target = self.nodes.get(to_id)
            if source is None:
                return Rejection(f"Source node '{from_id}' not found")
            if target is None:
                return Rejection(f"Target node '{to_id}' not found")
            if from_id == to_id:
                return Rejection("A node cannot connect to itself")
            if target.kind is NodeKind.START:
                return Rejection("The start node has no input")
            if from_port not in source.outputs:
                return Rejection(f"Node '{from_id}' has no port '{from_port}'")
            if source.outputs[from_port] is not None or self.edge_on_port(from_id, from_port):
                return Rejection(f"Port '{from_port}' of '{from_id}' is already connected")
            if target.input is not None or self.incoming_edge(to_id):
                return Rejection(f"Node '{to_id}' already has an incoming connection")

            if edge_id is None or self.get_edge(edge_id) is not None:
                self.edge_counter += 1
                edge_id = f"conn_{self.edge_counter}"
            elif edge_id.startswith("conn_") and edge_id[5:].isdigit():
                self.edge_counter = max(self.edge_counter, int(edge_id[5:]))
            edge = Edge(edge_id, from_id, from_port, to_id)
            self.edges.append(edge)
            source.outputs[from_port] = to_id
            target.input = from_id

        self._notify(self._edge_listeners, "added", edge)
        return edge_id

    def disconnect(self, edge_id: str) -> Optional[Rejection]:
        with self.lock:
            edge = self.get_edge(edge_id)
            if edge is None:
                return Rejection(f"Connection '{edge_id}' not found")
            self.drop_edge_record(edge)

            source = self.nodes.get(edge.from_node_id)
            if source is not None and source.outputs.get(edge.from_port) == edge.to_node_id:
                source.outputs[edge.from_port] = None
            target = self.nodes.get(edge.to_node_id)
            if target is not None and target.input == edge.from_node_id:
                target.input = None
        return None

    def drop_edge_record(self, edge: Edge) -> None:
        """Remove an edge record without touching slots; callers resync afterwards."""
        with self.lock:
            self.edges.remove(edge)
        self._notify(self._edge_listeners, "removed", edge)

    def resync_slots(self) -> None:
        """Rebuild every `input`/`outputs` slot from the edge list."""
        with self.lock:
            for node in self.nodes.values():
                node.input = None
                for port in node.outputs:
                    node.outputs[port] = None
            for edge in self.edges:
                self.nodes[edge.from_node_id].outputs[edge.from_port] = edge.to_node_id
                self.nodes[edge.to_node_id].input = edge.from_node_id

    def clear(self) -> None:
        with self.lock:
            self.nodes.clear()
            self.edges.clear()
            self.block_counter = 0
            self.edge_counter = 0


__all__ = ["GraphStore", "Rejection"]
