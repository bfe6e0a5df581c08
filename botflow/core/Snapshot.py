"""
Snapshot (de)serialisation for GraphStore.

    serialize(graph)          -> {"blocks", "connections", "blockCounter"}
    deserialize(data, graph)  -> GraphStore (repaired and normalized)

The block records carry every config field flat next to id/type/x/y, the
same shape the editor front-end reads and writes.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from botflow.compiler.schema import SchemaError, validate

from .FlowGraph import GraphStore
from .GraphPrimitives import Rejection
from .NodeCatalog import LEGACY_PORT_NAMES, config_from_record
from .Normalizer import normalize_graph
from .Types import NodeKind, UnknownNodeKindError

logger = logging.getLogger(__name__)

# Block keys that are not config fields.
_RESERVED_KEYS = frozenset({"id", "type", "x", "y", "connections"})


def serialize(graph: GraphStore) -> Dict[str, Any]:
    with graph.lock:
        blocks: Dict[str, Dict[str, Any]] = {}
        for node in graph.nodes.values():
            record: Dict[str, Any] = {
                "id":   node.id,
                "type": node.kind.value,
                "x":    node.x,
                "y":    node.y,
            }
            record.update(node.config.model_dump(mode="json"))
            record["connections"] = {
                "input":   node.input,
                "outputs": dict(node.outputs),
            }
            blocks[node.id] = record

        connections = [
            {"id": e.id, "from": e.from_node_id, "fromPort": e.from_port, "to": e.to_node_id}
            for e in graph.edges
        ]
        return {
            "blocks":       blocks,
            "connections":  connections,
            "blockCounter": graph.block_counter,
        }


def _edges_from_slots(blocks: Dict[str, Dict[str, Any]]) -> List[Dict[str, str]]:
    """Rebuild an edge list from per-block output slots."""
    edges = []
    for block_id, block in blocks.items():
        outputs = (block.get("connections") or {}).get("outputs") or {}
        for port, target in outputs.items():
            if isinstance(target, str) and target:
                edges.append({"from": block_id, "fromPort": port, "to": target})
    return edges


def _block_number(node_id: str) -> int:
    prefix, _, number = node_id.rpartition("_")
    return int(number) if prefix == "block" and number.isdigit() else 0


def deserialize(data: Dict[str, Any],
                graph: Optional[GraphStore] = None,
                *,
                strict: bool = False) -> GraphStore:
    """
    Load a snapshot into `graph` (a new GraphStore when omitted), replacing
    its contents.

    Invalid config fields fall back to defaults, blocks of unknown kind are
    skipped (SchemaError when `strict`), and edges that break an invariant
    are dropped.  The result is always a well-formed graph.

    Raises:
        SchemaError: The snapshot is structurally invalid.
    """
    validate(data, strict=strict)
    if graph is None:
        graph = GraphStore()

    with graph.lock:
        graph.clear()

        for block_id, block in data["blocks"].items():
            try:
                kind = NodeKind.parse(block["type"])
            except UnknownNodeKindError as exc:
                if strict:
                    raise SchemaError(str(exc)) from exc
                logger.warning("skipping block %s: %s", block_id, exc)
                continue

            fields = {k: v for k, v in block.items() if k not in _RESERVED_KEYS}
            graph.create_node(
                kind,
                block.get("x", 0),
                block.get("y", 0),
                node_id=block_id,
                config=config_from_record(kind, fields),
            )

        edges = data.get("connections") or _edges_from_slots(data["blocks"])
        for conn in edges:
            port = conn["fromPort"]
            source = graph.get_node(conn["from"])
            if source is not None and source.kind is NodeKind.ORDER_CONFIRM:
                port = LEGACY_PORT_NAMES.get(port, port)
            result = graph.connect(conn["from"], port, conn["to"], edge_id=conn.get("id"))
            if isinstance(result, Rejection):
                logger.warning("dropping connection %s: %s", conn, result.reason)

        highest = max((_block_number(node_id) for node_id in graph.nodes), default=0)
        graph.block_counter = max(data.get("blockCounter", 0), highest)

        normalize_graph(graph)
    return graph


def dumps(graph: GraphStore, **kwargs: Any) -> str:
    kwargs.setdefault("ensure_ascii", False)
    kwargs.setdefault("indent", 2)
    return json.dumps(serialize(graph), **kwargs)


def loads(text: str, graph: Optional[GraphStore] = None, *, strict: bool = False) -> GraphStore:
    return deserialize(json.loads(text), graph, strict=strict)


__all__ = ["deserialize", "dumps", "loads", "serialize"]
