"""
Graph Validator / Normalizer.

Reconciles edges with the ports a node's *current* config provides.  Runs
after any edit that can change a port set, and once over the whole graph
after a bulk load.  Only edges are ever removed, never nodes.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Set, Tuple

from .GraphPrimitives import Edge
from .NodeCatalog import available_ports
from .Types import NodeKind

if TYPE_CHECKING:
    from .FlowGraph import GraphStore

logger = logging.getLogger(__name__)


def normalize_node(graph: "GraphStore", node_id: str) -> List[Edge]:
    """
    Recompute `node_id`'s ports, disconnect edges on ports that no longer
    exist and open slots for new ports.  Returns the removed edges.
    """
    with graph.lock:
        node = graph.nodes.get(node_id)
        if node is None:
            return []

        ports = available_ports(node.kind, node.config)
        removed: List[Edge] = []
        for edge in list(graph.edges):
            if edge.from_node_id == node_id and edge.from_port not in ports:
                graph.disconnect(edge.id)
                removed.append(edge)

        wired = {e.from_port: e.to_node_id for e in graph.edges if e.from_node_id == node_id}
        node.outputs = {port: wired.get(port) for port in ports}
        return removed


def normalize_graph(graph: "GraphStore") -> List[Edge]:
    """
    Repair a whole graph: drop edges with a missing endpoint, self-loops,
    edges on unavailable ports, and any edge that would be a second
    occupant of a port or an input.  The first edge in list order wins.
    Slots are rebuilt from the surviving edges.
    """
    with graph.lock:
        removed: List[Edge] = []
        used_ports: Set[Tuple[str, str]] = set()
        used_inputs: Set[str] = set()

        for edge in list(graph.edges):
            source = graph.nodes.get(edge.from_node_id)
            target = graph.nodes.get(edge.to_node_id)
            reason = None
            if source is None or target is None:
                reason = "missing endpoint"
            elif edge.from_node_id == edge.to_node_id:
                reason = "self-loop"
            elif target.kind is NodeKind.START:
                reason = "start node has no input"
            elif edge.from_port not in available_ports(source.kind, source.config):
                reason = f"no port '{edge.from_port}'"
            elif (edge.from_node_id, edge.from_port) in used_ports:
                reason = "port already connected"
            elif edge.to_node_id in used_inputs:
                reason = "input already connected"

            if reason is not None:
                logger.warning("normalize: dropping %r (%s)", edge, reason)
                graph.drop_edge_record(edge)
                removed.append(edge)
                continue

            used_ports.add((edge.from_node_id, edge.from_port))
            used_inputs.add(edge.to_node_id)

        for node in graph.nodes.values():
            node.outputs = {port: None for port in available_ports(node.kind, node.config)}
        graph.resync_slots()
        return removed


__all__ = ["normalize_graph", "normalize_node"]
