from typing import Dict, NamedTuple, Optional, Tuple

from .NodeConfig import BlockConfig
from .Types import NodeKind


# Edges are immutable; the GraphStore rebuilds slots from them.
class Edge(NamedTuple):
    id: str
    from_node_id: str
    from_port: str
    to_node_id: str

    def __repr__(self):
        return f"Edge({self.id}: {self.from_node_id}.{self.from_port} -> {self.to_node_id})"


class Rejection(NamedTuple):
    """Returned instead of raising when an edit would break a graph invariant."""
    reason: str

    def __bool__(self) -> bool:
        return False


class FlowNode:
    """One step of the conversation flow.  `kind` is fixed at creation."""

    __slots__ = ("_id", "_kind", "config", "x", "y", "input", "outputs")

    def __init__(self,
                 id: str,
                 kind: NodeKind,
                 config: BlockConfig,
                 x: float = 0,
                 y: float = 0,
                 ports: Tuple[str, ...] = ()):
        self._id = id
        self._kind = kind
        self.config = config
        self.x = x
        self.y = y
        # predecessor node id, at most one
        self.input: Optional[str] = None
        # port -> target node id
        self.outputs: Dict[str, Optional[str]] = {port: None for port in ports}

    @property
    def id(self) -> str:
        return self._id

    @property
    def kind(self) -> NodeKind:
        return self._kind

    def __repr__(self):
        return f"FlowNode({self._id}, {self._kind.name})"
