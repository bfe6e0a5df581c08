"""
HistoryStore — bounded snapshot log for undo/redo.

Each entry is a full serialized graph.  Recording after an undo discards the
redo tail; the oldest entries fall off once `max_size` is reached.
"""
from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List

from .FlowGraph import GraphStore
from .Snapshot import deserialize, serialize

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 50


class HistoryStore:

    def __init__(self, max_size: int = DEFAULT_HISTORY_SIZE) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._snapshots: List[Dict[str, Any]] = []
        self._index = -1

    def __len__(self) -> int:
        return len(self._snapshots)

    @property
    def can_undo(self) -> bool:
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        return self._index < len(self._snapshots) - 1

    def record(self, graph: GraphStore) -> None:
        """Append the current state of `graph`."""
        snapshot = serialize(graph)
        if self._snapshots and self._snapshots[self._index] == snapshot:
            return

        del self._snapshots[self._index + 1:]
        self._snapshots.append(snapshot)
        if len(self._snapshots) > self.max_size:
            self._snapshots.pop(0)
        self._index = len(self._snapshots) - 1

    def undo(self, graph: GraphStore) -> bool:
        if not self.can_undo:
            return False
        self._index -= 1
        self._restore(graph)
        return True

    def redo(self, graph: GraphStore) -> bool:
        if not self.can_redo:
            return False
        self._index += 1
        self._restore(graph)
        return True

    def clear(self) -> None:
        self._snapshots.clear()
        self._index = -1

    def _restore(self, graph: GraphStore) -> None:
        logger.debug("restoring history entry %d/%d", self._index + 1, len(self._snapshots))
        deserialize(copy.deepcopy(self._snapshots[self._index]), graph)


__all__ = ["DEFAULT_HISTORY_SIZE", "HistoryStore"]
