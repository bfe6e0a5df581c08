"""
Preview trace event shapes.
All events are plain dicts so they can be emitted over Socket.IO as-is.
"""
from typing import Literal, TypedDict, Union


class PreviewStartEvent(TypedDict):
    type: Literal["PREVIEW_START"]
    nodeId: str
    ts: int


class NodeRunningEvent(TypedDict):
    type: Literal["NODE_RUNNING"]
    nodeId: str
    ts: int


class NodeSuspendedEvent(TypedDict):
    type: Literal["NODE_SUSPENDED"]
    nodeId: str
    waiting: Literal["input", "callback"]
    ts: int


class NodeErrorEvent(TypedDict):
    type: Literal["NODE_ERROR"]
    nodeId: str
    error: str
    ts: int


class EdgeActiveEvent(TypedDict):
    type: Literal["EDGE_ACTIVE"]
    fromNodeId: str
    fromPort: str
    toNodeId: str
    ts: int


class PreviewIdleEvent(TypedDict):
    type: Literal["PREVIEW_IDLE"]
    ts: int


TraceEvent = Union[
    PreviewStartEvent,
    NodeRunningEvent,
    NodeSuspendedEvent,
    NodeErrorEvent,
    EdgeActiveEvent,
    PreviewIdleEvent,
]

TRACE_EVENT_TYPES = (
    "PREVIEW_START",
    "NODE_RUNNING",
    "NODE_SUSPENDED",
    "NODE_ERROR",
    "EDGE_ACTIVE",
    "PREVIEW_IDLE",
)
