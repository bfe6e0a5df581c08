"""
BotFlow — Snapshot JSON Schema + Validator
===========================================
Defines the persisted/exported snapshot format and a lightweight structural
validator that runs without any third-party JSON Schema library.

Snapshot format
---------------

    {
      "blocks": {
        "block_1": {
          "id":   "block_1",                  // equals the map key (str, optional)
          "type": "start",                    // node kind wire tag (str, required)
          "x": 100, "y": 80,                  // canvas position (number, optional)
          "message": "Welcome!",              // kind-specific config fields
          "connections": {                    // derived slots (object, optional)
            "input":   null,
            "outputs": {"default": "block_2"}
          }
        }
      },
      "connections": [
        {"id": "conn_1", "from": "block_1", "fromPort": "default", "to": "block_2"}
      ],
      "blockCounter": 2                       // id counter (int, optional)
    }

The edge list is the source of truth; per-block `connections.outputs` are
only read when the edge list is empty (snapshots from older editor builds).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Union

from botflow.core.Types import NodeKind, UnknownNodeKindError


# ── Validation helpers ────────────────────────────────────────────────────────

class SchemaError(ValueError):
    """Raised when snapshot JSON fails structural validation."""


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise SchemaError(message)


def _require_keys(obj: Dict, keys: List[str], context: str) -> None:
    for key in keys:
        _require(key in obj, f"{context}: missing required field '{key}'")


# ── Public validator ─────────────────────────────────────────────────────────

def validate(data: Dict[str, Any], *, strict: bool = False) -> None:
    """
    Validate a parsed snapshot dict.

    Args:
        data:   A pre-parsed dict (result of json.load / json.loads).
        strict: When True, raise SchemaError for unknown node kinds.
                When False (default), such blocks are skipped on import.

    Raises:
        SchemaError: On any structural violation.
    """
    _require(isinstance(data, dict), "snapshot must be a JSON object at the top level")
    _require_keys(data, ["blocks"], "snapshot root")
    _require(isinstance(data["blocks"], dict), "blocks must be an object")

    if "connections" in data:
        _require(isinstance(data["connections"], list), "connections must be a list")
    if "blockCounter" in data:
        _require(
            isinstance(data["blockCounter"], int) and not isinstance(data["blockCounter"], bool),
            "blockCounter must be an integer",
        )

    # ── Validate blocks ─────────────────────────────────────────────────────

    for block_id, block in data["blocks"].items():
        ctx = f"blocks[{block_id!r}]"
        _require(isinstance(block, dict), f"{ctx}: each block must be a JSON object")
        _require_keys(block, ["type"], ctx)
        _require(isinstance(block["type"], str), f"{ctx}.type must be a string")
        if "id" in block:
            _require(block["id"] == block_id, f"{ctx}.id does not match its key")
        for axis in ("x", "y"):
            if axis in block:
                _require(
                    isinstance(block[axis], (int, float)) and not isinstance(block[axis], bool),
                    f"{ctx}.{axis} must be a number",
                )
        if "connections" in block:
            _require(isinstance(block["connections"], dict), f"{ctx}.connections must be an object")
            outputs = block["connections"].get("outputs", {})
            _require(isinstance(outputs, dict), f"{ctx}.connections.outputs must be an object")

        if strict:
            try:
                NodeKind.parse(block["type"])
            except UnknownNodeKindError as exc:
                raise SchemaError(f"{ctx}: {exc}") from exc

    # ── Validate connections ────────────────────────────────────────────────

    for i, conn in enumerate(data.get("connections", [])):
        ctx = f"connections[{i}]"
        _require(isinstance(conn, dict), f"{ctx}: each connection must be a JSON object")
        _require_keys(conn, ["from", "fromPort", "to"], ctx)
        for field in ("from", "fromPort", "to"):
            _require(isinstance(conn[field], str), f"{ctx}.{field} must be a string")
        if "id" in conn:
            _require(isinstance(conn["id"], str), f"{ctx}.id must be a string")


def validate_file(path: Union[str, Path], *, strict: bool = False) -> Dict[str, Any]:
    """
    Load and validate a snapshot JSON file.

    Returns:
        The parsed dict on success.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
        SchemaError: If the snapshot structure is invalid.
    """
    path = Path(path)
    with path.open(encoding="utf-8") as fh:
        data = json.load(fh)
    validate(data, strict=strict)
    return data


__all__ = ["SchemaError", "validate", "validate_file"]
