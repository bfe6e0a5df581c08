"""
Editor REST routes.

All routes are mounted under /api by main.py.  Structural rejections from the
graph map to 409, snapshot schema errors to 400 and compile errors to 422.
Every successful mutation records an undo step.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, Response
from pydantic import BaseModel

from botflow.compiler import CompileError
from botflow.compiler.schema import SchemaError
from botflow.core.GraphPrimitives import Rejection
from botflow.core.Types import UnknownNodeKindError
from botflow.server.state import EditorState

logger = logging.getLogger(__name__)

router = APIRouter()


def get_editor(request: Request) -> EditorState:
    return request.app.state.editor


def _check(result: Any) -> Any:
    if isinstance(result, Rejection):
        raise HTTPException(status_code=409, detail=result.reason)
    return result


def _require_node(editor: EditorState, node_id: str) -> None:
    if node_id not in editor.graph:
        raise HTTPException(status_code=404, detail=f"Node '{node_id}' not found")


# ── GET /graph ────────────────────────────────────────────────────────────────

@router.get("/graph")
async def get_graph(editor: EditorState = Depends(get_editor)) -> Dict[str, Any]:
    return editor.snapshot()


# ── PUT /graph ────────────────────────────────────────────────────────────────

@router.put("/graph")
async def put_graph(
    data: Dict[str, Any] = Body(...),
    editor: EditorState = Depends(get_editor),
) -> Dict[str, Any]:
    try:
        editor.load(data)
    except SchemaError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return editor.snapshot()


# ── POST /nodes ───────────────────────────────────────────────────────────────

class CreateNodeBody(BaseModel):
    type: str
    x: float = 0
    y: float = 0


@router.post("/nodes", status_code=201)
async def create_node(body: CreateNodeBody, editor: EditorState = Depends(get_editor)) -> Dict[str, Any]:
    try:
        node_id = editor.graph.create_node(body.type, body.x, body.y)
    except UnknownNodeKindError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    editor.commit()
    return editor.block(node_id)


# ── PATCH /nodes/:id ──────────────────────────────────────────────────────────

class UpdateFieldBody(BaseModel):
    field: str
    value: Any = None


@router.patch("/nodes/{node_id}")
async def update_field(
    node_id: str,
    body: UpdateFieldBody,
    editor: EditorState = Depends(get_editor),
) -> Dict[str, Any]:
    _require_node(editor, node_id)
    _check(editor.graph.update_field(node_id, body.field, body.value))
    editor.commit()
    return editor.block(node_id)


# ── PUT /nodes/:id/position ───────────────────────────────────────────────────

class PositionBody(BaseModel):
    x: float
    y: float


@router.put("/nodes/{node_id}/position", status_code=204)
async def move_node(
    node_id: str,
    body: PositionBody,
    editor: EditorState = Depends(get_editor),
) -> Response:
    _require_node(editor, node_id)
    _check(editor.graph.move_node(node_id, body.x, body.y))
    editor.commit()
    return Response(status_code=204)


# ── DELETE /nodes/:id ─────────────────────────────────────────────────────────

@router.delete("/nodes/{node_id}", status_code=204)
async def delete_node(node_id: str, editor: EditorState = Depends(get_editor)) -> Response:
    _require_node(editor, node_id)
    _check(editor.graph.delete_node(node_id))
    editor.commit()
    return Response(status_code=204)


# ── GET /nodes/:id/ports ──────────────────────────────────────────────────────

@router.get("/nodes/{node_id}/ports")
async def get_ports(node_id: str, editor: EditorState = Depends(get_editor)) -> Dict[str, Any]:
    _require_node(editor, node_id)
    node = editor.graph.get_node(node_id)
    return {"ports": list(editor.graph.ports(node_id)), "outputs": dict(node.outputs)}


# ── POST /edges ───────────────────────────────────────────────────────────────

class EdgeBody(BaseModel):
    fromNodeId: str
    fromPort: str
    toNodeId: str


@router.post("/edges", status_code=201)
async def connect(body: EdgeBody, editor: EditorState = Depends(get_editor)) -> Dict[str, Any]:
    edge_id = _check(editor.graph.connect(body.fromNodeId, body.fromPort, body.toNodeId))
    editor.commit()
    return {"id": edge_id, "from": body.fromNodeId, "fromPort": body.fromPort, "to": body.toNodeId}


# ── DELETE /edges/:id ─────────────────────────────────────────────────────────

@router.delete("/edges/{edge_id}", status_code=204)
async def disconnect(edge_id: str, editor: EditorState = Depends(get_editor)) -> Response:
    if editor.graph.get_edge(edge_id) is None:
        raise HTTPException(status_code=404, detail=f"Connection '{edge_id}' not found")
    _check(editor.graph.disconnect(edge_id))
    editor.commit()
    return Response(status_code=204)


# ── POST /history/undo, /history/redo ─────────────────────────────────────────

@router.post("/history/undo")
async def undo(editor: EditorState = Depends(get_editor)) -> Dict[str, Any]:
    changed = editor.undo()
    return {"changed": changed, **editor.history_status(), "graph": editor.snapshot()}


@router.post("/history/redo")
async def redo(editor: EditorState = Depends(get_editor)) -> Dict[str, Any]:
    changed = editor.redo()
    return {"changed": changed, **editor.history_status(), "graph": editor.snapshot()}


# ── POST /compile ─────────────────────────────────────────────────────────────

class CompileBody(BaseModel):
    name: Optional[str] = None
    token: Optional[str] = None


@router.post("/compile")
async def compile_graph(
    body: Optional[CompileBody] = None,
    editor: EditorState = Depends(get_editor),
) -> Dict[str, Any]:
    body = body or CompileBody()
    try:
        filename, source = editor.compile(body.name, body.token)
    except CompileError as exc:
        logger.info("compile rejected: %s", exc)
        raise HTTPException(
            status_code=422,
            detail={"message": str(exc), "nodeId": exc.node_id, "edgeId": exc.edge_id},
        )
    return {"filename": filename, "source": source}


# ── Preview ───────────────────────────────────────────────────────────────────

class PreviewTextBody(BaseModel):
    text: str


class PreviewCallbackBody(BaseModel):
    tag: str


@router.get("/preview")
async def get_preview(editor: EditorState = Depends(get_editor)) -> Dict[str, Any]:
    return editor.preview_state()


@router.post("/preview/start")
async def preview_start(
    step: bool = Query(False, description="Pause before every node until /preview/step/resume"),
    editor: EditorState = Depends(get_editor),
) -> Dict[str, Any]:
    async with editor.preview_lock:
        if step:
            editor.tracer.enable_step()
        try:
            await editor.simulator.start()
        finally:
            if step:
                editor.tracer.disable_step()
    return editor.preview_state()


@router.post("/preview/text")
async def preview_text(body: PreviewTextBody, editor: EditorState = Depends(get_editor)) -> Dict[str, Any]:
    async with editor.preview_lock:
        await editor.simulator.send_text(body.text)
    return editor.preview_state()


@router.post("/preview/callback")
async def preview_callback(body: PreviewCallbackBody, editor: EditorState = Depends(get_editor)) -> Dict[str, Any]:
    async with editor.preview_lock:
        await editor.simulator.press(body.tag)
    return editor.preview_state()


@router.post("/preview/step/resume")
async def step_resume(editor: EditorState = Depends(get_editor)) -> Dict[str, Any]:
    logger.debug("step resume, %d waiting", editor.tracer.waiting)
    editor.tracer.resume()
    return {"ok": True}
