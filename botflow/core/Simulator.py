"""
Execution preview — runs a GraphStore directly against an in-memory
transcript, with the same per-kind rules the compiled bot follows.

    sim = Simulator(graph)
    await sim.start()
    await sim.send_text("Alice")
    await sim.press("confirm_order")
    sim.bot_texts()   # ["Hi", "Name?", "Hello Alice", ...]

The graph is read live on every step, so edits made between events are
picked up by the next one.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .Completion import mock_completion
from .FlowGraph import GraphStore
from .GraphPrimitives import FlowNode
from .NodeCatalog import callback_routes
from .Semantics import (
    CATALOG_EMPTY_MESSAGE,
    CATALOG_NEXT,
    CATALOG_PREV,
    CATALOG_PRODUCT_PREFIX,
    FORM_SUCCESS_MESSAGE,
    ORDER_CONFIRM_LABELS,
    RESTART_HINT,
    advance_loop,
    cart_summary,
    catalog_page,
    check_condition,
    form_field_prompt,
    parse_catalog,
    payment_minor_units,
    safe_calculate,
    safe_int,
    select_product,
    start_loop_frame,
    substitute_variables,
    update_cart,
)
from .Types import DEFAULT_PORT, FALSE_PORT, LOOP_BODY_PORT, TRUE_PORT, NodeKind

logger = logging.getLogger(__name__)

Completion = Callable[..., Awaitable[str]]

WAIT_INPUT = "input"
WAIT_CALLBACK = "callback"


@dataclass
class TranscriptEntry:
    sender: str                                   # "bot" | "user" | "system"
    text: str
    buttons: List[Tuple[str, str]] = field(default_factory=list)   # (label, callback tag)
    options: List[str] = field(default_factory=list)
    image: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sender":  self.sender,
            "text":    self.text,
            "buttons": [{"text": label, "tag": tag} for label, tag in self.buttons],
            "options": list(self.options),
            "image":   self.image,
        }


class Simulator:

    def __init__(self,
                 graph: GraphStore,
                 *,
                 llm: Optional[Completion] = None,
                 sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
                 tracer: Any = None) -> None:
        self.graph = graph
        self.llm = llm or mock_completion
        self.sleep = sleep or asyncio.sleep
        self.tracer = tracer
        # Record store outlives restarts, like the bot's database file.
        self.store: Dict[str, Any] = {}

        self._run = {
            NodeKind.MESSAGE:         self._run_message,
            NodeKind.QUESTION:        self._run_question,
            NodeKind.CHOICE:          self._run_choice,
            NodeKind.CONDITION:       self._run_condition,
            NodeKind.DELAY:           self._run_delay,
            NodeKind.SET_VARIABLE:    self._run_set_variable,
            NodeKind.LOOP:            self._run_loop,
            NodeKind.SEND_IMAGE:      self._run_send_image,
            NodeKind.INLINE_KEYBOARD: self._run_inline_keyboard,
            NodeKind.COMPUTE:         self._run_compute,
            NodeKind.CART_OP:         self._run_cart_op,
            NodeKind.PAYMENT:         self._run_payment,
            NodeKind.RECORD_STORE:    self._run_record_store,
            NodeKind.CATALOG:         self._run_catalog,
            NodeKind.INTAKE_FORM:     self._run_intake_form,
            NodeKind.NOTIFY:          self._run_notify,
            NodeKind.ORDER_CONFIRM:   self._run_order_confirm,
            NodeKind.LLM_PROMPT:      self._run_llm_prompt,
        }
        self._resume_input = {
            NodeKind.QUESTION:    self._resume_question,
            NodeKind.CHOICE:      self._resume_question,
            NodeKind.INTAKE_FORM: self._resume_intake_form,
        }
        self._resume_callback = {
            NodeKind.INLINE_KEYBOARD: self._resume_routes,
            NodeKind.ORDER_CONFIRM:   self._resume_routes,
            NodeKind.CATALOG:         self._resume_catalog,
        }
        self.reset()

    def reset(self) -> None:
        self.transcript: List[TranscriptEntry] = []
        self.variables: Dict[str, Any] = {}
        self.cart: Dict[str, int] = {}
        self.current: Optional[str] = None
        self.waiting: Optional[str] = None
        self.form_index = 0
        self.loop_frames: List[Dict[str, Any]] = []

    # ── Transcript helpers ──────────────────────────────────────────────────

    def bot_texts(self) -> List[str]:
        return [e.text for e in self.transcript if e.sender == "bot"]

    def _say(self, text: str, **kwargs: Any) -> None:
        self.transcript.append(TranscriptEntry("bot", text, **kwargs))

    def _note(self, text: str) -> None:
        self.transcript.append(TranscriptEntry("system", text))

    def _trace(self, event_type: str, **payload: Any) -> None:
        if self.tracer is not None:
            self.tracer.fire({"type": event_type, **payload})

    def _sub(self, text: str) -> str:
        return substitute_variables(text, self.variables)

    # ── Events ──────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Begin a fresh session at the start node."""
        self.reset()
        starts = self.graph.start_nodes()
        if not starts:
            self._note("The flow has no start node.")
            return

        start = starts[0]
        self._trace("PREVIEW_START", nodeId=start.id)
        if start.config.message:
            self._say(self._sub(start.config.message))
        await self._run_from(start.outputs.get(DEFAULT_PORT))

    async def send_text(self, text: str) -> None:
        if text.strip() == "/start":
            await self.start()
            return

        self.transcript.append(TranscriptEntry("user", text))
        node = self.graph.get_node(self.current) if self.current else None
        if self.waiting != WAIT_INPUT or node is None or node.kind not in self._resume_input:
            self._say(RESTART_HINT)
            return

        port = await self._guarded(node, self._resume_input[node.kind], node, text)
        if port is not None:
            await self._leave(node, port)

    async def press(self, tag: str) -> None:
        """Deliver a button press carrying callback `tag`."""
        node = self.graph.get_node(self.current) if self.current else None
        if self.waiting != WAIT_CALLBACK or node is None or node.kind not in self._resume_callback:
            logger.debug("preview: ignoring stale callback %r", tag)
            return

        self.transcript.append(TranscriptEntry("user", f"[{tag}]"))
        port = await self._guarded(node, self._resume_callback[node.kind], node, tag)
        if port is not None:
            await self._leave(node, port)

    # ── Driver ──────────────────────────────────────────────────────────────

    async def _leave(self, node: FlowNode, port: str) -> None:
        self.waiting = None
        await self._run_from(self._follow(node, port))

    def _follow(self, node: FlowNode, port: str) -> Optional[str]:
        target = node.outputs.get(port)
        if target is not None:
            self._trace("EDGE_ACTIVE", fromNodeId=node.id, fromPort=port, toNodeId=target)
        return target

    async def _guarded(self, node: FlowNode, handler: Callable[..., Awaitable[Optional[str]]], *args: Any) -> Optional[str]:
        try:
            return await handler(*args)
        except Exception as exc:
            logger.exception("preview: node %s failed", node.id)
            self._trace("NODE_ERROR", nodeId=node.id, error=str(exc))
            self._note(f"Error in {node.id}: {exc}")
            self.waiting = None
            self.current = None
            return None

    def _next_from_loop(self) -> Optional[str]:
        """Hand control back to the innermost loop after its body chain ended."""
        while self.loop_frames:
            frame = self.loop_frames[-1]
            node = self.graph.get_node(frame["node"])
            if node is None:
                self.loop_frames.pop()
                continue
            port = self._loop_port(node, frame)
            target = self._follow(node, port)
            if target is not None:
                return target
        return None

    async def _run_from(self, node_id: Optional[str]) -> None:
        while True:
            if node_id is None:
                node_id = self._next_from_loop()
                if node_id is None:
                    self.current = None
                    self._trace("PREVIEW_IDLE")
                    return

            node = self.graph.get_node(node_id)
            if node is None:
                self._note(f"Missing node {node_id}")
                self.current = None
                return

            self.current = node_id
            self._trace("NODE_RUNNING", nodeId=node_id)
            if self.tracer is not None:
                await self.tracer.wait_for_step()

            port = await self._guarded(node, self._run[node.kind], node)
            if port is None:
                if self.waiting is not None:
                    self._trace("NODE_SUSPENDED", nodeId=node_id, waiting=self.waiting)
                return
            node_id = self._follow(node, port)

    # ── Node kinds ──────────────────────────────────────────────────────────

    async def _run_message(self, node: FlowNode) -> Optional[str]:
        self._say(self._sub(node.config.text))
        return DEFAULT_PORT

    async def _run_question(self, node: FlowNode) -> Optional[str]:
        self._say(self._sub(node.config.question))
        self.waiting = WAIT_INPUT
        return None

    async def _run_choice(self, node: FlowNode) -> Optional[str]:
        options = [o for o in node.config.options if o.strip()]
        self._say(self._sub(node.config.question), options=options)
        self.waiting = WAIT_INPUT
        return None

    async def _resume_question(self, node: FlowNode, text: str) -> Optional[str]:
        if node.config.variable:
            self.variables[node.config.variable] = text
        return DEFAULT_PORT

    async def _run_condition(self, node: FlowNode) -> Optional[str]:
        cfg = node.config
        passed = check_condition(self.variables.get(cfg.variable, ""), cfg.condition, self._sub(cfg.value))
        return TRUE_PORT if passed else FALSE_PORT

    async def _run_delay(self, node: FlowNode) -> Optional[str]:
        seconds = max(1, safe_int(node.config.seconds, 1))
        self._note(f"⏳ {seconds}s")
        await self.sleep(seconds)
        return DEFAULT_PORT

    async def _run_set_variable(self, node: FlowNode) -> Optional[str]:
        if node.config.variable:
            self.variables[node.config.variable] = self._sub(node.config.value)
        return DEFAULT_PORT

    def _loop_port(self, node: FlowNode, frame: Dict[str, Any]) -> str:
        if advance_loop(node.config.model_dump(), frame, self.variables):
            return LOOP_BODY_PORT
        self.loop_frames = [f for f in self.loop_frames if f is not frame]
        return DEFAULT_PORT

    async def _run_loop(self, node: FlowNode) -> Optional[str]:
        frame = start_loop_frame(node.id, node.config.model_dump(), self.variables)
        self.loop_frames.append(frame)
        return self._loop_port(node, frame)

    async def _run_send_image(self, node: FlowNode) -> Optional[str]:
        caption = self._sub(node.config.caption)
        if node.config.image_file or caption:
            self._say(caption, image=node.config.image_file or None)
        return DEFAULT_PORT

    async def _run_inline_keyboard(self, node: FlowNode) -> Optional[str]:
        buttons = [
            (b.text, b.callback_data.strip())
            for b in node.config.buttons
            if b.text.strip() and b.callback_data.strip()
        ]
        self._say(self._sub(node.config.message), buttons=buttons)
        if not buttons:
            return DEFAULT_PORT
        self.waiting = WAIT_CALLBACK
        return None

    async def _resume_routes(self, node: FlowNode, tag: str) -> Optional[str]:
        for route in callback_routes(node.id, node.kind, node.config):
            if route.tag == tag:
                return route.port
        return None

    async def _run_compute(self, node: FlowNode) -> Optional[str]:
        if node.config.result_variable:
            self.variables[node.config.result_variable] = safe_calculate(node.config.formula, self.variables)
        return DEFAULT_PORT

    async def _run_cart_op(self, node: FlowNode) -> Optional[str]:
        cfg = node.config
        update_cart(
            self.cart,
            cfg.action,
            self.variables.get(cfg.product_id),
            self.variables.get(cfg.quantity, 1),
        )
        if cfg.action == "show":
            summary = cart_summary(self.cart)
            self.variables["cart_contents"] = summary
            self._say(summary)
        elif cfg.action == "count":
            self.variables["cart_count"] = sum(self.cart.values())
        return DEFAULT_PORT

    async def _run_payment(self, node: FlowNode) -> Optional[str]:
        cfg = node.config
        amount = payment_minor_units(self.variables.get(cfg.amount, 0))
        if amount > 0 and cfg.provider_token:
            title = self._sub(cfg.title) or "Order"
            self._say(f"🧾 {title}: {amount / 100:.2f} {cfg.currency}")
        else:
            self._say("❌ Payment error: provider token or amount is missing")
        return DEFAULT_PORT

    async def _run_record_store(self, node: FlowNode) -> Optional[str]:
        cfg = node.config
        key = self._sub(cfg.key)
        if cfg.operation == "save":
            self.store[key] = self.variables.get(cfg.data, "")
            result: Any = True
        elif cfg.operation == "load":
            result = self.store.get(key, "")
        else:
            result = self.store.pop(key, None) is not None
        if cfg.result_variable:
            self.variables[cfg.result_variable] = result
        return DEFAULT_PORT

    def _show_catalog_page(self, node: FlowNode, products: List[Dict[str, Any]]) -> None:
        page_key = f"_catalog_page_{node.id}"
        page, total, items = catalog_page(products, self.variables.get(page_key, 0))
        self.variables[page_key] = page
        buttons = [(f"{p['name']} - {p['price']}", f"{CATALOG_PRODUCT_PREFIX}{i}") for i, p in items]
        if page > 0:
            buttons.append(("⬅️", CATALOG_PREV))
        if page < total - 1:
            buttons.append(("➡️", CATALOG_NEXT))
        self._say(f"🛍 Catalog (page {page + 1}/{total})", buttons=buttons)
        self.waiting = WAIT_CALLBACK

    async def _run_catalog(self, node: FlowNode) -> Optional[str]:
        products = parse_catalog(node.config.source, node.config.products)
        if not products:
            self._say(CATALOG_EMPTY_MESSAGE)
            return DEFAULT_PORT
        self._show_catalog_page(node, products)
        return None

    async def _resume_catalog(self, node: FlowNode, tag: str) -> Optional[str]:
        products = parse_catalog(node.config.source, node.config.products)
        page_key = f"_catalog_page_{node.id}"
        if tag in (CATALOG_PREV, CATALOG_NEXT):
            step = -1 if tag == CATALOG_PREV else 1
            self.variables[page_key] = safe_int(self.variables.get(page_key, 0)) + step
            self._show_catalog_page(node, products)
            return None
        if tag.startswith(CATALOG_PRODUCT_PREFIX) and select_product(products, tag, self.variables):
            return DEFAULT_PORT
        return None

    async def _run_intake_form(self, node: FlowNode) -> Optional[str]:
        fields = node.config.fields
        if not fields:
            self._say(self._sub(node.config.success_message) or FORM_SUCCESS_MESSAGE)
            return DEFAULT_PORT
        self.form_index = 0
        self._say(form_field_prompt(fields[0].type))
        self.waiting = WAIT_INPUT
        return None

    async def _resume_intake_form(self, node: FlowNode, text: str) -> Optional[str]:
        fields = node.config.fields
        if self.form_index < len(fields) and fields[self.form_index].variable:
            self.variables[fields[self.form_index].variable] = text
        self.form_index += 1
        if self.form_index < len(fields):
            self._say(form_field_prompt(fields[self.form_index].type))
            return None
        self._say(self._sub(node.config.success_message) or FORM_SUCCESS_MESSAGE)
        return DEFAULT_PORT

    async def _run_notify(self, node: FlowNode) -> Optional[str]:
        cfg = node.config
        if cfg.target == "admin":
            chat = self._sub(cfg.admin_chat_id)
        else:
            chat = str(self.variables.get(cfg.chat_id, ""))
        text = self._sub(cfg.message)
        if chat:
            self._note(f"📨 to {chat}: {text}")
        else:
            logger.warning("preview: notify %s has no recipient", node.id)
            self._note("📨 notification not delivered: no recipient")
        return DEFAULT_PORT

    async def _run_order_confirm(self, node: FlowNode) -> Optional[str]:
        cfg = node.config
        text = "\n\n".join(part for part in (self._sub(cfg.title), self._sub(cfg.template)) if part)
        routes = callback_routes(node.id, node.kind, cfg)
        self._say(text, buttons=[(ORDER_CONFIRM_LABELS[r.port], r.tag) for r in routes])
        if not routes:
            return DEFAULT_PORT
        self.waiting = WAIT_CALLBACK
        return None

    async def _run_llm_prompt(self, node: FlowNode) -> Optional[str]:
        cfg = node.config
        reply = await self.llm(
            self._sub(cfg.prompt),
            api_key=cfg.api_key,
            model=cfg.model,
            max_tokens=cfg.max_tokens,
            temperature=cfg.temperature,
        )
        if cfg.result_variable:
            self.variables[cfg.result_variable] = reply
        return DEFAULT_PORT


__all__ = ["Simulator", "TranscriptEntry"]
