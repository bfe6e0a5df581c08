"""
BotFlow Compiler — Node Code Templates
=======================================
Every node kind except `start` has one NodeTemplate.  A template provides:

  helpers
      Names of functions from botflow.core.Semantics the kind's code calls.
      The emitter inlines each helper's source once, so compiled bots and
      the preview simulator share one implementation.

  preamble()
      Top-level source lines emitted once per kind (extra imports, service
      clients).

  methods()
      FlowRuntime methods for the kind, emitted inside the class body.  The
      `run` method handles arrival at the node and returns the output port
      to follow, or None when the session parks there.

  resume_input / resume_callback
      Name of the method that resumes a parked session on a text message or
      a button press.  None for kinds that never park on that event.

Adding a new node kind
----------------------
1. Add the member to NodeKind and its config record to the Node Catalog.
2. Subclass NodeTemplate and override the hooks above.
3. Register: TEMPLATE_REGISTRY[NodeKind.MY_KIND] = MyKindTemplate()
"""

from __future__ import annotations

import inspect
import textwrap
from typing import Dict, List, Optional, Tuple

from botflow.core import Completion
from botflow.core.Types import NodeKind


# ── Code writer ───────────────────────────────────────────────────────────────

class CodeWriter:
    """Simple indented string accumulator."""

    def __init__(self, indent: int = 0):
        self._lines: List[str] = []
        self._indent = indent

    def writeln(self, line: str = "") -> "CodeWriter":
        if line:
            self._lines.append("    " * self._indent + line)
        else:
            self._lines.append("")
        return self

    def blank(self) -> "CodeWriter":
        return self.writeln()

    def comment(self, text: str) -> "CodeWriter":
        return self.writeln(f"# {text}")

    def section(self, title: str) -> "CodeWriter":
        return self.writeln(f"# ── {title} " + "─" * max(3, 74 - len(title)))

    def push(self) -> "CodeWriter":
        self._indent += 1
        return self

    def pop(self) -> "CodeWriter":
        self._indent = max(0, self._indent - 1)
        return self

    def extend(self, lines: List[str]) -> "CodeWriter":
        for line in lines:
            self.writeln(line)
        return self

    def lines(self) -> List[str]:
        return list(self._lines)

    def result(self) -> str:
        return "\n".join(self._lines) + "\n"


def _src(text: str) -> List[str]:
    return textwrap.dedent(text).strip("\n").splitlines()


# ── Service clients ───────────────────────────────────────────────────────────

def _completion_preamble() -> List[str]:
    lines = ["from openai import AsyncOpenAI", "", ""]
    lines += inspect.getsource(Completion.request_completion).rstrip().splitlines()
    return lines


# ── Base template ─────────────────────────────────────────────────────────────

class NodeTemplate:
    kind: NodeKind
    helpers: Tuple[str, ...] = ()
    resume_input: Optional[str] = None
    resume_callback: Optional[str] = None

    @property
    def run_method(self) -> str:
        return f"_run_{self.kind.name.lower()}"

    def preamble(self) -> List[str]:
        return []

    def methods(self) -> List[str]:
        raise NotImplementedError(f"{type(self).__name__} emits no handler")


# ── message ───────────────────────────────────────────────────────────────────

class MessageTemplate(NodeTemplate):
    kind = NodeKind.MESSAGE

    def methods(self) -> List[str]:
        return _src(r'''
            async def _run_message(self, session, node):
                await self.say(session, substitute_variables(node["config"].get("text", ""), session.vars))
                return "default"
            ''')


# ── question / choice ─────────────────────────────────────────────────────────

class QuestionTemplate(NodeTemplate):
    kind = NodeKind.QUESTION
    resume_input = "_resume_question"

    def methods(self) -> List[str]:
        return _src(r'''
            async def _run_question(self, session, node):
                await self.say(session, substitute_variables(node["config"].get("question", ""), session.vars))
                session.waiting = "input"
                return None

            async def _resume_question(self, session, node, text):
                variable = node["config"].get("variable")
                if variable:
                    session.vars[variable] = text
                return "default"
            ''')


class ChoiceTemplate(NodeTemplate):
    kind = NodeKind.CHOICE
    resume_input = "_resume_choice"

    def methods(self) -> List[str]:
        return _src(r'''
            async def _run_choice(self, session, node):
                cfg = node["config"]
                options = [o for o in cfg.get("options", []) if o.strip()]
                await self.say(session, substitute_variables(cfg.get("question", ""), session.vars), options=options)
                session.waiting = "input"
                return None

            async def _resume_choice(self, session, node, text):
                variable = node["config"].get("variable")
                if variable:
                    session.vars[variable] = text
                return "default"
            ''')


# ── condition ─────────────────────────────────────────────────────────────────

class ConditionTemplate(NodeTemplate):
    kind = NodeKind.CONDITION

    def methods(self) -> List[str]:
        return _src(r'''
            async def _run_condition(self, session, node):
                cfg = node["config"]
                passed = check_condition(
                    session.vars.get(cfg.get("variable", ""), ""),
                    cfg.get("condition", "equals"),
                    substitute_variables(cfg.get("value", ""), session.vars),
                )
                return "true" if passed else "false"
            ''')


# ── delay ─────────────────────────────────────────────────────────────────────

class DelayTemplate(NodeTemplate):
    kind = NodeKind.DELAY

    def methods(self) -> List[str]:
        return _src(r'''
            async def _run_delay(self, session, node):
                await self.transport.sleep(max(1, safe_int(node["config"].get("seconds", 1), 1)))
                return "default"
            ''')


# ── set-variable ──────────────────────────────────────────────────────────────

class SetVariableTemplate(NodeTemplate):
    kind = NodeKind.SET_VARIABLE

    def methods(self) -> List[str]:
        return _src(r'''
            async def _run_set_variable(self, session, node):
                cfg = node["config"]
                if cfg.get("variable"):
                    session.vars[cfg["variable"]] = substitute_variables(cfg.get("value", ""), session.vars)
                return "default"
            ''')


# ── loop ──────────────────────────────────────────────────────────────────────

class LoopTemplate(NodeTemplate):
    """Body runs off the `loop_body` port; frames live on the session so the body may park."""

    kind = NodeKind.LOOP
    helpers = ("start_loop_frame", "advance_loop")

    def methods(self) -> List[str]:
        return _src(r'''
            def _loop_port(self, session, frame):
                if advance_loop(BLOCKS_GRAPH[frame["node"]]["config"], frame, session.vars):
                    return "loop_body"
                session.loop_frames = [f for f in session.loop_frames if f is not frame]
                return "default"

            async def _run_loop(self, session, node):
                frame = start_loop_frame(node["id"], node["config"], session.vars)
                session.loop_frames.append(frame)
                return self._loop_port(session, frame)
            ''')


# ── send-image ────────────────────────────────────────────────────────────────

class SendImageTemplate(NodeTemplate):
    kind = NodeKind.SEND_IMAGE

    def methods(self) -> List[str]:
        return _src(r'''
            async def _run_send_image(self, session, node):
                cfg = node["config"]
                caption = substitute_variables(cfg.get("caption", ""), session.vars)
                if cfg.get("image_file"):
                    try:
                        await self.transport.send_image(session.key, cfg["image_file"], caption)
                    except Exception as exc:
                        logger.error("image delivery to %s failed: %s", session.key, exc)
                elif caption:
                    await self.say(session, caption)
                return "default"
            ''')


# ── inline-keyboard ───────────────────────────────────────────────────────────

class InlineKeyboardTemplate(NodeTemplate):
    kind = NodeKind.INLINE_KEYBOARD
    resume_callback = "_resume_routes"

    def methods(self) -> List[str]:
        return _src(r'''
            async def _run_inline_keyboard(self, session, node):
                cfg = node["config"]
                buttons = [
                    (b.get("text", ""), b.get("callback_data", "").strip())
                    for b in cfg.get("buttons", [])
                    if b.get("text", "").strip() and b.get("callback_data", "").strip()
                ]
                await self.say(session, substitute_variables(cfg.get("message", ""), session.vars), buttons=buttons)
                if not buttons:
                    return "default"
                session.waiting = "callback"
                return None
            ''')


# ── compute ───────────────────────────────────────────────────────────────────

class ComputeTemplate(NodeTemplate):
    kind = NodeKind.COMPUTE
    helpers = ("safe_calculate",)

    def methods(self) -> List[str]:
        return _src(r'''
            async def _run_compute(self, session, node):
                cfg = node["config"]
                if cfg.get("result_variable"):
                    session.vars[cfg["result_variable"]] = safe_calculate(cfg.get("formula", ""), session.vars)
                return "default"
            ''')


# ── cart-op ───────────────────────────────────────────────────────────────────

class CartOpTemplate(NodeTemplate):
    kind = NodeKind.CART_OP
    helpers = ("update_cart", "cart_summary")

    def methods(self) -> List[str]:
        return _src(r'''
            async def _run_cart_op(self, session, node):
                cfg = node["config"]
                action = cfg.get("action", "add")
                update_cart(
                    session.cart,
                    action,
                    session.vars.get(cfg.get("product_id", "product_id")),
                    session.vars.get(cfg.get("quantity", "quantity"), 1),
                )
                if action == "show":
                    summary = cart_summary(session.cart)
                    session.vars["cart_contents"] = summary
                    await self.say(session, summary)
                elif action == "count":
                    session.vars["cart_count"] = sum(session.cart.values())
                return "default"
            ''')


# ── payment ───────────────────────────────────────────────────────────────────

class PaymentTemplate(NodeTemplate):
    kind = NodeKind.PAYMENT
    helpers = ("payment_minor_units",)

    def methods(self) -> List[str]:
        return _src(r'''
            async def _run_payment(self, session, node):
                cfg = node["config"]
                amount = payment_minor_units(session.vars.get(cfg.get("amount", ""), 0))
                provider_token = cfg.get("provider_token", "")
                if amount > 0 and provider_token:
                    title = substitute_variables(cfg.get("title", ""), session.vars) or "Order"
                    try:
                        await self.transport.send_invoice(
                            session.key,
                            title=title,
                            description=substitute_variables(cfg.get("description", ""), session.vars) or title,
                            currency=cfg.get("currency") or "RUB",
                            amount=amount,
                            provider_token=provider_token,
                            payload=f"order_{session.key}_{int(time.time())}",
                        )
                        logger.info("invoice sent to %s: %.2f %s", session.key, amount / 100, cfg.get("currency"))
                    except Exception as exc:
                        logger.error("invoice delivery to %s failed: %s", session.key, exc)
                else:
                    await self.say(session, "❌ Payment error: provider token or amount is missing")
                return "default"
            ''')


# ── record-store ──────────────────────────────────────────────────────────────

class RecordStoreTemplate(NodeTemplate):
    kind = NodeKind.RECORD_STORE

    def methods(self) -> List[str]:
        return _src(r'''
            async def _run_record_store(self, session, node):
                cfg = node["config"]
                key = substitute_variables(cfg.get("key", ""), session.vars)
                operation = cfg.get("operation", "save")
                if operation == "save":
                    result = await self.store.save(key, session.vars.get(cfg.get("data", ""), ""))
                elif operation == "load":
                    result = await self.store.load(key)
                else:
                    result = await self.store.delete(key)
                if cfg.get("result_variable"):
                    session.vars[cfg["result_variable"]] = result
                return "default"
            ''')


# ── catalog ───────────────────────────────────────────────────────────────────

class CatalogTemplate(NodeTemplate):
    kind = NodeKind.CATALOG
    helpers = ("parse_catalog", "catalog_page", "select_product")
    resume_callback = "_resume_catalog"

    def methods(self) -> List[str]:
        return _src(r'''
            async def _show_catalog_page(self, session, node, products):
                page_key = f"_catalog_page_{node['id']}"
                page, total, items = catalog_page(products, session.vars.get(page_key, 0))
                session.vars[page_key] = page
                buttons = [(f"{p['name']} - {p['price']}", f"{CATALOG_PRODUCT_PREFIX}{i}") for i, p in items]
                if page > 0:
                    buttons.append(("⬅️", CATALOG_PREV))
                if page < total - 1:
                    buttons.append(("➡️", CATALOG_NEXT))
                await self.say(session, f"🛍 Catalog (page {page + 1}/{total})", buttons=buttons)
                session.waiting = "callback"

            async def _run_catalog(self, session, node):
                cfg = node["config"]
                products = parse_catalog(cfg.get("source", "json"), cfg.get("products", ""))
                if not products:
                    await self.say(session, CATALOG_EMPTY_MESSAGE)
                    return "default"
                await self._show_catalog_page(session, node, products)
                return None

            async def _resume_catalog(self, session, node, tag):
                cfg = node["config"]
                products = parse_catalog(cfg.get("source", "json"), cfg.get("products", ""))
                page_key = f"_catalog_page_{node['id']}"
                if tag in (CATALOG_PREV, CATALOG_NEXT):
                    step = -1 if tag == CATALOG_PREV else 1
                    session.vars[page_key] = safe_int(session.vars.get(page_key, 0)) + step
                    await self._show_catalog_page(session, node, products)
                    return None
                if tag.startswith(CATALOG_PRODUCT_PREFIX) and select_product(products, tag, session.vars):
                    return "default"
                return None
            ''')


# ── intake-form ───────────────────────────────────────────────────────────────

class IntakeFormTemplate(NodeTemplate):
    kind = NodeKind.INTAKE_FORM
    helpers = ("form_field_prompt",)
    resume_input = "_resume_intake_form"

    def methods(self) -> List[str]:
        return _src(r'''
            async def _finish_form(self, session, node):
                message = substitute_variables(node["config"].get("success_message", ""), session.vars)
                await self.say(session, message or FORM_SUCCESS_MESSAGE)
                return "default"

            async def _run_intake_form(self, session, node):
                fields = node["config"].get("fields", [])
                if not fields:
                    return await self._finish_form(session, node)
                session.form_index = 0
                await self.say(session, form_field_prompt(fields[0].get("type", "name")))
                session.waiting = "input"
                return None

            async def _resume_intake_form(self, session, node, text):
                fields = node["config"].get("fields", [])
                if session.form_index < len(fields) and fields[session.form_index].get("variable"):
                    session.vars[fields[session.form_index]["variable"]] = text
                session.form_index += 1
                if session.form_index < len(fields):
                    await self.say(session, form_field_prompt(fields[session.form_index].get("type", "name")))
                    return None
                return await self._finish_form(session, node)
            ''')


# ── notify ────────────────────────────────────────────────────────────────────

class NotifyTemplate(NodeTemplate):
    kind = NodeKind.NOTIFY

    def methods(self) -> List[str]:
        return _src(r'''
            async def _run_notify(self, session, node):
                cfg = node["config"]
                if cfg.get("target", "admin") == "admin":
                    chat_id = substitute_variables(cfg.get("admin_chat_id", ""), session.vars) or ADMIN_CHAT_ID
                else:
                    chat_id = str(session.vars.get(cfg.get("chat_id", ""), ""))
                text = substitute_variables(cfg.get("message", ""), session.vars)
                if not chat_id:
                    logger.warning("notify %s: no recipient configured", node["id"])
                    return "default"
                try:
                    await self.transport.send_text(chat_id, text)
                except Exception as exc:
                    logger.error("notification to %s failed: %s", chat_id, exc)
                return "default"
            ''')


# ── order-confirm ─────────────────────────────────────────────────────────────

class OrderConfirmTemplate(NodeTemplate):
    kind = NodeKind.ORDER_CONFIRM
    resume_callback = "_resume_routes"

    def methods(self) -> List[str]:
        return _src(r'''
            async def _run_order_confirm(self, session, node):
                cfg = node["config"]
                parts = (
                    substitute_variables(cfg.get("title", ""), session.vars),
                    substitute_variables(cfg.get("template", ""), session.vars),
                )
                buttons = [(ORDER_CONFIRM_LABELS[port], tag) for tag, port in node["callbacks"].items()]
                await self.say(session, "\n\n".join(p for p in parts if p), buttons=buttons)
                if not buttons:
                    return "default"
                session.waiting = "callback"
                return None
            ''')


# ── llm-prompt ────────────────────────────────────────────────────────────────

class LLMPromptTemplate(NodeTemplate):
    kind = NodeKind.LLM_PROMPT

    def preamble(self) -> List[str]:
        return _completion_preamble()

    def methods(self) -> List[str]:
        return _src(r'''
            async def _run_llm_prompt(self, session, node):
                cfg = node["config"]
                reply = await request_completion(
                    substitute_variables(cfg.get("prompt", ""), session.vars),
                    api_key=cfg.get("api_key", ""),
                    model=cfg.get("model") or "gpt-3.5-turbo",
                    max_tokens=safe_int(cfg.get("max_tokens", 500), 500),
                    temperature=safe_float(cfg.get("temperature", 0.7), 0.7),
                )
                if cfg.get("result_variable"):
                    session.vars[cfg["result_variable"]] = reply
                return "default"
            ''')


# ── Registry ──────────────────────────────────────────────────────────────────

TEMPLATE_REGISTRY: Dict[NodeKind, NodeTemplate] = {
    t.kind: t for t in (
        MessageTemplate(),
        QuestionTemplate(),
        ChoiceTemplate(),
        ConditionTemplate(),
        DelayTemplate(),
        SetVariableTemplate(),
        LoopTemplate(),
        SendImageTemplate(),
        InlineKeyboardTemplate(),
        ComputeTemplate(),
        CartOpTemplate(),
        PaymentTemplate(),
        RecordStoreTemplate(),
        CatalogTemplate(),
        IntakeFormTemplate(),
        NotifyTemplate(),
        OrderConfirmTemplate(),
        LLMPromptTemplate(),
    )
}


def get_template(kind: NodeKind) -> NodeTemplate:
    try:
        return TEMPLATE_REGISTRY[kind]
    except KeyError:
        raise KeyError(f"No code template registered for node kind {kind.name}") from None


__all__ = ["CodeWriter", "NodeTemplate", "TEMPLATE_REGISTRY", "get_template"]
