"""
BotFlow Compiler — Python Source Emitter
=========================================
Turns a BotIR into one standalone bot program:

    header + imports
    settings (token, admin chat, database file)
    flow table          START_MESSAGE, ENTRY_NODE_ID, BLOCKS_GRAPH
    shared helpers      inlined from botflow.core.Semantics
    kind preambles      e.g. the OpenAI completion call
    RecordStore, Session, Transport
    FlowRuntime         execute_node() driver + one handler per kind present
    TelegramTransport + main()

The graph is embedded as data and walked by a single dispatcher, so the
output grows linearly with the node count.

Output dependencies: pip install aiogram python-dotenv  (+ openai when the
flow has llm-prompt nodes).
"""

from __future__ import annotations

import datetime
import inspect
import pprint
import textwrap
from typing import Dict, List

from botflow.core import Semantics

from .ir import BotIR
from .templates import CodeWriter, get_template

# Helpers every program gets; templates add the rest.
_CORE_HELPERS = ("substitute_variables", "check_condition", "safe_int", "safe_float")


# ── File header ───────────────────────────────────────────────────────────────

def _header(ir: BotIR) -> List[str]:
    today = datetime.date.today().isoformat()
    deps = "aiogram python-dotenv"
    if any(get_template(kind).preamble() for kind in ir.kinds()):
        deps += " openai"
    return [
        "#!/usr/bin/env python3",
        '"""',
        f"Compiled from BotFlow: {ir.name}",
        f"Generated:  {today}",
        "",
        f"Dependencies: pip install {deps}",
        "Run:          BOT_TOKEN=<token> python <this file>",
        "",
        "This file was produced by botflow.compiler.",
        "Do not edit by hand; re-run compile_bot() to regenerate.",
        '"""',
        "from __future__ import annotations",
        "",
        "import ast",
        "import asyncio",
        "import csv",
        "import io",
        "import json",
        "import logging",
        "import operator",
        "import os",
        "import re",
        "import time",
        "from pathlib import Path",
        "",
        "from dotenv import load_dotenv",
        "",
        "load_dotenv()",
        "",
        f"logger = logging.getLogger({_logger_name(ir.name)!r})",
        "",
    ]


def _logger_name(bot_name: str) -> str:
    safe = "".join(ch if ch.isalnum() else "_" for ch in bot_name.lower()).strip("_")
    return safe or "bot"


def _settings(ir: BotIR) -> List[str]:
    w = CodeWriter()
    w.section("Settings")
    w.blank()
    w.writeln(f"BOT_NAME = {ir.name!r}")
    w.writeln(f"BOT_TOKEN = os.environ.get(\"BOT_TOKEN\", {ir.token!r})")
    w.writeln("ADMIN_CHAT_ID = os.environ.get(\"ADMIN_CHAT_ID\", \"\")")
    w.writeln("DATABASE_FILE = os.environ.get(\"BOT_DATABASE\", \"bot_database.json\")")
    w.blank()
    w.blank()
    w.section("Flow graph")
    w.blank()
    w.writeln(f"START_MESSAGE = {ir.start_message!r}")
    w.writeln(f"ENTRY_NODE_ID = {ir.entry_id!r}")
    table = pprint.pformat(ir.table(), indent=1, width=100, sort_dicts=False)
    w.extend(f"BLOCKS_GRAPH = {table}".splitlines())
    return w.lines()


# ── Helpers ───────────────────────────────────────────────────────────────────

def _helpers(ir: BotIR) -> List[str]:
    wanted = set(_CORE_HELPERS)
    for kind in ir.kinds():
        wanted.update(get_template(kind).helpers)

    w = CodeWriter()
    w.section("Shared helpers")
    w.blank()
    for name in Semantics.INLINE_CONSTANTS:
        w.extend(f"{name} = {getattr(Semantics, name)!r}".splitlines())
    for fn in Semantics.INLINE_FUNCTIONS:
        if fn.__name__ in wanted:
            w.blank()
            w.blank()
            w.extend(inspect.getsource(fn).rstrip().splitlines())
    return w.lines()


def _preambles(ir: BotIR) -> List[str]:
    lines: List[str] = []
    for kind in ir.kinds():
        p = get_template(kind).preamble()
        if p:
            lines.extend(["", ""])
            lines.extend(p)
    return lines


# ── Runtime support classes ───────────────────────────────────────────────────

_SUPPORT = textwrap.dedent(r'''
    # ── Record store ─────────────────────────────────────────────────────────────

    class RecordStore:
        """
        Key/value records in one JSON file, read whole and rewritten whole.
        One lock guards every read-modify-write of the file, so throughput is
        bounded by file size; FlowRuntime.sessions likewise grows with every
        chat seen.
        """

        def __init__(self, path=DATABASE_FILE):
            self.path = Path(path)
            self._lock = asyncio.Lock()

        def _read(self):
            if not self.path.exists():
                return {}
            try:
                with self.path.open(encoding="utf-8") as fh:
                    data = json.load(fh)
            except (OSError, ValueError) as exc:
                logger.error("record store %s unreadable: %s", self.path, exc)
                return {}
            return data if isinstance(data, dict) else {}

        def _write(self, data):
            tmp = self.path.with_name(self.path.name + ".tmp")
            with tmp.open("w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False, indent=2)
            tmp.replace(self.path)

        async def save(self, key, value):
            async with self._lock:
                data = await asyncio.to_thread(self._read)
                data[key] = value
                try:
                    await asyncio.to_thread(self._write, data)
                except OSError as exc:
                    logger.error("record store write failed: %s", exc)
                    return False
            return True

        async def load(self, key):
            async with self._lock:
                data = await asyncio.to_thread(self._read)
            return data.get(key, "")

        async def delete(self, key):
            async with self._lock:
                data = await asyncio.to_thread(self._read)
                if key not in data:
                    return False
                del data[key]
                try:
                    await asyncio.to_thread(self._write, data)
                except OSError as exc:
                    logger.error("record store write failed: %s", exc)
                    return False
            return True


    # ── Sessions ─────────────────────────────────────────────────────────────────

    class Session:
        """One end-user's run through the flow."""

        def __init__(self, key):
            self.key = key
            self.lock = asyncio.Lock()
            self.reset()

        def reset(self):
            self.vars = {}
            self.cart = {}
            self.current = None
            self.waiting = None      # "input" | "callback" | None
            self.form_index = 0
            self.loop_frames = []


    # ── Transport ────────────────────────────────────────────────────────────────

    class Transport:
        """Messaging primitives the runtime calls; main() binds them to Telegram."""

        async def send_text(self, chat_id, text, buttons=None, options=None):
            raise NotImplementedError

        async def send_image(self, chat_id, image, caption):
            raise NotImplementedError

        async def send_invoice(self, chat_id, title, description, currency, amount, provider_token, payload):
            raise NotImplementedError

        async def sleep(self, seconds):
            await asyncio.sleep(seconds)
    ''').strip("\n")


_RUNTIME_CORE = textwrap.dedent(r'''
    def __init__(self, transport, store=None):
        self.transport = transport
        self.store = store if store is not None else RecordStore()
        # One Session per chat for the life of the process; idle chats are not evicted.
        self.sessions = {}

    def session(self, key):
        session = self.sessions.get(key)
        if session is None:
            session = self.sessions[key] = Session(key)
        return session

    async def say(self, session, text, buttons=None, options=None):
        try:
            await self.transport.send_text(session.key, text, buttons=buttons, options=options)
        except Exception as exc:
            logger.error("delivery to %s failed: %s", session.key, exc)

    # ── Events ──────────────────────────────────────────────────────────────

    async def start(self, key):
        session = self.session(key)
        async with session.lock:
            session.reset()
            if START_MESSAGE:
                await self.say(session, substitute_variables(START_MESSAGE, session.vars))
            await self.execute_node(session, ENTRY_NODE_ID)

    async def on_text(self, key, text):
        session = self.session(key)
        async with session.lock:
            node = BLOCKS_GRAPH.get(session.current) if session.waiting == "input" else None
            if node is None or node["type"] not in self.RESUME_INPUT:
                await self.say(session, RESTART_HINT)
                return
            port = await self._guarded(session, node, self.RESUME_INPUT[node["type"]], text)
            if port is not None:
                session.waiting = None
                await self.execute_node(session, node["outputs"].get(port))

    async def on_callback(self, key, tag):
        session = self.session(key)
        async with session.lock:
            node = BLOCKS_GRAPH.get(session.current) if session.waiting == "callback" else None
            if node is None or node["type"] not in self.RESUME_CALLBACK:
                logger.info("ignoring stale callback %r from %s", tag, key)
                return
            port = await self._guarded(session, node, self.RESUME_CALLBACK[node["type"]], tag)
            if port is not None:
                session.waiting = None
                await self.execute_node(session, node["outputs"].get(port))

    # ── Driver ──────────────────────────────────────────────────────────────

    async def _guarded(self, session, node, method, *args):
        try:
            return await getattr(self, method)(session, node, *args)
        except Exception:
            logger.exception("node %s failed for session %s", node["id"], session.key)
            session.waiting = None
            session.current = None
            await self.say(session, "Something went wrong. " + RESTART_HINT)
            return None

    def _next_from_loop(self, session):
        while session.loop_frames:
            frame = session.loop_frames[-1]
            port = self._loop_port(session, frame)
            target = BLOCKS_GRAPH[frame["node"]]["outputs"].get(port)
            if target is not None:
                return target
        return None

    async def execute_node(self, session, node_id):
        """Run from node_id until the session parks or the flow ends."""
        while True:
            if node_id is None:
                node_id = self._next_from_loop(session)
                if node_id is None:
                    session.current = None
                    return
            node = BLOCKS_GRAPH.get(node_id)
            if node is None:
                logger.error("unknown node %s", node_id)
                session.current = None
                return
            session.current = node_id
            port = await self._guarded(session, node, self.HANDLERS[node["type"]])
            if port is None:
                return
            node_id = node["outputs"].get(port)

    async def _resume_routes(self, session, node, tag):
        return node["callbacks"].get(tag)
    ''').strip("\n")


_TELEGRAM = textwrap.dedent(r'''
    # ── Telegram transport (aiogram 3) ───────────────────────────────────────────

    class TelegramTransport(Transport):

        def __init__(self, bot):
            from aiogram import types
            self.bot = bot
            self.types = types

        async def send_text(self, chat_id, text, buttons=None, options=None):
            t = self.types
            markup = None
            if buttons:
                markup = t.InlineKeyboardMarkup(inline_keyboard=[
                    [t.InlineKeyboardButton(text=label, callback_data=tag)] for label, tag in buttons
                ])
            elif options:
                markup = t.ReplyKeyboardMarkup(
                    keyboard=[[t.KeyboardButton(text=option)] for option in options],
                    resize_keyboard=True,
                    one_time_keyboard=True,
                )
            await self.bot.send_message(chat_id, text or "…", reply_markup=markup)

        async def send_image(self, chat_id, image, caption):
            photo = self.types.FSInputFile(image) if os.path.exists(image) else image
            await self.bot.send_photo(chat_id, photo=photo, caption=caption or None)

        async def send_invoice(self, chat_id, title, description, currency, amount, provider_token, payload):
            await self.bot.send_invoice(
                chat_id=chat_id,
                title=title,
                description=description,
                payload=payload,
                provider_token=provider_token,
                currency=currency,
                prices=[self.types.LabeledPrice(label=title, amount=amount)],
            )


    async def main():
        from aiogram import Bot, Dispatcher, F
        from aiogram.filters import CommandStart

        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
        if not BOT_TOKEN or BOT_TOKEN == "YOUR_BOT_TOKEN":
            logger.error("BOT_TOKEN is not set")
            return

        bot = Bot(token=BOT_TOKEN)
        runtime = FlowRuntime(TelegramTransport(bot), RecordStore(DATABASE_FILE))
        dp = Dispatcher()

        @dp.message(CommandStart())
        async def on_start(message):
            await runtime.start(message.chat.id)

        @dp.callback_query()
        async def on_callback(query):
            await query.answer()
            if query.message is not None:
                await runtime.on_callback(query.message.chat.id, query.data or "")

        @dp.message(F.text)
        async def on_text(message):
            await runtime.on_text(message.chat.id, message.text)

        logger.info("%s is running", BOT_NAME)
        await dp.start_polling(bot)


    if __name__ == "__main__":
        asyncio.run(main())
    ''').strip("\n")


# ── FlowRuntime class ─────────────────────────────────────────────────────────

def _dispatch_table(name: str, table: Dict[str, str]) -> List[str]:
    lines = [f"{name} = {{"]
    for kind, method in table.items():
        lines.append(f"    {kind!r}: {method!r},")
    lines.append("}")
    return lines


def _runtime_class(ir: BotIR) -> List[str]:
    handlers: Dict[str, str] = {}
    resume_input: Dict[str, str] = {}
    resume_callback: Dict[str, str] = {}
    for kind in ir.kinds():
        tmpl = get_template(kind)
        handlers[kind.value] = tmpl.run_method
        if tmpl.resume_input:
            resume_input[kind.value] = tmpl.resume_input
        if tmpl.resume_callback:
            resume_callback[kind.value] = tmpl.resume_callback

    w = CodeWriter()
    w.section("Flow runtime")
    w.blank()
    w.writeln("class FlowRuntime:")
    w.push()
    w.writeln('"""Drives every session through BLOCKS_GRAPH, one node at a time."""')
    w.blank()
    w.extend(_dispatch_table("HANDLERS", handlers))
    w.extend(_dispatch_table("RESUME_INPUT", resume_input))
    w.extend(_dispatch_table("RESUME_CALLBACK", resume_callback))
    w.blank()
    w.extend(_RUNTIME_CORE.splitlines())
    w.blank()
    w.comment("── Node kinds ──────────────────────────────────────────────────────")
    for kind in ir.kinds():
        w.blank()
        w.comment(f"{kind.value}")
        w.extend(get_template(kind).methods())
    w.pop()
    return w.lines()


# ── Public ────────────────────────────────────────────────────────────────────

def emit(ir: BotIR) -> str:
    """Assemble the full program source for a BotIR."""
    sections = [
        _header(ir),
        _settings(ir),
        [""],
        _helpers(ir),
        _preambles(ir),
        ["", ""],
        _SUPPORT.splitlines(),
        ["", ""],
        _runtime_class(ir),
        ["", ""],
        _TELEGRAM.splitlines(),
    ]
    lines: List[str] = []
    for section in sections:
        lines.extend(section)
        if section and section[-1] != "":
            lines.append("")
    return "\n".join(lines).rstrip("\n") + "\n"


__all__ = ["emit"]
