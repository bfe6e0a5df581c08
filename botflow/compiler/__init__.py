"""
BotFlow Compiler — standalone bot programs
===========================================
Compiles a GraphStore into one self-contained Python file that runs the flow
as a Telegram bot.

Output dependencies: pip install aiogram python-dotenv  (+ openai for
llm-prompt nodes).  No botflow runtime required.

Pipeline:
    GraphStore  →  [extractor]  →  BotIR
    BotIR       →  [emitter]    →  Python source str

Public API
----------
    from botflow.compiler import compile_bot

    source = compile_bot(graph, bot_name="Pizza Bot", bot_token="123:ABC")
    with open("pizza_bot.py", "w", encoding="utf-8") as f:
        f.write(source)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .emitter import emit
from .extractor import CompileError, extract

if TYPE_CHECKING:
    from botflow.core.FlowGraph import GraphStore


def compile_bot(
    graph: "GraphStore",
    bot_name: str = "MyBot",
    bot_token: str = "YOUR_BOT_TOKEN",
) -> str:
    """
    Compile a flow graph into standalone bot source.

    Args:
        graph:      The GraphStore to compile.
        bot_name:   Human-readable name embedded in the output.
        bot_token:  Default bot token; BOT_TOKEN in the environment wins.

    Returns:
        Complete Python source as a single string.

    Raises:
        CompileError: The graph has no (or several) start nodes, or an edge
                      or output slot refers to a missing node or port.
    """
    return emit(extract(graph, bot_name=bot_name, bot_token=bot_token))


def program_filename(bot_name: str) -> str:
    """Turn 'Pizza Bot' → 'pizza_bot.py'."""
    safe = "".join(ch if ch.isalnum() else "_" for ch in bot_name.strip().lower()).strip("_")
    return f"{safe or 'bot'}.py"


__all__ = ["CompileError", "compile_bot", "program_filename"]
