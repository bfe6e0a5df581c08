"""
botflow-compile — compile a saved flow snapshot into a standalone bot
=====================================================================

Usage
-----
    botflow-compile <snapshot.json> [options]

Options
-------
    --name   <NAME>     Bot name embedded in the program (default: BOTFLOW_BOT_NAME or the file stem)
    --token  <TOKEN>    Default bot token (default: BOTFLOW_BOT_TOKEN; BOT_TOKEN at runtime wins)
    --out    <dir>      Output directory (default: current directory)
    --print             Print the generated source to stdout instead of writing a file
    --strict            Treat unknown block types as errors (default: warnings only)

Examples
--------
    botflow-compile flows/pizza.json --name "Pizza Bot"
    botflow-compile flows/pizza.json --out build/ --token 123:ABC
    botflow-compile flows/pizza.json --print
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from botflow.compiler import CompileError, compile_bot, program_filename
from botflow.compiler.schema import SchemaError, validate_file
from botflow.config import Settings
from botflow.core.Snapshot import deserialize


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="botflow-compile",
        description="Compile a BotFlow snapshot to a standalone Telegram bot.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    p.add_argument(
        "snapshot_json",
        metavar="snapshot.json",
        help="Path to the exported flow snapshot.",
    )
    p.add_argument("--name", default=None, help="Bot name embedded in the output.")
    p.add_argument("--token", default=None, help="Default bot token compiled into the output.")
    p.add_argument(
        "--out",
        metavar="DIR",
        default=".",
        help="Output directory for the compiled .py file (default: current directory).",
    )
    p.add_argument(
        "--print",
        dest="print_only",
        action="store_true",
        help="Print generated source to stdout instead of writing a file.",
    )
    p.add_argument(
        "--strict",
        action="store_true",
        help="Treat unknown block types as errors rather than warnings.",
    )
    return p


def main(argv=None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.WARNING, format="[%(levelname)s] %(name)s: %(message)s")
    settings = Settings.from_env()

    json_path = Path(args.snapshot_json)
    if not json_path.exists():
        print(f"[error] File not found: {json_path}", file=sys.stderr)
        return 1

    # ── Validate JSON ────────────────────────────────────────────────────────
    try:
        data = validate_file(json_path, strict=args.strict)
    except json.JSONDecodeError as exc:
        print(f"[error] Invalid JSON: {exc}", file=sys.stderr)
        return 1
    except SchemaError as exc:
        print(f"[error] Schema validation failed: {exc}", file=sys.stderr)
        return 1

    bot_name = args.name or os.environ.get("BOTFLOW_BOT_NAME") or json_path.stem
    bot_token = args.token or settings.bot_token

    # ── Snapshot → GraphStore ────────────────────────────────────────────────
    graph = deserialize(data)
    if not args.print_only:
        print(f"[botflow-compile] bot    : {bot_name}")
        print(f"[botflow-compile] blocks : {len(graph)}")
        print(f"[botflow-compile] edges  : {len(graph.edges)}")

    # ── Compile ──────────────────────────────────────────────────────────────
    try:
        source = compile_bot(graph, bot_name=bot_name, bot_token=bot_token)
    except CompileError as exc:
        where = exc.node_id or exc.edge_id
        suffix = f" ({where})" if where else ""
        print(f"[error] Compile failed: {exc}{suffix}", file=sys.stderr)
        return 1

    # ── Output ───────────────────────────────────────────────────────────────
    if args.print_only:
        print(source)
        return 0

    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / program_filename(bot_name)
    out_path.write_text(source, encoding="utf-8")

    print(f"[botflow-compile] wrote  : {out_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
