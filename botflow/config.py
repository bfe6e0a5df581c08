"""
Runtime settings for the editor server and CLI.

Values come from the environment; a `.env` file in the working directory (or
the path in BOTFLOW_ENV_FILE) is loaded first so secrets such as
OPENAI_API_KEY need no manual `export`.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv


def _flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    host: str = "0.0.0.0"
    port: int = 3001
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    history_size: int = 50
    bot_name: str = "MyBot"
    bot_token: str = "YOUR_BOT_TOKEN"
    # Preview llm-prompt nodes call OpenAI instead of returning a canned reply.
    preview_llm: bool = False

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> "Settings":
        if load_env_file:
            load_dotenv(os.environ.get("BOTFLOW_ENV_FILE") or None)
        env = os.environ
        origins = env.get("BOTFLOW_CORS_ORIGINS", "*")
        return cls(
            host=env.get("BOTFLOW_HOST", cls.host),
            port=int(env.get("BOTFLOW_PORT", cls.port)),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            history_size=int(env.get("BOTFLOW_HISTORY_SIZE", cls.history_size)),
            bot_name=env.get("BOTFLOW_BOT_NAME", cls.bot_name),
            bot_token=env.get("BOTFLOW_BOT_TOKEN", cls.bot_token),
            preview_llm=_flag(env.get("BOTFLOW_PREVIEW_LLM", "")),
        )
