"""
Text-generation call used by llm-prompt nodes.

`request_completion` is inlined into compiled bots and also backs live LLM
replies in the preview.  It never raises: failures come back as an
"Error: ..." string that the flow binds and carries on with.
"""
from __future__ import annotations

import logging
import os

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


async def request_completion(prompt, *, api_key="", model="gpt-3.5-turbo", max_tokens=500, temperature=0.7):
    key = api_key or os.environ.get("OPENAI_API_KEY", "")
    if not key:
        return "Error: OpenAI API key is not configured"
    try:
        client = AsyncOpenAI(api_key=key)
        response = await client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=max_tokens,
            temperature=temperature,
        )
        return response.choices[0].message.content or ""
    except Exception as exc:
        logger.warning("completion request failed: %s", exc)
        return f"Error: {exc}"


async def mock_completion(prompt, *, api_key="", model="gpt-3.5-turbo", max_tokens=500, temperature=0.7):
    """Offline stand-in used by the preview unless live replies are enabled."""
    return f"[{model}] reply to: {prompt}"
