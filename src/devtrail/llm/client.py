"""OpenAI-compatible LLM client.

This wraps the `openai` Python SDK and provides a minimal interface for chat completions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Sequence

from openai import OpenAI

from devtrail.config import Settings
from devtrail.logging import get_logger

logger = get_logger(__name__)

Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class ChatMessage:
    """A chat message."""

    role: Role
    content: str


class LLMClient:
    """LLM client using OpenAI-compatible Chat Completions API."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        if not settings.openai_api_key:
            raise ValueError(
                "Missing DEVTRAIL_OPENAI_API_KEY. "
                "Set it in environment variables or a .env file."
            )

        self._client = OpenAI(api_key=settings.openai_api_key, base_url=settings.openai_base_url)

    def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        model: str,
        temperature: float = 0.2,
        max_tokens: int | None = None,
    ) -> str:
        """Generate a completion.

        Args:
            messages: Chat messages.
            model: Model name; each role (judge, worker, synthesis) has its own.
            temperature: Sampling temperature.
            max_tokens: Optional cap on generated tokens.

        Returns:
            Assistant message content.
        """

        payload: list[dict[str, str]] = [{"role": m.role, "content": m.content} for m in messages]
        resp = self._client.chat.completions.create(
            model=model,
            messages=payload,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=self._settings.openai_timeout_s,
        )
        choice = resp.choices[0]
        if not choice.message or choice.message.content is None:
            logger.warning("Empty completion", extra={"model": model})
            return ""
        return choice.message.content
