"""LLM access."""

from __future__ import annotations

from devtrail.llm.client import ChatMessage, LLMClient

__all__ = ["ChatMessage", "LLMClient"]
