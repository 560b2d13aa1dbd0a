"""Reasoning collaborator.

Scoring, turn analysis and answer synthesis are delegated to a language model. The
coordination layer only sees the typed contract below; anything that goes wrong inside
a call (transport error, unparsable or invalid reply) surfaces as
:class:`~devtrail.errors.CollaboratorError`.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol, Sequence

from openai import OpenAIError
from pydantic import ValidationError

from devtrail.config import Settings
from devtrail.errors import CollaboratorError
from devtrail.llm.client import ChatMessage, LLMClient
from devtrail.logging import get_logger
from devtrail.models.investigation import Finding, InvestigationResult
from devtrail.models.judging import JudgeVerdict
from devtrail.models.search import DiscoveredItem, Turn
from devtrail.prompts import (
    FINALIZE_SYSTEM_PROMPT,
    FINALIZE_TASK,
    INVESTIGATOR_SYSTEM_PROMPT,
    INVESTIGATOR_TASKS,
    JUDGE_RUBRIC,
    JUDGE_SYSTEM_PROMPT,
    SYNTHESIS_FIRST_TASK,
    SYNTHESIS_FORMAT,
    SYNTHESIS_SYSTEM_PROMPT,
    SYNTHESIS_UPDATE_TASK,
)
from devtrail.utils.tags import extract_json_object

logger = get_logger(__name__)


class ReasoningCollaborator(Protocol):
    """Opaque scoring, analysis and synthesis operations."""

    async def score_batch(self, query: str, items: Sequence[DiscoveredItem]) -> list[JudgeVerdict]:
        """Score every item 0-10 for relevance to the query."""

    async def analyze_turn(
        self,
        query: str,
        turn: Turn,
        prior_turns: Sequence[Turn],
        peer_findings: Sequence[Finding],
    ) -> InvestigationResult:
        """Extract findings and leads from one turn of a thread."""

    async def synthesize(
        self,
        query: str,
        draft: str | None,
        new_findings: Sequence[Finding],
        total_findings: int,
    ) -> str:
        """Fold new findings into the running draft and return the new draft."""

    async def finalize_answer(self, query: str, draft: str, findings: Sequence[Finding]) -> str:
        """Polish the draft into a final answer over the complete findings."""


class LLMReasoner:
    """:class:`ReasoningCollaborator` backed by an OpenAI-compatible chat model."""

    def __init__(self, llm: LLMClient, settings: Settings) -> None:
        self._llm = llm
        self._settings = settings

    async def score_batch(self, query: str, items: Sequence[DiscoveredItem]) -> list[JudgeVerdict]:
        prompt = self._build_judge_prompt(query, items)
        raw = await self._complete(JUDGE_SYSTEM_PROMPT, prompt, model=self._settings.judge_model, temperature=0.0)
        data = self._parse_object(raw, what="judge")
        scores = data.get("scores")
        if not isinstance(scores, list):
            raise CollaboratorError("judge reply has no 'scores' list")
        try:
            return [JudgeVerdict.model_validate(s) for s in scores]
        except ValidationError as e:
            raise CollaboratorError(f"invalid judge verdict: {e}") from e

    async def analyze_turn(
        self,
        query: str,
        turn: Turn,
        prior_turns: Sequence[Turn],
        peer_findings: Sequence[Finding],
    ) -> InvestigationResult:
        prompt = self._build_investigation_prompt(query, turn, prior_turns, peer_findings)
        raw = await self._complete(
            INVESTIGATOR_SYSTEM_PROMPT, prompt, model=self._settings.worker_model, temperature=0.2
        )
        data = self._parse_object(raw, what="investigation")

        # provenance comes from the turn, not from the model
        findings = []
        for f in data.get("findings") or []:
            if isinstance(f, dict):
                findings.append(
                    {
                        **f,
                        "source_item_id": turn.item_id,
                        "author": turn.author,
                        "timestamp": turn.timestamp,
                    }
                )
        data["findings"] = findings
        try:
            return InvestigationResult.model_validate(data)
        except ValidationError as e:
            raise CollaboratorError(f"invalid investigation result: {e}") from e

    async def synthesize(
        self,
        query: str,
        draft: str | None,
        new_findings: Sequence[Finding],
        total_findings: int,
    ) -> str:
        lines = [f"User Query: {query}", ""]
        if draft:
            lines.append("CURRENT ANSWER:")
            lines.append(draft)
        else:
            lines.append("CURRENT ANSWER: None yet (this is the first update)")
        lines.append("")
        lines.append(f"NEW FINDINGS ({len(new_findings)} new, {total_findings} total):")
        lines.extend(_format_findings(new_findings))
        lines.append("")
        lines.append(SYNTHESIS_UPDATE_TASK if draft else SYNTHESIS_FIRST_TASK)
        lines.append("")
        lines.append(SYNTHESIS_FORMAT)

        text = await self._complete(
            SYNTHESIS_SYSTEM_PROMPT, "\n".join(lines), model=self._settings.synthesis_model, temperature=0.3
        )
        return self._require_text(text, what="synthesis")

    async def finalize_answer(self, query: str, draft: str, findings: Sequence[Finding]) -> str:
        lines = [
            f"User Query: {query}",
            "",
            "CURRENT ANSWER:",
            draft or "<none>",
            "",
            f"ALL FINDINGS ({len(findings)}):",
        ]
        lines.extend(_format_findings(findings))
        lines.append("")
        lines.append(FINALIZE_TASK)

        text = await self._complete(
            FINALIZE_SYSTEM_PROMPT, "\n".join(lines), model=self._settings.synthesis_model, temperature=0.3
        )
        return self._require_text(text, what="final answer")

    async def _complete(self, system: str, prompt: str, *, model: str, temperature: float) -> str:
        messages = [
            ChatMessage(role="system", content=system),
            ChatMessage(role="user", content=prompt),
        ]
        try:
            return await asyncio.to_thread(self._llm.complete, messages, model=model, temperature=temperature)
        except OpenAIError as e:
            logger.warning("Reasoning call failed", extra={"model": model, "error": str(e)})
            raise CollaboratorError(f"{model} call failed: {e}") from e

    @staticmethod
    def _parse_object(raw: str, *, what: str) -> dict[str, Any]:
        data = extract_json_object(raw)
        if data is None:
            raise CollaboratorError(f"unparsable {what} reply: {raw[:200]!r}")
        return data

    @staticmethod
    def _require_text(text: str, *, what: str) -> str:
        text = text.strip()
        if not text:
            raise CollaboratorError(f"empty {what} reply")
        return text

    @staticmethod
    def _build_judge_prompt(query: str, items: Sequence[DiscoveredItem]) -> str:
        lines: list[str] = [f"User Query: {query}", "", f"INTERACTIONS TO SCORE ({len(items)}):"]
        for i, item in enumerate(items, start=1):
            lines.append(f"[{i}] id: {item.item_id}")
            lines.append(f"    Author: {item.author or 'unknown'} | Date: {item.timestamp or 'unknown'}")
            if item.thread_title:
                lines.append(f"    Conversation: {item.thread_title}")
            lines.append(f"    Prompt: {item.prompt_text[:500]}")
            lines.append(f"    Response: {item.response_text[:500]}")
            if item.similarity is not None:
                lines.append(f"    Search similarity: {item.similarity:.3f}")
        lines.append("")
        lines.append(JUDGE_RUBRIC)
        return "\n".join(lines)

    @staticmethod
    def _build_investigation_prompt(
        query: str,
        turn: Turn,
        prior_turns: Sequence[Turn],
        peer_findings: Sequence[Finding],
    ) -> str:
        lines: list[str] = [f"User Query: {query}", ""]

        lines.append("CONVERSATION CONTEXT (previous turns):")
        if not prior_turns:
            lines.append("<start of conversation>")
        for t in prior_turns:
            lines.append(f"[{t.author or 'unknown'} at {t.timestamp or '?'}]: {t.prompt_text[:100]}...")
        lines.append("")

        lines.append("CURRENT INTERACTION:")
        lines.append(f"Author: {turn.author or 'unknown'}")
        lines.append(f"Time: {turn.timestamp or 'unknown'}")
        lines.append(f"Prompt: {turn.prompt_text}")
        lines.append(f"Response: {turn.response_text}")
        lines.append("")

        lines.append("WHAT OTHER INVESTIGATORS FOUND:")
        if peer_findings:
            lines.extend(f"- {f.summary}" for f in peer_findings)
        else:
            lines.append("No findings yet from other investigators")
        lines.append("")

        lines.append(INVESTIGATOR_TASKS)
        return "\n".join(lines)


def _format_findings(findings: Sequence[Finding]) -> list[str]:
    out: list[str] = []
    for i, f in enumerate(findings, start=1):
        out.append(f"{i}. [{f.kind.upper()}] {f.summary}")
        if f.detail:
            out.append(f"   Detail: {f.detail}")
        if f.related_entities:
            out.append(f"   Related: {', '.join(f.related_entities)}")
        source = f.author or "unknown"
        if f.timestamp:
            source = f"{source} at {f.timestamp}"
        out.append(f"   Source: {source}")
    return out
