"""Shared fixtures: scripted collaborators and in-memory backends."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Sequence

import pytest

from devtrail.config import Settings
from devtrail.errors import BackendError, CollaboratorError
from devtrail.history.memory import InMemoryHistory
from devtrail.models.investigation import Finding, InvestigationResult, Lead
from devtrail.models.judging import JudgeVerdict
from devtrail.models.search import DiscoveredItem, SearchFilters, Turn
from devtrail.stream.memory import InMemoryStream


def make_item(
    n: int,
    *,
    thread: str | None = None,
    author: str = "alice",
    ts: str | None = None,
    prompt: str = "",
    response: str = "",
) -> DiscoveredItem:
    return DiscoveredItem(
        item_id=f"i{n}",
        thread_id=thread or f"t{n}",
        prompt_text=prompt or f"prompt {n}",
        response_text=response or f"response {n}",
        author=author,
        timestamp=ts or f"2024-03-{(n % 28) + 1:02d}T10:00:00",
        thread_title=f"conversation {n}",
        platform="cli",
    )


@dataclass
class ScriptedSearch:
    """Search backend that returns canned results per query text.

    Results for an unknown query are empty. Canned lists are returned whole; the
    requested limit is only recorded.
    """

    results: dict[str, list[DiscoveredItem]] = field(default_factory=dict)
    fail_queries: set[str] = field(default_factory=set)
    calls: list[tuple[str, SearchFilters | None, int | None]] = field(default_factory=list)

    def search(
        self,
        query_text: str,
        scope_id: str,
        filters: SearchFilters | None,
        limit: int | None,
    ) -> list[DiscoveredItem]:
        self.calls.append((query_text, filters, limit))
        if query_text in self.fail_queries:
            raise CollaboratorError(f"search backend rejected {query_text!r}")
        return list(self.results.get(query_text, []))


class FakeReasoner:
    """Scripted :class:`ReasoningCollaborator`.

    - ``scores`` maps item id to score (default 0).
    - ``analyses`` maps item id to a result, or to a callable producing one; turns with
      no entry yield a single ``context`` finding.
    - ``fail_score_for`` / ``fail_analyze_for`` name item ids whose call raises.
    """

    def __init__(self) -> None:
        self.scores: dict[str, float] = {}
        self.analyses: dict[str, InvestigationResult | Callable[[Turn], InvestigationResult]] = {}
        self.fail_score_for: set[str] = set()
        self.fail_analyze_for: set[str] = set()
        self.drop_verdict_for: set[str] = set()
        self.fail_synthesize = False
        self.fail_finalize = False
        self.score_delay = 0.0

        self.score_calls: list[list[str]] = []
        self.analyze_calls: list[tuple[str, int, int]] = []
        self.synth_calls: list[tuple[str | None, int, int]] = []
        self.finalize_calls: list[tuple[str, int]] = []
        self.active_scores = 0
        self.max_active_scores = 0

    async def score_batch(self, query: str, items: Sequence[DiscoveredItem]) -> list[JudgeVerdict]:
        ids = [item.item_id for item in items]
        self.score_calls.append(ids)
        self.active_scores += 1
        self.max_active_scores = max(self.max_active_scores, self.active_scores)
        try:
            await asyncio.sleep(self.score_delay)
            if self.fail_score_for & set(ids):
                raise CollaboratorError("judge reply was not JSON")
            return [
                JudgeVerdict(item_id=i, score=self.scores.get(i, 0.0), rationale="scripted")
                for i in ids
                if i not in self.drop_verdict_for
            ]
        finally:
            self.active_scores -= 1

    async def analyze_turn(
        self,
        query: str,
        turn: Turn,
        prior_turns: Sequence[Turn],
        peer_findings: Sequence[Finding],
    ) -> InvestigationResult:
        self.analyze_calls.append((turn.item_id, len(prior_turns), len(peer_findings)))
        await asyncio.sleep(0)
        if turn.item_id in self.fail_analyze_for:
            raise CollaboratorError("analysis reply was not JSON")
        scripted = self.analyses.get(turn.item_id)
        if callable(scripted):
            return scripted(turn)
        if scripted is not None:
            return scripted
        return InvestigationResult(
            findings=[Finding(kind="context", summary=f"context from {turn.item_id}", source_item_id=turn.item_id)]
        )

    async def synthesize(
        self,
        query: str,
        draft: str | None,
        new_findings: Sequence[Finding],
        total_findings: int,
    ) -> str:
        self.synth_calls.append((draft, len(new_findings), total_findings))
        if self.fail_synthesize:
            raise CollaboratorError("synthesis unavailable")
        return f"Draft covering {total_findings} findings [INVESTIGATING: more]"

    async def finalize_answer(self, query: str, draft: str, findings: Sequence[Finding]) -> str:
        self.finalize_calls.append((draft, len(findings)))
        if self.fail_finalize:
            raise CollaboratorError("synthesis unavailable")
        return f"Final answer from {len(findings)} findings"


@dataclass
class SlowThreads:
    """Thread store that blocks for ``delay`` seconds per read; ``down_threads`` raise."""

    inner: InMemoryHistory
    delay: float = 0.1
    down_threads: set[str] = field(default_factory=set)

    def get_full_thread(self, thread_id: str) -> list[Turn]:
        if thread_id in self.down_threads:
            raise BackendError("datastore unavailable")
        time.sleep(self.delay)
        return self.inner.get_full_thread(thread_id)


def high_lead(kind: str, query: str, value: str = "") -> Lead:
    return Lead(kind=kind, value=value, search_query_text=query, rationale="needed", priority="high")


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        max_iterations=5,
        max_workers=5,
        worker_stagger_s=0.0,
        synthesis_interval_s=0.01,
        artifacts_dir=tmp_path / "artifacts",
    )


@pytest.fixture
def stream() -> InMemoryStream:
    return InMemoryStream("s1")


@pytest.fixture
def reasoner() -> FakeReasoner:
    return FakeReasoner()


@pytest.fixture
def twelve_items() -> list[DiscoveredItem]:
    return [make_item(n) for n in range(1, 13)]


@pytest.fixture
def history(twelve_items) -> InMemoryHistory:
    return InMemoryHistory.from_items(twelve_items)
