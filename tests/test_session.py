"""Tests for the Explorer facade."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from devtrail.agents.synthesis import fallback_answer
from devtrail.config import Settings
from devtrail.errors import BackendError, SessionNotFoundError
from devtrail.events import Action
from devtrail.history.memory import InMemoryHistory
from devtrail.models.investigation import Finding, InvestigationResult
from devtrail.orchestrator.session import Explorer, build_explorer, new_session_id
from devtrail.orchestrator.state import LoopState
from devtrail.stream.memory import InMemoryStream

from conftest import FakeReasoner, ScriptedSearch, SlowThreads, high_lead, make_item


@pytest.fixture
def explorer(settings: Settings, reasoner: FakeReasoner, twelve_items, history) -> Explorer:
    reasoner.scores = {"i2": 9, "i4": 8, "i6": 7, "i9": 10, "i12": 7}
    backend = ScriptedSearch(results={"why redis?": twelve_items})
    return Explorer(settings, backend=backend, threads=history, reasoner=reasoner)


def test_session_ids_are_unique() -> None:
    assert new_session_id() != new_session_id()


@pytest.mark.asyncio
async def test_explore_runs_to_a_final_answer(explorer: Explorer, reasoner: FakeReasoner) -> None:
    result = await explorer.explore("why redis?", "p1")

    assert result.state is LoopState.CONVERGED
    assert result.answer == "Final answer from 5 findings"
    assert result.stats.claims == 5
    assert result.stats.findings == 5
    assert result.stats.iterations == 1
    assert result.stats.errors == 0

    events = await explorer.get_audit_trail(result.session_id)
    assert [e.id for e in events] == list(range(1, len(events) + 1))
    actions = [e.action for e in events]
    assert actions.count(Action.SEARCH_COMPLETE) == 1
    assert actions.count(Action.SCORED_BATCH) == 2
    assert actions.count(Action.CLAIM_WORK) == 5
    assert actions.count(Action.REQUEST_SEARCH) == 0
    assert actions.count(Action.FINALIZED) == 1
    assert actions[-1] == Action.FINALIZED
    assert await explorer.load_final_answer(result.session_id) == result.answer


@pytest.mark.asyncio
async def test_answer_progresses_then_finalizes_once(explorer: Explorer, reasoner: FakeReasoner) -> None:
    session_id = await explorer.start_session("why redis?", "p1")
    assert explorer.get_current_answer(session_id) == "Investigation in progress... No findings yet."
    assert explorer.session(session_id).state is LoopState.SEEDING

    state = await explorer.run_to_convergence(session_id)
    assert state.is_terminal
    assert await explorer.load_final_answer(session_id) is None

    first = await explorer.finalize(session_id)
    second = await explorer.finalize(session_id)

    assert first == second
    assert explorer.get_current_answer(session_id) == first
    assert len(reasoner.finalize_calls) == 1
    meta = await explorer.session(session_id).stream.get_meta()
    assert meta["query"] == "why redis?"


@pytest.mark.asyncio
async def test_nothing_relevant_gives_fallback(settings: Settings, reasoner: FakeReasoner, twelve_items, history) -> None:
    explorer = Explorer(
        settings,
        backend=ScriptedSearch(results={"why redis?": twelve_items}),
        threads=history,
        reasoner=reasoner,
    )

    result = await explorer.explore("why redis?", "p1")

    assert result.state is LoopState.CONVERGED
    assert result.answer == fallback_answer("why redis?")
    assert reasoner.finalize_calls == []


@pytest.mark.asyncio
async def test_unknown_session(explorer: Explorer) -> None:
    with pytest.raises(SessionNotFoundError) as info:
        explorer.get_current_answer("nope")
    assert info.value.session_id == "nope"

    with pytest.raises(SessionNotFoundError):
        await explorer.get_audit_trail("nope")
    with pytest.raises(SessionNotFoundError):
        await explorer.finalize("nope")


def test_build_explorer_needs_a_history_source(settings: Settings) -> None:
    with pytest.raises(ValueError):
        build_explorer(settings)


def test_build_explorer_from_history_file(settings: Settings, tmp_path, twelve_items) -> None:
    path = tmp_path / "history.jsonl"
    path.write_text("\n".join(item.model_dump_json() for item in twelve_items), encoding="utf-8")
    configured = settings.model_copy(update={"openai_api_key": "sk-test"})

    assert isinstance(build_explorer(configured, history_file=path), Explorer)


class _DraftStoreDown(InMemoryStream):
    async def put(self, name: str, value: Any) -> str:
        if name == "draft":
            raise BackendError("draft store unavailable")
        return await super().put(name, value)


class _DownSearch:
    def search(self, query_text, scope_id, filters, limit):
        raise BackendError("search index unavailable")


def _leads_chain(reasoner: FakeReasoner, length: int) -> tuple[ScriptedSearch, InMemoryHistory]:
    items = [make_item(n) for n in range(1, length + 2)]
    backend = ScriptedSearch(results={"why redis?": [items[0]]})
    for n in range(1, length + 1):
        reasoner.scores[f"i{n}"] = 9
        reasoner.analyses[f"i{n}"] = InvestigationResult(
            findings=[Finding(kind="context", summary=f"step {n}", source_item_id=f"i{n}")],
            leads=[high_lead("entity", f"next {n + 1}")],
        )
        backend.results[f"next {n + 1}"] = [items[n]]
    return backend, InMemoryHistory.from_items(items)


@pytest.mark.asyncio
async def test_synthesizer_backend_error_stops_the_loop(settings: Settings, reasoner: FakeReasoner) -> None:
    backend, history = _leads_chain(reasoner, 4)
    explorer = Explorer(
        settings,
        backend=backend,
        threads=SlowThreads(history),
        reasoner=reasoner,
        stream_factory=lambda session_id, _: _DraftStoreDown(session_id),
    )
    session_id = await explorer.start_session("why redis?", "p1")

    with pytest.raises(BackendError, match="draft store unavailable"):
        await explorer.run_to_convergence(session_id)

    events = await explorer.get_audit_trail(session_id)
    assert Action.LOOP_COMPLETE not in [e.action for e in events]
    await asyncio.sleep(0.3)
    assert len(await explorer.get_audit_trail(session_id)) == len(events)

    session = explorer.session(session_id)
    assert session.error == "draft store unavailable"
    assert session.done
    assert not session.state.is_terminal


@pytest.mark.asyncio
async def test_loop_backend_error_is_the_one_raised(settings: Settings, reasoner: FakeReasoner, history) -> None:
    explorer = Explorer(settings, backend=_DownSearch(), threads=history, reasoner=reasoner)
    session_id = await explorer.start_session("why redis?", "p1")

    with pytest.raises(BackendError, match="search index unavailable"):
        await explorer.run_to_convergence(session_id)

    assert explorer.session(session_id).error == "search index unavailable"


@pytest.mark.asyncio
async def test_finished_sessions_are_evicted_beyond_the_cap(
    settings: Settings, reasoner: FakeReasoner, twelve_items, history
) -> None:
    reasoner.scores = {"i2": 9}
    explorer = Explorer(
        settings.model_copy(update={"max_retained_sessions": 1}),
        backend=ScriptedSearch(results={"why redis?": twelve_items}),
        threads=history,
        reasoner=reasoner,
    )

    first = await explorer.explore("why redis?", "p1")
    second = await explorer.explore("why redis?", "p1")

    with pytest.raises(SessionNotFoundError):
        explorer.session(first.session_id)
    assert explorer.session(second.session_id).done


@pytest.mark.asyncio
async def test_unfinished_sessions_are_kept(settings: Settings, reasoner: FakeReasoner, history) -> None:
    explorer = Explorer(
        settings.model_copy(update={"max_retained_sessions": 1}),
        backend=ScriptedSearch(),
        threads=history,
        reasoner=reasoner,
    )

    first = await explorer.start_session("why redis?", "p1")
    second = await explorer.start_session("why kafka?", "p1")

    assert not explorer.session(first).done
    assert explorer.session(second).query == "why kafka?"
