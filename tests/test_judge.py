"""Tests for the relevance gate."""

from __future__ import annotations

import asyncio

import pytest

from devtrail.agents.judge import RelevanceGate, partition
from devtrail.config import Settings
from devtrail.errors import BackendError
from devtrail.events import Action
from devtrail.models.judging import WorkItem
from devtrail.stream.memory import InMemoryStream

from conftest import FakeReasoner, make_item


@pytest.mark.parametrize(
    ("count", "sizes"),
    [
        (0, []),
        (1, [1]),
        (10, [10]),
        (12, [6, 6]),
        (25, [9, 9, 7]),
    ],
)
def test_partition(count: int, sizes: list[int]) -> None:
    items = [make_item(n) for n in range(count)]
    batches = partition(items, 10)
    assert [len(b) for b in batches] == sizes
    assert [i for b in batches for i in b] == items


@pytest.mark.asyncio
async def test_admits_items_at_or_above_threshold(
    stream: InMemoryStream, reasoner: FakeReasoner, settings: Settings, twelve_items
) -> None:
    reasoner.scores = {"i1": 9, "i2": 7, "i3": 6.9, "i8": 10, "i12": 7.5}
    gate = RelevanceGate(stream, reasoner, settings)
    origins = {item.item_id: 1 for item in twelve_items}

    outcomes = await gate.spawn_judges("why redis?", 0, twelve_items, origins)

    assert len(outcomes) == 2
    assert sorted(len(ids) for ids in reasoner.score_calls) == [6, 6]

    events = await stream.read()
    batches = [e for e in events if e.action == Action.SCORED_BATCH]
    queued = [WorkItem.model_validate(e.payload) for e in events if e.action == Action.ADD_TO_QUEUE]
    assert len(batches) == 2
    assert sorted(w.item_id for w in queued) == ["i1", "i12", "i2", "i8"]
    assert all(w.priority >= 7 for w in queued)
    assert all(w.source == "initial_embedding" and w.origin_event_id == 1 for w in queued)

    scored = {v["item_id"]: v["score"] for b in batches for v in b.payload["verdicts"]}
    for w in queued:
        assert scored[w.item_id] == w.priority


@pytest.mark.asyncio
async def test_queue_events_reference_their_batch(
    stream: InMemoryStream, reasoner: FakeReasoner, settings: Settings
) -> None:
    reasoner.scores = {"i1": 8}
    gate = RelevanceGate(stream, reasoner, settings)

    await gate.spawn_judges("q", 2, [make_item(1), make_item(2)], {"i1": 40, "i2": 40})

    batch, queued = await stream.read()
    assert batch.action == Action.SCORED_BATCH
    assert batch.producer == "judge_2_1"
    assert batch.causal_refs == [40]
    assert queued.causal_refs == [batch.id, 40]
    assert queued.payload["source"] == "discovered_reference"
    assert queued.payload["iteration"] == 2


@pytest.mark.asyncio
async def test_failed_judge_does_not_block_others(
    stream: InMemoryStream, reasoner: FakeReasoner, settings: Settings, twelve_items
) -> None:
    reasoner.scores = {item.item_id: 9 for item in twelve_items}
    reasoner.fail_score_for = {"i1"}
    gate = RelevanceGate(stream, reasoner, settings)

    outcomes = await gate.spawn_judges("q", 0, twelve_items, {})

    assert [o.failed for o in sorted(outcomes, key=lambda o: o.judge_id)] == [True, False]
    events = await stream.read()
    errors = [e for e in events if e.action == Action.ERROR]
    assert len(errors) == 1
    assert errors[0].payload["unit"] == "judge_batch"
    assert len([e for e in events if e.action == Action.ADD_TO_QUEUE]) == 6


@pytest.mark.asyncio
async def test_missing_verdict_fails_the_batch(stream: InMemoryStream, reasoner: FakeReasoner, settings: Settings) -> None:
    reasoner.scores = {"i1": 9, "i2": 9}
    reasoner.drop_verdict_for = {"i2"}
    gate = RelevanceGate(stream, reasoner, settings)

    (outcome,) = await gate.spawn_judges("q", 0, [make_item(1), make_item(2)], {})

    assert outcome.failed
    assert [e.action for e in await stream.read()] == [Action.ERROR]


@pytest.mark.asyncio
async def test_concurrent_judges_are_capped(stream: InMemoryStream, reasoner: FakeReasoner) -> None:
    reasoner.score_delay = 0.01
    settings = Settings(judge_batch_size=1, max_concurrent_judges=3)
    gate = RelevanceGate(stream, reasoner, settings)

    outcomes = await gate.spawn_judges("q", 0, [make_item(n) for n in range(10)], {})

    assert len(outcomes) == 10
    assert 1 < reasoner.max_active_scores <= 3


class _ScoreStoreDown(FakeReasoner):
    async def score_batch(self, query, items):
        if items[0].item_id == "i0":
            raise BackendError("datastore unavailable")
        return await super().score_batch(query, items)


@pytest.mark.asyncio
async def test_backend_error_cancels_other_judges(stream: InMemoryStream) -> None:
    reasoner = _ScoreStoreDown()
    reasoner.score_delay = 0.05
    settings = Settings(judge_batch_size=1, max_concurrent_judges=2)
    gate = RelevanceGate(stream, reasoner, settings)

    with pytest.raises(BackendError):
        await gate.spawn_judges("q", 0, [make_item(n) for n in range(4)], {})

    await asyncio.sleep(0.2)
    assert await stream.read() == []
    # the judge still queued on the limit never reached the collaborator
    assert ["i3"] not in reasoner.score_calls
