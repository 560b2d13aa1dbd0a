"""Tests for the discovery search router."""

from __future__ import annotations

import pytest

from devtrail.agents.discovery import DiscoveryService, route
from devtrail.errors import BackendError
from devtrail.events import Action, Phase
from devtrail.models.search import LeadKind, SearchFilters, SearchRequest
from devtrail.stream.memory import InMemoryStream

from conftest import ScriptedSearch, make_item


@pytest.mark.parametrize(
    ("kind", "filters", "expected_filters", "limit"),
    [
        (LeadKind.INITIAL, SearchFilters(), SearchFilters(), 10),
        (LeadKind.ENTITY, SearchFilters(), SearchFilters(), 15),
        (LeadKind.CONVERSATION, SearchFilters(), SearchFilters(), 10),
        (LeadKind.COMMIT, SearchFilters(commit_hash="abc"), SearchFilters(commit_hash="abc"), None),
        (LeadKind.COMMIT, SearchFilters(), SearchFilters(), 10),
        (LeadKind.PERSON, SearchFilters(author="bob"), SearchFilters(author="bob"), 15),
        (LeadKind.DATE, SearchFilters(date="2024-03-01"), SearchFilters(date="2024-03-01"), None),
        (LeadKind.FILE, SearchFilters(file_path="a.py"), SearchFilters(file_path="a.py"), 15),
        (LeadKind.FILE, SearchFilters(author="bob"), SearchFilters(), 10),
    ],
)
def test_route(kind: LeadKind, filters: SearchFilters, expected_filters: SearchFilters, limit: int | None) -> None:
    request = SearchRequest(query_text="q", iteration=1, origin_event_id=1, lead_kind=kind, filters=filters)
    assert route(request) == (expected_filters, limit)


@pytest.mark.asyncio
async def test_execute_stores_items_as_blob(stream: InMemoryStream) -> None:
    backend = ScriptedSearch(results={"why redis": [make_item(1), make_item(2)]})
    discovery = DiscoveryService(stream=stream, backend=backend, scope_id="p1")

    outcome = await discovery.execute(SearchRequest(query_text="why redis", iteration=0, origin_event_id=1))

    assert [i.item_id for i in outcome.items] == ["i1", "i2"]
    (event,) = await stream.read()
    assert event.id == outcome.event_id
    assert event.action == Action.SEARCH_COMPLETE
    assert event.causal_refs == [1]
    assert event.payload["results_found"] == 2
    assert event.payload["item_ids"] == ["i1", "i2"]
    # only identities in the payload, content lives in the blob
    assert "prompt 1" not in str(event.payload)
    stored = await stream.get(event.blob_refs["results"])
    assert [r["item_id"] for r in stored] == ["i1", "i2"]
    assert stored[0]["prompt_text"] == "prompt 1"


@pytest.mark.asyncio
async def test_items_are_never_returned_twice(stream: InMemoryStream) -> None:
    backend = ScriptedSearch(
        results={
            "first": [make_item(1), make_item(2)],
            "second": [make_item(2), make_item(3), make_item(1)],
        }
    )
    discovery = DiscoveryService(stream=stream, backend=backend, scope_id="p1")

    a = await discovery.execute(SearchRequest(query_text="first", iteration=0, origin_event_id=1))
    b = await discovery.execute(SearchRequest(query_text="second", iteration=1, origin_event_id=2))
    c = await discovery.execute(SearchRequest(query_text="second", iteration=2, origin_event_id=3))

    assert [i.item_id for i in a.items] == ["i1", "i2"]
    assert [i.item_id for i in b.items] == ["i3"]
    assert b.duplicates_filtered == 2
    assert c.items == []
    assert discovery.seen_count == 3

    events = await stream.read()
    assert events[-1].blob_refs == {}
    assert events[-1].payload["duplicates_filtered"] == 3


@pytest.mark.asyncio
async def test_search_failure_is_recorded_not_raised(stream: InMemoryStream) -> None:
    backend = ScriptedSearch(fail_queries={"broken"})
    discovery = DiscoveryService(stream=stream, backend=backend, scope_id="p1")

    outcome = await discovery.execute(
        SearchRequest(query_text="broken", iteration=1, origin_event_id=5, lead_kind=LeadKind.ENTITY)
    )

    assert outcome.failed
    assert outcome.items == []
    (event,) = await stream.read()
    assert event.action == Action.ERROR
    assert event.phase == Phase.SEARCH
    assert event.payload["unit"] == "search"
    assert event.payload["origin_event_id"] == 5
    assert event.causal_refs == [5]


class _DownBackend:
    def search(self, query_text, scope_id, filters, limit):
        raise BackendError("datastore unavailable")


@pytest.mark.asyncio
async def test_backend_errors_propagate(stream: InMemoryStream) -> None:
    discovery = DiscoveryService(stream=stream, backend=_DownBackend(), scope_id="p1")
    with pytest.raises(BackendError):
        await discovery.execute(SearchRequest(query_text="q", iteration=0, origin_event_id=1))
    assert await stream.read() == []


@pytest.mark.asyncio
async def test_backend_receives_scope_filters_and_limit(stream: InMemoryStream) -> None:
    backend = ScriptedSearch()
    discovery = DiscoveryService(stream=stream, backend=backend, scope_id="p1")

    await discovery.execute(
        SearchRequest(
            query_text="commit abc",
            iteration=1,
            origin_event_id=1,
            lead_kind=LeadKind.COMMIT,
            filters=SearchFilters(commit_hash="abc"),
        )
    )

    assert backend.calls == [("commit abc", SearchFilters(commit_hash="abc"), None)]
