"""Discovery search router.

Runs one :class:`SearchRequest` against the search backend, drops items this session
has already surfaced, stores the survivors as a blob and records a ``search_complete``
event that carries only counts and identities.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from devtrail.errors import BackendError
from devtrail.events import Action, Phase
from devtrail.history.base import SearchBackend
from devtrail.logging import get_logger, log_exception
from devtrail.models.search import DiscoveredItem, LeadKind, SearchFilters, SearchRequest
from devtrail.stream.base import ExplorationStream

logger = get_logger(__name__)

PRODUCER = "discovery"

# Result caps per lead kind; None leaves a targeted query unbounded.
SEMANTIC_LIMITS: dict[LeadKind, int] = {
    LeadKind.INITIAL: 10,
    LeadKind.ENTITY: 15,
    LeadKind.CONVERSATION: 10,
}
PERSON_LIMIT = 15
FILE_LIMIT = 15
FALLBACK_LIMIT = 10


@dataclass(frozen=True)
class SearchOutcome:
    """What one executed search request produced."""

    request: SearchRequest
    items: list[DiscoveredItem]
    event_id: int
    duplicates_filtered: int = 0
    failed: bool = False


def route(request: SearchRequest) -> tuple[SearchFilters, int | None]:
    """Pick the backend filters and result limit for a request.

    Targeted kinds use their filter when the lead carried a value and fall back to a
    plain semantic query otherwise.
    """

    f = request.filters
    kind = request.lead_kind
    if kind is LeadKind.COMMIT:
        if f.commit_hash:
            return SearchFilters(commit_hash=f.commit_hash), None
        return SearchFilters(), FALLBACK_LIMIT
    if kind is LeadKind.PERSON:
        if f.author:
            return SearchFilters(author=f.author), PERSON_LIMIT
        return SearchFilters(), FALLBACK_LIMIT
    if kind is LeadKind.DATE:
        if f.date:
            return SearchFilters(date=f.date), None
        return SearchFilters(), FALLBACK_LIMIT
    if kind is LeadKind.FILE:
        if f.file_path:
            return SearchFilters(file_path=f.file_path), FILE_LIMIT
        return SearchFilters(), FALLBACK_LIMIT
    return SearchFilters(), SEMANTIC_LIMITS.get(kind, FALLBACK_LIMIT)


@dataclass
class DiscoveryService:
    """Executes search requests for one session.

    The set of already-seen item ids lives in process memory only. A second router
    over the same session (after a restart, say) starts with an empty set and may
    surface items again.
    """

    stream: ExplorationStream
    backend: SearchBackend
    scope_id: str
    _seen: set[str] = field(default_factory=set, init=False)

    @property
    def seen_count(self) -> int:
        return len(self._seen)

    async def execute(self, request: SearchRequest) -> SearchOutcome:
        """Run one request.

        A failing search is recorded as an ``error`` event and reported as an outcome
        with no items. Log and blob failures propagate.
        """

        filters, limit = route(request)
        logger.info(
            "Search start",
            extra={
                "iteration": request.iteration,
                "lead_kind": request.lead_kind.value,
                "origin_event_id": request.origin_event_id,
                "limit": limit,
            },
        )

        try:
            results = await asyncio.to_thread(
                self.backend.search, request.query_text, self.scope_id, filters, limit
            )
        except BackendError:
            raise
        except Exception as e:
            log_exception(
                logger,
                "Search failed",
                query=request.query_text,
                lead_kind=request.lead_kind.value,
            )
            event_id = await self.stream.append(
                producer=PRODUCER,
                phase=Phase.SEARCH,
                action=Action.ERROR,
                payload={
                    "unit": "search",
                    "error": str(e),
                    "iteration": request.iteration,
                    "origin_event_id": request.origin_event_id,
                    "query_text": request.query_text,
                    "lead_kind": request.lead_kind.value,
                },
                causal_refs=[request.origin_event_id],
            )
            return SearchOutcome(request=request, items=[], event_id=event_id, failed=True)

        fresh: list[DiscoveredItem] = []
        for item in results:
            if item.item_id in self._seen:
                continue
            self._seen.add(item.item_id)
            fresh.append(item)
        duplicates = len(results) - len(fresh)

        blob_refs: dict[str, str] = {}
        if fresh:
            blob_refs["results"] = await self.stream.put(
                f"search-{request.origin_event_id}",
                [item.model_dump(mode="json") for item in fresh],
            )

        event_id = await self.stream.append(
            producer=PRODUCER,
            phase=Phase.SEARCH,
            action=Action.SEARCH_COMPLETE,
            payload={
                "iteration": request.iteration,
                "origin_event_id": request.origin_event_id,
                "query_text": request.query_text,
                "lead_kind": request.lead_kind.value,
                "results_found": len(fresh),
                "duplicates_filtered": duplicates,
                "item_ids": [item.item_id for item in fresh],
            },
            blob_refs=blob_refs,
            causal_refs=[request.origin_event_id],
        )
        logger.info(
            "Search complete",
            extra={"found": len(fresh), "duplicates": duplicates, "event_id": event_id},
        )
        return SearchOutcome(request=request, items=fresh, event_id=event_id, duplicates_filtered=duplicates)
