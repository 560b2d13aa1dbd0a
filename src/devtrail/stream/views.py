"""Derived views over a session log.

The log is the only source of truth. Queue state, pending searches and statistics are
recomputed from an ordered event list every time they are needed and never cached.
"""

from __future__ import annotations

from dataclasses import dataclass

from devtrail.events import Action, Event
from devtrail.models.investigation import Finding
from devtrail.models.judging import WorkItem
from devtrail.models.search import LeadKind, SearchFilters, SearchRequest


def fulfilled_origins(events: list[Event]) -> set[int]:
    """Ids of events that some ``search_complete`` has consumed.

    A search-scoped ``error`` also consumes its origin: the request ran and produced
    nothing, and is not retried.
    """

    out: set[int] = set()
    for e in events:
        failed_search = e.action == Action.ERROR and e.payload.get("unit") == "search"
        if e.action != Action.SEARCH_COMPLETE and not failed_search:
            continue
        origin = e.payload.get("origin_event_id")
        if isinstance(origin, int):
            out.add(origin)
        out.update(e.causal_refs)
    return out


def pending_search_requests(events: list[Event], *, iteration: int) -> list[SearchRequest]:
    """``request_search`` events not yet answered by a ``search_complete``.

    Args:
        events: Full session log.
        iteration: Iteration the returned requests will run in.
    """

    done = fulfilled_origins(events)
    pending: list[SearchRequest] = []
    for e in events:
        if e.action != Action.REQUEST_SEARCH or e.id in done:
            continue
        pending.append(
            SearchRequest(
                query_text=str(e.payload.get("query_text", "")),
                iteration=iteration,
                origin_event_id=e.id,
                lead_kind=LeadKind(e.payload.get("lead_kind", LeadKind.ENTITY.value)),
                filters=SearchFilters.model_validate(e.payload.get("filters") or {}),
                rationale=e.payload.get("rationale"),
            )
        )
    return pending


def unclaimed_work(events: list[Event]) -> list[tuple[Event, WorkItem]]:
    """Queued work with no matching claim, highest priority first.

    An item counts as claimed when any ``claim_work`` names the same item or the same
    thread, since investigating one turn walks its whole thread. Ties keep log order.
    """

    claimed_items: set[str] = set()
    claimed_threads: set[str] = set()
    for e in events:
        if e.action == Action.CLAIM_WORK:
            claimed_items.add(str(e.payload.get("item_id")))
            claimed_threads.add(str(e.payload.get("thread_id")))

    queue: list[tuple[Event, WorkItem]] = []
    for e in events:
        if e.action != Action.ADD_TO_QUEUE:
            continue
        item = WorkItem.model_validate(e.payload)
        if item.item_id in claimed_items or item.thread_id in claimed_threads:
            continue
        queue.append((e, item))

    queue.sort(key=lambda pair: pair[1].priority, reverse=True)
    return queue


def queue_size(events: list[Event]) -> int:
    return len(unclaimed_work(events))


def collect_findings(events: list[Event]) -> list[Finding]:
    return [Finding.model_validate(e.payload) for e in events if e.action == Action.FINDING]


@dataclass(frozen=True)
class SessionStats:
    """Counters summarizing a session, derived from its log."""

    iterations: int
    items_found: int
    findings: int
    leads_requested: int
    work_items: int
    claims: int
    errors: int

    def snapshot(self) -> dict[str, int]:
        return {
            "iterations": self.iterations,
            "items_found": self.items_found,
            "findings": self.findings,
            "leads_requested": self.leads_requested,
            "work_items": self.work_items,
            "claims": self.claims,
            "errors": self.errors,
        }


def session_stats(events: list[Event]) -> SessionStats:
    iterations: set[int] = set()
    items_found = 0
    counts = {
        Action.FINDING: 0,
        Action.REQUEST_SEARCH: 0,
        Action.ADD_TO_QUEUE: 0,
        Action.CLAIM_WORK: 0,
        Action.ERROR: 0,
    }
    for e in events:
        if e.action == Action.SEARCH_COMPLETE:
            iterations.add(int(e.payload.get("iteration", 0)))
            items_found += int(e.payload.get("results_found", 0))
        elif e.action in counts:
            counts[e.action] += 1
    return SessionStats(
        iterations=len(iterations),
        items_found=items_found,
        findings=counts[Action.FINDING],
        leads_requested=counts[Action.REQUEST_SEARCH],
        work_items=counts[Action.ADD_TO_QUEUE],
        claims=counts[Action.CLAIM_WORK],
        errors=counts[Action.ERROR],
    )
