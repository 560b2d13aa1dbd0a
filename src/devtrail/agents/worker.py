"""Investigation workers.

Each worker repeatedly claims the highest-priority unclaimed work item, walks the full
thread behind it turn by turn, appends findings as soon as they are extracted and turns
critical leads into ``request_search`` events for the next iteration.

Claiming is read-scan-then-append. Two workers that scan before either appends can claim
the same item; the item is then investigated twice and downstream synthesis sees
duplicate findings. The start-up stagger makes this rarer, not impossible.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Sequence

from devtrail.agents.reasoner import ReasoningCollaborator
from devtrail.config import Settings
from devtrail.core.concurrency import cancel_and_wait, gather_or_cancel
from devtrail.errors import BackendError
from devtrail.events import Action, EventFilter, Phase
from devtrail.history.base import ThreadStore
from devtrail.logging import get_logger, log_exception, set_producer
from devtrail.models.investigation import Finding, Lead
from devtrail.models.judging import WorkItem
from devtrail.stream.base import ExplorationStream
from devtrail.stream.views import unclaimed_work

logger = get_logger(__name__)


@dataclass(frozen=True)
class Claim:
    event_id: int
    item: WorkItem


@dataclass
class LeadMemo:
    """``(kind, search text)`` pairs already requested in this session.

    Shared by every worker of the session so one lead is not requested twice by two
    workers that happen to meet it.
    """

    _requested: set[tuple[str, str]] = field(default_factory=set)

    def __contains__(self, lead: object) -> bool:
        return isinstance(lead, Lead) and lead.memo_key() in self._requested

    def add(self, lead: Lead) -> None:
        self._requested.add(lead.memo_key())

    def __len__(self) -> int:
        return len(self._requested)


def filter_leads(leads: Sequence[Lead], memo: LeadMemo, *, max_leads: int) -> list[Lead]:
    """Drop already requested leads, keep only high priority ones, cap the rest.

    Surviving leads are recorded in ``memo``.
    """

    fresh = [lead for lead in leads if lead not in memo]
    high = [lead for lead in fresh if lead.priority == "high"]
    kept = high[:max_leads]
    for lead in kept:
        memo.add(lead)
    if len(leads) > len(kept):
        logger.debug("Filtered leads", extra={"received": len(leads), "kept": len(kept)})
    return kept


class WorkerAgent:
    """One investigator in a worker pool."""

    def __init__(
        self,
        worker_id: int,
        *,
        stream: ExplorationStream,
        reasoner: ReasoningCollaborator,
        threads: ThreadStore,
        settings: Settings,
        query: str,
        iteration: int,
        memo: LeadMemo,
    ) -> None:
        self.worker_id = worker_id
        self.name = f"worker_{worker_id}"
        self._stream = stream
        self._reasoner = reasoner
        self._threads = threads
        self._settings = settings
        self._query = query
        self._iteration = iteration
        self._memo = memo
        self.items_processed = 0

    async def run(self) -> int:
        """Drain the queue. Returns how many items this worker claimed."""

        set_producer(self.name)
        logger.info("Worker started", extra={"worker": self.name, "iteration": self._iteration})
        while True:
            claim = await self.claim()
            if claim is None:
                break
            self.items_processed += 1
            try:
                await self.investigate(claim)
            except BackendError:
                raise
            except Exception as e:
                log_exception(logger, "Investigation failed", worker=self.name, item_id=claim.item.item_id)
                await self._stream.append(
                    producer=self.name,
                    phase=Phase.INVESTIGATION,
                    action=Action.ERROR,
                    payload={
                        "unit": "work_item",
                        "error": str(e),
                        "iteration": self._iteration,
                        "item_id": claim.item.item_id,
                        "thread_id": claim.item.thread_id,
                    },
                    causal_refs=[claim.event_id],
                )
        logger.info("Worker finished", extra={"worker": self.name, "items": self.items_processed})
        return self.items_processed

    async def claim(self) -> Claim | None:
        """Claim the highest-priority unclaimed item, or return ``None`` when empty."""

        queue = unclaimed_work(await self._stream.read())
        if not queue:
            return None
        queue_event, item = queue[0]
        event_id = await self._stream.append(
            producer=self.name,
            phase=Phase.INVESTIGATION,
            action=Action.CLAIM_WORK,
            payload={
                "item_id": item.item_id,
                "thread_id": item.thread_id,
                "priority": item.priority,
                "worker": self.name,
            },
            causal_refs=[queue_event.id],
        )
        logger.info(
            "Claimed work",
            extra={"item_id": item.item_id, "thread_id": item.thread_id, "priority": item.priority},
        )
        return Claim(event_id=event_id, item=item)

    async def investigate(self, claim: Claim) -> None:
        thread = await asyncio.to_thread(self._threads.get_full_thread, claim.item.thread_id)
        if not thread:
            logger.warning("Thread is empty", extra={"thread_id": claim.item.thread_id})
            return

        peers = await self.peer_findings()
        for i, turn in enumerate(thread):
            result = await self._reasoner.analyze_turn(self._query, turn, thread[:i], peers)

            for finding in result.findings:
                await self._stream.append(
                    producer=self.name,
                    phase=Phase.INVESTIGATION,
                    action=Action.FINDING,
                    payload=finding.model_dump(mode="json"),
                    causal_refs=[claim.event_id],
                )

            for lead in filter_leads(result.leads, self._memo, max_leads=self._settings.max_leads_per_turn):
                await self._request_search(lead, turn.item_id, claim)

        logger.info(
            "Investigation complete",
            extra={"thread_id": claim.item.thread_id, "turns": len(thread)},
        )

    async def peer_findings(self) -> list[Finding]:
        """Most recent findings appended by other producers."""

        window = self._settings.peer_findings_window
        if window <= 0:
            return []
        events = await self._stream.read(EventFilter(action=Action.FINDING))
        others = [e for e in events if e.producer != self.name]
        return [Finding.model_validate(e.payload) for e in others[-window:]]

    async def _request_search(self, lead: Lead, source_item_id: str, claim: Claim) -> int:
        logger.info(
            "Requesting search",
            extra={"lead_kind": lead.kind.value, "query": lead.search_query_text},
        )
        return await self._stream.append(
            producer=self.name,
            phase=Phase.INVESTIGATION,
            action=Action.REQUEST_SEARCH,
            payload={
                "query_text": lead.search_query_text,
                "lead_kind": lead.kind.value,
                "lead_value": lead.value,
                "filters": lead.to_filters().model_dump(mode="json"),
                "rationale": lead.rationale,
                "priority": lead.priority,
                "source_item_id": source_item_id,
                "thread_id": claim.item.thread_id,
                "worker": self.name,
            },
            causal_refs=[claim.event_id],
        )


class WorkerPool:
    """Sizes and runs a bounded set of workers over the current queue."""

    def __init__(
        self,
        *,
        stream: ExplorationStream,
        reasoner: ReasoningCollaborator,
        threads: ThreadStore,
        settings: Settings,
        query: str,
        memo: LeadMemo | None = None,
    ) -> None:
        self._stream = stream
        self._reasoner = reasoner
        self._threads = threads
        self._settings = settings
        self._query = query
        self.memo = memo if memo is not None else LeadMemo()
        self._next_worker_id = 1

    async def run(self, iteration: int, queue_size: int) -> list[int]:
        """Spawn ``min(queue_size, max_workers)`` workers and wait for all of them.

        Returns the number of items each worker claimed. Worker ids keep counting
        across iterations so every producer name in a session is unique.

        A worker that raises (a :class:`BackendError`; item-level failures are
        handled inside the worker) cancels the rest of the pool, and the error is
        re-raised once every worker has stopped.
        """

        size = min(queue_size, self._settings.max_workers)
        if size <= 0:
            return []

        logger.info("Spawning workers", extra={"iteration": iteration, "workers": size, "queue": queue_size})
        tasks: list[asyncio.Task[int]] = []
        try:
            for n in range(size):
                if n and self._settings.worker_stagger_s > 0:
                    await asyncio.sleep(self._settings.worker_stagger_s)
                    if any(t.done() and not t.cancelled() and t.exception() for t in tasks):
                        break
                worker = WorkerAgent(
                    self._next_worker_id,
                    stream=self._stream,
                    reasoner=self._reasoner,
                    threads=self._threads,
                    settings=self._settings,
                    query=self._query,
                    iteration=iteration,
                    memo=self.memo,
                )
                self._next_worker_id += 1
                tasks.append(asyncio.create_task(worker.run()))
        except BaseException:
            await cancel_and_wait(tasks)
            raise
        return await gather_or_cancel(tasks)
