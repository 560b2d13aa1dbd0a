"""Exploration loop.

Iteration 0 searches for the user's query itself. Every later iteration runs the search
requests that workers emitted and nobody has answered yet, judges what those searches
found and drains the resulting queue with a fresh worker pool. The loop stops when an
iteration starts with nothing pending, or after ``max_iterations`` iterations.
"""

from __future__ import annotations

from devtrail.agents.discovery import DiscoveryService
from devtrail.agents.judge import RelevanceGate
from devtrail.agents.worker import WorkerPool
from devtrail.config import Settings
from devtrail.events import Action, Phase
from devtrail.logging import get_logger, set_iteration, set_producer
from devtrail.models.search import DiscoveredItem, LeadKind, SearchRequest
from devtrail.orchestrator.state import LoopProgress, LoopState
from devtrail.stream.base import ExplorationStream
from devtrail.stream.views import pending_search_requests, queue_size, session_stats

logger = get_logger(__name__)

PRODUCER = "loop_manager"


class LoopManager:
    """Drives one session from seed to a terminal state."""

    def __init__(
        self,
        *,
        stream: ExplorationStream,
        discovery: DiscoveryService,
        gate: RelevanceGate,
        pool: WorkerPool,
        settings: Settings,
        query: str,
        scope_id: str,
    ) -> None:
        self._stream = stream
        self._discovery = discovery
        self._gate = gate
        self._pool = pool
        self._settings = settings
        self._query = query
        self.progress = LoopProgress(query=query, scope_id=scope_id, max_iterations=settings.max_iterations)
        self._started = False

    @property
    def state(self) -> LoopState:
        return self.progress.state

    async def run(self) -> LoopState:
        """Run until converged or out of iterations. Returns the terminal state.

        A finished loop returns its terminal state again without touching the log. A
        loop whose earlier run raised cannot be run again: its seed is already in the
        log and re-seeding would repeat iteration 0.
        """

        if self.progress.state.is_terminal:
            return self.progress.state
        if self._started:
            raise RuntimeError("exploration loop already started; an aborted session cannot be resumed")
        self._started = True

        set_producer(PRODUCER)
        self.progress.state = LoopState.SEEDING
        seed_id = await self._stream.append(
            producer=PRODUCER,
            phase=Phase.SESSION,
            action=Action.SESSION_STARTED,
            payload={
                "query": self._query,
                "scope_id": self.progress.scope_id,
                "max_iterations": self._settings.max_iterations,
                "max_workers": self._settings.max_workers,
            },
        )
        seed = SearchRequest(
            query_text=self._query,
            iteration=0,
            origin_event_id=seed_id,
            lead_kind=LeadKind.INITIAL,
        )
        await self.run_iteration(0, [seed])

        self.progress.state = LoopState.ITERATING
        max_iterations = self._settings.max_iterations
        terminal: LoopState | None = None
        for iteration in range(1, max_iterations):
            pending = pending_search_requests(await self._stream.read(), iteration=iteration)
            if not pending:
                terminal = LoopState.CONVERGED
                break
            await self.run_iteration(iteration, pending)

        if terminal is None:
            pending = pending_search_requests(await self._stream.read(), iteration=max_iterations)
            terminal = LoopState.CONVERGED if not pending else LoopState.MAX_ITERATIONS_REACHED

        self.progress.state = terminal
        stats = session_stats(await self._stream.read())
        await self._stream.append(
            producer=PRODUCER,
            phase=Phase.SESSION,
            action=Action.LOOP_COMPLETE,
            payload={"state": terminal.value, "iterations_run": self.progress.iteration + 1, **stats.snapshot()},
            causal_refs=[seed_id],
        )
        logger.info("Exploration loop finished", extra=self.progress.snapshot())
        return terminal

    async def run_iteration(self, iteration: int, requests: list[SearchRequest]) -> None:
        """Search, judge and investigate for one iteration."""

        self.progress.iteration = iteration
        set_iteration(iteration)
        logger.info("Iteration start", extra={"iteration": iteration, "requests": len(requests)})

        items: list[DiscoveredItem] = []
        origins: dict[str, int] = {}
        for request in requests:
            outcome = await self._discovery.execute(request)
            self.progress.searches_run += 1
            for item in outcome.items:
                items.append(item)
                origins[item.item_id] = outcome.event_id
        self.progress.items_discovered += len(items)

        outcomes = await self._gate.spawn_judges(self._query, iteration, items, origins)
        admitted = sum(len(o.admitted) for o in outcomes)
        self.progress.items_admitted += admitted

        size = queue_size(await self._stream.read())
        claimed = await self._pool.run(iteration, size)
        self.progress.items_claimed += sum(claimed)

        record = {
            "iteration": iteration,
            "searches": len(requests),
            "items": len(items),
            "admitted": admitted,
            "workers": len(claimed),
            "claimed": sum(claimed),
        }
        self.progress.iteration_log.append(record)
        logger.info("Iteration complete", extra=record)
