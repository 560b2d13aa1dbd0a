"""Relevance gate.

Newly discovered items are split across judges. Each judge scores its batch with one
collaborator call and admits every item at or above the admission score into the work
queue as an ``add_to_queue`` event.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Mapping, Sequence

from devtrail.agents.reasoner import ReasoningCollaborator
from devtrail.config import Settings
from devtrail.core.concurrency import ConcurrencyLimiter
from devtrail.errors import BackendError, CollaboratorError
from devtrail.events import Action, Phase
from devtrail.logging import get_logger, log_exception, set_producer
from devtrail.models.judging import JudgeVerdict, WorkItem
from devtrail.models.search import DiscoveredItem
from devtrail.stream.base import ExplorationStream

logger = get_logger(__name__)


@dataclass(frozen=True)
class JudgeOutcome:
    judge_id: int
    scored: int
    admitted: list[WorkItem]
    failed: bool = False


def partition(items: Sequence[DiscoveredItem], batch_size: int) -> list[list[DiscoveredItem]]:
    """Split items into ``ceil(n / batch_size)`` near-even batches.

    Twelve items with a batch size of ten give two batches of six, not ten and two.
    """

    if not items:
        return []
    judge_count = math.ceil(len(items) / batch_size)
    per_judge = math.ceil(len(items) / judge_count)
    return [list(items[i : i + per_judge]) for i in range(0, len(items), per_judge)]


def _check_coverage(batch: Sequence[DiscoveredItem], verdicts: Sequence[JudgeVerdict]) -> list[JudgeVerdict]:
    wanted = {item.item_id for item in batch}
    by_id: dict[str, JudgeVerdict] = {}
    for v in verdicts:
        if v.item_id not in wanted:
            logger.warning("Dropping verdict for unknown item", extra={"item_id": v.item_id})
            continue
        by_id.setdefault(v.item_id, v)

    missing = [item.item_id for item in batch if item.item_id not in by_id]
    if missing:
        raise CollaboratorError(f"judge returned no verdict for {len(missing)} item(s): {missing[:5]}")
    return [by_id[item.item_id] for item in batch]


class RelevanceGate:
    """Spawns judges over newly discovered items for one session."""

    def __init__(self, stream: ExplorationStream, reasoner: ReasoningCollaborator, settings: Settings) -> None:
        self._stream = stream
        self._reasoner = reasoner
        self._settings = settings

    async def spawn_judges(
        self,
        query: str,
        iteration: int,
        items: Sequence[DiscoveredItem],
        origins: Mapping[str, int],
    ) -> list[JudgeOutcome]:
        """Score ``items`` concurrently and admit the relevant ones.

        Args:
            query: The user's question.
            iteration: Iteration the items were discovered in.
            items: Items to judge, in discovery order.
            origins: Item id to the ``search_complete`` event that surfaced it.
        """

        batches = partition(items, self._settings.judge_batch_size)
        if not batches:
            return []

        logger.info(
            "Spawning judges",
            extra={"iteration": iteration, "items": len(items), "judges": len(batches)},
        )
        limiter = ConcurrencyLimiter(self._settings.max_concurrent_judges)
        outcomes = await limiter.gather(
            self.judge_batch(judge_id, query, iteration, batch, origins)
            for judge_id, batch in enumerate(batches, start=1)
        )

        admitted = sum(len(o.admitted) for o in outcomes)
        logger.info("Judging complete", extra={"iteration": iteration, "admitted": admitted})
        return outcomes

    async def judge_batch(
        self,
        judge_id: int,
        query: str,
        iteration: int,
        batch: Sequence[DiscoveredItem],
        origins: Mapping[str, int],
    ) -> JudgeOutcome:
        producer = f"judge_{iteration}_{judge_id}"
        set_producer(producer)
        source_events = sorted({origins[item.item_id] for item in batch if item.item_id in origins})

        try:
            verdicts = _check_coverage(batch, await self._reasoner.score_batch(query, batch))
        except BackendError:
            raise
        except Exception as e:
            log_exception(logger, "Judge failed", judge=producer, batch_size=len(batch))
            await self._stream.append(
                producer=producer,
                phase=Phase.JUDGING,
                action=Action.ERROR,
                payload={
                    "unit": "judge_batch",
                    "error": str(e),
                    "iteration": iteration,
                    "item_ids": [item.item_id for item in batch],
                },
                causal_refs=source_events,
            )
            return JudgeOutcome(judge_id=judge_id, scored=0, admitted=[], failed=True)

        threshold = self._settings.judge_admission_score
        high = [v for v in verdicts if v.score >= threshold]
        batch_event_id = await self._stream.append(
            producer=producer,
            phase=Phase.JUDGING,
            action=Action.SCORED_BATCH,
            payload={
                "judge": producer,
                "iteration": iteration,
                "batch_size": len(batch),
                "scores_count": len(verdicts),
                "high_scores": len(high),
                "average_score": round(sum(v.score for v in verdicts) / len(verdicts), 2),
                "verdicts": [v.model_dump(mode="json") for v in verdicts],
            },
            causal_refs=source_events,
        )

        items_by_id = {item.item_id: item for item in batch}
        admitted: list[WorkItem] = []
        for v in high:
            item = items_by_id[v.item_id]
            origin = origins.get(item.item_id, batch_event_id)
            work = WorkItem(
                item_id=item.item_id,
                thread_id=item.thread_id,
                priority=v.score,
                origin_event_id=origin,
                iteration=iteration,
                source="initial_embedding" if iteration == 0 else "discovered_reference",
                rationale=v.rationale,
            )
            await self._stream.append(
                producer=producer,
                phase=Phase.JUDGING,
                action=Action.ADD_TO_QUEUE,
                payload=work.model_dump(mode="json"),
                causal_refs=sorted({batch_event_id, origin}),
            )
            admitted.append(work)

        logger.info(
            "Judge scored batch",
            extra={"judge": producer, "scored": len(verdicts), "admitted": len(admitted)},
        )
        return JudgeOutcome(judge_id=judge_id, scored=len(verdicts), admitted=admitted)
