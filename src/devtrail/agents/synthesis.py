"""Incremental synthesis.

The synthesizer runs beside the exploration loop on its own schedule. It keeps a cursor
over event ids, folds newly appended findings into a running draft, and produces the
final answer once the loop is done.
"""

from __future__ import annotations

import asyncio
import re

from devtrail.agents.reasoner import ReasoningCollaborator
from devtrail.config import Settings
from devtrail.errors import BackendError
from devtrail.events import Action, EventFilter, Phase
from devtrail.logging import get_logger, log_exception, set_producer
from devtrail.models.investigation import Finding
from devtrail.prompts import NO_FINDINGS_ANSWER
from devtrail.stream.base import ExplorationStream
from devtrail.stream.views import collect_findings

logger = get_logger(__name__)

PRODUCER = "synthesizer"

_INVESTIGATING_RE = re.compile(r"\[INVESTIGATING")


def estimate_completeness(findings: list[Finding], draft: str) -> float:
    """Rough 0..1 estimate of how complete the draft is.

    Rewards covering problems, solutions and decisions, adds a small bonus for volume
    and subtracts for every open ``[INVESTIGATING`` marker in the draft.
    """

    if not findings:
        return 0.0
    kinds = {f.kind for f in findings}
    dimensions = sum(1 for k in ("problem", "solution", "decision") if k in kinds)
    baseline = dimensions / 3
    quantity_bonus = min(0.3, len(findings) / 30)
    penalty = 0.1 * len(_INVESTIGATING_RE.findall(draft))
    return round(min(1.0, max(0.0, baseline + quantity_bonus - penalty)), 3)


def fallback_answer(query: str) -> str:
    return NO_FINDINGS_ANSWER.format(query=query)


class IncrementalSynthesizer:
    """Maintains the running answer for one session."""

    def __init__(
        self,
        stream: ExplorationStream,
        reasoner: ReasoningCollaborator,
        settings: Settings,
        query: str,
    ) -> None:
        self._stream = stream
        self._reasoner = reasoner
        self._settings = settings
        self._query = query
        self._cursor = 0
        self._draft: str | None = None
        self._findings: list[Finding] = []
        self._final: str | None = None
        self._started = False
        self._lock = asyncio.Lock()
        self.updates = 0

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def findings(self) -> list[Finding]:
        return list(self._findings)

    @property
    def is_finalized(self) -> bool:
        return self._final is not None

    def current_answer(self) -> str:
        """The best answer available right now, without waiting."""

        if self._final is not None:
            return self._final
        if self._draft:
            return self._draft
        return "Investigation in progress... No findings yet."

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        await self._stream.append(
            producer=PRODUCER,
            phase=Phase.SYNTHESIS,
            action=Action.SYNTHESIS_STARTED,
            payload={"query": self._query},
        )

    async def tick(self) -> int:
        """Consume events after the cursor. Returns how many new findings were seen.

        The cursor advances past everything read, whether or not it held findings and
        whether or not the synthesis call succeeded.
        """

        async with self._lock:
            if self._final is not None:
                return 0
            return await self._tick()

    async def _tick(self) -> int:
        events = await self._stream.read(EventFilter(after_id=self._cursor))
        if not events:
            return 0
        self._cursor = events[-1].id

        new = collect_findings(events)
        if not new:
            return 0
        self._findings.extend(new)

        try:
            draft = await self._reasoner.synthesize(self._query, self._draft, new, len(self._findings))
        except BackendError:
            raise
        except Exception as e:
            log_exception(logger, "Synthesis update failed", new_findings=len(new))
            await self._stream.append(
                producer=PRODUCER,
                phase=Phase.SYNTHESIS,
                action=Action.ERROR,
                payload={"unit": "synthesis", "error": str(e), "new_findings": len(new)},
            )
            return len(new)

        self._draft = draft
        self.updates += 1
        key = await self._stream.put("draft", draft)
        await self._stream.append(
            producer=PRODUCER,
            phase=Phase.SYNTHESIS,
            action=Action.INTERMEDIATE_UPDATE,
            payload={
                "findings_incorporated": len(self._findings),
                "new_findings": len(new),
                "word_count": len(draft.split()),
                "completeness": estimate_completeness(self._findings, draft),
            },
            blob_refs={"answer": key},
            causal_refs=[self._cursor],
        )
        logger.info(
            "Answer updated",
            extra={"findings": len(self._findings), "chars": len(draft)},
        )
        return len(new)

    async def run_periodically(self, stop: asyncio.Event) -> None:
        """Tick every ``synthesis_interval_s`` until ``stop`` is set."""

        set_producer(PRODUCER)
        await self.start()
        interval = self._settings.synthesis_interval_s
        while not stop.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

    async def finalize(self) -> str:
        """Produce the final answer once. Later calls return the same text."""

        async with self._lock:
            if self._final is not None:
                return self._final

            await self._tick()

            if not self._findings:
                answer = fallback_answer(self._query)
            else:
                limit = self._settings.final_findings_limit
                try:
                    answer = await self._reasoner.finalize_answer(
                        self._query, self._draft or "", self._findings[:limit]
                    )
                except BackendError:
                    raise
                except Exception as e:
                    log_exception(logger, "Finalize failed; keeping latest draft")
                    await self._stream.append(
                        producer=PRODUCER,
                        phase=Phase.SYNTHESIS,
                        action=Action.ERROR,
                        payload={"unit": "synthesis", "error": str(e), "stage": "finalize"},
                    )
                    answer = self._draft or fallback_answer(self._query)

            key = await self._stream.put("final-answer", answer)
            await self._stream.append(
                producer=PRODUCER,
                phase=Phase.SYNTHESIS,
                action=Action.FINALIZED,
                payload={
                    "total_findings": len(self._findings),
                    "word_count": len(answer.split()),
                    "completeness": estimate_completeness(self._findings, answer),
                },
                blob_refs={"answer": key},
            )
            self._final = answer
            logger.info("Answer finalized", extra={"findings": len(self._findings)})
            return answer
