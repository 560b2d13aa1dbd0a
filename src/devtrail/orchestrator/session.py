"""Exploration sessions and the caller-facing facade."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from devtrail.agents.discovery import DiscoveryService
from devtrail.agents.judge import RelevanceGate
from devtrail.agents.reasoner import LLMReasoner, ReasoningCollaborator
from devtrail.agents.synthesis import IncrementalSynthesizer
from devtrail.agents.worker import WorkerPool
from devtrail.config import Settings
from devtrail.core.concurrency import cancel_and_wait
from devtrail.errors import SessionNotFoundError
from devtrail.events import Action, Event, EventFilter
from devtrail.history.base import SearchBackend, ThreadStore
from devtrail.history.embeddings import OpenAIEmbedder
from devtrail.history.memory import InMemoryHistory
from devtrail.history.sql import SqlHistoryStore
from devtrail.llm.client import LLMClient
from devtrail.logging import get_logger, session_context
from devtrail.orchestrator.loop import LoopManager
from devtrail.orchestrator.state import LoopState
from devtrail.stream import create_stream
from devtrail.stream.base import ExplorationStream
from devtrail.stream.views import SessionStats, session_stats

logger = get_logger(__name__)

StreamFactory = Callable[[str, Settings], ExplorationStream]


def new_session_id() -> str:
    # time-based for readability, random suffix against collisions
    ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"{ts}_{uuid.uuid4().hex[:8]}"


async def read_final_answer(stream: ExplorationStream) -> str | None:
    """The answer recorded by the last ``finalized`` event of a stream, if any."""

    finalized = await stream.read(EventFilter(action=Action.FINALIZED))
    if not finalized:
        return None
    key = finalized[-1].blob_refs.get("answer")
    if key is None:
        return None
    return str(await stream.get(key))


@dataclass
class ExplorationSession:
    """Everything one session owns."""

    session_id: str
    query: str
    scope_id: str
    stream: ExplorationStream
    loop: LoopManager
    synthesizer: IncrementalSynthesizer
    error: str | None = None

    @property
    def state(self) -> LoopState:
        return self.loop.state

    @property
    def done(self) -> bool:
        """Finalized, or failed while running or finalizing."""
        return self.synthesizer.is_finalized or self.error is not None


@dataclass(frozen=True)
class ExplorationResult:
    session_id: str
    answer: str
    state: LoopState
    stats: SessionStats


class Explorer:
    """Starts, runs and answers exploration sessions.

    Sessions are held in memory by id. With a durable log backend, the finalized answer
    and the audit trail of a session remain readable after the process that ran it is
    gone (see :meth:`load_final_answer` and :meth:`get_audit_trail`).
    """

    def __init__(
        self,
        settings: Settings,
        *,
        backend: SearchBackend,
        threads: ThreadStore,
        reasoner: ReasoningCollaborator,
        stream_factory: StreamFactory = create_stream,
    ) -> None:
        self._settings = settings
        self._backend = backend
        self._threads = threads
        self._reasoner = reasoner
        self._stream_factory = stream_factory
        self._sessions: dict[str, ExplorationSession] = {}

    def session(self, session_id: str) -> ExplorationSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None

    async def start_session(self, query: str, scope_id: str) -> str:
        """Create a session and return its id. Nothing runs until :meth:`run_to_convergence`."""

        session_id = new_session_id()
        stream = self._stream_factory(session_id, self._settings)
        await stream.set_meta({"query": query, "scope_id": scope_id})

        discovery = DiscoveryService(stream=stream, backend=self._backend, scope_id=scope_id)
        gate = RelevanceGate(stream, self._reasoner, self._settings)
        pool = WorkerPool(
            stream=stream,
            reasoner=self._reasoner,
            threads=self._threads,
            settings=self._settings,
            query=query,
        )
        loop = LoopManager(
            stream=stream,
            discovery=discovery,
            gate=gate,
            pool=pool,
            settings=self._settings,
            query=query,
            scope_id=scope_id,
        )
        synthesizer = IncrementalSynthesizer(stream, self._reasoner, self._settings, query)
        self._evict_finished()
        self._sessions[session_id] = ExplorationSession(
            session_id=session_id,
            query=query,
            scope_id=scope_id,
            stream=stream,
            loop=loop,
            synthesizer=synthesizer,
        )
        logger.info("Session created", extra={"session_id": session_id, "scope_id": scope_id})
        return session_id

    async def run_to_convergence(self, session_id: str) -> LoopState:
        """Run the loop while the synthesizer ticks beside it.

        Whichever of the two fails first aborts the other, and its error is the one
        raised. The error is also kept on the session.
        """

        s = self.session(session_id)
        with session_context(session_id=session_id, producer="loop_manager"):
            stop = asyncio.Event()
            loop_task = asyncio.create_task(s.loop.run())
            synth_task = asyncio.create_task(s.synthesizer.run_periodically(stop))
            try:
                done, _ = await asyncio.wait({loop_task, synth_task}, return_when=asyncio.FIRST_COMPLETED)
                if loop_task not in done:
                    # the synthesizer only returns before ``stop`` by raising
                    await cancel_and_wait([loop_task])
                    synth_task.result()
                state = await loop_task
                stop.set()
                await synth_task
            except Exception as e:
                s.error = str(e)
                raise
            finally:
                stop.set()
                await cancel_and_wait([loop_task, synth_task])
            logger.info("Session loop finished", extra={"state": state.value})
            return state

    def get_current_answer(self, session_id: str) -> str:
        return self.session(session_id).synthesizer.current_answer()

    async def finalize(self, session_id: str) -> str:
        s = self.session(session_id)
        with session_context(session_id=session_id, producer="synthesizer"):
            try:
                return await s.synthesizer.finalize()
            except Exception as e:
                s.error = str(e)
                raise

    async def get_audit_trail(self, session_id: str) -> list[Event]:
        return await self._stream_for(session_id).read()

    async def explore(self, query: str, scope_id: str) -> ExplorationResult:
        """Start, run and finalize a session in one call."""

        session_id = await self.start_session(query, scope_id)
        state = await self.run_to_convergence(session_id)
        answer = await self.finalize(session_id)
        stats = session_stats(await self.get_audit_trail(session_id))
        return ExplorationResult(session_id=session_id, answer=answer, state=state, stats=stats)

    async def load_final_answer(self, session_id: str) -> str | None:
        """Recover a finalized answer from the log, or ``None`` if there is none."""

        return await read_final_answer(self._stream_for(session_id))

    def _evict_finished(self) -> None:
        """Make room for one more session by dropping the oldest finished ones.

        Sessions still running are never evicted, so the map can exceed
        ``max_retained_sessions`` while that many are in flight. An evicted session
        stays readable by id when the log is durable.
        """

        excess = len(self._sessions) + 1 - self._settings.max_retained_sessions
        if excess <= 0:
            return
        finished = [sid for sid, s in self._sessions.items() if s.done]
        for sid in finished[:excess]:
            del self._sessions[sid]
            logger.info("Session evicted", extra={"session_id": sid})

    def _stream_for(self, session_id: str) -> ExplorationStream:
        s = self._sessions.get(session_id)
        if s is not None:
            return s.stream
        if not self._settings.redis_enabled:
            raise SessionNotFoundError(session_id)
        return self._stream_factory(session_id, self._settings)


def build_explorer(settings: Settings, *, history_file: Path | None = None) -> Explorer:
    """Wire an :class:`Explorer` to the configured collaborators.

    History comes from a JSONL dump when ``history_file`` is given, otherwise from the
    SQL datastore at ``settings.database_url``. Reasoning goes to the configured
    OpenAI-compatible endpoint.
    """

    history: InMemoryHistory | SqlHistoryStore
    if history_file is not None:
        history = InMemoryHistory.from_jsonl(history_file)
    elif settings.database_url:
        history = SqlHistoryStore.from_url(settings.database_url, embedder=OpenAIEmbedder(settings))
    else:
        raise ValueError("No history source: pass a history file or set DEVTRAIL_DATABASE_URL.")

    reasoner = LLMReasoner(LLMClient(settings), settings)
    return Explorer(settings, backend=history, threads=history, reasoner=reasoner)
