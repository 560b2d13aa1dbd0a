"""Event model for the exploration log.

Every component coordinates by appending immutable events to a per-session log and by
re-deriving state from it. The log also is the audit trail of a session: events can be
exported to JSONL and replayed later.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Phase(str, Enum):
    """Stage of the exploration that produced an event."""

    SESSION = "session"
    SEARCH = "search"
    JUDGING = "judging"
    INVESTIGATION = "investigation"
    SYNTHESIS = "synthesis"


class Action(str, Enum):
    """What an event records."""

    # Session
    SESSION_STARTED = "session_started"
    LOOP_COMPLETE = "loop_complete"

    # Discovery
    SEARCH_COMPLETE = "search_complete"

    # Relevance gate
    SCORED_BATCH = "scored_batch"
    ADD_TO_QUEUE = "add_to_queue"

    # Workers
    CLAIM_WORK = "claim_work"
    FINDING = "finding"
    REQUEST_SEARCH = "request_search"

    # Synthesis
    SYNTHESIS_STARTED = "synthesis_started"
    INTERMEDIATE_UPDATE = "intermediate_update"
    FINALIZED = "finalized"

    ERROR = "error"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Event(BaseModel):
    """A single immutable event in a session log.

    ``id`` is assigned by the log in append order and is the only ordering primitive;
    ``timestamp`` is informational.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=1)
    producer: str
    phase: Phase
    action: Action
    payload: dict[str, Any] = Field(default_factory=dict)
    blob_refs: dict[str, str] = Field(default_factory=dict)
    causal_refs: list[int] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_utcnow)


class EventFilter(BaseModel):
    """Optional restrictions for :meth:`ExplorationStream.read`."""

    producer: str | None = None
    action: Action | None = None
    after_id: int | None = Field(default=None, ge=0)

    def matches(self, event: Event) -> bool:
        if self.producer is not None and event.producer != self.producer:
            return False
        if self.action is not None and event.action != self.action:
            return False
        if self.after_id is not None and event.id <= self.after_id:
            return False
        return True
