"""In-memory exploration stream.

Used when no durable backend is configured and throughout the tests. Appends never
await, so within one event loop the id assignment cannot interleave.
"""

from __future__ import annotations

import json
from typing import Any, Mapping, Sequence

from devtrail.errors import BlobNotFoundError
from devtrail.events import Action, Event, EventFilter, Phase
from devtrail.stream.base import blob_key, encode_blob, freeze_payload


class InMemoryStream:
    """Append-only event list and blob dict for one session."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self._events: list[Event] = []
        self._blobs: dict[str, str] = {}
        self._meta: dict[str, str] = {}

    async def append(
        self,
        *,
        producer: str,
        phase: Phase,
        action: Action,
        payload: Mapping[str, Any] | None = None,
        blob_refs: Mapping[str, str] | None = None,
        causal_refs: Sequence[int] | None = None,
    ) -> int:
        event = Event(
            id=len(self._events) + 1,
            producer=producer,
            phase=phase,
            action=action,
            payload=freeze_payload(payload),
            blob_refs=dict(blob_refs or {}),
            causal_refs=list(causal_refs or []),
        )
        self._events.append(event)
        return event.id

    async def read(self, flt: EventFilter | None = None) -> list[Event]:
        if flt is None:
            return list(self._events)
        # ids are dense and 1-based, so "after id N" starts at index N
        start = flt.after_id or 0
        return [e for e in self._events[start:] if flt.matches(e)]

    async def put(self, name: str, value: Any) -> str:
        body = encode_blob(value)
        key = blob_key(self.session_id, name, body)
        self._blobs[key] = body
        return key

    async def get(self, key: str) -> Any:
        body = self._blobs.get(key)
        if body is None:
            raise BlobNotFoundError(key)
        return json.loads(body)

    async def set_meta(self, meta: Mapping[str, str]) -> None:
        self._meta.update(meta)

    async def get_meta(self) -> dict[str, str]:
        return dict(self._meta)
