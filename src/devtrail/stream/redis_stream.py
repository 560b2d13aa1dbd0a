"""Redis-backed exploration stream.

Events live in a Redis list per session and blobs in a Redis hash per session. The list
length returned by ``RPUSH`` is the event id, which makes id assignment atomic across
processes and keeps ids dense (``1..n``) so "events after id N" is a single ``LRANGE``.
The synchronous client is offloaded with ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import redis

from devtrail.errors import BackendError, BlobNotFoundError
from devtrail.events import Action, Event, EventFilter, Phase
from devtrail.stream.base import blob_key, encode_blob, freeze_payload


@dataclass
class RedisStream:
    """Durable event log and blob store for one session."""

    redis_url: str
    key_prefix: str
    session_id: str
    ttl_seconds: int = 60 * 60 * 24 * 7

    def __post_init__(self) -> None:
        self._client = redis.Redis.from_url(self.redis_url, decode_responses=True)
        base = f"{self.key_prefix}:session:{self.session_id}"
        self._events_key = f"{base}:events"
        self._blobs_key = f"{base}:blobs"
        self._meta_key = f"{base}:meta"

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
        # Validate with a placeholder id; the real id is the list position
        draft = Event(
            id=1,
            producer=producer,
            phase=phase,
            action=action,
            payload=freeze_payload(payload),
            blob_refs=dict(blob_refs or {}),
            causal_refs=list(causal_refs or []),
        )
        record = json.dumps(draft.model_dump(mode="json", exclude={"id"}), ensure_ascii=False)
        return await asyncio.to_thread(self._append_sync, record)

    def _append_sync(self, record: str) -> int:
        try:
            pipe = self._client.pipeline()
            pipe.rpush(self._events_key, record)
            pipe.expire(self._events_key, self.ttl_seconds)
            results = pipe.execute()
        except redis.RedisError as e:
            raise BackendError(f"event append failed for session {self.session_id}: {e}") from e
        return int(results[0])

    async def read(self, flt: EventFilter | None = None) -> list[Event]:
        start = flt.after_id if flt is not None and flt.after_id else 0
        lines = await asyncio.to_thread(self._range_sync, start)
        events: list[Event] = []
        for offset, line in enumerate(lines):
            data = json.loads(line)
            data["id"] = start + offset + 1
            events.append(Event.model_validate(data))
        if flt is not None:
            events = [e for e in events if flt.matches(e)]
        return events

    def _range_sync(self, start: int) -> list[str]:
        try:
            return self._client.lrange(self._events_key, start, -1)
        except redis.RedisError as e:
            raise BackendError(f"event read failed for session {self.session_id}: {e}") from e

    async def put(self, name: str, value: Any) -> str:
        body = encode_blob(value)
        key = blob_key(self.session_id, name, body)
        await asyncio.to_thread(self._put_sync, key, body)
        return key

    def _put_sync(self, key: str, body: str) -> None:
        try:
            pipe = self._client.pipeline()
            pipe.hset(self._blobs_key, key, body)
            pipe.expire(self._blobs_key, self.ttl_seconds)
            pipe.execute()
        except redis.RedisError as e:
            raise BackendError(f"blob put failed for session {self.session_id}: {e}") from e

    async def get(self, key: str) -> Any:
        try:
            body = await asyncio.to_thread(self._client.hget, self._blobs_key, key)
        except redis.RedisError as e:
            raise BackendError(f"blob get failed for session {self.session_id}: {e}") from e
        if body is None:
            raise BlobNotFoundError(key)
        return json.loads(body)

    async def set_meta(self, meta: Mapping[str, str]) -> None:
        """Store session metadata."""

        if not meta:
            return
        await asyncio.to_thread(self._set_meta_sync, dict(meta))

    def _set_meta_sync(self, meta: dict[str, str]) -> None:
        try:
            pipe = self._client.pipeline()
            pipe.hset(self._meta_key, mapping=meta)
            pipe.expire(self._meta_key, self.ttl_seconds)
            pipe.execute()
        except redis.RedisError as e:
            raise BackendError(f"meta write failed for session {self.session_id}: {e}") from e

    async def get_meta(self) -> dict[str, str]:
        try:
            return dict(await asyncio.to_thread(self._client.hgetall, self._meta_key))
        except redis.RedisError as e:
            raise BackendError(f"meta read failed for session {self.session_id}: {e}") from e
