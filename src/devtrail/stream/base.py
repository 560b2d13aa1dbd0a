"""Exploration stream interface.

A stream bundles the two stores a session owns: the append-only event log and the blob
store for bulky payloads (search results, drafts, final answers). Events reference blobs
by key instead of inlining them, so the log stays small and cheap to scan.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Mapping, Protocol, Sequence

from devtrail.events import Action, Event, EventFilter, Phase


class ExplorationStream(Protocol):
    """Per-session event log plus blob store."""

    session_id: str

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
        """Append an event and return its log-assigned id."""

    async def read(self, flt: EventFilter | None = None) -> list[Event]:
        """Return events in append order, optionally filtered."""

    async def put(self, name: str, value: Any) -> str:
        """Store a JSON-serializable value and return its key."""

    async def get(self, key: str) -> Any:
        """Resolve a blob key. Raises :class:`BlobNotFoundError` if unknown."""

    async def set_meta(self, meta: Mapping[str, str]) -> None:
        """Store session metadata (query, scope)."""

    async def get_meta(self) -> dict[str, str]:
        """Load session metadata."""


def encode_blob(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True)


def blob_key(session_id: str, name: str, body: str) -> str:
    """Content-addressed blob key scoped to a session and a logical name."""

    digest = hashlib.sha256(body.encode("utf-8")).hexdigest()
    return f"{session_id}:{name}:{digest[:12]}"


def freeze_payload(payload: Mapping[str, Any] | None) -> dict[str, Any]:
    """Copy a payload through JSON so every backend stores the same value."""

    if not payload:
        return {}
    return json.loads(json.dumps(dict(payload), ensure_ascii=False))
