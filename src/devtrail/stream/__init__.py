"""Session event log and blob store backends."""

from __future__ import annotations

from devtrail.config import Settings
from devtrail.stream.base import ExplorationStream
from devtrail.stream.export import iter_audit_trail, write_audit_trail
from devtrail.stream.memory import InMemoryStream
from devtrail.stream.redis_stream import RedisStream


def create_stream(session_id: str, settings: Settings) -> ExplorationStream:
    """Create the stream backend selected by settings.

    Redis is used when enabled; otherwise the session lives in memory and disappears
    with the process.
    """

    if settings.redis_enabled:
        return RedisStream(
            redis_url=settings.redis_url,
            key_prefix=settings.redis_key_prefix,
            session_id=session_id,
            ttl_seconds=settings.redis_ttl_seconds,
        )
    return InMemoryStream(session_id)


__all__ = [
    "ExplorationStream",
    "InMemoryStream",
    "RedisStream",
    "create_stream",
    "iter_audit_trail",
    "write_audit_trail",
]
