"""Development history datastores."""

from __future__ import annotations

from devtrail.history.base import SearchBackend, ThreadStore
from devtrail.history.memory import HistoryRecord, InMemoryHistory
from devtrail.history.sql import SqlHistoryStore

__all__ = [
    "HistoryRecord",
    "InMemoryHistory",
    "SearchBackend",
    "SqlHistoryStore",
    "ThreadStore",
]
