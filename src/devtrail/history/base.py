"""History datastore interfaces.

Both are synchronous; async callers offload them with ``asyncio.to_thread``.
"""

from __future__ import annotations

from typing import Protocol

from devtrail.models.search import DiscoveredItem, SearchFilters, Turn


class SearchBackend(Protocol):
    """Search over conversations, commits and file changes of one scope."""

    def search(
        self,
        query_text: str,
        scope_id: str,
        filters: SearchFilters | None,
        limit: int | None,
    ) -> list[DiscoveredItem]:
        """Return candidate items, best first.

        With empty filters this is a semantic query; otherwise the first set filter
        (commit hash, author, date, file path) selects a targeted query.
        Repeated calls with the same input must return stable item ids.
        """


class ThreadStore(Protocol):
    """Read-only access to full conversation threads."""

    def get_full_thread(self, thread_id: str) -> list[Turn]:
        """Return every turn of a thread in chronological order."""
