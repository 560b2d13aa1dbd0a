"""SQL history store.

Reads the interaction history (conversations, interactions, commits, file diffs and
pgvector embeddings) through SQLAlchemy. Only SELECT statements are issued.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Protocol

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from devtrail.errors import BackendError, CollaboratorError
from devtrail.logging import get_logger
from devtrail.models.search import DiscoveredItem, SearchFilters, Turn

logger = get_logger(__name__)


_INTERACTION_COLUMNS = """
        i.id,
        i.conversation_id,
        i.prompt_text,
        i.response_text,
        i.author,
        i.prompt_ts,
        c.title AS conversation_title,
        c.platform"""

_BY_COMMIT_SQL = f"""
    SELECT DISTINCT{_INTERACTION_COLUMNS},
        0.9 AS similarity
    FROM commit_interactions ci
    JOIN commits cm ON ci.commit_id = cm.id
    JOIN interactions i ON ci.interaction_id = i.id
    JOIN conversations c ON i.conversation_id = c.id
    WHERE cm.hash = :commit_hash AND c.project_id = :scope_id
"""

_BY_AUTHOR_SQL = f"""
    SELECT{_INTERACTION_COLUMNS},
        0.8 AS similarity
    FROM interactions i
    JOIN conversations c ON i.conversation_id = c.id
    WHERE i.author = :author AND c.project_id = :scope_id
    ORDER BY i.prompt_ts DESC
"""

_BY_DATE_SQL = f"""
    SELECT{_INTERACTION_COLUMNS},
        0.7 AS similarity
    FROM interactions i
    JOIN conversations c ON i.conversation_id = c.id
    WHERE DATE(i.prompt_ts) = :date AND c.project_id = :scope_id
    ORDER BY i.prompt_ts
"""

_BY_FILE_SQL = f"""
    SELECT DISTINCT{_INTERACTION_COLUMNS},
        0.85 AS similarity
    FROM interaction_diffs d
    JOIN interactions i ON d.interaction_id = i.id
    JOIN conversations c ON i.conversation_id = c.id
    WHERE d.file_path = :file_path AND c.project_id = :scope_id
    ORDER BY i.prompt_ts DESC
"""

_SEMANTIC_SQL = f"""
    SELECT{_INTERACTION_COLUMNS},
        1 - (ie.embedding <=> CAST(:embedding AS vector)) AS similarity
    FROM interaction_embeddings ie
    JOIN interactions i ON ie.interaction_id = i.id
    JOIN conversations c ON i.conversation_id = c.id
    WHERE c.project_id = :scope_id
      AND ie.type = 'prompt_response'
    ORDER BY ie.embedding <=> CAST(:embedding AS vector)
"""

_THREAD_SQL = f"""
    SELECT{_INTERACTION_COLUMNS}
    FROM interactions i
    JOIN conversations c ON i.conversation_id = c.id
    WHERE i.conversation_id = :thread_id
    ORDER BY i.prompt_ts ASC
"""


class QueryEmbedder(Protocol):
    def embed_query(self, text: str) -> list[float]:
        """Return an embedding vector for a search query."""


class SqlHistoryStore:
    """Search backend and thread store over the history database."""

    def __init__(self, engine: Engine, *, embedder: QueryEmbedder | None = None) -> None:
        self._engine = engine
        self._embedder = embedder

    @classmethod
    def from_url(cls, database_url: str, *, embedder: QueryEmbedder | None = None) -> "SqlHistoryStore":
        return cls(create_engine(database_url, pool_pre_ping=True), embedder=embedder)

    def search(
        self,
        query_text: str,
        scope_id: str,
        filters: SearchFilters | None,
        limit: int | None,
    ) -> list[DiscoveredItem]:
        """Run the targeted or semantic query selected by ``filters``.

        Raises:
            CollaboratorError: If the query or the embedding call fails.
        """

        f = filters or SearchFilters()
        params: dict[str, Any] = {"scope_id": scope_id}
        if f.commit_hash:
            sql, params["commit_hash"] = _BY_COMMIT_SQL, f.commit_hash
        elif f.author:
            sql, params["author"] = _BY_AUTHOR_SQL, f.author
        elif f.date:
            sql, params["date"] = _BY_DATE_SQL, f.date
        elif f.file_path:
            sql, params["file_path"] = _BY_FILE_SQL, f.file_path
        else:
            if self._embedder is None:
                raise CollaboratorError("semantic search requires a query embedder")
            vector = self._embedder.embed_query(query_text)
            sql, params["embedding"] = _SEMANTIC_SQL, "[" + ",".join(str(x) for x in vector) + "]"

        if limit is not None:
            sql += "\n    LIMIT :limit"
            params["limit"] = limit

        try:
            rows = self._fetch(sql, params)
        except SQLAlchemyError as e:
            logger.error("History search failed", extra={"scope_id": scope_id, "filters": f.model_dump()})
            raise CollaboratorError(f"history search failed: {e}") from e
        return [_row_to_item(r) for r in rows]

    def get_full_thread(self, thread_id: str) -> list[Turn]:
        """Load a thread in chronological order.

        Raises:
            BackendError: If the datastore is unavailable.
        """

        try:
            rows = self._fetch(_THREAD_SQL, {"thread_id": thread_id})
        except SQLAlchemyError as e:
            raise BackendError(f"thread read failed for {thread_id}: {e}") from e
        return [_row_to_item(r) for r in rows]

    def _fetch(self, sql: str, params: Mapping[str, Any]) -> list[Mapping[str, Any]]:
        with self._engine.connect() as conn:
            return list(conn.execute(text(sql), dict(params)).mappings())


def _row_to_item(row: Mapping[str, Any]) -> DiscoveredItem:
    ts = row.get("prompt_ts")
    if isinstance(ts, datetime):
        ts = ts.isoformat()
    similarity = row.get("similarity")
    return DiscoveredItem(
        item_id=str(row["id"]),
        thread_id=str(row["conversation_id"]),
        prompt_text=row.get("prompt_text") or "",
        response_text=row.get("response_text") or "",
        author=row.get("author"),
        timestamp=str(ts) if ts is not None else None,
        thread_title=row.get("conversation_title"),
        platform=row.get("platform"),
        similarity=float(similarity) if similarity is not None else None,
    )
