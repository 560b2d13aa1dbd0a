"""In-memory history.

Serves both history interfaces from a list of interactions held in memory. Semantic
search is approximated by keyword overlap. Useful for local runs over an exported
JSONL dump and for tests.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from pydantic import BaseModel, Field

from devtrail.logging import get_logger
from devtrail.models.search import DiscoveredItem, SearchFilters, Turn

logger = get_logger(__name__)


class HistoryRecord(BaseModel):
    """One interaction plus the commits and files it is linked to."""

    item: DiscoveredItem
    commit_hashes: list[str] = Field(default_factory=list)
    file_paths: list[str] = Field(default_factory=list)


@dataclass
class InMemoryHistory:
    """Search backend and thread store over in-memory records."""

    records: list[HistoryRecord] = field(default_factory=list)
    scope_id: str | None = None

    @classmethod
    def from_items(cls, items: Iterable[DiscoveredItem], *, scope_id: str | None = None) -> "InMemoryHistory":
        return cls(records=[HistoryRecord(item=it) for it in items], scope_id=scope_id)

    @classmethod
    def from_jsonl(cls, path: Path, *, scope_id: str | None = None) -> "InMemoryHistory":
        """Load records from JSONL.

        Each line is an interaction object (the :class:`DiscoveredItem` fields) with
        optional ``commit_hashes`` and ``file_paths`` lists.
        """

        records: list[HistoryRecord] = []
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line:
                continue
            data = json.loads(line)
            records.append(
                HistoryRecord(
                    item=DiscoveredItem.model_validate(
                        {k: v for k, v in data.items() if k not in ("commit_hashes", "file_paths")}
                    ),
                    commit_hashes=list(data.get("commit_hashes") or []),
                    file_paths=list(data.get("file_paths") or []),
                )
            )
        logger.info("Loaded %d interactions from %s", len(records), path)
        return cls(records=records, scope_id=scope_id)

    def search(
        self,
        query_text: str,
        scope_id: str,
        filters: SearchFilters | None,
        limit: int | None,
    ) -> list[DiscoveredItem]:
        if self.scope_id is not None and scope_id != self.scope_id:
            return []

        f = filters or SearchFilters()
        if f.is_empty():
            out = self._keyword_search(query_text)
        elif f.commit_hash:
            needle = f.commit_hash.lower()
            hits = [r for r in self.records if needle in (h.lower() for h in r.commit_hashes)]
            out = [_with_similarity(r.item, 0.9) for r in hits]
        elif f.author:
            hits = [r for r in self.records if r.item.author == f.author]
            hits.sort(key=lambda r: r.item.timestamp or "", reverse=True)
            out = [_with_similarity(r.item, 0.8) for r in hits]
        elif f.date:
            hits = [r for r in self.records if (r.item.timestamp or "")[:10] == f.date]
            hits.sort(key=lambda r: r.item.timestamp or "")
            out = [_with_similarity(r.item, 0.7) for r in hits]
        else:
            hits = [r for r in self.records if f.file_path in r.file_paths]
            hits.sort(key=lambda r: r.item.timestamp or "", reverse=True)
            out = [_with_similarity(r.item, 0.85) for r in hits]

        return out if limit is None else out[:limit]

    def get_full_thread(self, thread_id: str) -> list[Turn]:
        turns = [r.item for r in self.records if r.item.thread_id == thread_id]
        turns.sort(key=lambda t: t.timestamp or "")
        return turns

    def _keyword_search(self, query_text: str) -> list[DiscoveredItem]:
        tokens = _tokenize(query_text)
        if not tokens:
            return []

        scored: list[tuple[float, DiscoveredItem]] = []
        for r in self.records:
            hay = " ".join(
                [
                    r.item.thread_title or "",
                    r.item.prompt_text,
                    r.item.response_text,
                    r.item.author or "",
                ]
            )
            hits = _score(tokens, hay)
            if hits <= 0:
                continue
            scored.append((hits / len(tokens), r.item))

        # stable on ties so repeated searches return the same order
        scored.sort(key=lambda x: x[0], reverse=True)
        return [_with_similarity(item, round(sim, 4)) for sim, item in scored]


def _with_similarity(item: DiscoveredItem, similarity: float) -> DiscoveredItem:
    return item.model_copy(update={"similarity": similarity})


_WORD_RE = re.compile(r"[A-Za-z0-9_]+")


def _tokenize(text: str) -> set[str]:
    return {t.lower() for t in _WORD_RE.findall(text) if len(t) >= 2}


def _score(tokens: set[str], text: str) -> int:
    hay = text.lower()
    s = 0
    for t in tokens:
        if t in hay:
            s += 1
    return s
