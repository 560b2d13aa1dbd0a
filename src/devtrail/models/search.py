"""Search-related models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class LeadKind(str, Enum):
    """What kind of lead a search request follows."""

    INITIAL = "initial"
    COMMIT = "commit"
    ENTITY = "entity"
    PERSON = "person"
    DATE = "date"
    FILE = "file"
    CONVERSATION = "conversation"


class SearchFilters(BaseModel):
    """Targeted constraints for a search. At most one is normally set."""

    commit_hash: str | None = None
    author: str | None = None
    date: str | None = None
    file_path: str | None = None

    def is_empty(self) -> bool:
        return not (self.commit_hash or self.author or self.date or self.file_path)


class SearchRequest(BaseModel):
    """A request to search the history for new items."""

    query_text: str
    iteration: int = Field(ge=0)
    origin_event_id: int = Field(ge=1)
    lead_kind: LeadKind = LeadKind.INITIAL
    filters: SearchFilters = Field(default_factory=SearchFilters)
    rationale: str | None = None


class DiscoveredItem(BaseModel):
    """One interaction (a prompt/response turn) from the development history.

    The same shape serves as a search result and as a turn of a full thread.
    """

    model_config = ConfigDict(frozen=True)

    item_id: str
    thread_id: str
    prompt_text: str = ""
    response_text: str = ""
    author: str | None = None
    timestamp: str | None = None
    thread_title: str | None = None
    platform: str | None = None
    similarity: float | None = None


Turn = DiscoveredItem
