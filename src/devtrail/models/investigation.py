"""Investigation models: findings and leads."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from devtrail.models.search import LeadKind, SearchFilters


FindingKind = Literal["decision", "problem", "solution", "technical_detail", "context"]
LeadPriority = Literal["high", "medium", "low"]

_LEAD_KIND_ALIASES = {
    "temporal": LeadKind.DATE,
    "commit_reference": LeadKind.COMMIT,
    "entity_reference": LeadKind.ENTITY,
    "person_reference": LeadKind.PERSON,
    "date_reference": LeadKind.DATE,
    "file_reference": LeadKind.FILE,
    "conversation_reference": LeadKind.CONVERSATION,
}


class Finding(BaseModel):
    """A piece of evidence extracted from one turn.

    Findings are append-only; a correction arrives as a new finding.
    """

    kind: FindingKind
    summary: str
    detail: str = ""
    related_entities: list[str] = Field(default_factory=list)
    relevance_to_query: str = ""
    source_item_id: str = ""
    author: str | None = None
    timestamp: str | None = None
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class Lead(BaseModel):
    """A hint that something else in the history should be searched for."""

    kind: LeadKind
    value: str = ""
    search_query_text: str
    rationale: str = ""
    priority: LeadPriority = "low"

    @field_validator("kind", mode="before")
    @classmethod
    def _coerce_kind(cls, v: Any) -> Any:
        if isinstance(v, LeadKind):
            return v
        raw = str(v or "").strip().lower()
        if raw in _LEAD_KIND_ALIASES:
            return _LEAD_KIND_ALIASES[raw]
        try:
            kind = LeadKind(raw)
        except ValueError:
            return LeadKind.ENTITY
        # "initial" is reserved for the session seed
        return LeadKind.ENTITY if kind is LeadKind.INITIAL else kind

    @field_validator("priority", mode="before")
    @classmethod
    def _coerce_priority(cls, v: Any) -> Any:
        raw = str(v or "").strip().lower()
        return raw if raw in ("high", "medium", "low") else "low"

    def memo_key(self) -> tuple[str, str]:
        return (self.kind.value, self.search_query_text.strip())

    def to_filters(self) -> SearchFilters:
        value = self.value.strip() or None
        if self.kind is LeadKind.COMMIT:
            return SearchFilters(commit_hash=value)
        if self.kind is LeadKind.PERSON:
            return SearchFilters(author=value)
        if self.kind is LeadKind.FILE:
            return SearchFilters(file_path=value)
        if self.kind is LeadKind.DATE:
            return SearchFilters(date=value)
        return SearchFilters()


class InvestigationResult(BaseModel):
    """Parsed analysis of one turn."""

    findings: list[Finding] = Field(default_factory=list)
    leads: list[Lead] = Field(default_factory=list)
    completeness: float | None = Field(default=None, ge=0.0, le=1.0)
    missing: list[str] = Field(default_factory=list)
