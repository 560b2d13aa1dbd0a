"""Pydantic models used across the project."""

from __future__ import annotations

from devtrail.models.investigation import Finding, InvestigationResult, Lead
from devtrail.models.judging import JudgeVerdict, WorkItem
from devtrail.models.search import DiscoveredItem, LeadKind, SearchFilters, SearchRequest, Turn

__all__ = [
    "DiscoveredItem",
    "Finding",
    "InvestigationResult",
    "JudgeVerdict",
    "Lead",
    "LeadKind",
    "SearchFilters",
    "SearchRequest",
    "Turn",
    "WorkItem",
]
