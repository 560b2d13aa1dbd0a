"""Relevance judging and work queue models."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class JudgeVerdict(BaseModel):
    """Relevance score for one discovered item."""

    item_id: str
    score: float = Field(ge=0.0, le=10.0)
    rationale: str = ""


class WorkItem(BaseModel):
    """A unit of investigation admitted to the queue.

    Whether an item is claimed is derived from ``claim_work`` events in the log.
    """

    item_id: str
    thread_id: str
    priority: float = Field(ge=0.0, le=10.0)
    origin_event_id: int = Field(ge=1)
    iteration: int = Field(ge=0)
    source: Literal["initial_embedding", "discovered_reference"] = "initial_embedding"
    rationale: str = ""
