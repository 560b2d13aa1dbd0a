"""Agents that act on a session log."""

from __future__ import annotations

from devtrail.agents.discovery import DiscoveryService, SearchOutcome
from devtrail.agents.judge import JudgeOutcome, RelevanceGate
from devtrail.agents.reasoner import LLMReasoner, ReasoningCollaborator
from devtrail.agents.synthesis import IncrementalSynthesizer
from devtrail.agents.worker import LeadMemo, WorkerAgent, WorkerPool

__all__ = [
    "DiscoveryService",
    "IncrementalSynthesizer",
    "JudgeOutcome",
    "LLMReasoner",
    "LeadMemo",
    "ReasoningCollaborator",
    "RelevanceGate",
    "SearchOutcome",
    "WorkerAgent",
    "WorkerPool",
]
