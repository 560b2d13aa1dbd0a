from __future__ import annotations

from devtrail.orchestrator.loop import LoopManager
from devtrail.orchestrator.session import ExplorationResult, ExplorationSession, Explorer, build_explorer
from devtrail.orchestrator.state import LoopProgress, LoopState

__all__ = [
    "ExplorationResult",
    "ExplorationSession",
    "Explorer",
    "LoopManager",
    "LoopProgress",
    "LoopState",
    "build_explorer",
]
