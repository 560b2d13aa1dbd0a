from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class LoopState(str, Enum):
    SEEDING = "seeding"
    ITERATING = "iterating"
    CONVERGED = "converged"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"

    @property
    def is_terminal(self) -> bool:
        return self in (LoopState.CONVERGED, LoopState.MAX_ITERATIONS_REACHED)


@dataclass
class LoopProgress:
    query: str
    scope_id: str
    state: LoopState = LoopState.SEEDING
    iteration: int = 0
    max_iterations: int = 0
    searches_run: int = 0
    items_discovered: int = 0
    items_admitted: int = 0
    items_claimed: int = 0
    iteration_log: list[dict[str, int]] = field(default_factory=list)

    def snapshot(self) -> dict[str, str | int]:
        return {
            "query": self.query,
            "scope_id": self.scope_id,
            "state": self.state.value,
            "iteration": self.iteration,
            "max_iterations": self.max_iterations,
            "searches_run": self.searches_run,
            "items_discovered": self.items_discovered,
            "items_admitted": self.items_admitted,
            "items_claimed": self.items_claimed,
        }
