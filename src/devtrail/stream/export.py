"""Audit trail export.

Writes a session's events to `events.jsonl` so a run can be inspected after its log
backend is gone.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable

from devtrail.events import Event


def write_audit_trail(path: Path, events: Iterable[Event]) -> int:
    """Write events as JSONL, replacing any existing file.

    Returns:
        Number of events written.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with path.open("w", encoding="utf-8") as f:
        for event in events:
            f.write(json.dumps(event.model_dump(mode="json"), ensure_ascii=False) + "\n")
            count += 1
    return count


def iter_audit_trail(path: Path) -> list[Event]:
    """Load all events from a JSONL file."""

    events: list[Event] = []
    if not path.exists():
        return events
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line:
            continue
        events.append(Event.model_validate_json(line))
    return events
