from __future__ import annotations

from devtrail.prompts.agents import (
    FINALIZE_SYSTEM_PROMPT,
    FINALIZE_TASK,
    INVESTIGATOR_SYSTEM_PROMPT,
    INVESTIGATOR_TASKS,
    JUDGE_RUBRIC,
    JUDGE_SYSTEM_PROMPT,
    NO_FINDINGS_ANSWER,
    SYNTHESIS_FIRST_TASK,
    SYNTHESIS_FORMAT,
    SYNTHESIS_SYSTEM_PROMPT,
    SYNTHESIS_UPDATE_TASK,
)

__all__ = [
    "FINALIZE_SYSTEM_PROMPT",
    "FINALIZE_TASK",
    "INVESTIGATOR_SYSTEM_PROMPT",
    "INVESTIGATOR_TASKS",
    "JUDGE_RUBRIC",
    "JUDGE_SYSTEM_PROMPT",
    "NO_FINDINGS_ANSWER",
    "SYNTHESIS_FIRST_TASK",
    "SYNTHESIS_FORMAT",
    "SYNTHESIS_SYSTEM_PROMPT",
    "SYNTHESIS_UPDATE_TASK",
]
