from __future__ import annotations

from enum import Enum


class JobStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    REQUIRES_ACTION = "requires_action"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def parse(cls, raw: str | None) -> JobStatus:
        # solo coinciden los valores exactos; el resto (o ausente) cuenta como "en curso"
        try:
            return cls(raw or "")
        except ValueError:
            return cls.IN_PROGRESS


class PollState(str, Enum):
    CREATED = "created"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CONTEXT_CANCELLED = "context_cancelled"
