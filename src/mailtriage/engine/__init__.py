"""Triage processing engine.

This package provides:
- Thread state store for conversations awaiting clarification
- Triage engine for one poll-fetch-classify-act cycle
- Poll scheduler that runs the engine on a fixed interval
"""

from mailtriage.engine.scheduler import PollScheduler
from mailtriage.engine.state import ThreadRecord, ThreadStateStore
from mailtriage.engine.triage import SUBJECT_PREFIX, TriageCycleResult, TriageEngine

__all__ = [
    # Scheduling
    "PollScheduler",
    # State
    "ThreadRecord",
    "ThreadStateStore",
    # Triage
    "SUBJECT_PREFIX",
    "TriageCycleResult",
    "TriageEngine",
]
