"""FastAPI dependency injection helpers.

Extracts shared dependencies from app.state for use in route handlers.
All dependencies are initialized during the FastAPI lifespan; any of them
may be None when startup could not complete (missing config or credentials).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Request

if TYPE_CHECKING:
    from mailtriage.config_schema import AppConfig
    from mailtriage.engine.scheduler import PollScheduler
    from mailtriage.engine.state import ThreadStateStore
    from mailtriage.engine.triage import TriageEngine


def get_config(request: Request) -> AppConfig | None:
    """Get the current AppConfig from app state."""
    return request.app.state.config


def get_store(request: Request) -> ThreadStateStore | None:
    """Get the shared ThreadStateStore from app state."""
    return request.app.state.store


def get_triage_engine(request: Request) -> TriageEngine | None:
    """Get the TriageEngine from app state."""
    return request.app.state.triage_engine


def get_scheduler(request: Request) -> PollScheduler | None:
    """Get the PollScheduler from app state."""
    return request.app.state.scheduler
