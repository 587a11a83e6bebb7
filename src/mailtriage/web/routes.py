"""HTTP routes for the mail triage service.

The service has no UI; the API exists for liveness probes and for
triggering a cycle by hand.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from mailtriage.core.logging import get_logger
from mailtriage.engine.scheduler import PollScheduler
from mailtriage.engine.state import ThreadStateStore
from mailtriage.engine.triage import TriageEngine
from mailtriage.web.dependencies import get_scheduler, get_store, get_triage_engine

logger = get_logger(__name__)

APP_VERSION = "0.1.0"

api_router = APIRouter(prefix="/api")


@api_router.get("/health")
async def health_check(
    engine: TriageEngine | None = Depends(get_triage_engine),
    store: ThreadStateStore | None = Depends(get_store),
    scheduler: PollScheduler | None = Depends(get_scheduler),
) -> dict[str, Any]:
    """Liveness endpoint for Docker and monitoring."""
    last_cycle = engine.last_cycle if engine else None
    last_cycle_at = engine.last_cycle_at if engine else None

    return {
        "status": "healthy" if engine else "degraded",
        "tracked_threads": len(store) if store is not None else 0,
        "scheduler_running": bool(scheduler and scheduler.running),
        "last_triage_cycle": last_cycle_at.isoformat() if last_cycle_at else None,
        "last_triage_cycle_id": last_cycle.cycle_id if last_cycle else None,
        "last_cycle": last_cycle.to_dict() if last_cycle else None,
        "version": APP_VERSION,
    }


@api_router.post("/triage/run")
async def run_triage(
    engine: TriageEngine | None = Depends(get_triage_engine),
) -> dict[str, Any]:
    """Run one triage cycle now and return its result."""
    if engine is None:
        raise HTTPException(
            status_code=503,
            detail="Triage engine is not initialized. Check config and credentials in the logs.",
        )

    logger.info("manual_triage_requested")
    result = await engine.run_cycle()
    return result.to_dict()
