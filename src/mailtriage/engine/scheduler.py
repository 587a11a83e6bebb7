"""Fixed-interval scheduling of triage cycles.

Wraps APScheduler's AsyncIOScheduler so cycles run on the same event loop
as the rest of the service (the FastAPI app or the CLI loop). The first
cycle fires immediately on start.

A cycle that outlives the interval makes the next run wait (max_instances,
default 1) and missed runs collapse into one (coalesce). Raising
max_overlapping_cycles lets cycles overlap; the engine's in-flight guard
keeps overlapping cycles from handling the same message twice.

Hot reload reaches the engine (models, triage limits, poll query) and
the interval. Settings bound when the service is built need a restart:
mailbox.user_id and mailbox.from_address (held by the Gmail gateway),
the job's max_instances (from triage.max_overlapping_cycles) and server.*.

Usage:
    from mailtriage.engine.scheduler import PollScheduler

    scheduler = PollScheduler(engine, interval_seconds=60)
    scheduler.start()  # must be called with a running event loop
    ...
    scheduler.shutdown()
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from mailtriage.config import get_config, reload_config_if_changed
from mailtriage.core.logging import get_logger

if TYPE_CHECKING:
    from apscheduler.job import Job

    from mailtriage.engine.triage import TriageCycleResult, TriageEngine

logger = get_logger(__name__)

JOB_ID = "triage_cycle"

DEFAULT_INTERVAL_SECONDS = 60


class PollScheduler:
    """Fires TriageEngine.run_cycle() on a fixed interval.

    Attributes:
        _engine: Engine whose cycle is scheduled
        _interval_seconds: Seconds between cycle starts
        _max_instances: How many cycles may run concurrently
        _hot_reload: Whether to check the config file before each cycle
        _scheduler: Underlying APScheduler instance (None until started)
    """

    def __init__(
        self,
        engine: TriageEngine,
        interval_seconds: int = DEFAULT_INTERVAL_SECONDS,
        max_instances: int = 1,
        hot_reload: bool = True,
    ):
        self._engine = engine
        self._interval_seconds = interval_seconds
        self._max_instances = max_instances
        self._hot_reload = hot_reload
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def interval_seconds(self) -> int:
        return self._interval_seconds

    @property
    def job(self) -> Job | None:
        """The scheduled triage job, if the scheduler is started."""
        if self._scheduler is None:
            return None
        return self._scheduler.get_job(JOB_ID)

    def start(self) -> None:
        """Start firing cycles; the first one runs immediately."""
        if self.running:
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.run_job,
            "interval",
            seconds=self._interval_seconds,
            id=JOB_ID,
            max_instances=self._max_instances,
            coalesce=True,
            next_run_time=datetime.now(),
        )
        self._scheduler.start()
        logger.info(
            "scheduler_started",
            interval_seconds=self._interval_seconds,
            max_instances=self._max_instances,
        )

    def shutdown(self) -> None:
        """Stop scheduling; cycles already running are not waited for."""
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("scheduler_stopped")
        self._scheduler = None

    async def run_job(self) -> TriageCycleResult | None:
        """Run one cycle. Never raises, so the schedule keeps firing.

        Returns:
            The cycle result, or None if the cycle crashed
        """
        if self._hot_reload:
            try:
                self._apply_config_changes()
            except Exception as e:
                # The cycle still runs with whatever config the engine holds
                logger.error("config_apply_failed", error=str(e), error_type=type(e).__name__)

        try:
            return await self._engine.run_cycle()
        except Exception as e:
            logger.error("scheduled_triage_failed", error=str(e), error_type=type(e).__name__)
            return None

    def _apply_config_changes(self) -> None:
        """Hand a changed config file to the engine and adjust the interval."""
        if not reload_config_if_changed():
            return

        config = get_config()
        self._engine.update_config(config)

        new_interval = config.triage.interval_seconds
        if new_interval != self._interval_seconds:
            self._interval_seconds = new_interval
            if self._scheduler is not None:
                self._scheduler.reschedule_job(JOB_ID, trigger="interval", seconds=new_interval)
            logger.info("scheduler_interval_changed", interval_seconds=new_interval)
