"""
Periodic maintenance jobs for the garage API.

Runs on APScheduler's AsyncIOScheduler, on the same loop as the database
pools and the session store:
- session sweep (expired sessions and their refresh mappings)
- database health check (reconnects on failure)
- database performance stats log

Usage:
    from core.scheduler import MaintenanceScheduler

    scheduler = MaintenanceScheduler(adapter, authority, event_loop=loop)
    scheduler.start()     # from the loop thread, or any thread for APScheduler 3.x
    scheduler.shutdown()
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

SESSION_SWEEP_INTERVAL = 600
HEALTH_CHECK_INTERVAL = 30
STATS_LOG_INTERVAL = 60


class MaintenanceScheduler:
    """Interval jobs keeping sessions and the database pool healthy."""

    def __init__(
        self,
        adapter=None,
        authority=None,
        event_loop=None,
        session_sweep_interval: int = SESSION_SWEEP_INTERVAL,
        health_check_interval: int = HEALTH_CHECK_INTERVAL,
        stats_log_interval: int = STATS_LOG_INTERVAL,
    ):
        self.adapter = adapter
        self.authority = authority
        self.session_sweep_interval = session_sweep_interval
        self.health_check_interval = health_check_interval
        self.stats_log_interval = stats_log_interval
        self._event_loop = event_loop
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    @property
    def scheduler(self) -> AsyncIOScheduler:
        """Get or create the scheduler instance."""
        if self._scheduler is None:
            kwargs = {
                "job_defaults": {
                    "coalesce": True,  # Combine missed runs into one
                    "max_instances": 1,
                    "misfire_grace_time": 30,
                },
                "timezone": "UTC",
            }
            if self._event_loop is not None:
                kwargs["event_loop"] = self._event_loop
            self._scheduler = AsyncIOScheduler(**kwargs)
        return self._scheduler

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Register the maintenance jobs and start the scheduler."""
        if self._running:
            return
        if self.authority is not None:
            self._add("session_sweep", "Expired session sweep", self.sweep_sessions, self.session_sweep_interval)
        if self.adapter is not None:
            self._add("db_health_check", "Database health check", self.check_database, self.health_check_interval)
            self._add("db_stats_log", "Database performance log", self.log_database_stats, self.stats_log_interval)
        self.scheduler.start()
        self._running = True
        logger.info("Maintenance scheduler started")

    def shutdown(self):
        if self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Maintenance scheduler stopped")

    def _add(self, job_id: str, name: str, func, seconds: int):
        self.scheduler.add_job(
            func,
            trigger=IntervalTrigger(seconds=seconds),
            id=job_id,
            name=name,
            replace_existing=True,
        )
        logger.info(f"Scheduled job: {name} (every {seconds}s)")

    def list_jobs(self) -> list[dict]:
        return [
            {
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in self.scheduler.get_jobs()
        ]

    # ----- jobs -------------------------------------------------------------------

    async def sweep_sessions(self) -> int:
        try:
            removed = await self.authority.sweep_expired()
        except Exception as e:
            logger.error(f"Session sweep failed: {e}")
            return 0
        if removed:
            logger.info(f"Swept {removed} expired session(s)")
        return removed

    async def check_database(self) -> bool:
        try:
            return await self.adapter.check_health()
        except Exception as e:
            logger.error(f"Database health check job failed: {e}")
            return False

    async def log_database_stats(self):
        self.adapter.log_performance_stats()
