"""Background schedule that keeps the site cache fresh."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from .site_cache import SiteCache

JOB_ID = "site-cache-refresh"

logger = logging.getLogger("support_chat.cache")


class CacheRefresher:
    """Run SiteCache.refresh once at start and then on a fixed interval."""

    def __init__(
        self,
        cache: SiteCache,
        interval_hours: int = 24,
        scheduler: Optional[BackgroundScheduler] = None,
    ) -> None:
        self._cache = cache
        self._interval_hours = interval_hours
        self._scheduler = scheduler or BackgroundScheduler(timezone="UTC")

    @property
    def scheduler(self) -> BackgroundScheduler:
        return self._scheduler

    @property
    def running(self) -> bool:
        return bool(getattr(self._scheduler, "running", False))

    def start(self) -> None:
        """Purpose: Register the refresh job and start the scheduler thread.
        Inputs/Outputs: No inputs; no return value.
        Side Effects / State: Starts a background thread; first run fires immediately.
        Dependencies: APScheduler interval trigger; SiteCache.refresh.
        Failure Modes: Job exceptions are logged by APScheduler and the schedule continues.
        If Removed: The cache is never filled unless refresh_now is called.
        Testing Notes: After start, the job exists with the configured interval.
        """
        # One job, never overlapping with itself; missed runs collapse into one.
        self._scheduler.add_job(
            self._run,
            "interval",
            hours=self._interval_hours,
            id=JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(self._scheduler.timezone),
        )
        if not self.running:
            self._scheduler.start()
        logger.info("cache refresher started interval_hours=%s", self._interval_hours)

    def shutdown(self) -> None:
        if self.running:
            self._scheduler.shutdown(wait=False)
            logger.info("cache refresher stopped")

    def refresh_now(self) -> int:
        return self._run()

    def _run(self) -> int:
        return self._cache.refresh()
