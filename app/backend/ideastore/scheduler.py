"""
Background scheduler for store maintenance.

Handles periodic housekeeping:
- Recounting stored ideas into the metadata record
- Reconciling persisted vote counts with the voter sets
"""

import logging
from datetime import datetime
from typing import Any, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .ideas import IdeaRepository
from .votes import VoteLedger

logger = logging.getLogger(__name__)


class StoreMaintenanceScheduler:
    """
    Manages background maintenance jobs for the idea store.

    Runs periodic tasks for:
    - Refreshing the cached total idea count
    - Correcting vote counts that drifted from the persisted voter sets
    """

    def __init__(
        self,
        ideas: IdeaRepository,
        votes: Optional[VoteLedger] = None,
        refresh_minutes: int = 15,
    ):
        """
        Initialize the maintenance scheduler.

        Args:
            ideas: Idea repository whose total count is refreshed.
            votes: Vote ledger to reconcile; skipped when None.
            refresh_minutes: Interval of the total-count job.
        """
        self.ideas = ideas
        self.votes = votes
        self.refresh_minutes = refresh_minutes
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    async def run_refresh_job(self) -> dict[str, Any]:
        """
        Recount ideas and store the total in the metadata record.

        Returns:
            Job results with the new total and duration.
        """
        start_time = datetime.now()
        results: dict[str, Any] = {"total_ideas": 0}

        try:
            results["total_ideas"] = await self.ideas.refresh_total_count()
        except OSError as e:
            logger.error(f"Total count refresh failed: {e}")
            results["error"] = str(e)

        results["duration_seconds"] = (datetime.now() - start_time).total_seconds()
        results["completed_at"] = datetime.now().isoformat()
        logger.info(f"Total count refresh completed: {results['total_ideas']} ideas")
        return results

    async def run_reconcile_job(self) -> dict[str, Any]:
        """
        Rewrite drifted vote counts from the persisted voter sets.

        Returns:
            Job results with checked and corrected counts.
        """
        start_time = datetime.now()
        results: dict[str, Any] = {"checked": 0, "corrected": 0}

        if self.votes is None:
            logger.debug("No vote ledger configured, skipping reconciliation")
            return results

        try:
            results.update(await self.votes.reconcile())
        except OSError as e:
            logger.error(f"Vote reconciliation failed: {e}")
            results["error"] = str(e)

        duration = (datetime.now() - start_time).total_seconds()
        results["duration_seconds"] = duration
        results["completed_at"] = datetime.now().isoformat()

        logger.info(
            f"Vote reconciliation completed in {duration:.1f}s: "
            f"{results['checked']} checked, "
            f"{results['corrected']} corrected"
        )
        return results

    def start(self) -> None:
        """
        Start the background scheduler.

        Schedules:
        1. Total count refresh every ``refresh_minutes``
        2. Nightly vote reconciliation at 02:00
        """
        if self._scheduler is not None:
            logger.warning("Maintenance scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()

        self._scheduler.add_job(
            self.run_refresh_job,
            trigger=IntervalTrigger(minutes=self.refresh_minutes),
            id="ideas_total_refresh",
            name="Ideas Total Count Refresh",
            replace_existing=True,
        )

        self._scheduler.add_job(
            self.run_reconcile_job,
            trigger=CronTrigger(hour=2, minute=0),
            id="nightly_vote_reconcile",
            name="Nightly Vote Reconciliation",
            replace_existing=True,
        )

        self._scheduler.start()
        logger.info(
            f"Maintenance scheduler started - "
            f"total refresh every {self.refresh_minutes} min, vote reconciliation at 02:00"
        )

    def stop(self) -> None:
        """Stop the background scheduler."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Maintenance scheduler stopped")

    def job_ids(self) -> list[str]:
        if self._scheduler is None:
            return []
        return [job.id for job in self._scheduler.get_jobs()]

    async def trigger_refresh(self) -> dict[str, Any]:
        """Trigger an immediate total count refresh."""
        logger.info("Triggering immediate total count refresh")
        return await self.run_refresh_job()

    async def trigger_reconcile(self) -> dict[str, Any]:
        """Trigger an immediate vote reconciliation."""
        logger.info("Triggering immediate vote reconciliation")
        return await self.run_reconcile_job()
