"""
starledger.services.scheduler — Periodic Background Jobs
=========================================================

Jobs run on an APScheduler ``AsyncIOScheduler`` inside the API process:

- **Share reconciliation** — every ``reconcile_interval_seconds``
  (default 300), converts pending shares into STAR.
- **Rank refresh** — every ``rank_refresh_interval_seconds`` (default
  3600), rebuilds the member rank cache from the ledger.
- **Monthly free votes** — cron, 1st of the month at 00:05 UTC.

Each job body runs via ``run_db()`` so the event loop is never blocked.
A job that fires while its previous run is still in flight is skipped
and logged; runs never overlap.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import Engine

from starledger.config import StarLedgerConfig
from starledger.database.engine import run_db
from starledger.services.award_service import run_reconciliation
from starledger.services.ledger import refresh_rank_cache
from starledger.services.notifier import Notifier
from starledger.services.vote_service import allocate_monthly_free_votes

logger = logging.getLogger(__name__)


class NonOverlappingJob:
    """Wraps an async job body; refuses to start while a previous run is in flight."""

    def __init__(self, name: str, func: Callable[[], Awaitable[object]]) -> None:
        self.name = name
        self._func = func
        self.running = False
        self.skipped = 0
        # Outcome of the most recent completed run
        self.last_result: object = None
        self.last_error: Exception | None = None

    async def run(self) -> bool:
        """Run the job.  Returns ``False`` if the run was skipped.

        Scheduled and manual triggers share this guard, so a manual run
        requested mid-pass is skipped like a late scheduled tick.
        """
        if self.running:
            self.skipped += 1
            logger.warning(
                "Skipping %s: previous run still in progress (%d skipped so far)",
                self.name, self.skipped,
            )
            return False

        self.running = True
        self.last_result = None
        self.last_error = None
        try:
            self.last_result = await self._func()
        except Exception as exc:
            self.last_error = exc
            logger.exception("Scheduled job %s failed", self.name, extra={"task": self.name})
        finally:
            self.running = False
        return True


class LedgerScheduler:
    """Owns the AsyncIOScheduler and the three ledger maintenance jobs."""

    def __init__(
        self,
        engine: Engine,
        config: StarLedgerConfig,
        notifier: Notifier | None = None,
    ) -> None:
        self.engine = engine
        self.config = config
        self.notifier = notifier
        self.scheduler = AsyncIOScheduler(timezone="UTC")

        self.reconcile_job = NonOverlappingJob("share_reconciliation", self._reconcile)
        self.rank_job = NonOverlappingJob("rank_refresh", self._refresh_ranks)
        self.free_votes_job = NonOverlappingJob("monthly_free_votes", self._free_votes)

    # -------------------------------------------------------------------
    # Job bodies
    # -------------------------------------------------------------------
    async def _reconcile(self) -> list:
        awards = await run_db(
            run_reconciliation,
            self.engine,
            self.notifier,
            rate=self.config.shares_per_star,
        )
        if awards:
            logger.info(
                "Reconciliation job awarded %d member(s)", len(awards),
                extra={"task": "share_reconciliation"},
            )
        return awards

    async def _refresh_ranks(self) -> dict:
        result = await run_db(refresh_rank_cache, self.engine)
        if result["updated"]:
            logger.info(
                "Rank refresh updated %d/%d members",
                result["updated"], result["checked"],
                extra={"task": "rank_refresh"},
            )
        return result

    async def _free_votes(self) -> dict:
        result = await run_db(allocate_monthly_free_votes, self.engine)
        logger.info(
            "Free votes allocated for %s: %d",
            result["month_key"], result["allocated"],
            extra={"task": "monthly_free_votes"},
        )
        return result

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def start(self) -> None:
        if self.scheduler.running:
            return
        job_defaults = {"max_instances": 1, "coalesce": True}
        self.scheduler.add_job(
            self.reconcile_job.run, "interval",
            seconds=self.config.reconcile_interval_seconds,
            id="share_reconciliation", **job_defaults,
        )
        self.scheduler.add_job(
            self.rank_job.run, "interval",
            seconds=self.config.rank_refresh_interval_seconds,
            id="rank_refresh", **job_defaults,
        )
        self.scheduler.add_job(
            self.free_votes_job.run, "cron",
            day=1, hour=0, minute=5, timezone="UTC",
            id="monthly_free_votes", **job_defaults,
        )
        self.scheduler.start()
        logger.info(
            "Scheduler started (reconcile every %ds, rank refresh every %ds)",
            self.config.reconcile_interval_seconds,
            self.config.rank_refresh_interval_seconds,
        )

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler shut down.")
