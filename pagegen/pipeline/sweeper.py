"""
Stale page sweeper.

Periodic recovery for work the happy path can lose:
- processing pages whose worker died (claim older than the stale window)
- queued pages not claimed since their last dispatch (enqueue failed
  or the message was lost)
- active jobs whose pages are all terminal but were never finalized,
  recounting their counters first if a worker died before counting
- workers that stopped sending heartbeats

Re-dispatching a page that is still in the queue is harmless; the
duplicate is dropped at the claim.
"""

from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any, List

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from pagegen.config import config
from pagegen.database.jobs import GenerationJobService
from pagegen.database.pages import JobPageService
from pagegen.database.workers import WorkerService
from pagegen.queue.tasks import PageDispatcher
from pagegen.utils.logging import sweeper_logger as logger

from .finalizer import JobFinalizer, is_fully_accounted
from .models import PageDispatchMessage, PageStatus


@dataclass
class SweepReport:
    released: int = 0
    redispatched: int = 0
    undispatched: int = 0
    finalized: int = 0
    workers_offline: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class StaleSweeper:
    """One sweep pass over the store. Scheduling lives in `SweepScheduler`."""

    def __init__(
        self,
        jobs: Optional[GenerationJobService] = None,
        pages: Optional[JobPageService] = None,
        workers: Optional[WorkerService] = None,
        dispatcher: Optional[PageDispatcher] = None,
        finalizer: Optional[JobFinalizer] = None,
        stale_minutes: Optional[int] = None,
        queued_stale_minutes: Optional[int] = None,
    ):
        self.jobs = jobs or GenerationJobService()
        self.pages = pages or JobPageService()
        self.workers = workers or WorkerService()
        self.dispatcher = dispatcher or PageDispatcher()
        self.finalizer = finalizer or JobFinalizer(jobs=self.jobs)
        self.stale_minutes = config.PAGE_STALE_MINUTES if stale_minutes is None else stale_minutes
        self.queued_stale_minutes = (
            config.QUEUED_STALE_MINUTES if queued_stale_minutes is None else queued_stale_minutes
        )

    async def sweep(self) -> SweepReport:
        report = SweepReport()

        stale = await self.pages.get_stale_processing_pages(self.stale_minutes)
        released = []
        for page in stale:
            if await self.pages.release_stale_page(page):
                released.append(page)
        report.released = len(released)

        undelivered = await self.pages.get_undelivered_pages(self.queued_stale_minutes)

        to_send = released + undelivered
        if to_send:
            dispatch = self.dispatcher.dispatch([
                PageDispatchMessage(job_id=p["job_id"], page_id=p["id"], business_id=p["business_id"])
                for p in to_send
            ])
            await self.pages.mark_dispatched(dispatch.sent)
            report.redispatched = len(dispatch.sent)
            report.undispatched = len(dispatch.failed)

        for job in await self.jobs.get_active_jobs():
            if not is_fully_accounted(job):
                job = await self._reconcile(job)
            if job is not None and is_fully_accounted(job) and await self.finalizer.check(job):
                report.finalized += 1

        for worker in await self.workers.get_silent_workers(self.stale_minutes):
            await self.workers.mark_offline(worker["id"])
            report.workers_offline += 1

        if any(report.to_dict().values()):
            logger.info("Sweep complete", **report.to_dict())
        return report

    async def _reconcile(self, job: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Recount a job whose pages are all terminal but whose counters are short.

        Happens when a worker died between its terminal page write and its
        counter increment. Returns the corrected row, or None if nothing
        was written.
        """
        counts = await self.pages.get_status_counts(job["id"])
        if counts[PageStatus.QUEUED.value] or counts[PageStatus.PROCESSING.value]:
            return None

        completed = counts[PageStatus.COMPLETED.value]
        failed = counts[PageStatus.FAILED.value]
        if (completed, failed) == (job.get("completed_pages") or 0, job.get("failed_pages") or 0):
            return None

        updated = await self.jobs.set_counters(job, completed, failed)
        if updated is not None:
            logger.warning(
                "Job counters reconciled",
                job_id=job["id"],
                completed_pages=completed,
                failed_pages=failed,
                previous_completed=job.get("completed_pages") or 0,
                previous_failed=job.get("failed_pages") or 0
            )
        return updated


class SweepScheduler:
    """Runs `StaleSweeper.sweep` on an interval with APScheduler."""

    def __init__(
        self,
        sweeper: Optional[StaleSweeper] = None,
        interval_seconds: Optional[int] = None,
    ):
        self.sweeper = sweeper or StaleSweeper()
        self.interval = interval_seconds or config.SWEEP_INTERVAL_SECONDS

        self.scheduler = AsyncIOScheduler()
        self._is_sweeping = False
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        self.scheduler.add_job(
            self._run_sweep,
            trigger=IntervalTrigger(seconds=self.interval),
            id="stale_page_sweep",
            name="Recover stale and undispatched pages",
            replace_existing=True,
            max_instances=1
        )
        self.scheduler.start()
        self._running = True
        logger.info(
            "Sweeper started",
            interval_seconds=self.interval,
            stale_minutes=self.sweeper.stale_minutes,
            queued_stale_minutes=self.sweeper.queued_stale_minutes
        )

    async def stop(self):
        self._running = False
        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)
        logger.info("Sweeper stopped")

    async def _run_sweep(self) -> Optional[SweepReport]:
        if self._is_sweeping:
            return None

        self._is_sweeping = True
        try:
            return await self.sweeper.sweep()
        except Exception as e:
            logger.error(f"Sweep error: {e}", error=str(e))
            return None
        finally:
            self._is_sweeping = False
