"""
Job finalizer.

Runs after every counter change. When every page of a job is accounted
for, it moves the job to its terminal status with a conditional update;
only the caller whose update matched goes on to send the webhook.
"""

from typing import Optional, Dict, Any

from pagegen.database.jobs import GenerationJobService
from pagegen.notify.webhooks import WebhookNotifier
from pagegen.utils.logging import job_logger as logger

from .models import JobStatus, WebhookEvent, ACTIVE_JOB_STATUSES


def is_fully_accounted(job: Dict[str, Any]) -> bool:
    completed = job.get("completed_pages") or 0
    failed = job.get("failed_pages") or 0
    return completed + failed == (job.get("total_pages") or 0)


def terminal_status_for(job: Dict[str, Any]) -> JobStatus:
    """failed only if every page failed; any success makes the job completed."""
    total = job.get("total_pages") or 0
    if total > 0 and (job.get("failed_pages") or 0) == total:
        return JobStatus.FAILED
    return JobStatus.COMPLETED


class JobFinalizer:
    """
    Usage:
        finalizer = JobFinalizer()
        await finalizer.check(job_row_after_increment)
    """

    def __init__(
        self,
        jobs: Optional[GenerationJobService] = None,
        notifier: Optional[WebhookNotifier] = None,
    ):
        self.jobs = jobs or GenerationJobService()
        self.notifier = notifier or WebhookNotifier()

    async def check(self, job: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """
        Finalize `job` if its counters say it is done.

        `job` must be the snapshot returned by the counter update. Returns
        the finalized row for the single winner, None for everyone else.
        """
        if not job or job.get("status") not in [s.value for s in ACTIVE_JOB_STATUSES]:
            return None
        if not is_fully_accounted(job):
            return None

        status = terminal_status_for(job)
        finalized = await self.jobs.finalize(job["id"], status)
        if finalized is None:
            logger.debug("Job already finalized elsewhere", job_id=job["id"])
            return None

        logger.info(
            "Job finalized",
            job_id=job["id"],
            status=status.value,
            completed_pages=finalized.get("completed_pages"),
            failed_pages=finalized.get("failed_pages"),
            total_pages=finalized.get("total_pages")
        )

        if await self.jobs.claim_webhook(job["id"]):
            try:
                await self.notifier.notify(finalized, WebhookEvent.for_status(status))
            except Exception as e:
                logger.error("Webhook dispatch failed", job_id=job["id"], error=str(e))

        return finalized
