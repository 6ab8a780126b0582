"""
Generation Job Service

Persistence for GenerationJob rows. Every mutation that can race with
another worker is a conditional update: the filter encodes the state
the caller observed, and an empty result means somebody else got there
first.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from supabase import Client

from pagegen.config import config
from pagegen.pipeline.models import JobStatus, ACTIVE_JOB_STATUSES
from pagegen.utils.logging import get_logger

from .client import get_supabase_admin_client

logger = get_logger("job_store")

JOBS_TABLE = "generation_jobs"

COUNTER_FIELDS = ("completed_pages", "failed_pages")


class CounterConflictError(Exception):
    """Raised when a counter CAS loop runs out of attempts."""
    pass


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class GenerationJobService:
    """
    Service class for generation job rows.

    Counters are only ever changed through `increment_counter` /
    `decrement_counter`, which retry a compare-and-swap on the counter
    value instead of doing a blind read-modify-write.
    """

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_admin_client()
        return self._client

    # =========================================================================
    # Creation / Deletion
    # =========================================================================

    async def create_job(
        self,
        job_id: str,
        business_id: str,
        page_type: str,
        total_pages: int,
    ) -> Dict[str, Any]:
        """Insert a new job in `pending` state with zeroed counters."""
        now = _now()
        job_data = {
            "id": job_id,
            "business_id": business_id,
            "page_type": page_type,
            "status": JobStatus.PENDING.value,
            "total_pages": total_pages,
            "completed_pages": 0,
            "failed_pages": 0,
            "undispatched_pages": 0,
            "created_at": now,
            "updated_at": now,
            "started_at": None,
            "completed_at": None,
            "webhook_sent_at": None,
        }

        result = self.client.table(JOBS_TABLE).insert(job_data).execute()
        return result.data[0]

    async def delete_job(self, job_id: str) -> None:
        """Remove a job row. Only used to roll back a failed creation."""
        self.client.table(JOBS_TABLE).delete().eq("id", job_id).execute()

    # =========================================================================
    # Retrieval
    # =========================================================================

    async def get_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        result = (
            self.client.table(JOBS_TABLE)
            .select("*")
            .eq("id", job_id)
            .execute()
        )
        return result.data[0] if result.data else None

    async def get_business_job(self, business_id: str, job_id: str) -> Optional[Dict[str, Any]]:
        """Get a job, scoped to the business that owns it."""
        result = (
            self.client.table(JOBS_TABLE)
            .select("*")
            .eq("id", job_id)
            .eq("business_id", business_id)
            .execute()
        )
        return result.data[0] if result.data else None

    async def list_jobs(self, business_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Jobs for a business, newest first."""
        result = (
            self.client.table(JOBS_TABLE)
            .select("*")
            .eq("business_id", business_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return result.data

    async def get_active_jobs(self, limit: int = 200) -> List[Dict[str, Any]]:
        """Pending/processing jobs, oldest first (used by the sweeper)."""
        result = (
            self.client.table(JOBS_TABLE)
            .select("*")
            .in_("status", [s.value for s in ACTIVE_JOB_STATUSES])
            .order("created_at")
            .limit(limit)
            .execute()
        )
        return result.data

    # =========================================================================
    # Status transitions
    # =========================================================================

    async def mark_started(self, job_id: str) -> Optional[Dict[str, Any]]:
        """
        Move a job from pending to processing on its first page claim.

        Returns the updated row, or None if the job was no longer pending.
        """
        now = _now()
        result = (
            self.client.table(JOBS_TABLE)
            .update({
                "status": JobStatus.PROCESSING.value,
                "started_at": now,
                "updated_at": now,
            })
            .eq("id", job_id)
            .eq("status", JobStatus.PENDING.value)
            .execute()
        )
        return result.data[0] if result.data else None

    async def finalize(self, job_id: str, status: JobStatus) -> Optional[Dict[str, Any]]:
        """
        Conditionally move a non-terminal job to its terminal status.

        Exactly one caller gets the row back; everyone else gets None.
        """
        now = _now()
        result = (
            self.client.table(JOBS_TABLE)
            .update({
                "status": status.value,
                "completed_at": now,
                "updated_at": now,
            })
            .eq("id", job_id)
            .in_("status", [s.value for s in ACTIVE_JOB_STATUSES])
            .execute()
        )
        return result.data[0] if result.data else None

    async def cancel_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        """
        Cancel a pending or processing job.

        In-flight pages are not aborted; workers see the cancelled status
        before calling the backend. Returns None if the job was terminal.
        """
        now = _now()
        result = (
            self.client.table(JOBS_TABLE)
            .update({
                "status": JobStatus.CANCELLED.value,
                "completed_at": now,
                "updated_at": now,
            })
            .eq("id", job_id)
            .in_("status", [s.value for s in ACTIVE_JOB_STATUSES])
            .execute()
        )
        return result.data[0] if result.data else None

    async def claim_webhook(self, job_id: str) -> bool:
        """Mark the completion webhook as sent. True for the single winner."""
        result = (
            self.client.table(JOBS_TABLE)
            .update({"webhook_sent_at": _now()})
            .eq("id", job_id)
            .is_("webhook_sent_at", "null")
            .execute()
        )
        return bool(result.data)

    async def set_undispatched(self, job_id: str, count: int) -> None:
        (
            self.client.table(JOBS_TABLE)
            .update({"undispatched_pages": count, "updated_at": _now()})
            .eq("id", job_id)
            .execute()
        )

    # =========================================================================
    # Counters
    # =========================================================================

    async def increment_counter(self, job_id: str, field: str) -> Optional[Dict[str, Any]]:
        """
        Atomically add one to `completed_pages` or `failed_pages`.

        Returns the row as written by our own update, so the caller sees
        a consistent snapshot of both counters for the finalization check.
        Returns None if the job does not exist. Refuses to push the sum
        past total_pages and returns the current row instead.
        """
        return await self._adjust_counter(job_id, field, +1)

    async def decrement_counter(self, job_id: str, field: str) -> Optional[Dict[str, Any]]:
        """Atomically subtract one (used when a failed page is re-queued)."""
        return await self._adjust_counter(job_id, field, -1)

    async def set_counters(
        self,
        job: Dict[str, Any],
        completed_pages: int,
        failed_pages: int,
    ) -> Optional[Dict[str, Any]]:
        """
        Overwrite both counters from a fresh page count.

        Guarded on the counter values in `job` and on the job still being
        active; returns None if either changed since it was read.
        """
        result = (
            self.client.table(JOBS_TABLE)
            .update({
                "completed_pages": completed_pages,
                "failed_pages": failed_pages,
                "updated_at": _now(),
            })
            .eq("id", job["id"])
            .eq("completed_pages", job.get("completed_pages") or 0)
            .eq("failed_pages", job.get("failed_pages") or 0)
            .in_("status", [s.value for s in ACTIVE_JOB_STATUSES])
            .execute()
        )
        return result.data[0] if result.data else None

    async def _adjust_counter(self, job_id: str, field: str, delta: int) -> Optional[Dict[str, Any]]:
        if field not in COUNTER_FIELDS:
            raise ValueError(f"Unknown counter field: {field}")

        for _ in range(config.COUNTER_MAX_RETRIES):
            job = await self.get_job(job_id)
            if job is None:
                return None

            current = job.get(field) or 0
            accounted = (job.get("completed_pages") or 0) + (job.get("failed_pages") or 0)

            if delta > 0 and accounted >= (job.get("total_pages") or 0):
                logger.warning(
                    "Counter already at total, increment skipped",
                    job_id=job_id,
                    field=field
                )
                return job
            if delta < 0 and current <= 0:
                return job

            result = (
                self.client.table(JOBS_TABLE)
                .update({field: current + delta, "updated_at": _now()})
                .eq("id", job_id)
                .eq(field, current)
                .execute()
            )
            if result.data:
                return result.data[0]

        raise CounterConflictError(
            f"Could not update {field} on job {job_id} after "
            f"{config.COUNTER_MAX_RETRIES} attempts"
        )
