"""
Job Page Service

Persistence for JobPage rows, including the page claim protocol.

A claim is a single conditional UPDATE guarded on the status and the
`attempts` value the claimant observed. `attempts` only ever grows and
every successful claim bumps it, so it doubles as the row version: two
workers that read the same row cannot both match the guard.
"""

from datetime import datetime, timezone, timedelta
from typing import Optional, Dict, Any, List

from supabase import Client

from pagegen.config import config
from pagegen.pipeline.models import (
    PageStatus,
    PageCompletion,
    ClaimOutcome,
    ClaimResult,
)
from pagegen.utils.logging import get_logger

from .client import get_supabase_admin_client

logger = get_logger("page_store")

PAGES_TABLE = "job_pages"

STATUS_COUNT_KEYS = [s.value for s in PageStatus]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_claim_stale(page: Dict[str, Any], stale_minutes: int, now: Optional[datetime] = None) -> bool:
    """True if a processing page's claim is older than the staleness window."""
    claimed_at = _parse_ts(page.get("claimed_at"))
    if claimed_at is None:
        # processing without a claim time can only come from a bad write
        return True
    now = now or _now()
    return now - claimed_at > timedelta(minutes=stale_minutes)


class JobPageService:
    """
    Service class for job page rows.

    Usage:
        pages = JobPageService()
        result = await pages.claim_page(page_id, worker_id)
        if result.claimed:
            ...
    """

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_admin_client()
        return self._client

    # =========================================================================
    # Creation
    # =========================================================================

    async def insert_pages(self, pages: List[Dict[str, Any]]) -> int:
        """
        Insert page rows in chunks.

        Raises whatever the client raises on the first failing chunk; the
        caller is responsible for rolling back.

        Returns:
            Number of rows written.
        """
        written = 0
        chunk_size = config.PAGE_INSERT_CHUNK_SIZE
        for start in range(0, len(pages), chunk_size):
            chunk = pages[start:start + chunk_size]
            result = self.client.table(PAGES_TABLE).insert(chunk).execute()
            written += len(result.data or chunk)
        return written

    async def delete_job_pages(self, job_id: str) -> None:
        """Remove every page of a job. Only used to roll back a failed creation."""
        self.client.table(PAGES_TABLE).delete().eq("job_id", job_id).execute()

    # =========================================================================
    # Retrieval
    # =========================================================================

    async def get_page(self, page_id: str) -> Optional[Dict[str, Any]]:
        result = (
            self.client.table(PAGES_TABLE)
            .select("*")
            .eq("id", page_id)
            .execute()
        )
        return result.data[0] if result.data else None

    async def get_job_pages(
        self,
        job_id: str,
        status: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """All pages of a job in creation order, optionally filtered by status."""
        query = (
            self.client.table(PAGES_TABLE)
            .select("*")
            .eq("job_id", job_id)
            .order("created_at")
        )
        if status:
            query = query.eq("status", status)
        return query.execute().data

    async def get_status_counts(self, job_id: str) -> Dict[str, int]:
        """Fresh aggregation of page statuses for a job."""
        result = (
            self.client.table(PAGES_TABLE)
            .select("status")
            .eq("job_id", job_id)
            .execute()
        )

        counts = {key: 0 for key in STATUS_COUNT_KEYS}
        for row in result.data:
            status = row.get("status")
            if status in counts:
                counts[status] += 1
        return counts

    async def get_stale_processing_pages(
        self,
        stale_minutes: int,
        job_id: Optional[str] = None,
        limit: int = 500,
    ) -> List[Dict[str, Any]]:
        """Processing pages whose claim is older than the staleness window."""
        cutoff = (_now() - timedelta(minutes=stale_minutes)).isoformat()
        query = (
            self.client.table(PAGES_TABLE)
            .select("*")
            .eq("status", PageStatus.PROCESSING.value)
            .lt("claimed_at", cutoff)
            .order("claimed_at")
            .limit(limit)
        )
        if job_id:
            query = query.eq("job_id", job_id)
        return query.execute().data

    async def get_undelivered_pages(
        self,
        older_than_minutes: int,
        limit: int = 500,
    ) -> List[Dict[str, Any]]:
        """
        Queued pages whose last dispatch is older than the window.

        Covers first dispatch and every re-queue alike, so `attempts` is
        not part of the filter.
        """
        cutoff = (_now() - timedelta(minutes=older_than_minutes)).isoformat()
        result = (
            self.client.table(PAGES_TABLE)
            .select("*")
            .eq("status", PageStatus.QUEUED.value)
            .lt("dispatched_at", cutoff)
            .order("dispatched_at")
            .limit(limit)
            .execute()
        )
        return result.data

    async def mark_dispatched(self, page_ids: List[str]) -> None:
        """Refresh `dispatched_at` on pages that are still queued."""
        if not page_ids:
            return
        (
            self.client.table(PAGES_TABLE)
            .update({"dispatched_at": _now().isoformat()})
            .in_("id", page_ids)
            .eq("status", PageStatus.QUEUED.value)
            .execute()
        )

    # =========================================================================
    # Claim protocol
    # =========================================================================

    async def claim_page(
        self,
        page_id: str,
        worker_id: str,
        stale_minutes: Optional[int] = None,
    ) -> ClaimResult:
        """
        Try to take exclusive ownership of a page.

        Succeeds when the page is queued, or processing under a claim older
        than the staleness window (the previous worker is presumed dead).
        """
        if stale_minutes is None:
            stale_minutes = config.PAGE_STALE_MINUTES

        page = await self.get_page(page_id)
        if page is None:
            return ClaimResult(ClaimOutcome.NOT_FOUND)

        status = page.get("status")
        if status == PageStatus.QUEUED.value:
            pass
        elif status == PageStatus.PROCESSING.value and is_claim_stale(page, stale_minutes):
            logger.warning(
                "Reclaiming stale page",
                page_id=page_id,
                previous_worker=page.get("worker_id"),
                claimed_at=page.get("claimed_at")
            )
        else:
            return ClaimResult(ClaimOutcome.ALREADY_CLAIMED, page)

        attempts = page.get("attempts") or 0
        result = (
            self.client.table(PAGES_TABLE)
            .update({
                "status": PageStatus.PROCESSING.value,
                "worker_id": worker_id,
                "claimed_at": _now().isoformat(),
                "attempts": attempts + 1,
            })
            .eq("id", page_id)
            .eq("status", status)
            .eq("attempts", attempts)
            .execute()
        )

        if not result.data:
            return ClaimResult(ClaimOutcome.ALREADY_CLAIMED, page)

        return ClaimResult(ClaimOutcome.CLAIMED, result.data[0])

    # =========================================================================
    # Terminal writes
    # =========================================================================

    async def complete_page(
        self,
        page_id: str,
        worker_id: str,
        attempts: int,
        completion: PageCompletion,
    ) -> Optional[Dict[str, Any]]:
        """
        Write the terminal state for a page this worker holds.

        Guarded on status=processing, worker_id and the attempts value of
        our claim, so a worker whose claim was superseded by a reclaim
        cannot overwrite the newer claimant's result.

        Returns the updated row, or None if the guard did not match.
        """
        update_data: Dict[str, Any] = {
            "status": completion.status,
            "completed_at": _now().isoformat(),
        }

        if completion.status == PageStatus.COMPLETED.value:
            update_data.update({
                "content": completion.content,
                "error_message": None,
                "section_count": completion.section_count,
                "model_name": completion.model_name,
                "prompt_version": completion.prompt_version,
                "generation_duration_ms": completion.generation_duration_ms,
                "word_count": completion.word_count,
            })
        else:
            update_data["error_message"] = completion.error_message or "Unknown error"
            if completion.model_name:
                update_data["model_name"] = completion.model_name
            if completion.prompt_version:
                update_data["prompt_version"] = completion.prompt_version
            if completion.generation_duration_ms is not None:
                update_data["generation_duration_ms"] = completion.generation_duration_ms

        result = (
            self.client.table(PAGES_TABLE)
            .update(update_data)
            .eq("id", page_id)
            .eq("status", PageStatus.PROCESSING.value)
            .eq("worker_id", worker_id)
            .eq("attempts", attempts)
            .execute()
        )
        return result.data[0] if result.data else None

    # =========================================================================
    # Operator / sweeper actions
    # =========================================================================

    async def requeue_failed_page(self, page_id: str) -> Optional[Dict[str, Any]]:
        """
        Reset a failed page to queued for a fresh attempt.

        Result fields are cleared; attempts is kept as history.
        """
        result = (
            self.client.table(PAGES_TABLE)
            .update({
                "status": PageStatus.QUEUED.value,
                "worker_id": None,
                "claimed_at": None,
                "dispatched_at": _now().isoformat(),
                "completed_at": None,
                "content": None,
                "error_message": None,
                "section_count": None,
                "model_name": None,
                "prompt_version": None,
                "generation_duration_ms": None,
                "word_count": None,
            })
            .eq("id", page_id)
            .eq("status", PageStatus.FAILED.value)
            .execute()
        )
        return result.data[0] if result.data else None

    async def release_stale_page(self, page: Dict[str, Any]) -> bool:
        """
        Put one stale processing page back to queued.

        Guarded on the attempts value we read, so a page reclaimed in the
        meantime is left alone.
        """
        result = (
            self.client.table(PAGES_TABLE)
            .update({
                "status": PageStatus.QUEUED.value,
                "worker_id": None,
                "claimed_at": None,
                "dispatched_at": _now().isoformat(),
            })
            .eq("id", page["id"])
            .eq("status", PageStatus.PROCESSING.value)
            .eq("attempts", page.get("attempts") or 0)
            .execute()
        )
        return bool(result.data)
