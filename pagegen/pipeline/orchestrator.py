"""
Job orchestrator: creates jobs, fans them out into pages and dispatches
them, plus the read models and operator actions around a job.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from pagegen.config import config
from pagegen.database.businesses import BusinessDataService
from pagegen.database.jobs import GenerationJobService
from pagegen.database.pages import JobPageService, is_claim_stale
from pagegen.queue.tasks import PageDispatcher
from pagegen.utils.logging import job_logger as logger

from .errors import (
    BusinessNotFoundError,
    JobCreationError,
    JobNotFoundError,
    PageNotFoundError,
    InvalidPageActionError,
)
from .fanout import build_page_specs, extract_services, preview_pages, filter_rows, paginate, PageSpec
from .finalizer import JobFinalizer
from .models import (
    PageStatus,
    PageType,
    PageDispatchMessage,
    TERMINAL_JOB_STATUSES,
    normalize_page_type,
)


class JobOrchestrator:
    """
    Entry point for everything a client or operator does to a job.

    Usage:
        orchestrator = JobOrchestrator()
        job = await orchestrator.create_job(business_id, "keyword-service-area")
    """

    def __init__(
        self,
        jobs: Optional[GenerationJobService] = None,
        pages: Optional[JobPageService] = None,
        businesses: Optional[BusinessDataService] = None,
        dispatcher: Optional[PageDispatcher] = None,
        finalizer: Optional[JobFinalizer] = None,
    ):
        self.jobs = jobs or GenerationJobService()
        self.pages = pages or JobPageService()
        self.businesses = businesses or BusinessDataService()
        self.dispatcher = dispatcher or PageDispatcher()
        self.finalizer = finalizer or JobFinalizer(jobs=self.jobs)

    # =========================================================================
    # Fan-out
    # =========================================================================

    async def _page_specs(self, business_id: str, page_type: PageType) -> List[PageSpec]:
        """Read the axes a page type needs and build its product."""
        keywords: List[Dict[str, Any]] = []
        services: List[Dict[str, Any]] = []
        service_areas: List[Dict[str, Any]] = []
        locations: List[Dict[str, Any]] = []

        if page_type.content_axis == "service":
            services = extract_services(await self.businesses.get_questionnaire(business_id))
        else:
            keywords = await self.businesses.get_keywords(business_id)

        if page_type.location_axis == "location":
            locations = await self.businesses.get_page_locations(business_id)
        else:
            service_areas = await self.businesses.get_service_areas(business_id)

        return build_page_specs(page_type, keywords, service_areas, locations, services)

    async def _require_business(self, business_id: str) -> Dict[str, Any]:
        business = await self.businesses.get_business(business_id)
        if business is None:
            raise BusinessNotFoundError(f"Business {business_id} not found")
        return business

    # =========================================================================
    # Create
    # =========================================================================

    async def create_job(self, business_id: str, page_type: str) -> Dict[str, Any]:
        """
        Create a job and dispatch one message per page.

        Raises:
            InvalidPageTypeError: page_type is unknown (nothing written)
            BusinessNotFoundError: business does not exist (nothing written)
            JobCreationError: page rows could not be written (rolled back)
        """
        canonical = normalize_page_type(page_type)
        await self._require_business(business_id)

        specs = await self._page_specs(business_id, canonical)
        job_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()
        rows = [
            spec.to_row(str(uuid.uuid4()), job_id, business_id, canonical, now)
            for spec in specs
        ]

        job = await self.jobs.create_job(job_id, business_id, canonical.value, len(rows))

        try:
            await self.pages.insert_pages(rows)
        except Exception as e:
            logger.error("Page insert failed, rolling back job", job_id=job_id, error=str(e))
            await self._rollback(job_id)
            raise JobCreationError(f"Failed to create pages for job {job_id}: {e}") from e

        logger.info(
            "Job created",
            job_id=job_id,
            business_id=business_id,
            page_type=canonical.value,
            total_pages=len(rows)
        )

        if not rows:
            finalized = await self.finalizer.check(job)
            return finalized or job

        messages = [
            PageDispatchMessage(job_id=job_id, page_id=row["id"], business_id=business_id)
            for row in rows
        ]
        report = self.dispatcher.dispatch(messages)
        if report.failed:
            logger.warning(
                "Some pages were not dispatched",
                job_id=job_id,
                undispatched=len(report.failed),
                page_ids=report.failed[:20]
            )
            await self.jobs.set_undispatched(job_id, len(report.failed))
            job["undispatched_pages"] = len(report.failed)

        return job

    async def _rollback(self, job_id: str):
        try:
            await self.pages.delete_job_pages(job_id)
            await self.jobs.delete_job(job_id)
        except Exception as e:
            logger.critical("Job rollback failed", job_id=job_id, error=str(e))

    # =========================================================================
    # Read models
    # =========================================================================

    async def preview(
        self,
        business_id: str,
        page_type: str,
        search: Optional[str] = None,
        language: Optional[str] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """The pages `create_job` would create, without writing anything."""
        canonical = normalize_page_type(page_type)
        business = await self._require_business(business_id)

        specs = await self._page_specs(business_id, canonical)
        result = preview_pages(specs, search=search, language=language, page=page, limit=limit)
        result["business"] = {"id": business["id"], "name": business.get("name")}
        result["page_type"] = canonical.value
        return result

    async def list_jobs(self, business_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        return await self.jobs.list_jobs(business_id, limit=limit)

    async def get_job_detail(self, job_id: str, business_id: Optional[str] = None) -> Dict[str, Any]:
        """Job row plus per-status page counts from a fresh aggregation."""
        if business_id:
            job = await self.jobs.get_business_job(business_id, job_id)
        else:
            job = await self.jobs.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")

        counts = await self.pages.get_status_counts(job_id)
        return {
            **job,
            "queued_count": counts[PageStatus.QUEUED.value],
            "processing_count": counts[PageStatus.PROCESSING.value],
            "completed_count": counts[PageStatus.COMPLETED.value],
            "failed_count": counts[PageStatus.FAILED.value],
        }

    async def list_job_pages(
        self,
        job_id: str,
        status: Optional[str] = None,
        language: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        if await self.jobs.get_job(job_id) is None:
            raise JobNotFoundError(f"Job {job_id} not found")

        rows = await self.pages.get_job_pages(job_id, status=status)
        result = paginate(filter_rows(rows, language, search), page, limit)
        return {"pages": result["items"], "pagination": result["pagination"]}

    # =========================================================================
    # Operator actions
    # =========================================================================

    async def cancel_job(self, job_id: str) -> Dict[str, Any]:
        """
        Cancel a non-terminal job. Pages already generating finish; pages
        not yet claimed fail with "job cancelled" when a worker picks them up.
        """
        job = await self.jobs.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")

        cancelled = await self.jobs.cancel_job(job_id)
        if cancelled is None:
            raise InvalidPageActionError(f"Job {job_id} is already {job['status']}")

        logger.info("Job cancelled", job_id=job_id)
        return cancelled

    async def retry_failed_page(self, job_id: str, page_id: str) -> Dict[str, Any]:
        """Reset one failed page to queued and dispatch it again."""
        job = await self.jobs.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        if job["status"] in [s.value for s in TERMINAL_JOB_STATUSES]:
            raise InvalidPageActionError(f"Job {job_id} is {job['status']}; pages can no longer be retried")

        page = await self.pages.get_page(page_id)
        if page is None or page.get("job_id") != job_id:
            raise PageNotFoundError(f"Page {page_id} not found in job {job_id}")

        if page.get("status") != PageStatus.FAILED.value:
            raise InvalidPageActionError(f"Page {page_id} is {page.get('status')}, not failed")

        # Uncount first so the job cannot finalize while the page is queued
        await self.jobs.decrement_counter(job_id, "failed_pages")
        requeued = await self.pages.requeue_failed_page(page_id)
        if requeued is None:
            await self.jobs.increment_counter(job_id, "failed_pages")
            raise InvalidPageActionError(f"Page {page_id} is no longer failed")

        self._redispatch([requeued])

        logger.info("Failed page requeued", job_id=job_id, page_id=page_id, attempts=requeued.get("attempts"))
        return requeued

    async def release_stale(self, job_id: str, minutes: Optional[int] = None) -> Dict[str, Any]:
        """Reset a job's stale processing pages to queued and dispatch them again."""
        if await self.jobs.get_job(job_id) is None:
            raise JobNotFoundError(f"Job {job_id} not found")

        if minutes is None:
            minutes = config.PAGE_STALE_MINUTES
        stale = await self.pages.get_stale_processing_pages(minutes, job_id=job_id)

        released = []
        for page in stale:
            if is_claim_stale(page, minutes) and await self.pages.release_stale_page(page):
                released.append(page)

        if released:
            self._redispatch(released)
            logger.info("Released stale pages", job_id=job_id, released=len(released))

        return {"job_id": job_id, "released": len(released), "minutes": minutes}

    def _redispatch(self, pages: List[Dict[str, Any]]) -> List[str]:
        """Send pages back to the queue. Returns ids that failed to send."""
        messages = [
            PageDispatchMessage(job_id=p["job_id"], page_id=p["id"], business_id=p["business_id"])
            for p in pages
        ]
        report = self.dispatcher.dispatch(messages)
        if report.failed:
            logger.warning("Re-dispatch incomplete", undispatched=len(report.failed))
        return report.failed
