"""
Page worker: executes one dispatch message end to end.

    received → claim → processing → generate → completed | failed → report

Duplicate and stale deliveries are dropped at the claim. After a
successful claim every path ends in exactly one guarded terminal write,
one counter increment and one finalization check. Nothing raised inside
the pipeline escapes `handle_message`; the queue never sees a page
failure as a job failure.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, Any

from pydantic import ValidationError

from pagegen.database.businesses import BusinessDataService
from pagegen.database.jobs import GenerationJobService
from pagegen.database.pages import JobPageService
from pagegen.database.workers import WorkerService
from pagegen.generation.prompts import render_template, build_variables, unresolved_variables
from pagegen.utils.logging import worker_logger as logger

from .finalizer import JobFinalizer
from .models import (
    JobStatus,
    PageStatus,
    WorkerStatus,
    PageCompletion,
    PageDispatchMessage,
)

ERROR_JOB_CANCELLED = "job cancelled"
ERROR_NO_TEMPLATE = "no active prompt template"
ERROR_JOB_MISSING = "job not found"


class PageOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"          # not claimed: duplicate, terminal, held or missing
    SUPERSEDED = "superseded"    # claim was taken over before our terminal write
    ERROR = "error"              # store error outside the page's own result


@dataclass
class PageWorkResult:
    page_id: str
    outcome: PageOutcome
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "page_id": self.page_id,
            "outcome": self.outcome.value,
            "error": self.error,
        }


def _error_text(error: Exception) -> str:
    return str(error) or type(error).__name__


class PageWorker:
    """
    Processes page messages for one worker identity.

    Usage:
        worker = PageWorker(worker_id="worker-1")
        result = await worker.handle_message({"job_id": ..., "page_id": ..., "business_id": ...})
    """

    def __init__(
        self,
        worker_id: str,
        jobs: Optional[GenerationJobService] = None,
        pages: Optional[JobPageService] = None,
        businesses: Optional[BusinessDataService] = None,
        workers: Optional[WorkerService] = None,
        backend=None,
        finalizer: Optional[JobFinalizer] = None,
        stale_minutes: Optional[int] = None,
    ):
        self.worker_id = worker_id
        self.jobs = jobs or GenerationJobService()
        self.pages = pages or JobPageService()
        self.businesses = businesses or BusinessDataService()
        self.workers = workers or WorkerService()
        self._backend = backend
        self.finalizer = finalizer or JobFinalizer(jobs=self.jobs)
        self.stale_minutes = stale_minutes

        self.pages_completed = 0
        self.pages_failed = 0

    @property
    def backend(self):
        if self._backend is None:
            from pagegen.generation.backend import GenerationBackend
            self._backend = GenerationBackend()
        return self._backend

    # =========================================================================
    # Entry point
    # =========================================================================

    async def handle_message(self, message: Dict[str, Any]) -> PageWorkResult:
        try:
            msg = PageDispatchMessage.model_validate(message)
        except ValidationError as e:
            logger.error("Invalid page message", payload=repr(message), error=str(e))
            page_id = message.get("page_id", "") if isinstance(message, dict) else ""
            return PageWorkResult(str(page_id), PageOutcome.SKIPPED, "invalid message")

        try:
            claim = await self.pages.claim_page(msg.page_id, self.worker_id, self.stale_minutes)
        except Exception as e:
            # Nothing is held; the sweeper re-dispatches the page
            logger.error("Page claim failed", page_id=msg.page_id, error=_error_text(e))
            return PageWorkResult(msg.page_id, PageOutcome.ERROR, _error_text(e))

        if not claim.claimed:
            logger.info(
                "Page not claimed",
                page_id=msg.page_id,
                outcome=claim.outcome.value,
                status=claim.page.get("status") if claim.page else None
            )
            return PageWorkResult(msg.page_id, PageOutcome.SKIPPED, claim.outcome.value)

        page = claim.page
        logger.info(
            "Page claimed",
            page_id=page["id"],
            job_id=page["job_id"],
            attempts=page["attempts"],
            worker_id=self.worker_id
        )
        await self._heartbeat(WorkerStatus.ACTIVE, page["id"])

        try:
            completion = await self._execute(page)
        except Exception as e:
            logger.error("Unexpected error processing page", page_id=page["id"], error=_error_text(e))
            completion = PageCompletion(status=PageStatus.FAILED.value, error_message=_error_text(e))

        result = await self._report(page, completion)
        await self._heartbeat(WorkerStatus.IDLE, None)
        return result

    # =========================================================================
    # Processing
    # =========================================================================

    async def _execute(self, page: Dict[str, Any]) -> PageCompletion:
        """Produce the terminal write for a claimed page."""
        job_id = page["job_id"]
        await self.jobs.mark_started(job_id)

        job = await self.jobs.get_job(job_id)
        if job is None:
            return PageCompletion(status=PageStatus.FAILED.value, error_message=ERROR_JOB_MISSING)
        if job.get("status") == JobStatus.CANCELLED.value:
            return PageCompletion(status=PageStatus.FAILED.value, error_message=ERROR_JOB_CANCELLED)

        business_id = page["business_id"]
        business = await self.businesses.get_business(business_id) or {}
        questionnaire = await self.businesses.get_questionnaire(business_id)
        template = await self.businesses.get_active_prompt_template(business_id, page["page_type"])
        if not template:
            return PageCompletion(status=PageStatus.FAILED.value, error_message=ERROR_NO_TEMPLATE)

        prompt = render_template(template.get("template") or "", build_variables(page, business, questionnaire))
        missing = unresolved_variables(prompt)
        if missing:
            logger.warning("Unresolved template variables", page_id=page["id"], variables=missing)

        prompt_version = f"v{template.get('version', 1)}"

        try:
            result = await self.backend.generate(prompt)
        except Exception as e:
            logger.warning("Generation failed", page_id=page["id"], error=_error_text(e))
            return PageCompletion(
                status=PageStatus.FAILED.value,
                error_message=_error_text(e),
                prompt_version=prompt_version,
            )

        return PageCompletion(
            status=PageStatus.COMPLETED.value,
            content=result.content,
            section_count=result.section_count,
            model_name=result.model_name,
            prompt_version=prompt_version,
            generation_duration_ms=result.duration_ms,
            word_count=result.word_count,
        )

    async def _report(self, page: Dict[str, Any], completion: PageCompletion) -> PageWorkResult:
        """Guarded terminal write, counter increment and finalization check."""
        page_id = page["id"]
        try:
            written = await self.pages.complete_page(page_id, self.worker_id, page["attempts"], completion)
            if written is None:
                logger.warning(
                    "Claim superseded, result discarded",
                    page_id=page_id,
                    attempts=page["attempts"],
                    worker_id=self.worker_id
                )
                return PageWorkResult(page_id, PageOutcome.SUPERSEDED)

            field = "completed_pages" if completion.status == PageStatus.COMPLETED.value else "failed_pages"
            job = await self.jobs.increment_counter(page["job_id"], field)
            await self.finalizer.check(job)
        except Exception as e:
            logger.error(
                "Failed to record page result",
                page_id=page_id,
                job_id=page["job_id"],
                error=_error_text(e)
            )
            return PageWorkResult(page_id, PageOutcome.ERROR, _error_text(e))

        if completion.status == PageStatus.COMPLETED.value:
            self.pages_completed += 1
            logger.info("Page completed", page_id=page_id, word_count=completion.word_count)
            return PageWorkResult(page_id, PageOutcome.COMPLETED)

        self.pages_failed += 1
        logger.info("Page failed", page_id=page_id, error=completion.error_message)
        return PageWorkResult(page_id, PageOutcome.FAILED, completion.error_message)

    async def _heartbeat(self, status: WorkerStatus, current_page_id: Optional[str]):
        try:
            await self.workers.heartbeat(
                self.worker_id,
                status,
                current_page_id,
                self.pages_completed,
                self.pages_failed,
            )
        except Exception as e:
            logger.warning("Heartbeat failed", worker_id=self.worker_id, error=_error_text(e))
