"""
Generation job routes.

Endpoints:
- Create a job for a business and page type
- Preview the pages a job would create
- List jobs / job detail with live page counts
- List a job's pages
- Operator actions: cancel, release stale pages, retry a failed page
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from pagegen.pipeline.errors import (
    PipelineError,
    InvalidPageTypeError,
    BusinessNotFoundError,
    JobNotFoundError,
    PageNotFoundError,
    JobCreationError,
    InvalidPageActionError,
)
from pagegen.pipeline.models import CreateJobRequest, PageStatus
from pagegen.pipeline.orchestrator import JobOrchestrator
from pagegen.utils.logging import api_logger as logger

router = APIRouter(prefix="/api", tags=["jobs"])


def get_orchestrator() -> JobOrchestrator:
    return JobOrchestrator()


def _to_http(e: PipelineError) -> HTTPException:
    if isinstance(e, InvalidPageTypeError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, (BusinessNotFoundError, JobNotFoundError, PageNotFoundError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InvalidPageActionError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, JobCreationError):
        logger.error("Job creation failed", error=str(e))
    return HTTPException(status_code=500, detail=str(e))


# =============================================================================
# Business-scoped
# =============================================================================

@router.post("/businesses/{business_id}/generate", status_code=201)
async def create_generation_job(
    business_id: str,
    request: CreateJobRequest,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    """Create a job and dispatch its pages."""
    try:
        job = await orchestrator.create_job(business_id, request.page_type)
    except PipelineError as e:
        raise _to_http(e)

    return {"job": job}


@router.post("/businesses/{business_id}/generate/preview")
async def preview_generation_job(
    business_id: str,
    request: CreateJobRequest,
    search: Optional[str] = Query(None, description="Match keyword, url path, city or state"),
    language: Optional[str] = Query(None, description="en or es"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, description="Clamped to 1..200"),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    """Preview the pages a job would create. Writes nothing."""
    try:
        return await orchestrator.preview(
            business_id,
            request.page_type,
            search=search,
            language=language,
            page=page,
            limit=limit,
        )
    except PipelineError as e:
        raise _to_http(e)


@router.get("/businesses/{business_id}/jobs")
async def list_generation_jobs(
    business_id: str,
    limit: int = Query(50, ge=1, le=200),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    jobs = await orchestrator.list_jobs(business_id, limit=limit)
    return {"jobs": jobs, "count": len(jobs)}


@router.get("/businesses/{business_id}/jobs/{job_id}")
async def get_generation_job(
    business_id: str,
    job_id: str,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    """Job with queued/processing/completed/failed page counts."""
    try:
        return {"job": await orchestrator.get_job_detail(job_id, business_id=business_id)}
    except PipelineError as e:
        raise _to_http(e)


# =============================================================================
# Job-scoped
# =============================================================================

@router.get("/jobs/{job_id}/pages")
async def list_job_pages(
    job_id: str,
    status: Optional[PageStatus] = Query(None),
    language: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    try:
        return await orchestrator.list_job_pages(
            job_id,
            status=status.value if status else None,
            language=language,
            search=search,
            page=page,
            limit=limit,
        )
    except PipelineError as e:
        raise _to_http(e)


@router.post("/jobs/{job_id}/cancel")
async def cancel_generation_job(
    job_id: str,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    try:
        return {"job": await orchestrator.cancel_job(job_id)}
    except PipelineError as e:
        raise _to_http(e)


@router.post("/jobs/{job_id}/release-stale")
async def release_stale_pages(
    job_id: str,
    minutes: Optional[int] = Query(None, ge=1, description="Staleness window; defaults to PAGE_STALE_MINUTES"),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    try:
        return await orchestrator.release_stale(job_id, minutes=minutes)
    except PipelineError as e:
        raise _to_http(e)


@router.post("/jobs/{job_id}/pages/{page_id}/retry")
async def retry_failed_page(
    job_id: str,
    page_id: str,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    try:
        return {"page": await orchestrator.retry_failed_page(job_id, page_id)}
    except PipelineError as e:
        raise _to_http(e)
