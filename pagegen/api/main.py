"""
FastAPI application for the page generation pipeline.

Serves job creation, job status and operator actions. Page work itself
runs in RQ workers (`pagegen.queue.run_worker`).
"""

from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse

from pagegen.config import config
from pagegen.database.client import verify_supabase_connection
from pagegen.queue.connection import redis_health_check, close_redis_connection
from pagegen.routes.jobs import router as jobs_router
from pagegen.utils.logging import get_log_buffer, LogLevel, api_logger as logger

app = FastAPI(
    title="Page Generation API",
    description="Fan-out, dispatch and tracking of localized page generation jobs",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.include_router(jobs_router)


# ===== Health =====

@app.get("/health")
async def health_check():
    """Liveness probe. Always 200."""
    return {
        "status": "healthy",
        "environment": config.ENVIRONMENT,
        "supabase_configured": config.supabase_configured,
        "queue_configured": config.queue_configured,
        "can_generate": config.can_generate,
    }


@app.get("/api/health/store")
async def store_health():
    """Whether the job tables are reachable."""
    if not config.supabase_configured:
        raise HTTPException(status_code=503, detail="Supabase not configured")
    return {"reachable": verify_supabase_connection()}


@app.get("/api/health/queue")
async def queue_health():
    """Redis reachability and page queue depth."""
    if not config.queue_configured:
        raise HTTPException(status_code=503, detail="Redis not configured")
    return redis_health_check()


# ===== Logs =====

@app.get("/api/logs")
async def get_logs(
    limit: int = Query(100, ge=1, le=500),
    level: Optional[str] = Query(None, description="Filter by level (debug, info, warning, error, critical)"),
    source: Optional[str] = Query(None, description="Filter by source"),
    job_id: Optional[str] = Query(None, description="Only entries logged for this job")
):
    """Recent log entries from the in-memory buffer."""
    log_buffer = get_log_buffer()

    level_filter = None
    if level:
        try:
            level_filter = LogLevel(level.lower())
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid log level: {level}")

    return {
        "logs": log_buffer.get_recent(limit=limit, level=level_filter, source=source, job_id=job_id),
        "stats": log_buffer.get_stats()
    }


@app.get("/api/logs/errors")
async def get_error_logs(limit: int = Query(50, ge=1, le=200)):
    """Recent error and critical log entries."""
    return {"errors": get_log_buffer().get_errors(limit=limit)}


# ===== Error Handlers =====

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error("Unhandled API error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if config.DEBUG else "An error occurred",
            "type": type(exc).__name__
        }
    )


# ===== Startup =====

@app.on_event("startup")
async def startup_event():
    logger.info(
        "API started",
        environment=config.ENVIRONMENT,
        model=config.MODEL_NAME,
        supabase=config.supabase_configured,
        queue=config.queue_configured
    )


@app.on_event("shutdown")
async def shutdown_event():
    close_redis_connection()
