"""
Generation job pipeline.

Only the shared types are exported here; import the orchestrator, worker,
finalizer and sweeper from their modules.
"""

from .errors import (
    PipelineError,
    InvalidPageTypeError,
    BusinessNotFoundError,
    JobNotFoundError,
    PageNotFoundError,
    JobCreationError,
    InvalidPageActionError,
)
from .models import (
    JobStatus,
    PageStatus,
    PageType,
    PageDispatchMessage,
    PageCompletion,
    normalize_page_type,
)

__all__ = [
    "PipelineError",
    "InvalidPageTypeError",
    "BusinessNotFoundError",
    "JobNotFoundError",
    "PageNotFoundError",
    "JobCreationError",
    "InvalidPageActionError",
    "JobStatus",
    "PageStatus",
    "PageType",
    "PageDispatchMessage",
    "PageCompletion",
    "normalize_page_type",
]
