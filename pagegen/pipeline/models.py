"""
Shared types for the generation job pipeline.

Statuses and page types are string enums so they can be written to the
store as-is. Messages crossing a process boundary are pydantic models.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, Any, Literal

from pydantic import BaseModel, Field

from .errors import InvalidPageTypeError


class JobStatus(str, Enum):
    """Status values for generation jobs"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_JOB_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)
ACTIVE_JOB_STATUSES = (JobStatus.PENDING, JobStatus.PROCESSING)


class PageStatus(str, Enum):
    """Status values for individual job pages"""
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class WorkerStatus(str, Enum):
    ACTIVE = "active"
    IDLE = "idle"
    OFFLINE = "offline"


class PageType(str, Enum):
    """Content axis × location axis combinations"""
    KEYWORD_SERVICE_AREA = "keyword-service-area"
    KEYWORD_LOCATION = "keyword-location"
    SERVICE_SERVICE_AREA = "service-service-area"
    SERVICE_LOCATION = "service-location"
    BLOG_SERVICE_AREA = "blog-service-area"
    BLOG_LOCATION = "blog-location"

    @property
    def content_axis(self) -> str:
        """'keyword', 'service' or 'blog'."""
        return self.value.split("-", 1)[0]

    @property
    def location_axis(self) -> str:
        """'service-area' or 'location'."""
        return self.value.split("-", 1)[1]

    @property
    def is_blog(self) -> bool:
        return self.content_axis == "blog"


# Legacy page_type strings still sent by older clients
PAGE_TYPE_ALIASES: Dict[str, PageType] = {
    "service-area": PageType.KEYWORD_SERVICE_AREA,
    "location-keyword": PageType.KEYWORD_LOCATION,
}


def normalize_page_type(raw: str | PageType) -> PageType:
    """Resolve a raw page_type (including legacy aliases) to its canonical value."""
    if isinstance(raw, PageType):
        return raw
    value = (raw or "").strip().lower()
    if value in PAGE_TYPE_ALIASES:
        return PAGE_TYPE_ALIASES[value]
    try:
        return PageType(value)
    except ValueError:
        raise InvalidPageTypeError(f"Unsupported page_type: {raw!r}")


class ClaimOutcome(str, Enum):
    CLAIMED = "claimed"
    ALREADY_CLAIMED = "already_claimed"
    NOT_FOUND = "not_found"


@dataclass
class ClaimResult:
    """Result of a claim attempt. `page` is the claimed row on success."""
    outcome: ClaimOutcome
    page: Optional[Dict[str, Any]] = None

    @property
    def claimed(self) -> bool:
        return self.outcome == ClaimOutcome.CLAIMED


class PageDispatchMessage(BaseModel):
    """Queue payload. Everything else is re-read from the store by the worker."""
    job_id: str
    page_id: str
    business_id: str


class PageCompletion(BaseModel):
    """Terminal write for a page (worker → store)."""
    status: Literal["completed", "failed"]
    content: Optional[str] = None
    error_message: Optional[str] = None
    section_count: Optional[int] = Field(default=None, ge=0)
    model_name: Optional[str] = None
    prompt_version: Optional[str] = None
    generation_duration_ms: Optional[int] = Field(default=None, ge=0)
    word_count: Optional[int] = Field(default=None, ge=0)


class CreateJobRequest(BaseModel):
    page_type: str


class WebhookEvent(str, Enum):
    JOB_COMPLETED = "job.completed"
    JOB_FAILED = "job.failed"

    @classmethod
    def for_status(cls, status: str | JobStatus) -> "WebhookEvent":
        return cls.JOB_FAILED if JobStatus(status) == JobStatus.FAILED else cls.JOB_COMPLETED
