"""
Work item store

Supabase client and service classes for the tables the pipeline reads
and writes.
"""

from .client import get_supabase_admin_client, SupabaseClientError
from .jobs import GenerationJobService, CounterConflictError
from .pages import JobPageService
from .businesses import BusinessDataService
from .webhooks import WebhookService
from .workers import WorkerService

__all__ = [
    "get_supabase_admin_client",
    "SupabaseClientError",
    "GenerationJobService",
    "CounterConflictError",
    "JobPageService",
    "BusinessDataService",
    "WebhookService",
    "WorkerService",
]
