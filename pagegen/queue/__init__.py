"""
Redis Queue (RQ) integration for page dispatch.
"""

from .connection import get_redis_connection, get_page_queue
from .tasks import PageDispatcher, DispatchReport, process_page_task

__all__ = [
    "get_redis_connection",
    "get_page_queue",
    "PageDispatcher",
    "DispatchReport",
    "process_page_task",
]
