"""
RQ task definitions and dispatch helpers for page generation.

`process_page_task` is what RQ workers execute for every page message.
`PageDispatcher` sends page messages in batches no larger than the
queue's batch size and reports which pages did not make it.
"""

import asyncio
import os
import socket
import uuid
from dataclasses import dataclass, field
from typing import Dict, Any, List, Iterable, Optional

from rq import Queue, get_current_job

from pagegen.config import config
from pagegen.pipeline.models import PageDispatchMessage
from pagegen.utils.logging import job_logger as logger

from .connection import get_page_queue

PAGE_TASK = "pagegen.queue.tasks.process_page_task"


# =============================================================================
# PAGE TASK
# =============================================================================

def process_page_task(message: Dict[str, Any]) -> Dict[str, Any]:
    """
    RQ task for one page dispatch message.

    RQ workers are sync, so the async pipeline runs under asyncio.run.
    Never raises for page-level problems: every outcome is written to the
    store, and the returned dict is only for the RQ result registry.
    """
    from pagegen.pipeline.worker import PageWorker

    worker = PageWorker(worker_id=_current_worker_id())
    outcome = asyncio.run(worker.handle_message(message))
    return outcome.to_dict()


def _current_worker_id() -> str:
    job = get_current_job()
    worker_name = getattr(job, "worker_name", None) if job else None
    if worker_name:
        return worker_name
    return f"{socket.gethostname()}-{os.getpid()}"


# =============================================================================
# DISPATCH
# =============================================================================

@dataclass
class DispatchReport:
    """Which pages were handed to the queue and which were not."""
    sent: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def all_sent(self) -> bool:
        return not self.failed


def _chunks(items: List[PageDispatchMessage], size: int) -> Iterable[List[PageDispatchMessage]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class PageDispatcher:
    """
    Sends page messages to the RQ page queue.

    A failing batch does not stop the remaining batches; its pages are
    reported as failed so the caller can record them.
    """

    def __init__(self, queue: Optional[Queue] = None, batch_size: Optional[int] = None):
        self._queue = queue
        self.batch_size = min(batch_size or config.QUEUE_BATCH_SIZE, 10)

    @property
    def queue(self) -> Queue:
        if self._queue is None:
            self._queue = get_page_queue()
        return self._queue

    def dispatch(self, messages: List[PageDispatchMessage]) -> DispatchReport:
        report = DispatchReport()

        for batch in _chunks(messages, self.batch_size):
            page_ids = [m.page_id for m in batch]
            try:
                self.send_batch(batch)
                report.sent.extend(page_ids)
            except Exception as e:
                report.failed.extend(page_ids)
                logger.error(
                    "Page batch enqueue failed",
                    job_id=batch[0].job_id,
                    pages=len(batch),
                    error=str(e)
                )

        return report

    def send_batch(self, batch: List[PageDispatchMessage]) -> None:
        """Enqueue one batch in a single Redis pipeline."""
        job_datas = [
            Queue.prepare_data(
                PAGE_TASK,
                args=(message.model_dump(),),
                job_id=f"page_{message.page_id}_{uuid.uuid4().hex[:8]}",
                timeout=config.PAGE_JOB_TIMEOUT,
                result_ttl=3600,
                failure_ttl=86400,
            )
            for message in batch
        ]
        self.queue.enqueue_many(job_datas)
