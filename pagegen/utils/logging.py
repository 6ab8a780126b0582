"""
Logging for the page generation pipeline.

Every `AppLogger` call goes to stdlib `logging` and to a bounded
in-memory buffer, so the operator API can show the recent trail of a
job or page without an external log store. Metadata passed as keyword
arguments (`job_id=`, `page_id=`, `worker_id=`...) is kept structured
in the buffer and is filterable.
"""

import logging
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from threading import Lock
from typing import Optional, List, Dict, Any

BUFFER_SIZE = 2000

ERROR_LEVELS = ("error", "critical")


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass
class LogEntry:
    level: LogLevel
    message: str
    source: str = "system"
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def matches(
        self,
        level: Optional[LogLevel] = None,
        source: Optional[str] = None,
        job_id: Optional[str] = None,
    ) -> bool:
        if level and self.level != level:
            return False
        if source and self.source != source:
            return False
        if job_id and self.metadata.get("job_id") != job_id:
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "message": self.message,
            "source": self.source,
            "metadata": self.metadata,
        }


class LogBuffer:
    """
    Bounded ring of recent entries shared by every logger in the process.

    RQ work horses and the API's threadpool write concurrently, so reads
    take a snapshot under the lock and filter outside it.
    """

    def __init__(self, max_size: int = BUFFER_SIZE):
        self._entries: deque = deque(maxlen=max_size)
        self._lock = Lock()

    def add(self, entry: LogEntry):
        with self._lock:
            self._entries.append(entry)

    def _snapshot(self) -> List[LogEntry]:
        with self._lock:
            return list(self._entries)

    def get_recent(
        self,
        limit: int = 100,
        level: Optional[LogLevel] = None,
        source: Optional[str] = None,
        job_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Newest first."""
        entries = [e for e in reversed(self._snapshot()) if e.matches(level, source, job_id)]
        return [e.to_dict() for e in entries[:limit]]

    def get_errors(self, limit: int = 50) -> List[Dict[str, Any]]:
        entries = [e for e in reversed(self._snapshot()) if e.level.value in ERROR_LEVELS]
        return [e.to_dict() for e in entries[:limit]]

    def get_stats(self) -> Dict[str, Any]:
        entries = self._snapshot()
        by_level = Counter(e.level.value for e in entries)
        return {
            "total": len(entries),
            "by_level": dict(by_level),
            "by_source": dict(Counter(e.source for e in entries)),
            "error_count": sum(by_level[name] for name in ERROR_LEVELS),
            "warning_count": by_level[LogLevel.WARNING.value],
        }


_log_buffer = LogBuffer()


def get_log_buffer() -> LogBuffer:
    return _log_buffer


class AppLogger:
    """
    Logger for one pipeline component.

    Usage:
        logger = get_logger("page_worker")
        logger.info("Page claimed", page_id=page_id, attempts=2)
    """

    def __init__(self, source: str):
        self.source = source
        self._logger = logging.getLogger(f"pagegen.{source}")

    def _log(self, level: LogLevel, text: str, metadata: Dict[str, Any]):
        _log_buffer.add(LogEntry(level, text, self.source, metadata))

        if metadata:
            pairs = " ".join(f"{key}={value}" for key, value in metadata.items())
            text = f"{text} | {pairs}"
        self._logger.log(getattr(logging, level.value.upper()), text)

    def debug(self, text: str, **metadata):
        self._log(LogLevel.DEBUG, text, metadata)

    def info(self, text: str, **metadata):
        self._log(LogLevel.INFO, text, metadata)

    def warning(self, text: str, **metadata):
        self._log(LogLevel.WARNING, text, metadata)

    def error(self, text: str, **metadata):
        self._log(LogLevel.ERROR, text, metadata)

    def critical(self, text: str, **metadata):
        self._log(LogLevel.CRITICAL, text, metadata)


def get_logger(source: str) -> AppLogger:
    return AppLogger(source)


def configure_logging(level: str = "INFO"):
    """Root handler for the worker and sweeper entrypoints."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


job_logger = AppLogger("job_orchestrator")
worker_logger = AppLogger("page_worker")
webhook_logger = AppLogger("webhooks")
sweeper_logger = AppLogger("sweeper")
api_logger = AppLogger("api")
