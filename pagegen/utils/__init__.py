"""Utility modules for pagegen."""

from pagegen.utils.logging import (
    get_logger,
    get_log_buffer,
    configure_logging,
    LogLevel,
    LogEntry,
    AppLogger,
    job_logger,
    worker_logger,
    webhook_logger,
    sweeper_logger,
    api_logger,
)

__all__ = [
    "get_logger",
    "get_log_buffer",
    "configure_logging",
    "LogLevel",
    "LogEntry",
    "AppLogger",
    "job_logger",
    "worker_logger",
    "webhook_logger",
    "sweeper_logger",
    "api_logger",
]
