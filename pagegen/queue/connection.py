"""
Redis connection management for the RQ page queue.

Page messages are stored with RQ's JSON serializer so the payload on the
wire is plain `{job_id, page_id, business_id}` JSON.
"""

from typing import Optional

from redis import Redis
from rq import Queue
from rq.serializers import JSONSerializer

from pagegen.config import config
from pagegen.utils.logging import get_logger

logger = get_logger("queue")

# Singleton connection
_redis_connection: Optional[Redis] = None


def get_redis_connection() -> Redis:
    """
    Get the Redis connection singleton.

    Raises:
        ValueError: If REDIS_URL is not configured
        ConnectionError: If Redis does not answer a ping
    """
    global _redis_connection

    if _redis_connection is None:
        redis_url = config.REDIS_URL
        if not redis_url:
            raise ValueError(
                "REDIS_URL environment variable is required for the page queue."
            )

        _redis_connection = Redis.from_url(
            redis_url,
            decode_responses=False,  # RQ needs bytes
            socket_timeout=10,
            socket_connect_timeout=10,
            retry_on_timeout=True,
            health_check_interval=30,
        )

        try:
            _redis_connection.ping()
            logger.info(
                "Redis connected",
                host=redis_url.split("@")[-1] if "@" in redis_url else "localhost"
            )
        except Exception as e:
            _redis_connection = None
            raise ConnectionError(f"Failed to connect to Redis: {e}")

    return _redis_connection


def get_page_queue(connection: Optional[Redis] = None) -> Queue:
    """The queue carrying page dispatch messages."""
    return Queue(
        config.QUEUE_NAME,
        connection=connection or get_redis_connection(),
        serializer=JSONSerializer,
    )


def close_redis_connection():
    """Close the Redis connection (for cleanup)."""
    global _redis_connection
    if _redis_connection:
        _redis_connection.close()
        _redis_connection = None


def redis_health_check() -> dict:
    """Check Redis connection health and report queue depth."""
    try:
        conn = get_redis_connection()
        conn.ping()
        queue = get_page_queue(conn)

        return {
            "status": "healthy",
            "connected": True,
            "queues": {config.QUEUE_NAME: len(queue)},
            "failed_jobs": {config.QUEUE_NAME: queue.failed_job_registry.count},
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "connected": False,
            "error": str(e)
        }
