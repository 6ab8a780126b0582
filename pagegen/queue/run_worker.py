#!/usr/bin/env python3
"""
RQ worker runner for page generation.

Run as many of these as you like; page claims are coordinated through
the store, not through the queue.

Usage:
    python -m pagegen.queue.run_worker
    python -m pagegen.queue.run_worker --burst
    python -m pagegen.queue.run_worker --name worker-1
"""

import argparse
import sys

from rq import Worker
from rq.serializers import JSONSerializer

from pagegen.config import config
from pagegen.queue.connection import get_redis_connection, get_page_queue
from pagegen.utils.logging import configure_logging


def main():
    parser = argparse.ArgumentParser(description="Run a page generation RQ worker")
    parser.add_argument(
        "--burst",
        "-b",
        action="store_true",
        help="Run in burst mode (process all jobs and exit)"
    )
    parser.add_argument(
        "--name",
        "-n",
        default=None,
        help="Worker name, also used as the page claim identity (auto-generated if not specified)"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    args = parser.parse_args()
    configure_logging("DEBUG" if args.verbose else config.LOG_LEVEL)

    if not config.REDIS_URL:
        print("❌ ERROR: REDIS_URL environment variable is required")
        sys.exit(1)

    try:
        conn = get_redis_connection()
        print("✅ Connected to Redis")

        queue = get_page_queue(conn)
        print(f"📋 Listening on queue: {queue.name}")

        worker = Worker(
            [queue],
            connection=conn,
            name=args.name,
            serializer=JSONSerializer,
        )

        print(f"🚀 Worker starting {'(burst mode)' if args.burst else ''}")
        print("   Press Ctrl+C to stop")
        print("-" * 50)

        worker.work(
            burst=args.burst,
            logging_level="DEBUG" if args.verbose else "INFO",
        )

    except KeyboardInterrupt:
        print("\n👋 Worker stopped by user")
        sys.exit(0)
    except Exception as e:
        print(f"❌ Worker error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
