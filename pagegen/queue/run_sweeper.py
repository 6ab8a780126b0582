#!/usr/bin/env python3
"""
Stale page sweeper process.

Runs one sweep every SWEEP_INTERVAL_SECONDS. Run exactly one of these
per deployment; running two is safe but wasteful.

Usage:
    python -m pagegen.queue.run_sweeper
    python -m pagegen.queue.run_sweeper --once
"""

import argparse
import asyncio
import signal
import sys

from pagegen.config import config
from pagegen.pipeline.sweeper import StaleSweeper, SweepScheduler
from pagegen.utils.logging import configure_logging


async def run_forever():
    scheduler = SweepScheduler()

    loop = asyncio.get_running_loop()

    def shutdown_handler():
        print("\n👋 Shutting down sweeper...")
        asyncio.create_task(scheduler.stop())

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_handler)

    await scheduler.start()
    print(f"✅ Sweeper running every {scheduler.interval}s. Press Ctrl+C to stop.")

    try:
        while scheduler.running:
            await asyncio.sleep(1)
    except asyncio.CancelledError:
        pass

    print("Sweeper stopped.")


def main():
    parser = argparse.ArgumentParser(description="Run the stale page sweeper")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single sweep and exit"
    )
    args = parser.parse_args()

    configure_logging(config.LOG_LEVEL)

    print("=" * 50)
    print("Page Generation Stale Sweeper")
    print("=" * 50)

    if not config.REDIS_URL or not config.supabase_configured:
        print("❌ ERROR: REDIS_URL, SUPABASE_URL and SUPABASE_SERVICE_KEY are required")
        sys.exit(1)

    if args.once:
        report = asyncio.run(StaleSweeper().sweep())
        print(report.to_dict())
        return

    asyncio.run(run_forever())


if __name__ == "__main__":
    main()
