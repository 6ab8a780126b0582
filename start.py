#!/usr/bin/env python3
"""
Service entrypoint.

Picks the process to run from the SERVICE_TYPE environment variable.

SERVICE_TYPE values:
  - web (default): Run the FastAPI app via gunicorn
  - worker: Run an RQ page worker
  - sweeper: Run the stale page sweeper
"""

import os
import sys

SERVICE_TYPE = os.environ.get("SERVICE_TYPE", "web")
PORT = os.environ.get("PORT", "8080")

print("=" * 50)
print(f"Page generation service: {SERVICE_TYPE}")
print("=" * 50)

if SERVICE_TYPE == "web":
    print("Starting web server (gunicorn)...")
    cmd = [
        "gunicorn", "pagegen.api.main:app",
        "--workers", "2",
        "--worker-class", "uvicorn.workers.UvicornWorker",
        "--bind", f"0.0.0.0:{PORT}",
        "--timeout", "120",
        "--graceful-timeout", "30"
    ]
elif SERVICE_TYPE == "worker":
    print("Starting RQ page worker...")
    cmd = ["python", "-m", "pagegen.queue.run_worker"]
elif SERVICE_TYPE == "sweeper":
    print("Starting stale page sweeper...")
    cmd = ["python", "-m", "pagegen.queue.run_sweeper"]
else:
    print(f"ERROR: Unknown SERVICE_TYPE: {SERVICE_TYPE}")
    print("Valid values: web, worker, sweeper")
    sys.exit(1)

print(f"Running: {' '.join(cmd)}")
print("=" * 50)

os.execvp(cmd[0], cmd)
