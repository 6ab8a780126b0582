"""
Worker Service

Liveness rows for page workers. Each row is written only by the worker
that owns the id, so a plain upsert is enough here.
"""

from datetime import datetime, timezone, timedelta
from typing import Optional, Dict, Any, List

from supabase import Client

from pagegen.pipeline.models import WorkerStatus

from .client import get_supabase_admin_client


class WorkerService:
    """Heartbeats and lookups for the `workers` table."""

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_admin_client()
        return self._client

    async def heartbeat(
        self,
        worker_id: str,
        status: WorkerStatus,
        current_page_id: Optional[str],
        pages_completed: int,
        pages_failed: int,
    ) -> Dict[str, Any]:
        """Record that a worker is alive and what it is doing."""
        data = {
            "id": worker_id,
            "status": status.value,
            "last_heartbeat": datetime.now(timezone.utc).isoformat(),
            "current_page_id": current_page_id,
            "pages_completed": pages_completed,
            "pages_failed": pages_failed,
        }
        result = self.client.table("workers").upsert(data).execute()
        return result.data[0] if result.data else data

    async def get_silent_workers(self, silent_minutes: int) -> List[Dict[str, Any]]:
        """Workers not marked offline whose last heartbeat is older than the window."""
        cutoff = (datetime.now(timezone.utc) - timedelta(minutes=silent_minutes)).isoformat()
        result = (
            self.client.table("workers")
            .select("*")
            .neq("status", WorkerStatus.OFFLINE.value)
            .lt("last_heartbeat", cutoff)
            .execute()
        )
        return result.data

    async def mark_offline(self, worker_id: str) -> None:
        (
            self.client.table("workers")
            .update({"status": WorkerStatus.OFFLINE.value, "current_page_id": None})
            .eq("id", worker_id)
            .execute()
        )
