"""
Webhook Subscription Service

Subscriptions are created and deleted by the CRUD layer; the pipeline
only reads them. Reads are cached per process for a short window since
every finalizing worker asks for them.
"""

import time
from threading import Lock
from typing import Optional, Dict, Any, List

from supabase import Client

from pagegen.config import config

from .client import get_supabase_admin_client


class WebhookService:
    """Cached reads of the `webhooks` table."""

    def __init__(self, client: Optional[Client] = None, cache_seconds: Optional[int] = None):
        self._client = client
        self._cache_seconds = config.WEBHOOK_CACHE_SECONDS if cache_seconds is None else cache_seconds
        self._cached: Optional[List[Dict[str, Any]]] = None
        self._cached_at = 0.0
        self._lock = Lock()

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_admin_client()
        return self._client

    async def list_subscriptions(self) -> List[Dict[str, Any]]:
        with self._lock:
            if self._cached is not None and time.monotonic() - self._cached_at < self._cache_seconds:
                return self._cached

        result = self.client.table("webhooks").select("*").execute()

        with self._lock:
            self._cached = result.data
            self._cached_at = time.monotonic()
        return result.data

    async def get_subscribers(self, event: str) -> List[Dict[str, Any]]:
        """Subscriptions interested in `event`. No events list means all events."""
        subscriptions = await self.list_subscriptions()
        return [
            sub for sub in subscriptions
            if sub.get("url") and (not sub.get("events") or event in sub["events"])
        ]

    def invalidate(self):
        with self._lock:
            self._cached = None
