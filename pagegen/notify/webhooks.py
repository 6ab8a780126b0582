"""
Webhook notifier for job completion events.

Delivery is best-effort: one POST per interested subscription, no
retries. A failing subscriber is logged and never affects the job or
the other subscribers.
"""

import asyncio
from datetime import datetime, timezone
from typing import Optional, Dict, Any

import httpx

from pagegen.config import config
from pagegen.database.webhooks import WebhookService
from pagegen.pipeline.models import WebhookEvent
from pagegen.utils.logging import webhook_logger as logger


def build_payload(job: Dict[str, Any], event: WebhookEvent) -> Dict[str, Any]:
    return {
        "event": event.value,
        "job_id": job["id"],
        "business_id": job.get("business_id"),
        "status": job.get("status"),
        "total_pages": job.get("total_pages", 0),
        "completed_pages": job.get("completed_pages", 0),
        "failed_pages": job.get("failed_pages", 0),
        "sent_at": datetime.now(timezone.utc).isoformat(),
    }


class WebhookNotifier:
    """Sends `job.completed` / `job.failed` to subscribed URLs."""

    def __init__(
        self,
        webhooks: Optional[WebhookService] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.webhooks = webhooks or WebhookService()
        self._transport = transport
        self.timeout = timeout or config.WEBHOOK_TIMEOUT_SECONDS

    async def notify(self, job: Dict[str, Any], event: WebhookEvent) -> int:
        """
        Deliver `event` for a finalized job.

        Returns:
            Number of subscribers that accepted the POST (2xx).
        """
        try:
            subscribers = await self.webhooks.get_subscribers(event.value)
        except Exception as e:
            logger.error("Could not load webhook subscriptions", job_id=job.get("id"), error=str(e))
            return 0

        if not subscribers:
            return 0

        payload = build_payload(job, event)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            results = await asyncio.gather(
                *(self._send(client, sub["url"], payload) for sub in subscribers)
            )

        delivered = sum(1 for ok in results if ok)
        logger.info(
            "Webhooks sent",
            job_id=job.get("id"),
            event=event.value,
            delivered=delivered,
            subscribers=len(subscribers)
        )
        return delivered

    async def _send(self, client: httpx.AsyncClient, url: str, payload: Dict[str, Any]) -> bool:
        try:
            response = await client.post(url, json=payload)
            if response.is_success:
                return True
            logger.warning(
                "Webhook rejected",
                url=url,
                status_code=response.status_code,
                body=response.text[:200]
            )
        except httpx.HTTPError as e:
            logger.warning("Webhook failed", url=url, error=str(e) or type(e).__name__)
        return False
