"""Outbound notifications for finalized jobs."""

from .webhooks import WebhookNotifier, build_payload

__all__ = ["WebhookNotifier", "build_payload"]
