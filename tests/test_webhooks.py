"""Tests for webhook subscription filtering and delivery."""

import json

import httpx

from pagegen.database.webhooks import WebhookService
from pagegen.notify.webhooks import WebhookNotifier
from pagegen.pipeline.models import WebhookEvent

from tests.conftest import run

JOB = {
    "id": "job-1",
    "business_id": "biz-1",
    "status": "completed",
    "total_pages": 3,
    "completed_pages": 2,
    "failed_pages": 1,
}


def _subscriptions(db):
    db.tables["webhooks"] = [
        {"id": "w1", "url": "https://a.example/hook", "events": ["job.completed"]},
        {"id": "w2", "url": "https://b.example/hook", "events": ["job.failed"]},
        {"id": "w3", "url": "https://c.example/hook", "events": []},
        {"id": "w4", "url": "https://d.example/hook"},
    ]


def test_subscribers_filtered_by_event(db):
    _subscriptions(db)
    webhooks = WebhookService(client=db, cache_seconds=0)

    completed = run(webhooks.get_subscribers("job.completed"))
    failed = run(webhooks.get_subscribers("job.failed"))

    assert {s["id"] for s in completed} == {"w1", "w3", "w4"}
    assert {s["id"] for s in failed} == {"w2", "w3", "w4"}


def test_subscriptions_are_cached(db):
    _subscriptions(db)
    webhooks = WebhookService(client=db, cache_seconds=60)

    run(webhooks.list_subscriptions())
    db.tables["webhooks"] = []
    assert len(run(webhooks.list_subscriptions())) == 4

    webhooks.invalidate()
    assert run(webhooks.list_subscriptions()) == []


def test_notify_posts_payload_to_matching_subscribers(db):
    _subscriptions(db)
    received = {}

    def handler(request: httpx.Request):
        received[str(request.url)] = json.loads(request.content)
        return httpx.Response(200)

    notifier = WebhookNotifier(
        webhooks=WebhookService(client=db, cache_seconds=0),
        transport=httpx.MockTransport(handler),
    )

    delivered = run(notifier.notify(JOB, WebhookEvent.JOB_COMPLETED))

    assert delivered == 3
    assert set(received) == {"https://a.example/hook", "https://c.example/hook", "https://d.example/hook"}
    payload = received["https://a.example/hook"]
    assert payload["event"] == "job.completed"
    assert payload["job_id"] == "job-1"
    assert (payload["total_pages"], payload["completed_pages"], payload["failed_pages"]) == (3, 2, 1)
    assert payload["sent_at"]


def test_failing_subscriber_does_not_affect_others(db):
    _subscriptions(db)

    def handler(request: httpx.Request):
        if request.url.host == "c.example":
            raise httpx.ConnectError("refused", request=request)
        if request.url.host == "d.example":
            return httpx.Response(500, text="nope")
        return httpx.Response(204)

    notifier = WebhookNotifier(
        webhooks=WebhookService(client=db, cache_seconds=0),
        transport=httpx.MockTransport(handler),
    )

    assert run(notifier.notify(JOB, WebhookEvent.JOB_COMPLETED)) == 1


def test_subscription_lookup_failure_is_swallowed(db):
    db.fail_on("webhooks", "select")
    notifier = WebhookNotifier(webhooks=WebhookService(client=db, cache_seconds=0))

    assert run(notifier.notify(JOB, WebhookEvent.JOB_FAILED)) == 0
