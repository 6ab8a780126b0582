"""Pytest configuration and shared fixtures."""

import asyncio
from datetime import datetime, timezone, timedelta

import pytest

from pagegen.database.businesses import BusinessDataService
from pagegen.database.jobs import GenerationJobService
from pagegen.database.pages import JobPageService
from pagegen.database.webhooks import WebhookService
from pagegen.database.workers import WorkerService
from pagegen.pipeline.finalizer import JobFinalizer
from pagegen.pipeline.orchestrator import JobOrchestrator
from pagegen.pipeline.worker import PageWorker
from pagegen.queue.tasks import PageDispatcher

from tests.fakes import FakeSupabase, FakeQueue, FakeBackend, RecordingNotifier

BUSINESS_ID = "biz-1"


def run(coro):
    return asyncio.run(coro)


def minutes_ago(minutes: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(minutes=minutes)).isoformat()


def seed_business(
    db: FakeSupabase,
    business_id: str = BUSINESS_ID,
    keywords=(("plumber", "en"), ("fontanero", "es")),
    areas=(("Austin", "TX"), ("Round Rock", "TX"), ("Georgetown", "TX")),
    template: bool = True,
    page_type: str = "keyword-service-area",
):
    """Business with keywords, service areas and (optionally) an active template."""
    db.tables.setdefault("businesses", []).append({
        "id": business_id,
        "name": "Acme Plumbing",
        "industry": "Plumbing",
        "phone": "555-0100",
    })
    for i, (text, language) in enumerate(keywords):
        db.tables.setdefault("keywords", []).append({
            "id": f"kw-{i}",
            "business_id": business_id,
            "keyword": text,
            "slug": text.replace(" ", "-"),
            "language": language,
            "created_at": minutes_ago(100 - i),
        })
    for i, (city, state) in enumerate(areas):
        db.tables.setdefault("service_areas", []).append({
            "id": f"sa-{i}",
            "business_id": business_id,
            "city": city,
            "state": state,
            "priority": 10 - i,
        })
    if template:
        db.tables.setdefault("prompt_templates", []).append({
            "id": "tpl-1",
            "business_id": business_id,
            "page_type": page_type,
            "template": "Write about {{keyword}} in {{city}}, {{state}} for {{business_name}}.",
            "version": 3,
            "is_active": True,
        })


@pytest.fixture
def db():
    return FakeSupabase()


@pytest.fixture
def queue():
    return FakeQueue()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def services(db):
    return {
        "jobs": GenerationJobService(client=db),
        "pages": JobPageService(client=db),
        "businesses": BusinessDataService(client=db),
        "workers": WorkerService(client=db),
        "webhooks": WebhookService(client=db, cache_seconds=0),
    }


@pytest.fixture
def finalizer(services, notifier):
    return JobFinalizer(jobs=services["jobs"], notifier=notifier)


@pytest.fixture
def orchestrator(services, queue, finalizer):
    return JobOrchestrator(
        jobs=services["jobs"],
        pages=services["pages"],
        businesses=services["businesses"],
        dispatcher=PageDispatcher(queue=queue),
        finalizer=finalizer,
    )


@pytest.fixture
def make_worker(services, backend, finalizer):
    def _make(worker_id: str = "worker-1", **overrides):
        kwargs = dict(
            jobs=services["jobs"],
            pages=services["pages"],
            businesses=services["businesses"],
            workers=services["workers"],
            backend=backend,
            finalizer=finalizer,
        )
        kwargs.update(overrides)
        return PageWorker(worker_id, **kwargs)
    return _make
