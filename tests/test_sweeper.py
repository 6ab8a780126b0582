"""Tests for the stale page sweeper."""

from pagegen.database.pages import PAGES_TABLE
from pagegen.pipeline.sweeper import StaleSweeper
from pagegen.queue.tasks import PageDispatcher

from tests.conftest import BUSINESS_ID, run, seed_business, minutes_ago
from tests.fakes import FakeQueue


def _sweeper(services, queue, finalizer):
    return StaleSweeper(
        jobs=services["jobs"],
        pages=services["pages"],
        workers=services["workers"],
        dispatcher=PageDispatcher(queue=queue),
        finalizer=finalizer,
        stale_minutes=15,
        queued_stale_minutes=10,
    )


def test_sweep_recovers_stale_and_lost_pages(db, services, orchestrator, queue, finalizer):
    seed_business(db)
    run(orchestrator.create_job(BUSINESS_ID, "keyword-service-area"))
    pages = db.rows(PAGES_TABLE)
    stale, held, lost = pages[0], pages[1], pages[2]
    db.patch(PAGES_TABLE, stale["id"], status="processing", worker_id="dead", attempts=1, claimed_at=minutes_ago(20))
    db.patch(PAGES_TABLE, held["id"], status="processing", worker_id="alive", attempts=1, claimed_at=minutes_ago(2))
    db.patch(PAGES_TABLE, lost["id"], dispatched_at=minutes_ago(30))
    sent_before = len(queue.messages)

    report = run(_sweeper(services, queue, finalizer).sweep())

    assert report.released == 1
    assert report.redispatched == 2
    assert db.row(PAGES_TABLE, stale["id"])["status"] == "queued"
    assert db.row(PAGES_TABLE, held["id"])["worker_id"] == "alive"
    assert {m["page_id"] for m in queue.messages[sent_before:]} == {stale["id"], lost["id"]}


def test_sweep_finalizes_fully_counted_jobs(db, services, queue, finalizer, notifier):
    db.tables["generation_jobs"] = [{
        "id": "job-1",
        "business_id": BUSINESS_ID,
        "status": "processing",
        "total_pages": 2,
        "completed_pages": 1,
        "failed_pages": 1,
        "created_at": minutes_ago(60),
        "webhook_sent_at": None,
    }]

    report = run(_sweeper(services, queue, finalizer).sweep())

    assert report.finalized == 1
    assert db.row("generation_jobs", "job-1")["status"] == "completed"
    assert len(notifier.calls) == 1


def test_sweep_marks_silent_workers_offline(db, services, queue, finalizer):
    db.tables["workers"] = [
        {"id": "w-old", "status": "active", "last_heartbeat": minutes_ago(60)},
        {"id": "w-new", "status": "active", "last_heartbeat": minutes_ago(1)},
    ]

    report = run(_sweeper(services, queue, finalizer).sweep())

    assert report.workers_offline == 1
    assert db.row("workers", "w-old")["status"] == "offline"
    assert db.row("workers", "w-new")["status"] == "active"


def test_requeued_page_whose_redispatch_failed_is_sent_later(db, services, orchestrator, finalizer):
    seed_business(db)
    run(orchestrator.create_job(BUSINESS_ID, "keyword-service-area"))
    page = db.rows(PAGES_TABLE)[0]
    db.patch(PAGES_TABLE, page["id"], status="processing", worker_id="dead", attempts=1, claimed_at=minutes_ago(20))
    flaky = FakeQueue(fail_calls={1})
    sweeper = _sweeper(services, flaky, finalizer)

    first = run(sweeper.sweep())
    assert (first.released, first.undispatched) == (1, 1)
    assert db.row(PAGES_TABLE, page["id"])["status"] == "queued"

    # the undelivered window passes with the page still sitting in queued
    db.patch(PAGES_TABLE, page["id"], dispatched_at=minutes_ago(11))
    second = run(sweeper.sweep())

    assert second.redispatched == 1
    assert [m["page_id"] for m in flaky.messages] == [page["id"]]
    assert db.row(PAGES_TABLE, page["id"])["attempts"] == 1


def test_backlog_is_not_redispatched_on_every_sweep(db, services, orchestrator, queue, finalizer):
    seed_business(db)
    run(orchestrator.create_job(BUSINESS_ID, "keyword-service-area"))
    for page in db.rows(PAGES_TABLE):
        db.patch(PAGES_TABLE, page["id"], created_at=minutes_ago(30), dispatched_at=minutes_ago(30))
    sent_before = len(queue.messages)
    sweeper = _sweeper(services, queue, finalizer)

    reports = [run(sweeper.sweep()) for _ in range(3)]

    assert [r.redispatched for r in reports] == [6, 0, 0]
    assert len(queue.messages) - sent_before == 6


def test_sweep_recounts_job_when_counter_write_was_lost(db, services, orchestrator, queue, finalizer, notifier, make_worker, monkeypatch):
    seed_business(db, keywords=(("plumber", "en"),), areas=(("Austin", "TX"),))
    job = run(orchestrator.create_job(BUSINESS_ID, "keyword-service-area"))

    async def store_down(job_id, field):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(services["jobs"], "increment_counter", store_down)
    run(make_worker().handle_message(queue.messages[0]))
    monkeypatch.undo()

    assert db.rows(PAGES_TABLE)[0]["status"] == "completed"
    stuck = db.row("generation_jobs", job["id"])
    assert (stuck["status"], stuck["completed_pages"]) == ("processing", 0)

    report = run(_sweeper(services, queue, finalizer).sweep())

    assert report.finalized == 1
    final = db.row("generation_jobs", job["id"])
    assert final["status"] == "completed"
    assert (final["completed_pages"], final["failed_pages"]) == (1, 0)
    assert len(notifier.calls) == 1


def test_sweep_leaves_counters_alone_while_pages_are_in_flight(db, services, orchestrator, queue, finalizer):
    seed_business(db)
    job = run(orchestrator.create_job(BUSINESS_ID, "keyword-service-area"))
    first = db.rows(PAGES_TABLE)[0]
    db.patch(PAGES_TABLE, first["id"], status="completed")

    run(_sweeper(services, queue, finalizer).sweep())

    row = db.row("generation_jobs", job["id"])
    assert row["completed_pages"] == 0
    assert row["status"] == "pending"


def test_explicit_zero_windows_are_kept(services, queue, finalizer):
    sweeper = StaleSweeper(
        jobs=services["jobs"],
        pages=services["pages"],
        workers=services["workers"],
        dispatcher=PageDispatcher(queue=queue),
        finalizer=finalizer,
        stale_minutes=0,
        queued_stale_minutes=0,
    )
    assert (sweeper.stale_minutes, sweeper.queued_stale_minutes) == (0, 0)
