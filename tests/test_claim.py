"""Tests for the page claim protocol."""

import threading

from pagegen.database.pages import JobPageService, is_claim_stale
from pagegen.pipeline.models import ClaimOutcome, PageCompletion

from tests.conftest import run, minutes_ago


def _page(page_id="page-1", **overrides):
    row = {
        "id": page_id,
        "job_id": "job-1",
        "business_id": "biz-1",
        "page_type": "keyword-service-area",
        "status": "queued",
        "worker_id": None,
        "attempts": 0,
        "claimed_at": None,
        "created_at": minutes_ago(1),
    }
    row.update(overrides)
    return row


def test_claim_queued_page(db):
    db.tables["job_pages"] = [_page()]
    pages = JobPageService(client=db)

    result = run(pages.claim_page("page-1", "worker-a"))

    assert result.claimed
    assert result.page["status"] == "processing"
    assert result.page["worker_id"] == "worker-a"
    assert result.page["attempts"] == 1
    assert result.page["claimed_at"] is not None


def test_claim_missing_page(db):
    result = run(JobPageService(client=db).claim_page("nope", "worker-a"))
    assert result.outcome == ClaimOutcome.NOT_FOUND


def test_claim_fresh_processing_page_is_refused(db):
    db.tables["job_pages"] = [_page(status="processing", worker_id="worker-a", attempts=1, claimed_at=minutes_ago(1))]

    result = run(JobPageService(client=db).claim_page("page-1", "worker-b"))

    assert result.outcome == ClaimOutcome.ALREADY_CLAIMED
    assert db.row("job_pages", "page-1")["worker_id"] == "worker-a"


def test_claim_terminal_page_is_refused(db):
    db.tables["job_pages"] = [_page(status="completed", attempts=1)]
    result = run(JobPageService(client=db).claim_page("page-1", "worker-b"))
    assert result.outcome == ClaimOutcome.ALREADY_CLAIMED


def test_stale_claim_is_reclaimed_and_old_worker_cannot_write(db):
    db.tables["job_pages"] = [_page(status="processing", worker_id="dead", attempts=1, claimed_at=minutes_ago(30))]
    pages = JobPageService(client=db)

    result = run(pages.claim_page("page-1", "worker-b", stale_minutes=15))
    assert result.claimed
    assert result.page["attempts"] == 2

    stale_write = run(pages.complete_page("page-1", "dead", 1, PageCompletion(status="completed", content="old")))
    assert stale_write is None

    fresh_write = run(pages.complete_page("page-1", "worker-b", 2, PageCompletion(status="completed", content="new")))
    assert fresh_write["content"] == "new"


def test_exactly_one_of_many_concurrent_claimants_wins(db):
    db.tables["job_pages"] = [_page()]
    pages = JobPageService(client=db)
    outcomes = []
    barrier = threading.Barrier(8)

    def claim(worker_id):
        barrier.wait()
        outcomes.append(run(pages.claim_page("page-1", worker_id)).outcome)

    threads = [threading.Thread(target=claim, args=(f"w{i}",)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count(ClaimOutcome.CLAIMED) == 1
    assert outcomes.count(ClaimOutcome.ALREADY_CLAIMED) == 7
    assert db.row("job_pages", "page-1")["attempts"] == 1


def test_is_claim_stale():
    assert is_claim_stale({"claimed_at": minutes_ago(20)}, 15)
    assert not is_claim_stale({"claimed_at": minutes_ago(5)}, 15)
    assert is_claim_stale({"claimed_at": None}, 15)


def test_zero_minute_window_treats_every_claim_as_stale(db):
    db.tables["job_pages"] = [_page(status="processing", worker_id="worker-a", attempts=1, claimed_at=minutes_ago(1))]
    pages = JobPageService(client=db)

    assert not run(pages.claim_page("page-1", "worker-b")).claimed
    result = run(pages.claim_page("page-1", "worker-b", stale_minutes=0))

    assert result.claimed
    assert result.page["attempts"] == 2
