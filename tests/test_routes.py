"""HTTP tests for the job routes."""

import pytest
from fastapi.testclient import TestClient

from pagegen.api.main import app
from pagegen.routes.jobs import get_orchestrator

from tests.conftest import BUSINESS_ID, seed_business


@pytest.fixture
def client(db, orchestrator):
    seed_business(db)
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_create_and_read_job(client, queue):
    created = client.post(f"/api/businesses/{BUSINESS_ID}/generate", json={"page_type": "service-area"})
    assert created.status_code == 201
    job = created.json()["job"]
    assert job["page_type"] == "keyword-service-area"
    assert len(queue.messages) == 6

    detail = client.get(f"/api/businesses/{BUSINESS_ID}/jobs/{job['id']}")
    assert detail.status_code == 200
    assert detail.json()["job"]["queued_count"] == 6

    listed = client.get(f"/api/businesses/{BUSINESS_ID}/jobs")
    assert listed.json()["count"] == 1

    pages = client.get(f"/api/jobs/{job['id']}/pages", params={"status": "queued", "limit": 4})
    body = pages.json()
    assert len(body["pages"]) == 4
    assert body["pagination"]["total"] == 6


def test_invalid_page_type_is_400(client):
    response = client.post(f"/api/businesses/{BUSINESS_ID}/generate", json={"page_type": "bogus"})
    assert response.status_code == 400


def test_unknown_business_is_404(client):
    response = client.post("/api/businesses/nope/generate", json={"page_type": "keyword-location"})
    assert response.status_code == 404


def test_page_insert_failure_is_500(client, db):
    db.fail_on("job_pages", "insert")
    response = client.post(f"/api/businesses/{BUSINESS_ID}/generate", json={"page_type": "keyword-service-area"})
    assert response.status_code == 500
    assert db.rows("generation_jobs") == []


def test_preview(client):
    response = client.post(
        f"/api/businesses/{BUSINESS_ID}/generate/preview",
        params={"language": "es"},
        json={"page_type": "keyword-service-area"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["pagination"]["total"] == 3
    assert body["summary"]["total_pages"] == 6


def test_cancel_then_cancel_again_conflicts(client):
    job = client.post(f"/api/businesses/{BUSINESS_ID}/generate", json={"page_type": "keyword-service-area"}).json()["job"]

    assert client.post(f"/api/jobs/{job['id']}/cancel").json()["job"]["status"] == "cancelled"
    assert client.post(f"/api/jobs/{job['id']}/cancel").status_code == 409


def test_release_stale_and_retry_unknown(client):
    job = client.post(f"/api/businesses/{BUSINESS_ID}/generate", json={"page_type": "keyword-service-area"}).json()["job"]

    released = client.post(f"/api/jobs/{job['id']}/release-stale", params={"minutes": 5})
    assert released.json() == {"job_id": job["id"], "released": 0, "minutes": 5}

    assert client.post(f"/api/jobs/{job['id']}/pages/missing/retry").status_code == 404
    assert client.post("/api/jobs/missing/release-stale").status_code == 404


def test_logs_endpoint(client):
    job = client.post(f"/api/businesses/{BUSINESS_ID}/generate", json={"page_type": "keyword-service-area"}).json()["job"]
    response = client.get("/api/logs", params={"source": "job_orchestrator"})
    assert response.status_code == 200
    assert any(entry["message"] == "Job created" for entry in response.json()["logs"])

    trail = client.get("/api/logs", params={"job_id": job["id"]}).json()["logs"]
    assert trail
    assert all(entry["metadata"]["job_id"] == job["id"] for entry in trail)

    assert client.get("/api/logs", params={"level": "loud"}).status_code == 400
