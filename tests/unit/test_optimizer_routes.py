"""Unit tests for the optimizer HTTP endpoints."""

from __future__ import annotations

from typing import Any

from fastapi.testclient import TestClient
from optimizer_fakes import TARGET_URL, build_collaborators, make_settings

from app.core.exceptions import JobAlreadyRunningError
from app.main import configure_optimizer, create_app
from app.services.optimizer.phases import Phase
from app.services.optimizer.service import OptimizerService

PREFIX = "/api/v1/optimizer"


def _client(service: OptimizerService | None = None) -> TestClient:
    service = service or OptimizerService(make_settings(), build_collaborators())
    return TestClient(create_app(service))


def test_routes_return_503_without_service() -> None:
    with TestClient(create_app()) as client:
        response = client.get(f"{PREFIX}/progress")

    assert response.status_code == 503


def test_health_reports_optimizer_state() -> None:
    app = create_app()
    configure_optimizer(app, OptimizerService(make_settings(), build_collaborators()))

    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "healthy"
    assert payload["optimizer_configured"] is True
    assert payload["job_running"] is False


def test_run_job_then_read_state_progress_pages_and_stats() -> None:
    client = _client()

    response = client.post(f"{PREFIX}/jobs", json={"target_url": TARGET_URL, "publish_mode": "draft"})

    assert response.status_code == 200
    result = response.json()
    assert result["success"] is True
    assert result["score"] == 80
    assert result["error"] is None

    job = client.get(f"{PREFIX}/jobs/{TARGET_URL}").json()
    assert job["status"] == "completed"
    assert job["phase"] == "completed"

    progress = client.get(f"{PREFIX}/progress").json()
    assert progress["phase"] == Phase.COMPLETED.value
    assert progress["percent"] == 100
    assert progress["label"] == "Complete!"

    pages = client.get(f"{PREFIX}/pages").json()
    assert pages[0]["id"] == TARGET_URL
    assert pages[0]["health_score"] == 80
    assert len(pages[0]["improvement_history"]) == 1

    stats = client.get(f"{PREFIX}/stats").json()
    assert stats["total_processed"] == 1


def test_unknown_job_returns_404() -> None:
    response = _client().get(f"{PREFIX}/jobs/https://blog.example.com/nothing/")

    assert response.status_code == 404


def test_busy_interactive_slot_returns_409(monkeypatch: Any) -> None:
    service = OptimizerService(make_settings(), build_collaborators())

    async def _busy(*args: Any, **kwargs: Any) -> None:
        raise JobAlreadyRunningError("interactive")

    monkeypatch.setattr(service, "run_single_job", _busy)

    response = _client(service).post(f"{PREFIX}/jobs", json={})

    assert response.status_code == 409


def test_cancel_without_running_job() -> None:
    response = _client().post(f"{PREFIX}/jobs/cancel", json={"reason": "Stop"})

    assert response.status_code == 200
    assert response.json() == {"cancelled": False}


def test_bulk_batch_and_invalid_input() -> None:
    client = _client()

    response = client.post(
        f"{PREFIX}/bulk",
        json={"urls": ["https://blog.example.com/first-post/", " https://blog.example.com/first-post/"], "concurrency": 2},
    )
    invalid = client.post(f"{PREFIX}/bulk", json={"urls": "not a url"})

    assert response.status_code == 200
    summary = response.json()
    assert summary["total"] == 1
    assert summary["completed"] == 1
    assert summary["jobs"][0]["status"] == "completed"
    assert invalid.status_code == 400
    assert invalid.json()["detail"] == "No valid URLs provided"
    assert client.post(f"{PREFIX}/bulk/abort").json() == {"aborted": False}


def test_sitemap_crawl_endpoint(monkeypatch: Any) -> None:
    service = OptimizerService(make_settings(), build_collaborators())

    async def _crawl(sitemap_url: str) -> int:
        service.store.ensure_page("https://blog.example.com/from-sitemap/")
        return 1

    monkeypatch.setattr(service, "crawl_sitemap", _crawl)

    response = _client(service).post(
        f"{PREFIX}/pages/sitemap",
        json={"sitemap_url": "https://blog.example.com/sitemap.xml"},
    )

    assert response.status_code == 200
    assert response.json() == {"added": 1, "total": 1}
