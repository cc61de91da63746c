"""Tests for the worker, jobs and admin API routes."""

import asyncio
from unittest.mock import patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from prodai_engine.api.deps import is_authorized_trigger
from prodai_engine.config import Settings, get_settings
from prodai_engine.domain.enums import JobStatus
from prodai_engine.main import app

AUTH = {"Authorization": "Bearer test-secret"}


@pytest.fixture
def create_job(job_factory):
    """Synchronous job creation for sync API tests."""

    def create(**overrides):
        return asyncio.run(job_factory(**overrides))

    return create


class TestTriggerAuth:
    """Tests for worker trigger credentials."""

    def test_rejects_missing_credentials(self, test_client: TestClient):
        response = test_client.get("/api/v1/worker/generate")

        assert response.status_code == 401
        assert response.json()["detail"] == "Unauthorized"

    def test_rejects_wrong_secret(self, test_client: TestClient):
        response = test_client.get(
            "/api/v1/worker/generate", headers={"Authorization": "Bearer nope"}
        )

        assert response.status_code == 401

    @pytest.mark.parametrize(
        "headers,expected",
        [
            ({"x-scheduler-cron": "1"}, True),
            ({"x-cron-secret": "s3cret"}, True),
            ({"authorization": "Bearer s3cret"}, True),
            ({"authorization": "Basic s3cret"}, False),
            ({"x-cron-secret": "wrong"}, False),
            ({}, False),
        ],
    )
    def test_accepted_credentials(self, headers, expected):
        settings = Settings(cron_secret="s3cret", scheduler_header="x-scheduler-cron")

        assert is_authorized_trigger(headers, settings) is expected

    def test_without_secret_only_scheduler_header_passes(self):
        settings = Settings(cron_secret=None)

        assert not is_authorized_trigger({"authorization": "Bearer "}, settings)
        assert is_authorized_trigger({settings.scheduler_header: "1"}, settings)


class TestWorkerRoute:
    """Tests for GET /api/v1/worker/generate."""

    def test_processes_single_job(self, test_client: TestClient, create_job, repository):
        job = create_job(variation_count=2)

        response = test_client.get(
            "/api/v1/worker/generate",
            params={"job_id": str(job.id), "batch": 2, "parallel": 2},
            headers=AUTH,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["processed"] == 1
        result = data["results"][0]
        assert result["job_id"] == str(job.id)
        assert result["kind"] == "terminal"
        assert result["status"] == "completed"
        assert result["completed"] == 2

    def test_unknown_job_is_404(self, test_client: TestClient):
        response = test_client.get(
            "/api/v1/worker/generate", params={"job_id": str(uuid4())}, headers=AUTH
        )

        assert response.status_code == 404

    def test_processes_due_jobs(self, test_client: TestClient, create_job):
        first = create_job(variation_count=1)
        second = create_job(variation_count=1)

        response = test_client.get(
            "/api/v1/worker/generate",
            params={"jobs": 5, "image_jobs": 2},
            headers={"x-cron-secret": "test-secret"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["processed"] == 2
        assert {r["job_id"] for r in data["results"]} == {str(first.id), str(second.id)}

    def test_no_due_jobs(self, test_client: TestClient):
        response = test_client.get("/api/v1/worker/generate", headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {"processed": 0, "results": []}


class TestJobRoutes:
    """Tests for job status, retry and cancellation."""

    def test_get_job_with_signed_urls(self, test_client: TestClient, create_job):
        job = create_job(variation_count=1)
        test_client.get("/api/v1/worker/generate", params={"job_id": str(job.id)}, headers=AUTH)

        response = test_client.get(f"/api/v1/jobs/{job.id}")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["completed_count"] == 1
        unit = data["units"][0]
        assert unit["variation_index"] == 0
        assert unit["approval_status"] == "pending"
        assert unit["url"].startswith("stub://generated-images/")
        assert "/thumbs/" in unit["thumbnail_url"]
        assert "/previews/" in unit["preview_url"]

    def test_get_unknown_job(self, test_client: TestClient):
        assert test_client.get(f"/api/v1/jobs/{uuid4()}").status_code == 404

    def test_retry_dispatches_task(self, test_client: TestClient, create_job, repository):
        job = create_job()
        asyncio.run(repository.fail_job(job.id, "provider outage"))

        with patch("prodai_engine.api.routes.jobs.dispatch_job", return_value="task-123") as dispatch:
            response = test_client.post(f"/api/v1/products/{job.product_id}/jobs/{job.id}/retry")

        assert response.status_code == 202
        assert response.json() == {
            "job_id": str(job.id),
            "status": "pending",
            "dispatch": "celery",
            "task_id": "task-123",
        }
        dispatch.assert_called_once_with(job.id)
        stored = asyncio.run(repository.get_job(job.id))
        assert stored.status == JobStatus.PENDING
        assert stored.error_message is None

    def test_retry_inline_runs_job(self, test_client: TestClient, create_job, repository):
        job = create_job(variation_count=2)
        asyncio.run(repository.fail_job(job.id, "provider outage"))
        inline_settings = get_settings().model_copy(update={"inline_generation": True})
        app.dependency_overrides[get_settings] = lambda: inline_settings

        response = test_client.post(f"/api/v1/products/{job.product_id}/jobs/{job.id}/retry")

        assert response.status_code == 202
        assert response.json()["dispatch"] == "inline"
        # Background tasks finish before the test client returns
        stored = asyncio.run(repository.get_job(job.id))
        assert stored.status == JobStatus.COMPLETED
        assert stored.completed_count == 2

    def test_retry_rejects_wrong_product(self, test_client: TestClient, create_job, repository):
        job = create_job()
        asyncio.run(repository.fail_job(job.id, "boom"))

        response = test_client.post(f"/api/v1/products/{uuid4()}/jobs/{job.id}/retry")

        assert response.status_code == 404

    def test_retry_rejects_active_job(self, test_client: TestClient, create_job):
        job = create_job()

        response = test_client.post(f"/api/v1/products/{job.product_id}/jobs/{job.id}/retry")

        assert response.status_code == 400
        assert "not retryable" in response.json()["detail"]

    def test_cancel(self, test_client: TestClient, create_job):
        job = create_job()

        first = test_client.post(f"/api/v1/jobs/{job.id}/cancel")
        second = test_client.post(f"/api/v1/jobs/{job.id}/cancel")

        assert first.status_code == 200
        assert first.json() == {"job_id": str(job.id), "status": "cancelled"}
        assert second.status_code == 409
        assert second.json()["detail"] == "Job is already cancelled"

    def test_cancel_unknown_job(self, test_client: TestClient):
        assert test_client.post(f"/api/v1/jobs/{uuid4()}/cancel").status_code == 404


class TestAdminRoutes:
    """Tests for the admin maintenance endpoints."""

    def test_requires_auth(self, test_client: TestClient):
        response = test_client.post("/api/v1/admin/compress-references")

        assert response.status_code == 401

    def test_empty_run(self, test_client: TestClient):
        response = test_client.post(
            "/api/v1/admin/compress-references", json={"limit": 5}, headers=AUTH
        )

        assert response.status_code == 200
        assert response.json() == {
            "total": 0,
            "compressed": 0,
            "skipped": 0,
            "errors": 0,
            "results": [],
        }

    def test_body_is_optional(self, test_client: TestClient):
        response = test_client.post("/api/v1/admin/compress-references", headers=AUTH)

        assert response.status_code == 200
