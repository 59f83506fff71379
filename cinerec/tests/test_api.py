"""Tests for the HTTP surface."""

import dataclasses
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from cinerec import main
from cinerec.core.contracts import BatchSummary
from cinerec.jobs import JobStatus

AUTH = {"Authorization": "Bearer test-admin-token"}
TRIGGER_PATH = "/api/v1/predlogi/admin/trigger-job"


@pytest.fixture
async def client():
    transport = httpx.ASGITransport(app=main.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.mark.anyio
@pytest.mark.parametrize("path", ["/healthcheck", "/health"])
async def test_health(client, path):
    response = await client.get(path)

    assert response.status_code == 200
    assert response.json() == {"ok": True}


@pytest.mark.anyio
async def test_old_trigger_path_is_gone(client):
    response = await client.post("/admin/recommendations/trigger", headers=AUTH)
    assert response.status_code == 404


@pytest.mark.anyio
async def test_trigger_accepts_and_runs_in_background(client):
    summary = BatchSummary(started_at=datetime.now(timezone.utc), total=2, succeeded=2)
    job = AsyncMock(return_value=summary)

    with patch("cinerec.main.run_recommendation_job", job):
        response = await client.post(TRIGGER_PATH, headers=AUTH)

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "processing"
        assert body["message"] == "Recommendation job triggered successfully"

        handle = main.job_runner.get(body["job_id"])
        assert handle is not None
        await handle.wait()

    job.assert_awaited_once_with(main.config, main.session_factory)
    assert handle.status is JobStatus.SUCCEEDED
    assert handle.result is summary


@pytest.mark.anyio
async def test_trigger_failure_is_recorded_on_the_handle(client):
    job = AsyncMock(side_effect=RuntimeError("identity service down"))

    with patch("cinerec.main.run_recommendation_job", job):
        response = await client.post(
            TRIGGER_PATH,
            headers={"Authorization": "test-admin-token"},
        )
        assert response.status_code == 202

        handle = main.job_runner.get(response.json()["job_id"])
        await handle.wait()

    assert handle.status is JobStatus.FAILED
    assert "identity service down" in handle.error


@pytest.mark.anyio
async def test_trigger_requires_authorization(client):
    response = await client.post(TRIGGER_PATH)
    assert response.status_code == 401


@pytest.mark.anyio
async def test_trigger_rejects_wrong_token(client):
    response = await client.post(
        TRIGGER_PATH, headers={"Authorization": "Bearer nope"}
    )
    assert response.status_code == 403


@pytest.mark.anyio
async def test_trigger_unavailable_without_admin_token(client):
    unconfigured = dataclasses.replace(main.config, admin_token=None)

    with patch("cinerec.main.config", unconfigured):
        response = await client.post(TRIGGER_PATH, headers=AUTH)

    assert response.status_code == 503
