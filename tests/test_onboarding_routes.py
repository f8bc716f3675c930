"""
Tests for the onboarding HTTP API.

Tests covering:
1. Record start and progress reads
2. Versioned step saves and their status codes (200/400/404/409/422)
3. Consistency endpoints
4. Health endpoints
"""

from __future__ import annotations

import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from core.progress import OnboardingRepository, OnboardingService
from web.app import create_app
from web.onboarding_routes import get_onboarding_service


@pytest.fixture
def service():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield OnboardingService(OnboardingRepository(persist_path=str(Path(tmpdir) / "onboarding.json")))


@pytest.fixture
def client(service):
    app = create_app()
    app.dependency_overrides[get_onboarding_service] = lambda: service
    return TestClient(app)


@pytest.fixture
def record_id(client):
    response = client.post("/api/onboarding/start", json={"property_name": "Villa Serenity"})
    return response.json()["data"]["record_id"]


def save(client, record_id, step, data, version, **extra):
    body = {"data": data, "version": version, **extra}
    return client.patch(f"/api/onboarding/{record_id}/step/{step}", json=body)


class TestStartAndProgress:
    def test_start_returns_fresh_progress(self, client):
        response = client.post("/api/onboarding/start", json={"property_name": "Villa Serenity"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["record_id"].startswith("VILLA-")
        assert data["current_step"] == 1
        assert set(data["steps"]) == {str(step) for step in range(1, 11)}

    def test_start_requires_property_name(self, client):
        response = client.post("/api/onboarding/start", json={"property_name": ""})
        assert response.status_code == 422

    def test_progress(self, client, record_id):
        response = client.get(f"/api/onboarding/{record_id}/progress")
        assert response.status_code == 200
        assert response.json()["data"]["steps"]["1"]["version"] == 0

    def test_progress_unknown_record(self, client):
        response = client.get("/api/onboarding/VILLA-MISSING/progress")
        assert response.status_code == 404
        assert response.json()["success"] is False


class TestStepSave:
    def test_accepted_save_returns_new_version(self, client, record_id):
        response = save(client, record_id, 2, {"firstName": "Ayu"}, 0, operationId="1-2-abcd1234")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["version"] == 1
        assert body["data"]["steps"]["2"]["data"] == {"firstName": "Ayu"}

    def test_stale_version_is_409(self, client, record_id):
        save(client, record_id, 2, {"firstName": "Ayu"}, 0)
        response = save(client, record_id, 2, {"firstName": "Made"}, 0)

        assert response.status_code == 409
        body = response.json()
        assert body["expected_version"] == 0
        assert body["current_version"] == 1

    def test_invalid_payload_is_422_with_field_errors(self, client, record_id):
        response = save(client, record_id, 2, {"email": "not-an-email"}, 0)

        assert response.status_code == 422
        assert "email" in response.json()["errors"]

    def test_unknown_step_is_400(self, client, record_id):
        assert save(client, record_id, 11, {}, 0).status_code == 400

    def test_unknown_record_is_404(self, client):
        assert save(client, "VILLA-MISSING", 2, {}, 0).status_code == 404

    def test_completed_flag_advances_current_step(self, client, record_id):
        save(client, record_id, 1, {"address": "Jl. Pantai 1"}, 0, completed=True)
        progress = client.get(f"/api/onboarding/{record_id}/progress").json()["data"]

        assert progress["steps"]["1"]["status"] == "COMPLETED"
        assert progress["current_step"] == 2

    def test_progress_carries_data_completion(self, client, record_id):
        save(client, record_id, 7, {"staff": [{"name": "Ketut", "isActive": True}]}, 0)
        progress = client.get(f"/api/onboarding/{record_id}/progress").json()["data"]

        assert progress["steps"]["7"]["data_complete"] is True
        assert progress["steps"]["7"]["completed"] is False
        assert progress["steps"]["6"]["data_complete"] is False
        assert progress["completed_steps"] == [7]


class TestConsistencyEndpoints:
    def test_single_record(self, client, record_id):
        response = client.get(f"/api/onboarding/{record_id}/consistency")
        assert response.status_code == 200
        assert response.json()["data"]["record_id"] == record_id

    def test_unknown_record(self, client):
        assert client.get("/api/onboarding/VILLA-MISSING/consistency").status_code == 404

    def test_all_records(self, client, record_id):
        response = client.get("/api/onboarding/consistency")
        assert response.status_code == 200
        assert response.json()["data"]["summary"]["total_records"] == 1


class TestHealth:
    @pytest.mark.parametrize("path", ["/", "/health", "/api/health"])
    def test_health_endpoints(self, client, path):
        response = client.get(path)
        assert response.status_code == 200
        assert response.json()["status"] in ("ok", "healthy")
