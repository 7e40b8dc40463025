"""Test the HTTP API with an in-memory container."""

import pytest
from fastapi.testclient import TestClient

from conftest import FakeHealthChecker

from rollout_engine.api.main import app
from rollout_engine.container import get_container


@pytest.fixture
def client(memory_container):
    app.dependency_overrides[get_container] = lambda: memory_container
    yield TestClient(app)
    app.dependency_overrides.clear()


def deployment_request(**overrides):
    body = {
        "profile": "single",
        "target": {
            "service_name": "api-gateway",
            "environment": "staging",
            "address": "https://api.example.com",
            "is_remote": True,
        },
    }
    body.update(overrides)
    return body


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestDeployments:
    """Test deployment endpoints."""

    def test_create_deployment(self, client, fake_backend):
        response = client.post("/deployments", json=deployment_request())

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "succeeded"
        assert data["profile"] == "single"
        assert data["summary"]["stats"]["completed"] == 6
        assert fake_backend.commands_containing(" deploy") == [
            ["npx", "wrangler", "deploy", "--env", "staging"]
        ]

    def test_unhealthy_deployment_rolls_back(self, client, memory_container):
        memory_container.health_checker = FakeHealthChecker(healthy=False)

        response = client.post("/deployments", json=deployment_request())

        assert response.status_code == 200
        assert response.json()["status"] == "rolled_back"
        assert "health check failed" in response.json()["error_message"]

    def test_resume_with_execution_id(self, client, fake_backend):
        first = client.post("/deployments", json=deployment_request(execution_id="exec-42")).json()

        second = client.post("/deployments", json=deployment_request(execution_id="exec-42")).json()

        assert first["status"] == second["status"] == "succeeded"
        assert second["summary"]["stats"]["restored"] == 6
        assert len(fake_backend.commands_containing(" deploy")) == 1

    def test_unknown_profile_rejected(self, client):
        response = client.post("/deployments", json=deployment_request(profile="galactic"))

        assert response.status_code == 422

    def test_empty_service_name_rejected(self, client):
        body = deployment_request()
        body["target"]["service_name"] = ""

        response = client.post("/deployments", json=body)

        assert response.status_code == 422


class TestRecovery:
    """Test recovery and checkpoint endpoints."""

    def test_recovery_state(self, client):
        client.post("/deployments", json=deployment_request(execution_id="exec-7"))

        response = client.get("/deployments/exec-7/recovery")

        assert response.status_code == 200
        data = response.json()
        assert data["last_completed_phase"] == "monitor"
        assert data["remaining_phases"] == []

    def test_recovery_state_of_unknown_execution(self, client):
        data = client.get("/deployments/never-ran/recovery").json()

        assert data["completed_phases"] == []
        assert len(data["remaining_phases"]) == 6

    def test_list_checkpoints(self, client):
        client.post("/deployments", json=deployment_request(execution_id="exec-8"))

        response = client.get("/deployments/exec-8/checkpoints")

        assert response.status_code == 200
        phases = [c["phase"] for c in response.json()]
        assert phases == ["initialize", "validate", "prepare", "deploy", "verify", "monitor"]
        assert all(len(c["checksum"]) == 64 for c in response.json())

    def test_list_checkpoints_missing(self, client):
        response = client.get("/deployments/never-ran/checkpoints")

        assert response.status_code == 404


class TestCapabilities:
    def test_report(self, client):
        response = client.get("/capabilities/report", params={"profile": "enterprise"})

        assert response.status_code == 200
        assert response.json()["total_enabled"] == 15

    def test_unknown_profile(self, client):
        response = client.get("/capabilities/report", params={"profile": "galactic"})

        assert response.status_code == 404
