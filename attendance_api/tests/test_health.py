"""
Tests for health and version endpoints
"""
from fastapi import status


def test_health_endpoint(client):
    """Test health endpoint returns correct response"""
    response = client.get("/api/v1/health")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()

    assert data["status"] == "ok"
    assert data["service"] == "attendance-api"


def test_version_endpoint_accessible_without_auth(client):
    response = client.get("/api/v1/version")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["service"] == "attendance-api"
    assert "version" in data
    assert data["env"] in ["local", "staging", "prod"]
