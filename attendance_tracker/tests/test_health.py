"""
Tests for health endpoint
"""
from attendance_tracker.constants import SERVICE_NAME


def test_health_endpoint(client):
    """Health endpoint returns correct response"""
    response = client.get("/api/v1/health")

    assert response.status_code == 200
    data = response.json()

    assert data["status"] == "ok"
    assert data["service"] == SERVICE_NAME
