"""
Tests for the health endpoints.
"""


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["service"] == "session-api"

    def test_detailed_health(self, client):
        """Should report the database as a dependency."""
        response = client.get("/api/health/detailed")

        assert response.status_code == 200
        assert response.json()["dependencies"]["database"]["status"] == "healthy"
        assert "redis" not in response.json()["dependencies"]

    def test_correlation_id_is_echoed(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "abc-123"})

        assert response.headers["X-Request-ID"] == "abc-123"

    def test_unsafe_request_id_is_replaced(self, client):
        """Should not echo a request id with unexpected characters."""
        response = client.get("/api/health", headers={"X-Request-ID": "bad id\twith spaces"})

        assert response.headers["X-Request-ID"] != "bad id\twith spaces"
        assert len(response.headers["X-Request-ID"]) == 32
