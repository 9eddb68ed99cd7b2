"""
Smoke tests for the main blueprint routes.

These verify that the application starts up correctly and the
dashboard and health check endpoints respond.
"""


class TestHealthCheck:
    """Tests for the health check endpoint."""

    def test_health_check_reports_database(self, client):
        """The health check needs no token and reports the database."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json() == {"status": "healthy", "database": "connected"}


class TestDashboard:
    """Tests for the dashboard summary."""

    def test_requires_token(self, client):
        response = client.get("/api/dashboard")
        assert response.status_code == 401
        assert response.get_json() == {"error": "Authentication required"}

    def test_viewer_can_read(self, client, viewer_headers):
        response = client.get("/api/dashboard", headers=viewer_headers)
        assert response.status_code == 200
        body = response.get_json()
        assert body["totals"]["assets"] == 0
        assert body["activeSession"] is None


class TestUploads:
    def test_requires_token(self, client):
        assert client.get("/uploads/photo.jpg").status_code == 401
