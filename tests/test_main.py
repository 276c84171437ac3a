"""
Test suite for the application entry point.

Run all tests:
    pytest tests/test_main.py -v
"""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from app.main import app


class TestRoutes:

    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        body = response.json()
        assert body["documentations"]["swagger"].endswith("/docs")

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["checks"] == {"database": "ok"}

    @pytest.mark.asyncio
    async def test_health_degraded_database(self, client):
        """Test a failing database turns the health check into a 503."""
        with patch(
            "sqlalchemy.ext.asyncio.AsyncSession.execute",
            new=AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("down"))),
        ):
            response = await client.get("/health")

        assert response.status_code == 503

    def test_routers_mounted(self):
        paths = {route.path for route in app.routes}

        assert "/auth/register" in paths
        assert "/auth/register/verify" in paths
        assert "/sessions/{session_id}" in paths
        assert "/admin/users/{user_id}/force-logout" in paths
