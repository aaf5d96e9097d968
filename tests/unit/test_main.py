"""
Tests for application wiring and health endpoints.
"""

from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient

from myiep.gateway import GoogleDriveGateway, InMemoryGateway
from myiep.main import build_gateway, create_app


class TestCreateApp:
    @pytest.mark.asyncio
    async def test_root(self, tracker):
        transport = ASGITransport(app=create_app(tracker))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "MyIEP Tracker"

    @pytest.mark.asyncio
    async def test_health_with_tracker(self, tracker):
        transport = ASGITransport(app=create_app(tracker))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/health")

        assert response.status_code == 200
        checks = response.json()["checks"]
        assert checks["store"]["status"] == "healthy"
        assert checks["sync"]["state"] == "idle"
        assert checks["sync"]["authenticated"] is True

    @pytest.mark.asyncio
    async def test_health_without_tracker(self):
        """Test lifespan not run and nothing injected reports unhealthy."""
        transport = ASGITransport(app=create_app())
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            health = await client.get("/health")
            status = await client.get("/sync/status")

        assert health.status_code == 503
        assert health.json()["status"] == "unhealthy"
        assert status.status_code == 503


class TestBuildGateway:
    def test_in_memory_without_credentials(self):
        with patch("myiep.main.settings") as mock_settings:
            mock_settings.drive_configured = False
            gateway = build_gateway()

        assert isinstance(gateway, InMemoryGateway)
        assert gateway.is_authenticated() is False

    def test_drive_when_configured(self):
        with patch("myiep.main.settings") as mock_settings:
            mock_settings.drive_configured = True
            gateway = build_gateway()

        assert isinstance(gateway, GoogleDriveGateway)
