"""
Tests for Sync API Endpoints

Session hand-over, explicit sync actions and environment events.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from myiep.core.clock import now_ms
from myiep.main import create_app


@pytest.fixture
async def client(tracker) -> AsyncClient:
    """Create test client around the fixture tracker."""
    transport = ASGITransport(app=create_app(tracker))
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class TestSession:
    @pytest.mark.asyncio
    async def test_open_session_pushes_local_data(self, client, gateway):
        gateway.clear_session()

        response = await client.put("/session", json={"access_token": "ya29.token"})

        assert response.status_code == 200
        data = response.json()
        assert data["authenticated"] is True
        assert data["state"] == "saved"
        assert gateway.snapshot_uploads == 1

    @pytest.mark.asyncio
    async def test_open_session_with_newer_remote(self, client, gateway):
        gateway.clear_session()
        gateway.set_remote_snapshot("{}", now_ms())

        response = await client.put("/session", json={"access_token": "ya29.token"})

        assert response.json()["state"] == "remote_ahead"
        assert gateway.snapshot_uploads == 0

    @pytest.mark.asyncio
    async def test_empty_token_rejected(self, client):
        response = await client.put("/session", json={"access_token": ""})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_close_session(self, client, gateway):
        response = await client.delete("/session")

        assert response.status_code == 204
        assert gateway.is_authenticated() is False


class TestSyncActions:
    @pytest.mark.asyncio
    async def test_status(self, client):
        response = await client.get("/sync/status")

        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "idle"
        assert data["online"] is True
        assert data["uploading"] == []
        assert data["has_unsynced_changes"] is False

    @pytest.mark.asyncio
    async def test_sync_now(self, client, gateway):
        response = await client.post("/sync/now")

        assert response.json()["performed"] is True
        assert response.json()["status"]["last_sync_time"] > 0
        assert gateway.snapshot is not None

    @pytest.mark.asyncio
    async def test_conflict_resolution_keep_local(self, client, gateway):
        gateway.set_remote_snapshot("{}", now_ms())

        check = await client.post("/sync/check")
        blocked = await client.post("/sync/now")
        kept = await client.post("/sync/keep-local")

        assert check.json()["performed"] is True
        assert check.json()["status"]["state"] == "remote_ahead"
        assert blocked.json()["performed"] is False
        assert kept.json()["performed"] is True
        assert kept.json()["status"]["state"] == "saved"

    @pytest.mark.asyncio
    async def test_conflict_resolution_restore(self, client, store, gateway):
        await store.get_students()
        gateway.set_remote_snapshot('{"students": []}', now_ms())

        await client.post("/sync/check")
        response = await client.post("/sync/restore")

        assert response.json()["performed"] is True
        assert response.json()["status"]["state"] == "idle"
        assert await store.get_students() == []


class TestEnvironmentEvents:
    @pytest.mark.asyncio
    async def test_connectivity(self, client, tracker, gateway):
        offline = await client.post("/connectivity", json={"online": False})
        tracker.sync.mark_dirty()
        online = await client.post("/connectivity", json={"online": True})

        assert offline.json()["online"] is False
        assert online.json()["online"] is True
        assert gateway.snapshot_uploads == 1

    @pytest.mark.asyncio
    async def test_foreground_detects_newer_remote(self, client, gateway):
        gateway.set_remote_snapshot("{}", now_ms())

        response = await client.post("/lifecycle/foreground")

        assert response.json()["state"] == "remote_ahead"
