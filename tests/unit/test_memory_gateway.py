"""
Tests for the in-memory backup gateway.
"""

import asyncio

import pytest

from myiep.core.errors import AuthError, NetworkError
from myiep.gateway import InMemoryGateway


class TestInMemoryGateway:
    @pytest.mark.asyncio
    async def test_snapshot_round_trip(self):
        gateway = InMemoryGateway(clock=lambda: 5000)

        assert await gateway.get_snapshot_metadata() is None

        await gateway.upload_snapshot('{"students": []}')

        metadata = await gateway.get_snapshot_metadata()
        assert metadata.last_modified == 5000
        assert await gateway.download_snapshot() == '{"students": []}'
        assert gateway.snapshot_uploads == 1

    @pytest.mark.asyncio
    async def test_media_upload_and_soft_delete(self):
        gateway = InMemoryGateway()

        remote = await gateway.upload_media(b"x", "a.jpg", "image/jpeg")

        assert gateway.is_remote_reference(remote.reference)
        assert await gateway.delete_media(remote.reference) is True
        assert gateway.media[remote.remote_id].trashed is True
        assert await gateway.delete_media("memory://media/unknown") is False

    @pytest.mark.asyncio
    async def test_signed_out_raises_auth_error(self):
        gateway = InMemoryGateway(authenticated=False)

        with pytest.raises(AuthError):
            await gateway.download_snapshot()

        gateway.set_access_token("token")
        assert await gateway.download_snapshot() is None

    @pytest.mark.asyncio
    async def test_failure_injection(self):
        gateway = InMemoryGateway()
        gateway.fail("upload_snapshot", NetworkError("offline"), times=2)

        for _ in range(2):
            with pytest.raises(NetworkError):
                await gateway.upload_snapshot("{}")

        await gateway.upload_snapshot("{}")
        assert gateway.snapshot_uploads == 1

    @pytest.mark.asyncio
    async def test_snapshot_gate_holds_upload(self):
        gateway = InMemoryGateway()
        gateway.snapshot_gate = asyncio.Event()

        upload = asyncio.create_task(gateway.upload_snapshot("{}"))
        await asyncio.sleep(0.01)
        assert gateway.snapshot_uploads == 0

        gateway.snapshot_gate.set()
        await upload
        assert gateway.snapshot_uploads == 1
