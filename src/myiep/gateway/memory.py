"""
In-Memory Backup Gateway

A complete in-process implementation of the gateway contract. Used when no
Drive credentials are configured ("simulated cloud") and by the test suite.

Failures can be injected per operation to exercise the sync error paths.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass

from myiep.core.clock import now_ms
from myiep.core.errors import AuthError, MyIEPError

from .base import CloudBackupGateway, RemoteMedia, SnapshotMetadata

logger = logging.getLogger(__name__)

REFERENCE_PREFIX = "memory://media/"
SNAPSHOT_ID = "memory-snapshot"


@dataclass
class StoredMedia:
    name: str
    mime_type: str
    data: bytes
    trashed: bool = False


class InMemoryGateway(CloudBackupGateway):
    """Gateway that keeps the "remote" side in process memory."""

    def __init__(self, *, authenticated: bool = True, clock: Callable[[], int] = now_ms):
        """Initialize in-memory gateway.

        Args:
            authenticated: Start with a usable session
            clock: Epoch-ms clock stamped on snapshot writes
        """
        self.authenticated = authenticated
        self.clock = clock

        self.snapshot: str | None = None
        self.snapshot_modified: int = 0
        self.media: dict[str, StoredMedia] = {}

        self.snapshot_uploads = 0
        self.media_uploads = 0

        # Set to a cleared Event to hold uploads until it is set
        self.media_gate: asyncio.Event | None = None
        self.snapshot_gate: asyncio.Event | None = None

        self._failures: dict[str, list[MyIEPError]] = defaultdict(list)
        self._next_id = 0

    # ========================================================================
    # TEST HOOKS
    # ========================================================================

    def fail(self, operation: str, error: MyIEPError, times: int = 1) -> None:
        """Make the next `times` calls of an operation raise `error`.

        Args:
            operation: Gateway method name (e.g., 'upload_snapshot')
            error: Exception to raise
            times: Number of consecutive calls to fail
        """
        self._failures[operation].extend([error] * times)

    def set_remote_snapshot(self, blob: str, modified: int) -> None:
        """Simulate another device having written a backup."""
        self.snapshot = blob
        self.snapshot_modified = modified

    def _check(self, operation: str) -> None:
        if not self.authenticated:
            raise AuthError("Not signed in")
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    # ========================================================================
    # CONTRACT
    # ========================================================================

    def set_access_token(self, access_token: str) -> None:
        self.authenticated = bool(access_token)

    def is_authenticated(self) -> bool:
        return self.authenticated

    def clear_session(self) -> None:
        self.authenticated = False

    def is_remote_reference(self, reference: str) -> bool:
        return reference.startswith(REFERENCE_PREFIX)

    async def get_snapshot_metadata(self) -> SnapshotMetadata | None:
        self._check("get_snapshot_metadata")
        if self.snapshot is None:
            return None
        return SnapshotMetadata(remote_id=SNAPSHOT_ID, last_modified=self.snapshot_modified)

    async def upload_snapshot(self, blob: str) -> None:
        if self.snapshot_gate is not None:
            await self.snapshot_gate.wait()
        self._check("upload_snapshot")
        self.snapshot = blob
        self.snapshot_modified = self.clock()
        self.snapshot_uploads += 1
        logger.debug(f"Snapshot stored in memory ({len(blob)} bytes)")

    async def download_snapshot(self) -> str | None:
        self._check("download_snapshot")
        return self.snapshot

    async def upload_media(self, data: bytes, name: str, mime_type: str) -> RemoteMedia:
        if self.media_gate is not None:
            await self.media_gate.wait()
        self._check("upload_media")

        self._next_id += 1
        file_id = f"m{self._next_id}"
        self.media[file_id] = StoredMedia(name=name, mime_type=mime_type, data=data)
        self.media_uploads += 1
        return RemoteMedia(reference=f"{REFERENCE_PREFIX}{file_id}", remote_id=file_id)

    async def delete_media(self, reference: str, *, remote_id: str | None = None) -> bool:
        self._check("delete_media")
        file_id = remote_id
        if file_id is None and reference.startswith(REFERENCE_PREFIX):
            file_id = reference[len(REFERENCE_PREFIX) :]

        stored = self.media.get(file_id) if file_id else None
        if stored is None:
            return False
        stored.trashed = True
        return True
