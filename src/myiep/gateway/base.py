"""
Cloud Backup Gateway Contract

What the sync controller needs from a remote backup space:
- one named snapshot object (find, create-or-replace, download)
- a media namespace (upload, soft delete)

Every remote call fails with AuthError (re-login needed), NetworkError
(try again on the next trigger) or RemoteError (rejected; surface it).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class SnapshotMetadata:
    """Location and freshness of the remote backup object."""

    remote_id: str
    last_modified: int  # epoch ms


@dataclass(frozen=True)
class RemoteMedia:
    """Result of a media upload."""

    reference: str  # displayable URL
    remote_id: str


class CloudBackupGateway(ABC):
    """Abstract remote backup capability."""

    @abstractmethod
    def is_authenticated(self) -> bool:
        """Whether a usable session is present."""

    @abstractmethod
    def set_access_token(self, access_token: str) -> None:
        """Adopt a session obtained by the sign-in flow."""

    @abstractmethod
    def clear_session(self) -> None:
        """Forget the current session (after sign-out or an auth failure)."""

    @abstractmethod
    def is_remote_reference(self, reference: str) -> bool:
        """Whether a media reference already points at this remote."""

    @abstractmethod
    async def get_snapshot_metadata(self) -> SnapshotMetadata | None:
        """Locate the backup object; None if it does not exist yet."""

    @abstractmethod
    async def upload_snapshot(self, blob: str) -> None:
        """Create or replace the single backup object."""

    @abstractmethod
    async def download_snapshot(self) -> str | None:
        """Fetch the backup object's contents; None if absent."""

    @abstractmethod
    async def upload_media(self, data: bytes, name: str, mime_type: str) -> RemoteMedia:
        """Store a media file in the media namespace.

        Retrying after a failure may leave an orphaned duplicate remotely.
        """

    @abstractmethod
    async def delete_media(self, reference: str, *, remote_id: str | None = None) -> bool:
        """Move a media file to trash. Returns False if it cannot be identified."""
