"""
Google Drive Backup Gateway

Stores the backup snapshot and media attachments in the user's own Google
Drive via the Drive v3 REST API (drive.file scope).

- Snapshot: one JSON file with a fixed name; found by name then PATCHed,
  created only when missing so duplicates are never appended
- Media: files inside a lazily created folder
- Deletes move files to trash so the user can still recover them
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from datetime import datetime
from typing import Any

import httpx

from myiep.config import settings
from myiep.core.errors import AuthError, NetworkError, RemoteError

from .base import CloudBackupGateway, RemoteMedia, SnapshotMetadata

logger = logging.getLogger(__name__)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
THUMBNAIL_SIZE = "=s1200"

_TRANSIENT_403_REASONS = {"rateLimitExceeded", "userRateLimitExceeded"}
_REMOTE_HOST_MARKERS = ("googleusercontent.com", "drive.google.com", "docs.google.com")


def extract_file_id(reference: str) -> str | None:
    """Pull a Drive file ID out of any of the link shapes Drive hands back.

    Recognized:
    - thumbnail link with appended '#id=<id>'
    - '/d/<id>/...' view links
    - '?id=<id>' / '&id=<id>' download links
    """
    for pattern in (r"#id=([a-zA-Z0-9_-]+)", r"/d/([a-zA-Z0-9_-]+)", r"[?&]id=([a-zA-Z0-9_-]+)"):
        match = re.search(pattern, reference)
        if match:
            return match.group(1)
    return None


def _escape_query(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _parse_rfc3339_ms(value: str) -> int:
    return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp() * 1000)


def build_multipart_related(
    metadata: dict[str, Any], data: bytes, mime_type: str
) -> tuple[bytes, str]:
    """Build a multipart/related upload body.

    Returns:
        (body, content_type header value)
    """
    boundary = f"myiep-{uuid.uuid4().hex}"
    body = b"".join(
        [
            f"--{boundary}\r\n".encode(),
            b"Content-Type: application/json; charset=UTF-8\r\n\r\n",
            json.dumps(metadata).encode("utf-8"),
            f"\r\n--{boundary}\r\n".encode(),
            f"Content-Type: {mime_type}\r\n\r\n".encode(),
            data,
            f"\r\n--{boundary}--".encode(),
        ]
    )
    return body, f"multipart/related; boundary={boundary}"


class GoogleDriveGateway(CloudBackupGateway):
    """Drive v3 implementation of the backup gateway.

    The OAuth flow lives in the UI layer; this class only receives the
    resulting access token.
    """

    def __init__(
        self,
        *,
        access_token: str | None = None,
        backup_file_name: str = "my-iep-backup.json",
        media_folder_name: str = "MyIEP_Media",
        api_base_url: str = "https://www.googleapis.com/drive/v3",
        upload_base_url: str = "https://www.googleapis.com/upload/drive/v3",
        timeout: float | None = None,
    ):
        """Initialize Drive gateway.

        Args:
            access_token: OAuth access token (None until the user signs in)
            backup_file_name: Fixed name of the snapshot file
            media_folder_name: Folder holding uploaded attachments
            api_base_url: Drive metadata API base URL
            upload_base_url: Drive upload API base URL
            timeout: Per-request timeout in seconds; None keeps httpx's default
        """
        self.access_token = access_token
        self.backup_file_name = backup_file_name
        self.media_folder_name = media_folder_name
        self.api_base_url = api_base_url
        self.upload_base_url = upload_base_url
        self.timeout = timeout
        self._media_folder_id: str | None = None

    @classmethod
    def from_settings(cls, access_token: str | None = None) -> GoogleDriveGateway:
        """Create gateway from application settings."""
        return cls(
            access_token=access_token,
            backup_file_name=settings.BACKUP_FILE_NAME,
            media_folder_name=settings.MEDIA_FOLDER_NAME,
            api_base_url=settings.DRIVE_API_BASE_URL,
            upload_base_url=settings.DRIVE_UPLOAD_BASE_URL,
            timeout=settings.NETWORK_TIMEOUT_SECONDS,
        )

    # ========================================================================
    # SESSION
    # ========================================================================

    def set_access_token(self, access_token: str) -> None:
        self.access_token = access_token

    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    def clear_session(self) -> None:
        self.access_token = None
        self._media_folder_id = None

    def is_remote_reference(self, reference: str) -> bool:
        return any(marker in reference for marker in _REMOTE_HOST_MARKERS)

    # ========================================================================
    # SNAPSHOT
    # ========================================================================

    async def get_snapshot_metadata(self) -> SnapshotMetadata | None:
        """Find the backup file.

        Returns:
            SnapshotMetadata, or None if no backup exists yet
        """
        found = await self._find_file(self.backup_file_name)
        if found is None:
            return None

        return SnapshotMetadata(
            remote_id=found["id"],
            last_modified=_parse_rfc3339_ms(found["modifiedTime"]),
        )

    async def upload_snapshot(self, blob: str) -> None:
        """Replace the backup file, creating it the first time."""
        existing = await self._find_file(self.backup_file_name)
        metadata = {"name": self.backup_file_name, "mimeType": "application/json"}
        body, content_type = build_multipart_related(
            metadata, blob.encode("utf-8"), "application/json"
        )

        if existing is not None:
            url = f"{self.upload_base_url}/files/{existing['id']}"
            method = "PATCH"
        else:
            url = f"{self.upload_base_url}/files"
            method = "POST"

        await self._request(
            method,
            url,
            params={"uploadType": "multipart"},
            content=body,
            headers={"Content-Type": content_type},
        )
        logger.info(
            f"Backup uploaded ({len(blob)} bytes)",
            extra={"mode": "update" if existing else "create"},
        )

    async def download_snapshot(self) -> str | None:
        found = await self._find_file(self.backup_file_name)
        if found is None:
            return None

        response = await self._request(
            "GET", f"{self.api_base_url}/files/{found['id']}", params={"alt": "media"}
        )
        return response.text

    # ========================================================================
    # MEDIA
    # ========================================================================

    async def upload_media(self, data: bytes, name: str, mime_type: str) -> RemoteMedia:
        """Upload an attachment into the media folder.

        Images resolve to a large thumbnail link (directly embeddable) tagged
        with '#id=<fileId>'; anything else to its content/view link.
        """
        folder_id = await self._ensure_media_folder()
        metadata = {"name": name, "mimeType": mime_type, "parents": [folder_id]}
        body, content_type = build_multipart_related(metadata, data, mime_type)

        response = await self._request(
            "POST",
            f"{self.upload_base_url}/files",
            params={"uploadType": "multipart", "fields": "id"},
            content=body,
            headers={"Content-Type": content_type},
        )
        file_id: str = response.json()["id"]
        logger.info(f"Media uploaded: {name}", extra={"file_id": file_id, "bytes": len(data)})

        reference = await self._resolve_link(file_id, mime_type)
        return RemoteMedia(reference=reference, remote_id=file_id)

    async def delete_media(self, reference: str, *, remote_id: str | None = None) -> bool:
        """Move a media file to trash (recoverable by the user)."""
        file_id = remote_id or extract_file_id(reference)
        if not file_id:
            logger.warning("Cannot identify Drive file to delete", extra={"reference": reference})
            return False

        await self._request("PATCH", f"{self.api_base_url}/files/{file_id}", json={"trashed": True})
        logger.info(f"File {file_id} moved to trash")
        return True

    async def _resolve_link(self, file_id: str, mime_type: str) -> str:
        fallback = f"https://drive.google.com/file/d/{file_id}/view"
        try:
            response = await self._request(
                "GET",
                f"{self.api_base_url}/files/{file_id}",
                params={"fields": "webContentLink,thumbnailLink,webViewLink"},
            )
        except (NetworkError, RemoteError) as e:
            logger.warning(f"Failed to fetch link metadata, using view link: {e}")
            return fallback

        links = response.json()
        thumbnail = links.get("thumbnailLink")
        if mime_type.startswith("image/") and thumbnail:
            return f"{re.sub(r'=s[0-9]+', THUMBNAIL_SIZE, thumbnail)}#id={file_id}"

        return links.get("webContentLink") or links.get("webViewLink") or fallback

    async def _ensure_media_folder(self) -> str:
        if self._media_folder_id:
            return self._media_folder_id

        found = await self._find_file(self.media_folder_name, mime_type=FOLDER_MIME_TYPE)
        if found is not None:
            self._media_folder_id = found["id"]
        else:
            response = await self._request(
                "POST",
                f"{self.api_base_url}/files",
                params={"fields": "id"},
                json={"name": self.media_folder_name, "mimeType": FOLDER_MIME_TYPE},
            )
            self._media_folder_id = response.json()["id"]
            logger.info(f"Created media folder '{self.media_folder_name}'")

        return self._media_folder_id

    # ========================================================================
    # HTTP
    # ========================================================================

    async def _find_file(self, name: str, *, mime_type: str | None = None) -> dict[str, Any] | None:
        query = f"name = '{_escape_query(name)}' and trashed = false"
        if mime_type:
            query += f" and mimeType = '{mime_type}'"

        response = await self._request(
            "GET",
            f"{self.api_base_url}/files",
            params={"q": query, "fields": "files(id, name, modifiedTime)", "spaces": "drive"},
        )
        files = response.json().get("files") or []
        return files[0] if files else None

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send an authenticated request to the Drive API.

        Returns:
            Successful (2xx) response

        Raises:
            AuthError: No token, or the token was rejected
            NetworkError: Transport failure, rate limit or server error
            RemoteError: Any other rejection
        """
        if not self.access_token:
            raise AuthError("Not signed in to Google Drive")

        headers = {"Authorization": f"Bearer {self.access_token}", **kwargs.pop("headers", {})}
        client_kwargs: dict[str, Any] = {}
        if self.timeout is not None:
            client_kwargs["timeout"] = self.timeout

        try:
            async with httpx.AsyncClient(**client_kwargs) as client:
                response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"HTTP error calling Drive API: {e}")
            raise NetworkError(f"HTTP error: {e}") from e

        if 200 <= response.status_code < 300:
            return response

        message, reason = self._error_details(response)
        logger.error(
            f"Drive API error: {response.status_code} - {message}",
            extra={"method": method, "url": url, "reason": reason},
        )

        if response.status_code == 401:
            raise AuthError(f"Drive session rejected: {message}")
        if response.status_code == 403 and reason not in _TRANSIENT_403_REASONS:
            raise AuthError(f"Drive access denied: {message}")
        if response.status_code in (403, 429) or response.status_code >= 500:
            raise NetworkError(f"Drive temporarily unavailable ({response.status_code}): {message}")
        raise RemoteError(
            f"Drive API error ({response.status_code}): {message}",
            status_code=response.status_code,
        )

    @staticmethod
    def _error_details(response: httpx.Response) -> tuple[str, str | None]:
        try:
            error = response.json().get("error", {})
        except ValueError:
            return response.text[:200] or "Unknown error", None

        if not isinstance(error, dict):
            return str(error), None

        errors = error.get("errors") or [{}]
        return error.get("message", "Unknown error"), errors[0].get("reason")
