"""
Media Staging

Makes an attached photo/video displayable the instant it is attached,
before any upload happens.

An attachment starts as an ephemeral 'blob:' reference into a process-local
registry. The reference string carries its own filename and MIME type so it
can be turned back into an upload even where only the string was kept.
Ephemeral references do not survive a restart; resolving one afterwards
yields None ("media missing"), never an error.
"""

from __future__ import annotations

import base64
import binascii
import logging
import mimetypes
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote, unquote, urlparse
from urllib.request import url2pathname

from myiep.config import settings
from myiep.core.ids import generate_id
from myiep.core.schemas import MediaAttachment, MediaState, filename_from_reference

logger = logging.getLogger(__name__)

EPHEMERAL_SCHEME = "blob:myiep/"
DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class StagedMedia:
    """Attachment bytes plus the metadata needed to upload them."""

    data: bytes
    filename: str
    mime_type: str


def parse_ephemeral_reference(reference: str) -> tuple[str, str | None, str | None]:
    """Split an ephemeral reference into (token, filename, mime_type).

    Raises:
        ValueError: If the reference is not an ephemeral staging reference
    """
    if not reference.startswith(EPHEMERAL_SCHEME):
        raise ValueError(f"Not an ephemeral media reference: {reference[:40]}")

    body, _, fragment = reference[len(EPHEMERAL_SCHEME) :].partition("#")
    params: dict[str, str] = {}
    for pair in fragment.split("&") if fragment else []:
        key, _, value = pair.partition("=")
        params[key] = unquote(value)

    return body, params.get("filename") or None, params.get("type") or None


def decode_data_url(reference: str) -> tuple[bytes, str] | None:
    """Decode a base64 'data:' URL into (bytes, mime_type)."""
    header, sep, payload = reference.partition(",")
    if not sep or not header.startswith("data:") or ";base64" not in header:
        return None

    mime_type = header[len("data:") :].split(";", 1)[0] or DEFAULT_MIME_TYPE
    try:
        return base64.b64decode(payload, validate=True), mime_type
    except (binascii.Error, ValueError):
        return None


class MediaStaging:
    """Process-local registry of attachments awaiting upload."""

    def __init__(self, *, max_inline_bytes: int | None = None):
        """Initialize media staging.

        Args:
            max_inline_bytes: Largest attachment converted to a data: URL
                              (defaults to settings.MAX_INLINE_MEDIA_BYTES)
        """
        self.max_inline_bytes = (
            max_inline_bytes if max_inline_bytes is not None else settings.MAX_INLINE_MEDIA_BYTES
        )
        self._blobs: dict[str, StagedMedia] = {}

    def __len__(self) -> int:
        return len(self._blobs)

    def stage(self, data: bytes, filename: str, mime_type: str | None = None) -> MediaAttachment:
        """Register attachment bytes and return an ephemeral attachment.

        Args:
            data: File contents
            filename: Name the user attached (used later for the remote name)
            mime_type: MIME type (guessed from filename if omitted)

        Returns:
            MediaAttachment in EPHEMERAL state
        """
        mime = mime_type or mimetypes.guess_type(filename)[0] or DEFAULT_MIME_TYPE
        token = generate_id()
        reference = (
            f"{EPHEMERAL_SCHEME}{token}"
            f"#filename={quote(filename, safe='')}&type={quote(mime, safe='')}"
        )
        self._blobs[token] = StagedMedia(data=data, filename=filename, mime_type=mime)

        logger.debug(f"Staged {len(data)} bytes as {token}", extra={"mime_type": mime})
        return MediaAttachment(
            reference=reference,
            filename=filename,
            mime_type=mime,
            state=MediaState.EPHEMERAL,
        )

    def release(self, reference: str) -> bool:
        """Drop a staged attachment once nothing displays it.

        Returns:
            True if something was released; releasing twice is a no-op
        """
        try:
            token, _, _ = parse_ephemeral_reference(reference)
        except ValueError:
            return False
        return self._blobs.pop(token, None) is not None

    @contextmanager
    def preview(
        self, data: bytes, filename: str, mime_type: str | None = None
    ) -> Iterator[MediaAttachment]:
        """Stage an attachment for the lifetime of a with-block."""
        media = self.stage(data, filename, mime_type)
        try:
            yield media
        finally:
            self.release(media.reference)

    def is_staged(self, reference: str) -> bool:
        try:
            token, _, _ = parse_ephemeral_reference(reference)
        except ValueError:
            return False
        return token in self._blobs

    def resolve(self, media: MediaAttachment | str) -> StagedMedia | None:
        """Turn a local reference back into bytes and metadata.

        Handles ephemeral 'blob:' references, base64 'data:' URLs and
        'file://' paths.

        Returns:
            StagedMedia, or None if the media no longer exists locally
        """
        if isinstance(media, str):
            media = MediaAttachment.from_reference(media)

        reference = media.reference

        if reference.startswith(EPHEMERAL_SCHEME):
            token, embedded_name, embedded_type = parse_ephemeral_reference(reference)
            staged = self._blobs.get(token)
            if staged is None:
                return None
            return StagedMedia(
                data=staged.data,
                filename=media.filename or embedded_name or staged.filename,
                mime_type=media.mime_type or embedded_type or staged.mime_type,
            )

        filename = media.filename or filename_from_reference(reference)

        if reference.startswith("data:"):
            decoded = decode_data_url(reference)
            if decoded is None:
                logger.warning("Unreadable data: URL attachment")
                return None
            data, mime_type = decoded
            return StagedMedia(
                data=data,
                filename=filename or "file",
                mime_type=media.mime_type or mime_type,
            )

        if reference.startswith("file:"):
            path = Path(url2pathname(urlparse(reference).path))
            if not path.is_file():
                return None
            return StagedMedia(
                data=path.read_bytes(),
                filename=filename or path.name,
                mime_type=media.mime_type
                or mimetypes.guess_type(path.name)[0]
                or DEFAULT_MIME_TYPE,
            )

        return None

    def to_durable(self, media: MediaAttachment) -> MediaAttachment | None:
        """Convert a staged attachment into a restart-safe data: URL.

        Returns:
            DURABLE_LOCAL attachment, or None if the bytes are gone or too large
        """
        staged = self.resolve(media)
        if staged is None:
            return None

        if len(staged.data) > self.max_inline_bytes:
            logger.warning(
                f"Attachment too large for local storage ({len(staged.data)} bytes)",
                extra={"filename": staged.filename},
            )
            return None

        encoded = base64.b64encode(staged.data).decode("ascii")
        return MediaAttachment(
            reference=f"data:{staged.mime_type};base64,{encoded}",
            filename=staged.filename,
            mime_type=staged.mime_type,
            state=MediaState.DURABLE_LOCAL,
        )
