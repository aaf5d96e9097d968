"""
Remote media file naming.

Uploaded attachments are named so a person browsing the Drive folder can
tell what they are without opening the app:

    <YYYYMMDD>_<student name>_<original file name>
"""

from __future__ import annotations

import mimetypes
import re

from myiep.core.clock import date_stamp

DEFAULT_STUDENT_LABEL = "student"
DEFAULT_ORIGINAL_NAME = "file"

_EXTENSION_OVERRIDES = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "video/quicktime": "mov",
}
_UNSAFE_CHARS = re.compile(r"[\\/\x00-\x1f]")


def _sanitize(part: str | None) -> str:
    if not part:
        return ""
    return _UNSAFE_CHARS.sub("_", part).strip()


def extension_for(mime_type: str | None) -> str:
    """File extension (without dot) for a MIME type."""
    if not mime_type:
        return "jpg"
    if mime_type in _EXTENSION_OVERRIDES:
        return _EXTENSION_OVERRIDES[mime_type]
    if mime_type.startswith("video/"):
        return "mp4" if mime_type == "video/mp4" else mime_type.split("/", 1)[1]

    guessed = mimetypes.guess_extension(mime_type)
    if guessed:
        return guessed.lstrip(".")
    return mime_type.split("/", 1)[-1] or "jpg"


def build_media_filename(
    timestamp_ms: int,
    student_name: str | None,
    original_name: str | None,
    mime_type: str | None,
) -> str:
    """Build the remote file name for an attachment.

    Args:
        timestamp_ms: Log timestamp (epoch ms); the date part is UTC
        student_name: Owning student's name, or None if the student/goal is gone
        original_name: File name the user attached
        mime_type: Attachment MIME type, used when the name has no extension

    Returns:
        File name such as '20240315_Minjun Kim_photo.jpg'
    """
    original = _sanitize(original_name)
    label = _sanitize(student_name) or DEFAULT_STUDENT_LABEL
    name = f"{date_stamp(timestamp_ms)}_{label}_{original or DEFAULT_ORIGINAL_NAME}"

    if "." not in (original or ""):
        name = f"{name}.{extension_for(mime_type)}"

    return name
