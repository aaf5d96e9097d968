"""
Attachment staging and remote naming.
"""

from .naming import build_media_filename, extension_for
from .staging import MediaStaging, StagedMedia, decode_data_url, parse_ephemeral_reference

__all__ = [
    "MediaStaging",
    "StagedMedia",
    "parse_ephemeral_reference",
    "decode_data_url",
    "build_media_filename",
    "extension_for",
]
