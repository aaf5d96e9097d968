"""
Tests for remote media file naming.
"""

from datetime import UTC, datetime

import pytest

from myiep.media.naming import build_media_filename, extension_for

# 2024-03-15 10:00 UTC
TIMESTAMP = int(datetime(2024, 3, 15, 10, 0, tzinfo=UTC).timestamp() * 1000)


class TestBuildMediaFilename:
    def test_date_student_original(self):
        assert (
            build_media_filename(TIMESTAMP, "Minjun Kim", "photo.jpg", "image/jpeg")
            == "20240315_Minjun Kim_photo.jpg"
        )

    def test_missing_student_uses_label(self):
        assert build_media_filename(TIMESTAMP, None, "clip.mp4", "video/mp4") == (
            "20240315_student_clip.mp4"
        )

    def test_extension_from_mime_when_missing(self):
        assert build_media_filename(TIMESTAMP, "Kim", "camera", "image/jpeg") == (
            "20240315_Kim_camera.jpg"
        )

    def test_camera_style_name_still_prefixed(self):
        """Test a dated camera file name keeps the date and student prefix."""
        name = build_media_filename(
            TIMESTAMP, "Ava Park", "20240315_143022_001.jpg", "image/jpeg"
        )
        assert name == "20240315_Ava Park_20240315_143022_001.jpg"

    def test_path_separators_sanitized(self):
        name = build_media_filename(TIMESTAMP, "A/B", "x\\y.jpg", "image/jpeg")
        assert "/" not in name
        assert "\\" not in name


class TestExtensionFor:
    @pytest.mark.parametrize(
        "mime,ext",
        [
            ("image/jpeg", "jpg"),
            ("video/quicktime", "mov"),
            ("video/mp4", "mp4"),
            ("image/png", "png"),
            (None, "jpg"),
        ],
    )
    def test_known_types(self, mime, ext):
        assert extension_for(mime) == ext
