"""
Tests for identifier generation.
"""

import uuid
from unittest.mock import patch

from myiep.core import ids
from myiep.core.ids import generate_id


class TestGenerateId:
    """Test UUID4 identifier generation."""

    def test_returns_canonical_uuid4(self):
        """Test IDs are lowercase canonical UUID4 strings."""
        value = generate_id()
        parsed = uuid.UUID(value)

        assert parsed.version == 4
        assert str(parsed) == value

    def test_ids_are_unique(self):
        """Test many IDs never collide."""
        assert len({generate_id() for _ in range(2000)}) == 2000

    def test_falls_back_without_csprng(self, caplog):
        """Test a pseudo-random UUID4 is produced when os.urandom is unavailable."""
        with (
            patch.object(ids, "_warned_fallback", False),
            patch("myiep.core.ids.os.urandom", side_effect=NotImplementedError),
        ):
            first = generate_id()
            second = generate_id()

        assert uuid.UUID(first).version == 4
        assert uuid.UUID(first).variant == uuid.RFC_4122
        assert first != second
        # Warned once, not per call
        assert sum("pseudo-random" in r.message for r in caplog.records) == 1
