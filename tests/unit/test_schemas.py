"""
Tests for entity schemas and the legacy log shape.
"""

import pytest
from pydantic import ValidationError

from myiep.core.schemas import (
    Goal,
    GoalStatus,
    MediaAttachment,
    MediaState,
    ObservationLog,
    PromptLevel,
    Snapshot,
    Student,
    infer_media_state,
)


class TestMediaState:
    @pytest.mark.parametrize(
        "reference,state",
        [
            ("blob:myiep/abc#filename=a.jpg", MediaState.EPHEMERAL),
            ("data:image/png;base64,AAAA", MediaState.DURABLE_LOCAL),
            ("file:///tmp/a.jpg", MediaState.DURABLE_LOCAL),
            ("https://lh3.googleusercontent.com/x=s1200#id=abc", MediaState.REMOTE),
        ],
    )
    def test_infer_from_reference(self, reference, state):
        assert infer_media_state(reference) == state

    def test_pending_upload(self):
        ephemeral = MediaAttachment.from_reference("blob:myiep/abc")
        remote = MediaAttachment.from_reference("https://drive.google.com/file/d/abc/view")

        assert ephemeral.is_pending_upload is True
        assert remote.is_pending_upload is False

    def test_from_reference_reads_embedded_filename(self):
        media = MediaAttachment.from_reference("blob:http://x/1#filename=20240101_Kim_a%20b.jpg")
        assert media.filename == "20240101_Kim_a b.jpg"


class TestObservationLogLegacyShape:
    def test_value_derived_from_accuracy(self):
        """Test legacy records without value read their accuracy."""
        log = ObservationLog.model_validate(
            {
                "id": "l1",
                "goal_id": "g1",
                "accuracy": 80,
                "promptLevel": "verbal",
                "timestamp": 1,
            }
        )

        assert log.value == 80
        assert log.prompt_level == PromptLevel.VERBAL
        assert log.measurement_type == "accuracy"
        assert "accuracy" not in log.model_dump()

    def test_value_wins_over_accuracy(self):
        log = ObservationLog.model_validate(
            {
                "id": "l1",
                "goal_id": "g1",
                "value": 55,
                "accuracy": 80,
                "prompt_level": "verbal",
                "timestamp": 1,
            }
        )
        assert log.value == 55

    def test_media_uri_lifted_to_attachment(self):
        log = ObservationLog.model_validate(
            {
                "id": "l1",
                "goal_id": "g1",
                "value": 50,
                "prompt_level": "gesture",
                "timestamp": 1,
                "media_uri": "https://lh3.googleusercontent.com/abc=s1200#id=FILE1",
                "mediaType": "image/jpeg",
            }
        )

        assert log.media is not None
        assert log.media.state == MediaState.REMOTE
        assert log.media.mime_type == "image/jpeg"

    def test_value_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            ObservationLog(id="l1", goal_id="g1", value=101, prompt_level="verbal", timestamp=1)


class TestCollections:
    def test_goal_defaults_for_missing_status_and_icon(self):
        goal = Goal.model_validate({"id": "g", "student_id": "s", "title": "t", "status": None})

        assert goal.status == GoalStatus.IN_PROGRESS
        assert goal.icon == "target"

    def test_student_accepts_legacy_photo_uri(self):
        student = Student.model_validate({"id": "1", "name": "A", "photo_uri": "https://x/a.png"})
        assert student.photo_reference == "https://x/a.png"

    def test_snapshot_sections_optional(self):
        snapshot = Snapshot.model_validate({"students": []})

        assert snapshot.students == []
        assert snapshot.goals is None
        assert snapshot.logs is None
