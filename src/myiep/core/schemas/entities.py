"""
Entity Pydantic Schemas

Canonical in-memory shapes for students, goals, observation logs,
assessments and the backup snapshot. These are what the record store
returns and what the backup JSON contains.
"""

from __future__ import annotations

from enum import Enum
from typing import Any
from urllib.parse import unquote

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

DEFAULT_GOAL_ICON = "target"

EPHEMERAL_PREFIXES = ("blob:",)
DURABLE_LOCAL_PREFIXES = ("data:", "file:", "content:", "capacitor:")


class GoalStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"


class PromptLevel(str, Enum):
    INDEPENDENT = "independent"
    VERBAL = "verbal"
    GESTURE = "gesture"
    MODELING = "modeling"
    PHYSICAL = "physical"


class MediaState(str, Enum):
    """Lifecycle of an attachment reference."""

    EPHEMERAL = "ephemeral"  # process-local handle, gone after restart
    DURABLE_LOCAL = "durable_local"  # data:/file: reference, survives restart
    REMOTE = "remote"  # resolvable cloud reference
    MISSING = "missing"  # ephemeral handle outlived its process


class WidgetType(str, Enum):
    TRACKER = "tracker"
    STUDENTS = "students"
    REPORTS = "reports"


def infer_media_state(reference: str) -> MediaState:
    """Classify a bare reference string by its shape."""
    if reference.startswith(EPHEMERAL_PREFIXES):
        return MediaState.EPHEMERAL
    if reference.startswith(DURABLE_LOCAL_PREFIXES):
        return MediaState.DURABLE_LOCAL
    return MediaState.REMOTE


def filename_from_reference(reference: str) -> str | None:
    """Extract a '#filename=' fragment embedded in a legacy reference."""
    if "#filename=" not in reference:
        return None
    fragment = reference.split("#filename=", 1)[1]
    return unquote(fragment.split("&", 1)[0]) or None


class MediaAttachment(BaseModel):
    """Structured attachment metadata stored alongside a log."""

    model_config = ConfigDict(from_attributes=True)

    reference: str
    filename: str | None = None
    mime_type: str | None = None
    state: MediaState
    remote_id: str | None = None

    @property
    def is_pending_upload(self) -> bool:
        return self.state in (MediaState.EPHEMERAL, MediaState.DURABLE_LOCAL)

    @classmethod
    def from_reference(cls, reference: str, mime_type: str | None = None) -> MediaAttachment:
        """Lift a legacy bare reference string into a structured attachment."""
        return cls(
            reference=reference,
            filename=filename_from_reference(reference),
            mime_type=mime_type,
            state=infer_media_state(reference),
        )


class Student(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    name: str
    photo_reference: str | None = Field(
        default=None, validation_alias=AliasChoices("photo_reference", "photo_uri")
    )


class Goal(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    student_id: str
    title: str
    description: str | None = None
    icon: str = DEFAULT_GOAL_ICON
    status: GoalStatus = GoalStatus.IN_PROGRESS

    @model_validator(mode="before")
    @classmethod
    def fill_legacy_defaults(cls, data: Any) -> Any:
        """Older goals were stored without status/icon (or with null)."""
        if isinstance(data, dict):
            data = dict(data)
            if not data.get("status"):
                data["status"] = GoalStatus.IN_PROGRESS
            if not data.get("icon"):
                data["icon"] = DEFAULT_GOAL_ICON
        return data


class ObservationLog(BaseModel):
    """One recorded trial against a goal."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    goal_id: str
    measurement_type: str = "accuracy"
    value: float = Field(ge=0, le=100)
    prompt_level: PromptLevel
    timestamp: int
    notes: str | None = None
    media: MediaAttachment | None = None

    @model_validator(mode="before")
    @classmethod
    def normalize_legacy_fields(cls, data: Any) -> Any:
        """Accept the older camelCase / flat-media log shape.

        - value missing → derived from deprecated 'accuracy'
        - promptLevel / measurementType → snake_case
        - media_uri (+ mediaType) string → structured media
        """
        if not isinstance(data, dict):
            return data

        data = dict(data)

        if data.get("value") is None:
            data["value"] = data.get("accuracy") or 0
        data.pop("accuracy", None)

        if "prompt_level" not in data and "promptLevel" in data:
            data["prompt_level"] = data.pop("promptLevel")
        if "measurement_type" not in data and "measurementType" in data:
            data["measurement_type"] = data.pop("measurementType")
        if not data.get("measurement_type"):
            data["measurement_type"] = "accuracy"

        legacy_reference = data.pop("media_uri", None) or data.pop("media_reference", None)
        legacy_mime = data.pop("mediaType", None) or data.pop("media_kind", None)
        if data.get("media") is None and legacy_reference:
            data["media"] = MediaAttachment.from_reference(legacy_reference, legacy_mime)

        return data


class AssessmentItem(BaseModel):
    id: str
    text: str
    status: str | None = Field(default=None, pattern=r"^(good|neutral|bad)$")


class Assessment(BaseModel):
    id: str
    title: str
    items: list[AssessmentItem] = Field(default_factory=list)


class Snapshot(BaseModel):
    """Full structured export (media binaries are referenced, never embedded).

    Sections left as None on import are not touched locally.
    """

    students: list[Student] | None = None
    goals: list[Goal] | None = None
    logs: list[ObservationLog] | None = None
    assessments: list[Assessment] | None = None
    widgets: list[WidgetType] | None = None
