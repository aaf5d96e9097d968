"""
Pydantic schemas for tracker entities and the backup snapshot.
"""

from .api import (
    ConnectivityUpdate,
    ImportResult,
    SessionCreate,
    StudentDetailSchema,
    SyncActionResponse,
    SyncStatusSchema,
)
from .entities import (
    DEFAULT_GOAL_ICON,
    Assessment,
    AssessmentItem,
    Goal,
    GoalStatus,
    MediaAttachment,
    MediaState,
    ObservationLog,
    PromptLevel,
    Snapshot,
    Student,
    WidgetType,
    filename_from_reference,
    infer_media_state,
)

__all__ = [
    "DEFAULT_GOAL_ICON",
    # Enums
    "GoalStatus",
    "PromptLevel",
    "MediaState",
    "WidgetType",
    # Entities
    "Student",
    "Goal",
    "ObservationLog",
    "MediaAttachment",
    "Assessment",
    "AssessmentItem",
    "Snapshot",
    # Helpers
    "infer_media_state",
    "filename_from_reference",
    # API
    "SessionCreate",
    "ConnectivityUpdate",
    "SyncStatusSchema",
    "SyncActionResponse",
    "StudentDetailSchema",
    "ImportResult",
]
