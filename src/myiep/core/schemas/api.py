"""
API Pydantic Schemas

Request and response models for the local HTTP surface.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from .entities import Goal, ObservationLog, Student


class SessionCreate(BaseModel):
    """Access token handed over by the sign-in flow."""

    access_token: str = Field(..., min_length=1)


class ConnectivityUpdate(BaseModel):
    online: bool


class SyncStatusSchema(BaseModel):
    state: str
    last_sync_time: int
    last_error: str | None = None
    loading_message: str | None = None
    uploading: list[str] = Field(default_factory=list)
    online: bool
    authenticated: bool
    has_unsynced_changes: bool


class SyncActionResponse(BaseModel):
    """Outcome of an explicit sync action plus the resulting status."""

    performed: bool
    status: SyncStatusSchema


class StudentDetailSchema(BaseModel):
    student: Student
    goals: list[Goal]
    logs: list[ObservationLog]


class ImportResult(BaseModel):
    students: int
    goals: int
    logs: int
    assessments: int
