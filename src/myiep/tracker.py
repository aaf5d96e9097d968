"""
Tracker Application State

The one object the UI talks to. Holds the in-memory view (students, goals,
the currently displayed logs, assessments, widgets) and funnels every
mutation through the same sequence:

    validate → store write → refresh view → mark dirty → background upload

The record store stays the source of truth; the view is re-read after every
write rather than patched in place.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import timedelta

from myiep.core.clock import ms_to_datetime, now_ms
from myiep.core.errors import NotFoundError
from myiep.core.schemas import (
    Assessment,
    Goal,
    GoalStatus,
    MediaAttachment,
    MediaState,
    ObservationLog,
    PromptLevel,
    Snapshot,
    Student,
    WidgetType,
)
from myiep.core.validation import (
    validate_assessment_status,
    validate_goal_status,
    validate_goal_title,
    validate_prompt_level,
    validate_student_name,
    validate_value,
)
from myiep.media.staging import MediaStaging, StagedMedia
from myiep.store.record_store import RecordStore
from myiep.sync.controller import SyncController

logger = logging.getLogger(__name__)

DASHBOARD_DAYS = 7

# New bytes, an existing attachment, or a bare reference string
MediaInput = StagedMedia | MediaAttachment | str


@dataclass
class TrackerState:
    """What the UI currently displays."""

    students: list[Student] = field(default_factory=list)
    goals: list[Goal] = field(default_factory=list)
    logs: list[ObservationLog] = field(default_factory=list)
    assessments: list[Assessment] = field(default_factory=list)
    active_widgets: list[WidgetType] = field(default_factory=list)
    is_loading: bool = False


@dataclass
class StudentDetail:
    """One student with their goals and logs, orphans filtered out."""

    student: Student
    goals: list[Goal]
    logs: list[ObservationLog]  # newest first


class Tracker:
    """Application state and mutation entry points."""

    def __init__(self, store: RecordStore, sync: SyncController, staging: MediaStaging):
        """Initialize tracker.

        Args:
            store: Local record store
            sync: Sync controller (receives the dirty signal)
            staging: Media staging registry for new attachments
        """
        self.store = store
        self.sync = sync
        self.staging = staging
        self.state = TrackerState()

        # How state.logs was last loaded, so background updates can re-run it
        self._logs_scope: tuple[str, ...] | None = None

        sync.on_restored(self.refresh_all)
        sync.on_media_updated(self.refresh_logs)

    @asynccontextmanager
    async def _loading(self) -> AsyncIterator[None]:
        self.state.is_loading = True
        try:
            yield
        finally:
            self.state.is_loading = False

    async def start(self) -> None:
        """Load the initial view and start background sync."""
        await self.sync.load()
        await self.refresh_all()
        self.sync.start()

    async def stop(self) -> None:
        await self.sync.stop()

    async def refresh_all(self) -> None:
        """Re-read everything the dashboard shows."""
        await self.fetch_dashboard_data()
        await self.fetch_assessments()
        await self.fetch_widgets()

    # ========================================================================
    # STUDENTS
    # ========================================================================

    async def fetch_students(self) -> list[Student]:
        async with self._loading():
            self.state.students = await self.store.get_students()
        return self.state.students

    async def add_student(self, name: str, photo_reference: str | None = None) -> Student:
        """Create a student.

        Raises:
            ValidationError: If the name is invalid
        """
        async with self._loading():
            student = await self.store.add_student(validate_student_name(name), photo_reference)
        await self.fetch_students()
        self.sync.mark_dirty()
        logger.info(f"Added student {student.id}")
        return student

    async def update_student(
        self, student_id: str, name: str, photo_reference: str | None = None
    ) -> None:
        await self.store.update_student(student_id, validate_student_name(name), photo_reference)
        await self.fetch_students()
        self.sync.mark_dirty()

    async def delete_student(self, student_id: str) -> None:
        """Remove a student. Their goals and logs become orphans, hidden by readers."""
        await self.store.delete_student(student_id)
        await self.fetch_students()
        self.sync.mark_dirty()

    async def reorder_students(self, students: Sequence[Student]) -> None:
        self.state.students = list(students)
        await self.store.reorder_students(students)
        self.sync.mark_dirty()

    # ========================================================================
    # GOALS
    # ========================================================================

    async def fetch_all_goals(self) -> list[Goal]:
        self.state.goals = await self.store.get_all_goals()
        return self.state.goals

    async def fetch_goals(self, student_id: str) -> list[Goal]:
        self.state.goals = await self.store.get_goals(student_id)
        return self.state.goals

    async def add_goal(
        self,
        student_id: str,
        title: str,
        description: str | None = None,
        icon: str | None = None,
        status: GoalStatus | str | None = None,
    ) -> Goal:
        """Create a goal for a student.

        Raises:
            ValidationError: If the title or status is invalid
        """
        goal = await self.store.add_goal(
            student_id,
            validate_goal_title(title),
            description,
            icon,
            validate_goal_status(status),
        )
        await self.fetch_goals(student_id)
        self.sync.mark_dirty()
        return goal

    async def update_goal(
        self,
        goal_id: str,
        title: str,
        description: str | None = None,
        icon: str | None = None,
        status: GoalStatus | str | None = None,
    ) -> None:
        await self.store.update_goal(
            goal_id,
            validate_goal_title(title),
            description,
            icon,
            validate_goal_status(status) if status else None,
        )

        goal = next((g for g in await self.store.get_all_goals() if g.id == goal_id), None)
        if goal is not None:
            await self.fetch_goals(goal.student_id)
        self.sync.mark_dirty()

    async def delete_goal(self, goal_id: str, student_id: str) -> None:
        """Remove a goal. Its logs stay stored but are no longer shown."""
        await self.store.delete_goal(goal_id)
        await self.fetch_goals(student_id)
        self.sync.mark_dirty()

    async def reorder_goals(self, student_id: str, goals: Sequence[Goal]) -> None:
        self.state.goals = list(goals)
        await self.store.reorder_goals(student_id, goals)
        self.sync.mark_dirty()

    # ========================================================================
    # LOGS
    # ========================================================================

    async def fetch_logs(self, goal_id: str) -> list[ObservationLog]:
        self._logs_scope = ("goal", goal_id)
        self.state.logs = await self.store.query_logs_by_goal(goal_id)
        return self.state.logs

    async def fetch_student_logs(self, student_id: str) -> list[ObservationLog]:
        self._logs_scope = ("student", student_id)
        self.state.logs = await self.store.get_student_logs(student_id)
        return self.state.logs

    async def fetch_dashboard_data(self) -> None:
        """Load students, all goals and the logs of the last seven days."""
        async with self._loading():
            self.state.students = await self.store.get_students()
            self.state.goals = await self.store.get_all_goals()

            end = now_ms()
            start_day = ms_to_datetime(end).replace(hour=0, minute=0, second=0, microsecond=0)
            start = int((start_day - timedelta(days=DASHBOARD_DAYS)).timestamp() * 1000)

            self._logs_scope = ("range", str(start), str(end))
            self.state.logs = await self.store.query_logs_by_range(start, end)

    async def refresh_logs(self) -> None:
        """Re-run whichever query last filled state.logs."""
        if self._logs_scope is None:
            return

        kind, *args = self._logs_scope
        if kind == "goal":
            await self.fetch_logs(args[0])
        elif kind == "student":
            await self.fetch_student_logs(args[0])
        elif kind == "range":
            self.state.logs = await self.store.query_logs_by_range(int(args[0]), int(args[1]))

    def _prepare_media(self, media: MediaInput | None) -> MediaAttachment | None:
        if media is None:
            return None
        if isinstance(media, StagedMedia):
            return self.staging.stage(media.data, media.filename, media.mime_type)
        if isinstance(media, str):
            return MediaAttachment.from_reference(media)
        return media

    async def record_trial(
        self,
        goal_id: str,
        value: float | int | str,
        prompt_level: PromptLevel | str,
        media: MediaInput | None = None,
        notes: str | None = None,
        timestamp: int | None = None,
    ) -> ObservationLog:
        """Record a trial. Returns before any attachment upload finishes.

        Args:
            goal_id: Goal the trial belongs to
            value: Accuracy percentage (0-100)
            prompt_level: Level of prompting needed
            media: New attachment bytes (StagedMedia) or an existing reference
            notes: Free-text notes
            timestamp: Epoch ms (defaults to now)

        Returns:
            Created log, displaying a local preview reference if media was attached

        Raises:
            ValidationError: If value or prompt level is invalid
            StorageError: If the local write fails
        """
        checked_value = validate_value(value)
        level = validate_prompt_level(prompt_level)
        attachment = self._prepare_media(media)

        log = await self.store.add_log(
            goal_id, checked_value, level, media=attachment, notes=notes, timestamp=timestamp
        )
        await self.fetch_logs(goal_id)
        self.sync.mark_dirty()

        if attachment is not None and attachment.is_pending_upload:
            self.sync.schedule_media_upload(log.id)

        return log

    async def update_log(
        self,
        log_id: str,
        value: float | int | str,
        prompt_level: PromptLevel | str,
        timestamp: int,
        media: MediaInput | None = None,
        notes: str | None = None,
    ) -> ObservationLog:
        """Edit a log. `media=None` removes the attachment.

        A replaced or removed remote attachment is moved to trash remotely.
        An attachment the sync controller has already replaced (uploaded or
        kept locally since the caller read the log) is treated as unchanged.

        Raises:
            NotFoundError: If the log does not exist
        """
        checked_value = validate_value(value)
        level = validate_prompt_level(prompt_level)

        previous = await self.store.get_log(log_id)
        if previous is None:
            raise NotFoundError(f"Observation log not found: {log_id}")

        attachment = self._prepare_media(media)
        stale = set(self.sync.superseded_references(log_id))
        if (
            attachment is not None
            and attachment.state == MediaState.EPHEMERAL
            and not self.staging.is_staged(attachment.reference)
        ):
            stale.add(attachment.reference)

        updated = await self.store.update_log(
            log_id,
            value=checked_value,
            prompt_level=level,
            timestamp=timestamp,
            media=attachment,
            notes=notes,
            stale_references=stale,
        )

        if previous.media is not None and (
            updated.media is None or updated.media.reference != previous.media.reference
        ):
            self._discard_media(previous.media)

        await self.fetch_logs(updated.goal_id)
        self.sync.mark_dirty()

        if updated.media is not None and updated.media.is_pending_upload:
            self.sync.schedule_media_upload(log_id)

        return updated

    async def delete_log(self, log_id: str) -> None:
        """Delete a log and trash its remote attachment.

        Raises:
            NotFoundError: If the log does not exist
        """
        previous = await self.store.get_log(log_id)
        if previous is None:
            raise NotFoundError(f"Observation log not found: {log_id}")

        await self.store.delete_log(log_id)
        if previous.media is not None:
            self._discard_media(previous.media)

        await self.fetch_logs(previous.goal_id)
        self.sync.mark_dirty()

    def _discard_media(self, media: MediaAttachment) -> None:
        if media.state == MediaState.REMOTE:
            self.sync.delete_remote_media(media)
        elif media.state == MediaState.EPHEMERAL:
            self.staging.release(media.reference)

    # ========================================================================
    # WIDGETS / ASSESSMENTS
    # ========================================================================

    async def fetch_widgets(self) -> list[WidgetType]:
        self.state.active_widgets = await self.store.get_widgets()
        return self.state.active_widgets

    async def toggle_widget(self, widget: WidgetType | str) -> list[WidgetType]:
        widget = WidgetType(widget)
        current = self.state.active_widgets
        widgets = [w for w in current if w != widget] if widget in current else [*current, widget]

        self.state.active_widgets = widgets
        await self.store.set_widgets(widgets)
        self.sync.mark_dirty()
        return widgets

    async def fetch_assessments(self) -> list[Assessment]:
        self.state.assessments = await self.store.get_assessments()
        return self.state.assessments

    async def update_assessment_item(
        self, assessment_id: str, item_id: str, status: str | None
    ) -> None:
        await self.store.update_assessment_item(
            assessment_id, item_id, validate_assessment_status(status)
        )
        await self.fetch_assessments()
        self.sync.mark_dirty()

    # ========================================================================
    # DETAIL / EXPORT
    # ========================================================================

    async def student_detail(self, student_id: str) -> StudentDetail:
        """Everything shown on a student's page.

        Raises:
            NotFoundError: If the student does not exist
        """
        student = next((s for s in await self.store.get_students() if s.id == student_id), None)
        if student is None:
            raise NotFoundError(f"Student not found: {student_id}")

        goals = await self.store.get_goals(student_id)
        logs = await self.store.get_student_logs(student_id)
        logs.sort(key=lambda log: log.timestamp, reverse=True)
        return StudentDetail(student=student, goals=goals, logs=logs)

    async def export_data(self) -> str:
        return await self.store.export_snapshot()

    async def import_data(self, payload: str | bytes) -> Snapshot:
        """Replace local data from a backup file and push it.

        Raises:
            InvalidFormatError: If the payload is not a valid backup (nothing changes)
        """
        snapshot = await self.store.import_snapshot(payload)
        await self.refresh_all()
        self.sync.mark_dirty()
        return snapshot
