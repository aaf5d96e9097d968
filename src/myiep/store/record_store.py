"""
Record Store

Authoritative local persistence for the tracker.

Two storage strategies:
- Observation logs: one row per log (keyed access, indexed by goal and time)
- Students, goals, assessments, widgets, settings: whole-collection JSON
  blobs, rewritten in full on every mutation

Every individual write is a single transaction. Read-modify-write of a
collection blob is serialized through one lock so two concurrent
"add goal" calls cannot drop each other's write.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable, Collection, Sequence
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from myiep.core.clock import now_ms
from myiep.core.errors import InvalidFormatError, NotFoundError, StorageError
from myiep.core.ids import generate_id
from myiep.core.models import ObservationLogRecord, SettingsEntry
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
from myiep.store import seed

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Collection keys
STUDENTS_KEY = "students"
GOALS_KEY = "goals"
ASSESSMENTS_KEY = "assessments"
WIDGETS_KEY = "widgets"
LAST_SYNC_TIME_KEY = "last_sync_time"

_students_adapter = TypeAdapter(list[Student])
_goals_adapter = TypeAdapter(list[Goal])
_assessments_adapter = TypeAdapter(list[Assessment])
_widgets_adapter = TypeAdapter(list[WidgetType])


def _dump(items: Sequence[Any]) -> list[Any]:
    return [item.model_dump(mode="json") if hasattr(item, "model_dump") else item for item in items]


def record_to_log(record: ObservationLogRecord) -> ObservationLog:
    """Convert a row to the canonical log shape.

    Rows migrated from the legacy format may have value=NULL; the schema
    falls back to the deprecated accuracy column.
    """
    media = None
    if record.media_reference:
        media = {
            "reference": record.media_reference,
            "filename": record.media_filename,
            "mime_type": record.media_mime_type,
            "state": record.media_state,
            "remote_id": record.media_remote_id,
        }
        if media["state"] is None:
            media = MediaAttachment.from_reference(record.media_reference, record.media_mime_type)

    return ObservationLog.model_validate(
        {
            "id": record.id,
            "goal_id": record.goal_id,
            "measurement_type": record.measurement_type,
            "value": record.value,
            "accuracy": record.accuracy,
            "prompt_level": record.prompt_level,
            "timestamp": record.timestamp,
            "notes": record.notes,
            "media": media,
        }
    )


def apply_media(record: ObservationLogRecord, media: MediaAttachment | None) -> None:
    """Write only the attachment columns of a row."""
    if media is None:
        record.media_reference = None
        record.media_filename = None
        record.media_mime_type = None
        record.media_state = None
        record.media_remote_id = None
        return

    record.media_reference = media.reference
    record.media_filename = media.filename
    record.media_mime_type = media.mime_type
    record.media_state = MediaState(media.state).value
    record.media_remote_id = media.remote_id


def apply_log(record: ObservationLogRecord, log: ObservationLog) -> None:
    """Write every field of a log onto a row (whole-record replace)."""
    record.goal_id = log.goal_id
    record.measurement_type = log.measurement_type
    record.value = log.value
    record.accuracy = None
    record.prompt_level = PromptLevel(log.prompt_level).value
    record.timestamp = log.timestamp
    record.notes = log.notes
    apply_media(record, log.media)


class RecordStore:
    """Local database facade used by every other component.

    Callers never cache long-lived copies of what this returns; the store
    is the single source of truth.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize record store.

        Args:
            session_factory: Async session factory bound to the local database
        """
        self._session_factory = session_factory
        self._collection_lock = asyncio.Lock()
        self._seeded: set[str] = set()

    # ========================================================================
    # TRANSACTIONS
    # ========================================================================

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Open a session inside one transaction.

        Commits on success, rolls back on any exception. Database faults are
        re-raised as StorageError; other exceptions propagate unchanged.

        Raises:
            StorageError: If the underlying database fails
        """
        try:
            async with self._session_factory() as session, session.begin():
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Local database error: {e}")
            raise StorageError(f"Local database error: {e}") from e

    # ========================================================================
    # KEY/VALUE COLLECTIONS
    # ========================================================================

    async def get_collection(self, key: str, default: Any = None) -> Any:
        """Read a whole collection blob.

        Args:
            key: Collection key (e.g., 'students')
            default: Returned when the key was never written

        Returns:
            Stored JSON value, or default
        """
        async with self.transaction() as session:
            entry = await session.get(SettingsEntry, key)
            if entry is None:
                return default
            return entry.value

    async def put_collection(self, key: str, value: Any) -> None:
        """Replace a whole collection blob (last write wins)."""
        async with self.transaction() as session:
            await self._put_entry(session, key, value)

    @staticmethod
    async def _put_entry(session: AsyncSession, key: str, value: Any) -> None:
        entry = await session.get(SettingsEntry, key)
        if entry is None:
            session.add(SettingsEntry(key=key, value=value))
        else:
            entry.value = value

    async def _mutate_collection(
        self, key: str, mutate: Callable[[list[Any]], list[Any]]
    ) -> list[Any]:
        """Serialized read-modify-write of a list collection."""
        async with self._collection_lock, self.transaction() as session:
            entry = await session.get(SettingsEntry, key)
            current = list(entry.value) if entry is not None and entry.value else []
            updated = mutate(current)
            await self._put_entry(session, key, updated)
            return updated

    async def _get_or_seed(self, key: str, seed_factory: Callable[[], list[Any]]) -> list[Any]:
        """Read a collection, seeding demo content the first time.

        Seeds only when the key has never been persisted (an emptied
        collection stays empty) and checks at most once per store instance.
        """
        if key not in self._seeded:
            async with self._collection_lock, self.transaction() as session:
                entry = await session.get(SettingsEntry, key)
                if entry is None:
                    session.add(SettingsEntry(key=key, value=seed_factory()))
                    logger.info(f"Seeded default '{key}' collection")
            self._seeded.add(key)

        return list(await self.get_collection(key, []) or [])

    @staticmethod
    def _parse(adapter: TypeAdapter[list[T]], raw: Any, key: str) -> list[T]:
        try:
            return adapter.validate_python(raw or [])
        except PydanticValidationError as e:
            raise StorageError(f"Stored '{key}' collection is corrupt: {e}") from e

    # ========================================================================
    # STUDENTS
    # ========================================================================

    async def get_students(self) -> list[Student]:
        raw = await self._get_or_seed(STUDENTS_KEY, seed.demo_students)
        return self._parse(_students_adapter, raw, STUDENTS_KEY)

    async def add_student(self, name: str, photo_reference: str | None = None) -> Student:
        """Append a new student.

        Args:
            name: Display name
            photo_reference: Photo URL/reference (defaults to an initials avatar)

        Returns:
            Created student
        """
        student = Student(
            id=generate_id(),
            name=name,
            photo_reference=photo_reference or seed.avatar_url(name),
        )
        await self._mutate_collection(STUDENTS_KEY, lambda items: [*items, _dump([student])[0]])
        return student

    async def update_student(
        self, student_id: str, name: str, photo_reference: str | None = None
    ) -> None:
        """Rename a student; keeps the existing photo unless a new one is given."""

        def mutate(items: list[Any]) -> list[Any]:
            updated = []
            for item in items:
                if item.get("id") == student_id:
                    item = {
                        **item,
                        "name": name,
                        "photo_reference": photo_reference
                        or item.get("photo_reference")
                        or item.get("photo_uri")
                        or seed.avatar_url(name),
                    }
                updated.append(item)
            return updated

        await self._mutate_collection(STUDENTS_KEY, mutate)

    async def delete_student(self, student_id: str) -> None:
        """Remove a student. Goals and logs are left for the caller to remove."""
        await self._mutate_collection(
            STUDENTS_KEY, lambda items: [s for s in items if s.get("id") != student_id]
        )

    async def reorder_students(self, students: Sequence[Student]) -> None:
        """Persist the given order as the new student list."""
        async with self._collection_lock, self.transaction() as session:
            await self._put_entry(session, STUDENTS_KEY, _dump(students))

    # ========================================================================
    # GOALS
    # ========================================================================

    async def get_all_goals(self) -> list[Goal]:
        raw = await self._get_or_seed(GOALS_KEY, seed.demo_goals)
        return self._parse(_goals_adapter, raw, GOALS_KEY)

    async def get_goals(self, student_id: str) -> list[Goal]:
        """Goals for one student, in persisted order."""
        return [g for g in await self.get_all_goals() if g.student_id == student_id]

    async def add_goal(
        self,
        student_id: str,
        title: str,
        description: str | None = None,
        icon: str | None = None,
        status: GoalStatus | None = None,
    ) -> Goal:
        goal = Goal(
            id=generate_id(),
            student_id=student_id,
            title=title,
            description=description,
            icon=icon or "target",
            status=status or GoalStatus.IN_PROGRESS,
        )
        await self._mutate_collection(GOALS_KEY, lambda items: [*items, _dump([goal])[0]])
        return goal

    async def update_goal(
        self,
        goal_id: str,
        title: str,
        description: str | None = None,
        icon: str | None = None,
        status: GoalStatus | None = None,
    ) -> None:
        def mutate(items: list[Any]) -> list[Any]:
            updated = []
            for item in items:
                if item.get("id") == goal_id:
                    item = {
                        **item,
                        "title": title,
                        "description": description,
                        "icon": icon or item.get("icon") or "target",
                        "status": (status.value if status else None)
                        or item.get("status")
                        or GoalStatus.IN_PROGRESS.value,
                    }
                updated.append(item)
            return updated

        await self._mutate_collection(GOALS_KEY, mutate)

    async def delete_goal(self, goal_id: str) -> None:
        """Remove a goal. Its logs stay in the log table (no cascade)."""
        await self._mutate_collection(
            GOALS_KEY, lambda items: [g for g in items if g.get("id") != goal_id]
        )

    async def reorder_goals(self, student_id: str, ordered_goals: Sequence[Goal]) -> None:
        """Replace one student's goal order, keeping other students' goals."""
        ordered = _dump(ordered_goals)
        await self._mutate_collection(
            GOALS_KEY,
            lambda items: [g for g in items if g.get("student_id") != student_id] + ordered,
        )

    # ========================================================================
    # OBSERVATION LOGS
    # ========================================================================

    async def get_log(self, log_id: str) -> ObservationLog | None:
        async with self.transaction() as session:
            record = await session.get(ObservationLogRecord, log_id)
            return record_to_log(record) if record is not None else None

    async def put_log(self, log: ObservationLog) -> None:
        """Insert or fully replace a log."""
        async with self.transaction() as session:
            record = await session.get(ObservationLogRecord, log.id)
            if record is None:
                record = ObservationLogRecord(id=log.id)
                session.add(record)
            apply_log(record, log)

    async def add_log(
        self,
        goal_id: str,
        value: float,
        prompt_level: PromptLevel,
        *,
        media: MediaAttachment | None = None,
        notes: str | None = None,
        timestamp: int | None = None,
    ) -> ObservationLog:
        """Record a new trial.

        Returns:
            Created log (timestamp defaults to now)
        """
        log = ObservationLog(
            id=generate_id(),
            goal_id=goal_id,
            value=value,
            prompt_level=prompt_level,
            timestamp=timestamp if timestamp is not None else now_ms(),
            notes=notes,
            media=media,
        )
        await self.put_log(log)
        return log

    async def update_log(
        self,
        log_id: str,
        *,
        value: float,
        prompt_level: PromptLevel,
        timestamp: int,
        media: MediaAttachment | None,
        notes: str | None,
        stale_references: Collection[str] = (),
    ) -> ObservationLog:
        """Replace the editable fields of a log.

        Args:
            stale_references: Media references known to be outdated; an
                incoming attachment with one of these keeps the stored media

        Returns:
            The log as written

        Raises:
            NotFoundError: If the log does not exist
        """
        async with self.transaction() as session:
            record = await session.get(ObservationLogRecord, log_id)
            if record is None:
                raise NotFoundError(f"Observation log not found: {log_id}")

            current = record_to_log(record)
            if (
                media is not None
                and current.media is not None
                and media.reference != current.media.reference
                and media.reference in stale_references
            ):
                logger.info(
                    f"Log {log_id} edited with an outdated attachment, keeping stored media",
                    extra={"log_id": log_id},
                )
                media = current.media

            updated = current.model_copy(
                update={
                    "value": value,
                    "prompt_level": prompt_level,
                    "timestamp": timestamp,
                    "media": media,
                    "notes": notes,
                }
            )
            apply_log(record, updated)
            return updated

    async def patch_log_media(
        self, log_id: str, *, expected_reference: str, media: MediaAttachment
    ) -> bool:
        """Swap a log's attachment without touching any other field.

        Re-reads the row inside the write transaction and only applies the
        patch if the attachment is still the one the caller started from.

        Args:
            log_id: Log to patch
            expected_reference: Reference the caller resolved before uploading
            media: New attachment

        Returns:
            True if patched; False if the log is gone or its media changed
        """
        async with self.transaction() as session:
            record = await session.get(ObservationLogRecord, log_id)
            if record is None:
                logger.info(f"Log {log_id} deleted before media patch, skipping")
                return False
            if record.media_reference != expected_reference:
                logger.info(
                    f"Log {log_id} media changed since upload started, skipping patch",
                    extra={"log_id": log_id},
                )
                return False

            apply_media(record, media)
            return True

    async def delete_log(self, log_id: str) -> None:
        """Delete a log.

        Raises:
            NotFoundError: If the log does not exist
        """
        async with self.transaction() as session:
            record = await session.get(ObservationLogRecord, log_id)
            if record is None:
                raise NotFoundError(f"Observation log not found: {log_id}")
            await session.delete(record)

    async def query_logs_by_goal(self, goal_id: str) -> list[ObservationLog]:
        """All logs for a goal (unordered)."""
        async with self.transaction() as session:
            result = await session.execute(
                select(ObservationLogRecord).where(ObservationLogRecord.goal_id == goal_id)
            )
            return [record_to_log(r) for r in result.scalars()]

    async def query_logs_by_range(self, start: int, end: int) -> list[ObservationLog]:
        """All logs with start <= timestamp <= end (unordered)."""
        async with self.transaction() as session:
            result = await session.execute(
                select(ObservationLogRecord).where(
                    ObservationLogRecord.timestamp >= start,
                    ObservationLogRecord.timestamp <= end,
                )
            )
            return [record_to_log(r) for r in result.scalars()]

    async def all_logs(self) -> list[ObservationLog]:
        async with self.transaction() as session:
            result = await session.execute(select(ObservationLogRecord))
            return [record_to_log(r) for r in result.scalars()]

    async def get_student_logs(self, student_id: str) -> list[ObservationLog]:
        """Logs belonging to any of a student's current goals."""
        goal_ids = [g.id for g in await self.get_goals(student_id)]
        if not goal_ids:
            return []

        async with self.transaction() as session:
            result = await session.execute(
                select(ObservationLogRecord).where(ObservationLogRecord.goal_id.in_(goal_ids))
            )
            return [record_to_log(r) for r in result.scalars()]

    # ========================================================================
    # ASSESSMENTS / WIDGETS / SYNC MARKER
    # ========================================================================

    async def get_assessments(self) -> list[Assessment]:
        raw = await self._get_or_seed(ASSESSMENTS_KEY, seed.demo_assessments)
        return self._parse(_assessments_adapter, raw, ASSESSMENTS_KEY)

    async def update_assessment_item(
        self, assessment_id: str, item_id: str, status: str | None
    ) -> None:
        def mutate(items: list[Any]) -> list[Any]:
            updated = []
            for assessment in items:
                if assessment.get("id") == assessment_id:
                    assessment = {
                        **assessment,
                        "items": [
                            {**i, "status": status} if i.get("id") == item_id else i
                            for i in assessment.get("items", [])
                        ],
                    }
                updated.append(assessment)
            return updated

        await self._mutate_collection(ASSESSMENTS_KEY, mutate)

    async def get_widgets(self) -> list[WidgetType]:
        """Active dashboard widgets; persists the defaults on first read."""
        raw = await self.get_collection(WIDGETS_KEY)
        if raw is None:
            raw = list(seed.DEFAULT_WIDGETS)
            await self.put_collection(WIDGETS_KEY, raw)
        return self._parse(_widgets_adapter, raw, WIDGETS_KEY)

    async def set_widgets(self, widgets: Sequence[WidgetType]) -> None:
        await self.put_collection(WIDGETS_KEY, [WidgetType(w).value for w in widgets])

    async def get_last_sync_time(self) -> int:
        """Epoch ms of the last successful sync (0 if never)."""
        return int(await self.get_collection(LAST_SYNC_TIME_KEY, 0) or 0)

    async def set_last_sync_time(self, timestamp: int) -> None:
        await self.put_collection(LAST_SYNC_TIME_KEY, int(timestamp))

    # ========================================================================
    # SNAPSHOT EXPORT / IMPORT
    # ========================================================================

    async def export_snapshot(self) -> str:
        """Serialize all structured data to the backup JSON format.

        Returns:
            JSON string with students, goals, logs, assessments, widgets
        """
        async with self.transaction() as session:
            entries = {
                e.key: e.value
                for e in (
                    await session.execute(
                        select(SettingsEntry).where(
                            SettingsEntry.key.in_(
                                [STUDENTS_KEY, GOALS_KEY, ASSESSMENTS_KEY, WIDGETS_KEY]
                            )
                        )
                    )
                ).scalars()
            }
            records = (await session.execute(select(ObservationLogRecord))).scalars().all()

        snapshot = Snapshot(
            students=self._parse(_students_adapter, entries.get(STUDENTS_KEY), STUDENTS_KEY),
            goals=self._parse(_goals_adapter, entries.get(GOALS_KEY), GOALS_KEY),
            logs=[record_to_log(r) for r in records],
            assessments=self._parse(
                _assessments_adapter, entries.get(ASSESSMENTS_KEY), ASSESSMENTS_KEY
            ),
            widgets=self._parse(
                _widgets_adapter,
                entries.get(WIDGETS_KEY, seed.DEFAULT_WIDGETS),
                WIDGETS_KEY,
            ),
        )
        return json.dumps(snapshot.model_dump(mode="json"), ensure_ascii=False)

    async def import_snapshot(self, payload: str | bytes) -> Snapshot:
        """Replace local structured data with a snapshot, section by section.

        Sections absent from the payload are left untouched. Everything is
        written in one transaction, so a failure leaves local data as it was.

        Args:
            payload: Backup JSON

        Returns:
            Parsed snapshot

        Raises:
            InvalidFormatError: If the payload is not a valid snapshot
        """
        snapshot = parse_snapshot(payload)

        async with self._collection_lock, self.transaction() as session:
            if snapshot.students is not None:
                await self._put_entry(session, STUDENTS_KEY, _dump(snapshot.students))
            if snapshot.goals is not None:
                await self._put_entry(session, GOALS_KEY, _dump(snapshot.goals))
            if snapshot.assessments is not None:
                await self._put_entry(session, ASSESSMENTS_KEY, _dump(snapshot.assessments))
            if snapshot.widgets is not None:
                await self._put_entry(session, WIDGETS_KEY, [w.value for w in snapshot.widgets])
            if snapshot.logs is not None:
                await session.execute(delete(ObservationLogRecord))
                for log in snapshot.logs:
                    record = ObservationLogRecord(id=log.id)
                    apply_log(record, log)
                    session.add(record)

        logger.info(
            "Imported snapshot",
            extra={
                "students": len(snapshot.students or []),
                "goals": len(snapshot.goals or []),
                "logs": len(snapshot.logs or []),
            },
        )
        return snapshot


def parse_snapshot(payload: str | bytes) -> Snapshot:
    """Parse and validate backup JSON.

    Logs repeating an id collapse to the last occurrence.

    Raises:
        InvalidFormatError: If the payload is not JSON or not a snapshot object
    """
    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as e:
        raise InvalidFormatError(f"Snapshot is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise InvalidFormatError("Snapshot must be a JSON object")

    try:
        snapshot = Snapshot.model_validate(data)
    except PydanticValidationError as e:
        raise InvalidFormatError(f"Snapshot has an invalid shape: {e}") from e

    if snapshot.logs is not None:
        unique = {log.id: log for log in snapshot.logs}
        if len(unique) != len(snapshot.logs):
            logger.warning(
                f"Snapshot repeats {len(snapshot.logs) - len(unique)} log ids, keeping last"
            )
            snapshot.logs = list(unique.values())

    return snapshot
