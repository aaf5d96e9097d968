"""
Legacy Storage Migration

One-time migration from the flat 'iep_*' layout, where every log lived in a
single array blob, to one row per log plus the current collection keys.

Guarded by a persisted flag so it never re-runs. The whole migration is one
transaction: an unparseable legacy payload aborts it and nothing is written.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from myiep.core.clock import now_ms
from myiep.core.errors import InvalidFormatError
from myiep.core.ids import generate_id
from myiep.core.models import ObservationLogRecord, SettingsEntry
from myiep.core.schemas import ObservationLog
from myiep.store.record_store import (
    ASSESSMENTS_KEY,
    GOALS_KEY,
    STUDENTS_KEY,
    WIDGETS_KEY,
    RecordStore,
    apply_log,
)

logger = logging.getLogger(__name__)

MIGRATION_FLAG_KEY = "legacy_migrated"
LEGACY_LOGS_KEY = "iep_logs"

# legacy key → current key
LEGACY_COLLECTION_KEYS: dict[str, str] = {
    "iep_students": STUDENTS_KEY,
    "iep_goals": GOALS_KEY,
    "iep_assessments": ASSESSMENTS_KEY,
    "iep_widgets": WIDGETS_KEY,
}


@dataclass
class MigrationReport:
    """Outcome of a migration run."""

    already_migrated: bool = False
    logs_migrated: int = 0
    logs_skipped: int = 0
    collections_migrated: list[str] = field(default_factory=list)


def _decode_legacy_list(raw: Any, key: str) -> list[Any]:
    """Legacy values were JSON text; accept decoded lists too."""
    if raw is None:
        return []

    if isinstance(raw, str | bytes):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise InvalidFormatError(f"Legacy '{key}' is not valid JSON: {e}") from e

    if not isinstance(raw, list):
        raise InvalidFormatError(f"Legacy '{key}' must be a list, got {type(raw).__name__}")

    return raw


def normalize_legacy_log(raw: Any) -> ObservationLog:
    """Normalize one legacy log entry.

    Fills value from the deprecated accuracy field, maps camelCase keys and
    lifts a bare media URI into a structured attachment.

    Raises:
        InvalidFormatError: If the entry cannot be interpreted as a log
    """
    if not isinstance(raw, dict):
        raise InvalidFormatError(f"Legacy log entry must be an object, got {type(raw).__name__}")

    data = dict(raw)
    if not data.get("id"):
        data["id"] = generate_id()

    try:
        return ObservationLog.model_validate(data)
    except PydanticValidationError as e:
        raise InvalidFormatError(f"Legacy log {data['id']} is invalid: {e}") from e


async def migrate_legacy_storage(store: RecordStore) -> MigrationReport:
    """Run the legacy migration if it has not run yet.

    Args:
        store: Record store to migrate in place

    Returns:
        MigrationReport describing what was moved

    Raises:
        InvalidFormatError: If a legacy payload is unparseable (nothing written)
    """
    report = MigrationReport()

    async with store.transaction() as session:
        if await session.get(SettingsEntry, MIGRATION_FLAG_KEY) is not None:
            report.already_migrated = True
            return report

        await _migrate_logs(session, report)
        await _migrate_collections(session, report)

        session.add(SettingsEntry(key=MIGRATION_FLAG_KEY, value={"migrated_at": now_ms()}))

    logger.info(
        f"Legacy migration complete: {report.logs_migrated} logs, "
        f"{len(report.collections_migrated)} collections",
        extra={"skipped": report.logs_skipped},
    )
    return report


async def _migrate_logs(session: AsyncSession, report: MigrationReport) -> None:
    entry = await session.get(SettingsEntry, LEGACY_LOGS_KEY)
    if entry is None:
        return

    for raw in _decode_legacy_list(entry.value, LEGACY_LOGS_KEY):
        log = normalize_legacy_log(raw)

        if await session.get(ObservationLogRecord, log.id) is not None:
            report.logs_skipped += 1
            continue

        record = ObservationLogRecord(id=log.id)
        apply_log(record, log)
        session.add(record)
        report.logs_migrated += 1


async def _migrate_collections(session: AsyncSession, report: MigrationReport) -> None:
    for legacy_key, current_key in LEGACY_COLLECTION_KEYS.items():
        legacy_entry = await session.get(SettingsEntry, legacy_key)
        if legacy_entry is None:
            continue

        items = _decode_legacy_list(legacy_entry.value, legacy_key)

        # Never overwrite data already written in the current layout
        if await session.get(SettingsEntry, current_key) is not None:
            continue

        session.add(SettingsEntry(key=current_key, value=items))
        report.collections_migrated.append(current_key)
