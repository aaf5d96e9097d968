"""
Local persistence: record store, demo seeding and legacy migration.
"""

from .legacy import MigrationReport, migrate_legacy_storage
from .record_store import RecordStore, parse_snapshot

__all__ = [
    "RecordStore",
    "parse_snapshot",
    "MigrationReport",
    "migrate_legacy_storage",
]
