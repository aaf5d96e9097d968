"""
Tests for the one-time legacy storage migration.
"""

import json

import pytest

from myiep.core.errors import InvalidFormatError
from myiep.core.schemas import MediaState
from myiep.store.legacy import MIGRATION_FLAG_KEY, migrate_legacy_storage, normalize_legacy_log

LEGACY_LOGS = [
    {
        "id": "L1",
        "goal_id": "g1",
        "accuracy": 75,
        "promptLevel": "verbal",
        "timestamp": 1000,
        "media_uri": "blob:http://localhost/abc#filename=20240101_Kim_a.jpg",
        "mediaType": "image/jpeg",
    },
    {"goal_id": "g2", "value": 60, "prompt_level": "physical", "timestamp": 2000},
]


class TestNormalizeLegacyLog:
    def test_generates_missing_id(self):
        log = normalize_legacy_log(
            {"goal_id": "g", "accuracy": 5, "promptLevel": "verbal", "timestamp": 1}
        )
        assert log.id
        assert log.value == 5

    def test_rejects_non_object(self):
        with pytest.raises(InvalidFormatError):
            normalize_legacy_log(["not", "a", "log"])


class TestMigrateLegacyStorage:
    @pytest.mark.asyncio
    async def test_moves_logs_and_collections(self, store):
        await store.put_collection("iep_logs", json.dumps(LEGACY_LOGS))
        await store.put_collection("iep_students", json.dumps([{"id": "s9", "name": "Old"}]))

        report = await migrate_legacy_storage(store)

        assert report.logs_migrated == 2
        assert report.collections_migrated == ["students"]

        first = await store.get_log("L1")
        assert first.value == 75
        assert first.media.state == MediaState.EPHEMERAL
        assert first.media.filename == "20240101_Kim_a.jpg"
        assert [s.id for s in await store.get_students()] == ["s9"]
        assert await store.get_collection(MIGRATION_FLAG_KEY) is not None

    @pytest.mark.asyncio
    async def test_runs_only_once(self, store):
        await store.put_collection("iep_logs", LEGACY_LOGS)
        await migrate_legacy_storage(store)

        report = await migrate_legacy_storage(store)

        assert report.already_migrated is True
        assert len(await store.all_logs()) == 2

    @pytest.mark.asyncio
    async def test_existing_data_not_overwritten(self, store):
        await store.get_students()
        await store.add_log("g1", 10, "verbal", timestamp=1)
        existing = (await store.all_logs())[0]
        await store.put_collection("iep_logs", [{**LEGACY_LOGS[1], "id": existing.id}])
        await store.put_collection("iep_students", [{"id": "s9", "name": "Old"}])

        report = await migrate_legacy_storage(store)

        assert report.logs_skipped == 1
        assert report.collections_migrated == []
        assert (await store.get_log(existing.id)).value == 10
        assert [s.id for s in await store.get_students()] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_unparseable_payload_writes_nothing(self, store):
        await store.put_collection("iep_logs", "{broken json")
        await store.put_collection("iep_students", [{"id": "s9", "name": "Old"}])

        with pytest.raises(InvalidFormatError):
            await migrate_legacy_storage(store)

        assert await store.all_logs() == []
        assert await store.get_collection("students") is None
        assert await store.get_collection(MIGRATION_FLAG_KEY) is None

    @pytest.mark.asyncio
    async def test_nothing_to_migrate(self, store):
        report = await migrate_legacy_storage(store)

        assert report.logs_migrated == 0
        assert report.already_migrated is False
