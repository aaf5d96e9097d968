"""
Integration Tests for Database Operations

Table creation, timestamps and constraints on a real SQLite file.
"""

import pytest
from sqlalchemy import inspect, select
from sqlalchemy.exc import IntegrityError

from myiep.core.database import init_db
from myiep.core.models import ObservationLogRecord, SettingsEntry


class TestSchema:
    @pytest.mark.asyncio
    async def test_tables_and_indexes_created(self, async_engine):
        async with async_engine.connect() as conn:
            tables = await conn.run_sync(lambda c: inspect(c).get_table_names())
            indexes = await conn.run_sync(
                lambda c: {i["name"] for i in inspect(c).get_indexes("observation_logs")}
            )

        assert {"observation_logs", "settings_entries"} <= set(tables)
        assert {"idx_logs_goal", "idx_logs_timestamp"} <= indexes

    @pytest.mark.asyncio
    async def test_init_db_is_idempotent(self, async_engine):
        await init_db(async_engine)
        await init_db(async_engine)


class TestRecords:
    @pytest.mark.asyncio
    async def test_timestamps_set_on_create(self, session_factory):
        async with session_factory() as session:
            entry = SettingsEntry(key="students", value=[{"id": "1"}])
            session.add(entry)
            await session.commit()

            assert entry.created_at is not None
            assert entry.updated_at is not None

            loaded = (
                await session.execute(select(SettingsEntry).where(SettingsEntry.key == "students"))
            ).scalar_one()
            assert loaded.value == [{"id": "1"}]

    @pytest.mark.asyncio
    async def test_value_range_enforced(self, session_factory):
        async with session_factory() as session:
            session.add(
                ObservationLogRecord(
                    id="bad", goal_id="g1", value=120, prompt_level="verbal", timestamp=0
                )
            )
            with pytest.raises(IntegrityError):
                await session.commit()

    @pytest.mark.asyncio
    async def test_prompt_level_enforced(self, session_factory):
        async with session_factory() as session:
            session.add(
                ObservationLogRecord(
                    id="bad", goal_id="g1", value=50, prompt_level="shouting", timestamp=0
                )
            )
            with pytest.raises(IntegrityError):
                await session.commit()

    @pytest.mark.asyncio
    async def test_legacy_row_without_value(self, session_factory):
        async with session_factory() as session:
            session.add(
                ObservationLogRecord(
                    id="old", goal_id="g1", accuracy=65, prompt_level="gesture", timestamp=0
                )
            )
            await session.commit()

            row = await session.get(ObservationLogRecord, "old")
            assert row.value is None
            assert row.accuracy == 65
