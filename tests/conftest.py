"""
Pytest Configuration and Fixtures

Shared test fixtures for unit, integration and API tests. Every test gets
its own SQLite file under tmp_path.
"""

import pytest

from myiep.core.database import create_engine, create_session_factory, init_db
from myiep.gateway import InMemoryGateway
from myiep.media import MediaStaging
from myiep.store import RecordStore
from myiep.sync import SyncController
from myiep.tracker import Tracker

# Short timings so debounce and status-reset behavior is observable in tests
TEST_DEBOUNCE_SECONDS = 0.05
TEST_SAVED_RESET_SECONDS = 0.05


@pytest.fixture
async def async_engine(tmp_path):
    """Create async engine on a fresh SQLite file."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return create_session_factory(async_engine)


@pytest.fixture
def store(session_factory) -> RecordStore:
    return RecordStore(session_factory)


@pytest.fixture
def staging() -> MediaStaging:
    return MediaStaging(max_inline_bytes=1024 * 1024)


@pytest.fixture
def gateway() -> InMemoryGateway:
    return InMemoryGateway()


@pytest.fixture
async def controller(store, gateway, staging):
    """Sync controller with short timers; stopped after the test."""
    sync = SyncController(
        store,
        gateway,
        staging,
        debounce_seconds=TEST_DEBOUNCE_SECONDS,
        poll_interval_seconds=3600,
        saved_reset_seconds=TEST_SAVED_RESET_SECONDS,
    )

    yield sync

    await sync.stop()


@pytest.fixture
def tracker(store, controller, staging) -> Tracker:
    return Tracker(store, controller, staging)
