"""
Tests for the observable sync status.
"""

import pytest

from myiep.sync.state import SyncState, SyncStatus


class TestSyncStatus:
    def test_listeners_notified_and_removable(self):
        status = SyncStatus()
        seen = []
        unsubscribe = status.subscribe(lambda s: seen.append(s.state))

        status.update(state=SyncState.SYNCING)
        unsubscribe()
        status.update(state=SyncState.IDLE)

        assert seen == [SyncState.SYNCING]

    def test_uploading_replaced_not_mutated(self):
        status = SyncStatus()
        before = status.uploading

        status.mark_uploading("log-1")
        during = status.uploading
        status.clear_uploading("log-1")

        assert before == frozenset()
        assert during == frozenset({"log-1"})
        assert status.uploading == frozenset()

    def test_unknown_field_rejected(self):
        with pytest.raises(AttributeError):
            SyncStatus().update(bogus=1)

    def test_to_dict(self):
        status = SyncStatus()
        status.update(state=SyncState.REMOTE_AHEAD, uploading=frozenset({"b", "a"}))

        assert status.to_dict()["state"] == "remote_ahead"
        assert status.to_dict()["uploading"] == ["a", "b"]
