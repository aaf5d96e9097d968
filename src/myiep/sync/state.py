"""
Sync Status

Observable status of the synchronization controller. Listeners are called
synchronously on every change; the UI layer (or the HTTP surface) reads the
current values from here.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    SAVED = "saved"  # transient, reverts to idle
    ERROR = "error"
    REMOTE_AHEAD = "remote_ahead"  # sticky until restore or keep-local


StatusListener = Callable[["SyncStatus"], None]


class SyncStatus:
    """Current sync state plus the set of logs with an upload in flight.

    `uploading` is replaced wholesale on every change, never mutated, so a
    reader holding the previous value never sees it change underneath it.
    """

    def __init__(self) -> None:
        self.state: SyncState = SyncState.IDLE
        self.last_sync_time: int = 0
        self.last_error: str | None = None
        self.loading_message: str | None = None
        self.uploading: frozenset[str] = frozenset()
        self._listeners: list[StatusListener] = []

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a change listener.

        Returns:
            Callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def update(self, **changes: Any) -> None:
        """Apply attribute changes and notify listeners once."""
        for name, value in changes.items():
            if not hasattr(self, name) or name.startswith("_"):
                raise AttributeError(f"Unknown sync status field: {name}")
            setattr(self, name, value)

        if "state" in changes:
            logger.debug(f"Sync state -> {self.state.value}")

        for listener in list(self._listeners):
            listener(self)

    def mark_uploading(self, log_id: str) -> None:
        self.update(uploading=self.uploading | {log_id})

    def clear_uploading(self, log_id: str) -> None:
        self.update(uploading=self.uploading - {log_id})

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "last_sync_time": self.last_sync_time,
            "last_error": self.last_error,
            "loading_message": self.loading_message,
            "uploading": sorted(self.uploading),
        }
