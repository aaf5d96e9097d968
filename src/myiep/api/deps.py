"""
Request dependencies.
"""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from myiep.core.schemas import SyncStatusSchema
from myiep.tracker import Tracker


def get_tracker(request: Request) -> Tracker:
    """The application's tracker, created by the lifespan or injected by create_app."""
    tracker: Tracker | None = getattr(request.app.state, "tracker", None)
    if tracker is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Tracker not initialized"
        )
    return tracker


def sync_status(tracker: Tracker) -> SyncStatusSchema:
    controller = tracker.sync
    return SyncStatusSchema(
        **controller.status.to_dict(),
        online=controller.online,
        authenticated=controller.gateway.is_authenticated(),
        has_unsynced_changes=controller.has_unsynced_changes,
    )
