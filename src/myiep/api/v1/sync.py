"""
Sync API Endpoints

Session hand-over, connectivity/lifecycle events and explicit sync actions.
"""
# ruff: noqa: B008 - FastAPI Depends in function defaults is standard pattern

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status

from myiep.api.deps import get_tracker, sync_status
from myiep.core.schemas import (
    ConnectivityUpdate,
    SessionCreate,
    SyncActionResponse,
    SyncStatusSchema,
)
from myiep.tracker import Tracker

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# SESSION
# ============================================================================


@router.put("/session", response_model=SyncStatusSchema)
async def open_session(
    session: SessionCreate, tracker: Tracker = Depends(get_tracker)
) -> SyncStatusSchema:
    """Adopt an access token from the sign-in flow, then check and push."""
    tracker.sync.gateway.set_access_token(session.access_token)
    logger.info("Cloud session established")
    await tracker.sync.on_authenticated()
    return sync_status(tracker)


@router.delete("/session", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(tracker: Tracker = Depends(get_tracker)) -> None:
    """Sign out. Local data is kept."""
    tracker.sync.on_session_lost()


# ============================================================================
# STATUS / ACTIONS
# ============================================================================


@router.get("/sync/status", response_model=SyncStatusSchema)
async def get_sync_status(tracker: Tracker = Depends(get_tracker)) -> SyncStatusSchema:
    return sync_status(tracker)


@router.post("/sync/now", response_model=SyncActionResponse)
async def sync_now(tracker: Tracker = Depends(get_tracker)) -> SyncActionResponse:
    """Push local data now (skipped while the remote backup is newer)."""
    performed = await tracker.sync.sync_now()
    return SyncActionResponse(performed=performed, status=sync_status(tracker))


@router.post("/sync/check", response_model=SyncActionResponse)
async def check_remote(tracker: Tracker = Depends(get_tracker)) -> SyncActionResponse:
    """Check whether the remote backup is newer than the last sync."""
    remote_ahead = await tracker.sync.check_remote_status()
    return SyncActionResponse(performed=remote_ahead, status=sync_status(tracker))


@router.post("/sync/restore", response_model=SyncActionResponse)
async def restore(tracker: Tracker = Depends(get_tracker)) -> SyncActionResponse:
    """Replace local data with the remote backup."""
    performed = await tracker.sync.restore_from_remote()
    return SyncActionResponse(performed=performed, status=sync_status(tracker))


@router.post("/sync/keep-local", response_model=SyncActionResponse)
async def keep_local(tracker: Tracker = Depends(get_tracker)) -> SyncActionResponse:
    """Overwrite the remote backup with local data."""
    performed = await tracker.sync.keep_local()
    return SyncActionResponse(performed=performed, status=sync_status(tracker))


# ============================================================================
# ENVIRONMENT EVENTS
# ============================================================================


@router.post("/connectivity", response_model=SyncStatusSchema)
async def set_connectivity(
    update: ConnectivityUpdate, tracker: Tracker = Depends(get_tracker)
) -> SyncStatusSchema:
    await tracker.sync.set_online(update.online)
    return sync_status(tracker)


@router.post("/lifecycle/foreground", response_model=SyncStatusSchema)
async def foreground(tracker: Tracker = Depends(get_tracker)) -> SyncStatusSchema:
    """App returned to the foreground: check for a newer remote backup."""
    await tracker.sync.on_foreground()
    return sync_status(tracker)
