"""
Synchronization Controller

Keeps the cloud backup eventually consistent with the local store while
never blocking local use.

Flow:
1. A mutation marks the data dirty → debounced sync
2. Sync: upload pending media, export snapshot, upload it, record the time
3. Staleness checks (poll, foreground, reconnect) flag a newer remote backup
4. The user resolves a newer remote with restore (pull) or keep-local (push)

Retries are passive: a failed sync is retried by the next trigger, never on
its own schedule.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

from myiep.config import settings
from myiep.core.clock import now_ms
from myiep.core.errors import AuthError, MyIEPError, NetworkError, RemoteError
from myiep.core.schemas import MediaAttachment, MediaState, ObservationLog
from myiep.gateway.base import CloudBackupGateway
from myiep.media.naming import build_media_filename
from myiep.media.staging import MediaStaging
from myiep.store.record_store import RecordStore

from .debounce import Debouncer
from .state import SyncState, SyncStatus

logger = logging.getLogger(__name__)

AsyncListener = Callable[[], Awaitable[None]]


class SyncController:
    """Owns the sync state machine and both media upload paths."""

    def __init__(
        self,
        store: RecordStore,
        gateway: CloudBackupGateway,
        staging: MediaStaging,
        *,
        debounce_seconds: float | None = None,
        poll_interval_seconds: float | None = None,
        remote_ahead_tolerance_ms: int | None = None,
        saved_reset_seconds: float | None = None,
        clock: Callable[[], int] = now_ms,
        online: bool = True,
    ):
        """Initialize sync controller.

        Args:
            store: Local record store
            gateway: Remote backup gateway
            staging: Media staging registry
            debounce_seconds: Quiet period before a dirty signal syncs
            poll_interval_seconds: Period of the staleness poll
            remote_ahead_tolerance_ms: Clock skew allowance for staleness
            saved_reset_seconds: How long 'saved' shows before reverting to idle
            clock: Epoch-ms clock used for the last-sync marker
            online: Initial connectivity
        """
        self.store = store
        self.gateway = gateway
        self.staging = staging
        self.clock = clock

        self.poll_interval = poll_interval_seconds or settings.SYNC_POLL_INTERVAL_SECONDS
        self.tolerance_ms = (
            remote_ahead_tolerance_ms
            if remote_ahead_tolerance_ms is not None
            else settings.REMOTE_AHEAD_TOLERANCE_MS
        )
        self.saved_reset_seconds = (
            saved_reset_seconds
            if saved_reset_seconds is not None
            else settings.SAVED_STATUS_RESET_SECONDS
        )

        self.status = SyncStatus()
        self._debouncer = Debouncer(
            debounce_seconds or settings.SYNC_DEBOUNCE_SECONDS, self.sync_now
        )
        self._online = online
        self._dirty = False
        self._poll_task: asyncio.Task[None] | None = None
        self._saved_reset: asyncio.TimerHandle | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._restore_listeners: list[AsyncListener] = []
        # log id -> media references this controller has since replaced
        self._superseded: dict[str, set[str]] = {}
        self._media_listeners: list[AsyncListener] = []

    # ========================================================================
    # STATE
    # ========================================================================

    @property
    def online(self) -> bool:
        return self._online

    @property
    def has_unsynced_changes(self) -> bool:
        return self._dirty

    @property
    def can_sync(self) -> bool:
        return self._online and self.gateway.is_authenticated()

    def on_restored(self, listener: AsyncListener) -> None:
        """Call `listener` after local data was replaced by a restore."""
        self._restore_listeners.append(listener)

    def on_media_updated(self, listener: AsyncListener) -> None:
        """Call `listener` after the immediate upload path rewrote a log's media."""
        self._media_listeners.append(listener)

    async def load(self) -> None:
        """Pick up the persisted last-sync marker."""
        self.status.update(last_sync_time=await self.store.get_last_sync_time())

    # ========================================================================
    # DIRTY SIGNAL / SYNC
    # ========================================================================

    def mark_dirty(self) -> None:
        """Record that local data changed and arm the debounced sync.

        The change is remembered while offline or signed out; the next
        reconnect or sign-in pushes it.
        """
        self._dirty = True
        if not self.can_sync:
            return
        self._debouncer.trigger()

    async def sync_now(self, force: bool = False) -> bool:
        """Push local state to the remote backup.

        Args:
            force: Overwrite even when the remote is ahead (keep-local)

        Returns:
            True if the backup was written. Never raises; failures land in
            the ERROR state and are retried by the next trigger.
        """
        if self.status.state == SyncState.SYNCING:
            logger.debug("Sync already in progress, skipping")
            return False
        if not self.can_sync:
            logger.debug("Offline or signed out, skipping sync")
            return False
        if self.status.state == SyncState.REMOTE_AHEAD and not force:
            logger.info("Remote backup is newer; waiting for restore or keep-local")
            return False

        self._debouncer.cancel()
        self._cancel_saved_reset()
        self._dirty = False
        self.status.update(state=SyncState.SYNCING, loading_message="Saving to cloud...")

        try:
            await self.reconcile_media()
            blob = await self.store.export_snapshot()
            await self.gateway.upload_snapshot(blob)
            synced_at = self.clock()
            await self.store.set_last_sync_time(synced_at)
        except MyIEPError as e:
            self._fail(e)
            return False

        logger.info("Backup synced", extra={"last_sync_time": synced_at})
        self.status.update(
            state=SyncState.SAVED,
            last_sync_time=synced_at,
            last_error=None,
            loading_message=None,
        )
        self._schedule_saved_reset()

        # Changes made while the upload was in flight
        if self._dirty and self.can_sync:
            self._debouncer.trigger()
        return True

    async def keep_local(self) -> bool:
        """Overwrite the remote backup with local data."""
        return await self.sync_now(force=True)

    def _fail(self, error: MyIEPError, *, keep_pending: bool = True) -> None:
        if keep_pending:
            self._dirty = True
        if isinstance(error, AuthError):
            logger.warning(f"Remote session rejected, signing out: {error}")
            self.gateway.clear_session()
        else:
            logger.error(f"Sync failed: {error}", extra={"error_type": type(error).__name__})

        self.status.update(state=SyncState.ERROR, last_error=str(error), loading_message=None)

    def _schedule_saved_reset(self) -> None:
        def reset() -> None:
            self._saved_reset = None
            if self.status.state == SyncState.SAVED:
                self.status.update(state=SyncState.IDLE)

        self._saved_reset = asyncio.get_running_loop().call_later(self.saved_reset_seconds, reset)

    def _cancel_saved_reset(self) -> None:
        if self._saved_reset is not None:
            self._saved_reset.cancel()
            self._saved_reset = None

    # ========================================================================
    # STALENESS / RESTORE
    # ========================================================================

    async def check_remote_status(self) -> bool:
        """Flag the remote backup as newer than our last sync.

        REMOTE_AHEAD is sticky: it is only cleared by restore or keep-local.

        Returns:
            True if the remote is ahead
        """
        if self.status.state == SyncState.REMOTE_AHEAD:
            return True
        if not self.can_sync or self.status.state == SyncState.SYNCING:
            return False

        try:
            metadata = await self.gateway.get_snapshot_metadata()
        except AuthError as e:
            logger.warning(f"Remote session rejected during status check: {e}")
            self.gateway.clear_session()
            return False
        except (NetworkError, RemoteError) as e:
            logger.warning(f"Remote status check failed: {e}")
            return False

        if metadata is None:
            return False

        last_sync = await self.store.get_last_sync_time()
        if metadata.last_modified > last_sync + self.tolerance_ms:
            logger.info(
                "Remote backup is newer than local",
                extra={"remote_modified": metadata.last_modified, "last_sync_time": last_sync},
            )
            self._debouncer.cancel()
            self.status.update(state=SyncState.REMOTE_AHEAD)
            return True

        return False

    async def restore_from_remote(self) -> bool:
        """Replace local structured data with the remote backup.

        Returns:
            True if local data was replaced
        """
        if self.status.state == SyncState.SYNCING or not self.can_sync:
            return False

        self._debouncer.cancel()
        self._cancel_saved_reset()
        was_ahead = self.status.state == SyncState.REMOTE_AHEAD
        self.status.update(state=SyncState.SYNCING, loading_message="Restoring from cloud...")

        try:
            blob = await self.gateway.download_snapshot()
            if blob is None:
                raise RemoteError("No backup found in cloud storage", status_code=404)
            await self.store.import_snapshot(blob)
            synced_at = self.clock()
            await self.store.set_last_sync_time(synced_at)

            self._dirty = False
            self.status.update(last_sync_time=synced_at)
            for listener in list(self._restore_listeners):
                await listener()
        except MyIEPError as e:
            self._fail(e, keep_pending=False)
            if was_ahead and self.gateway.is_authenticated():
                # Conflict is still unresolved
                self.status.update(state=SyncState.REMOTE_AHEAD)
            return False

        logger.info("Restored local data from backup", extra={"last_sync_time": synced_at})
        self.status.update(state=SyncState.IDLE, last_error=None, loading_message=None)
        return True

    # ========================================================================
    # MEDIA
    # ========================================================================

    def _needs_upload(self, log: ObservationLog) -> bool:
        return (
            log.media is not None
            and log.media.is_pending_upload
            and not self.gateway.is_remote_reference(log.media.reference)
            and log.id not in self.status.uploading
        )

    async def reconcile_media(self) -> int:
        """Upload every pending attachment (the sync-time sweep).

        A transient failure leaves the log pending for the next sweep.

        Returns:
            Number of logs whose media became remote

        Raises:
            AuthError: If the session is rejected (aborts the sweep)
            StorageError: If the local store fails
        """
        pending = [log for log in await self.store.all_logs() if self._needs_upload(log)]
        if not pending:
            return 0

        student_names = await self._student_names_by_goal()
        uploaded = 0

        for log in pending:
            if log.id in self.status.uploading:
                continue
            try:
                if await self._upload_log(log, student_names.get(log.goal_id)):
                    uploaded += 1
            except (NetworkError, RemoteError) as e:
                logger.warning(f"Media upload failed for log {log.id}, will retry: {e}")

        logger.info(f"Media sweep uploaded {uploaded}/{len(pending)} attachments")
        if uploaded:
            await self._notify_media_listeners()
        return uploaded

    async def upload_log_media(self, log_id: str) -> bool:
        """Upload one log's attachment right after it was recorded.

        When the upload cannot happen now, an ephemeral attachment is turned
        into a durable local copy so it survives a restart and the next
        sweep can still upload it.

        Returns:
            True if the log now references remote media
        """
        student_names = await self._student_names_by_goal() if self.can_sync else {}
        log = await self.store.get_log(log_id)
        if log is None or not self._needs_upload(log):
            return False

        if not self.can_sync:
            await self._keep_locally(log)
            return False

        try:
            uploaded = await self._upload_log(log, student_names.get(log.goal_id))
        except AuthError as e:
            logger.warning(f"Remote session rejected during media upload: {e}")
            self.gateway.clear_session()
            await self._keep_locally(log)
            return False
        except (NetworkError, RemoteError) as e:
            logger.warning(f"Media upload failed for log {log_id}, keeping local copy: {e}")
            await self._keep_locally(log)
            return False

        if uploaded:
            self.mark_dirty()
            await self._notify_media_listeners()
        return uploaded

    def schedule_media_upload(self, log_id: str) -> asyncio.Task[bool]:
        """Run the immediate upload path in the background."""
        return self._spawn(self.upload_log_media(log_id), f"media upload for {log_id}")

    async def _upload_log(self, log: ObservationLog, student_name: str | None) -> bool:
        """Shared by both upload paths. The log is in `uploading` throughout."""
        media = log.media
        if media is None:
            return False

        self.status.mark_uploading(log.id)
        try:
            staged = self.staging.resolve(media)
            if staged is None:
                if media.state == MediaState.EPHEMERAL:
                    logger.warning(f"Attachment for log {log.id} no longer available")
                    await self.store.patch_log_media(
                        log.id,
                        expected_reference=media.reference,
                        media=media.model_copy(update={"state": MediaState.MISSING}),
                    )
                return False

            name = build_media_filename(
                log.timestamp, student_name, staged.filename, staged.mime_type
            )
            remote = await self.gateway.upload_media(staged.data, name, staged.mime_type)

            patched = await self.store.patch_log_media(
                log.id,
                expected_reference=media.reference,
                media=MediaAttachment(
                    reference=remote.reference,
                    filename=name,
                    mime_type=staged.mime_type,
                    state=MediaState.REMOTE,
                    remote_id=remote.remote_id,
                ),
            )
            if patched:
                self._supersede(log.id, media.reference)
                self.staging.release(media.reference)
            return patched
        finally:
            self.status.clear_uploading(log.id)

    async def _keep_locally(self, log: ObservationLog) -> None:
        media = log.media
        if media is None or media.state != MediaState.EPHEMERAL:
            return

        durable = self.staging.to_durable(media)
        if durable is None:
            return

        if await self.store.patch_log_media(
            log.id, expected_reference=media.reference, media=durable
        ):
            self._supersede(log.id, media.reference)
            self.staging.release(media.reference)
            await self._notify_media_listeners()

    def _supersede(self, log_id: str, reference: str) -> None:
        self._superseded.setdefault(log_id, set()).add(reference)

    def superseded_references(self, log_id: str) -> frozenset[str]:
        """References a log held before an upload or local promotion replaced them.

        An edit still carrying one of these was made against an outdated view.
        """
        return frozenset(self._superseded.get(log_id, ()))

    async def _student_names_by_goal(self) -> dict[str, str]:
        """Goal ID → student name, captured once per upload run."""
        names = {s.id: s.name for s in await self.store.get_students()}
        return {
            g.id: names[g.student_id]
            for g in await self.store.get_all_goals()
            if g.student_id in names
        }

    async def _notify_media_listeners(self) -> None:
        for listener in list(self._media_listeners):
            await listener()

    def delete_remote_media(self, media: MediaAttachment | str) -> asyncio.Task[bool] | None:
        """Move a remote attachment to trash in the background.

        Local-only references are ignored.
        """
        if isinstance(media, str):
            media = MediaAttachment.from_reference(media)

        if media.state != MediaState.REMOTE or not self.gateway.is_remote_reference(
            media.reference
        ):
            return None
        if not self.can_sync:
            logger.info(
                "Offline; leaving remote attachment in place", extra={"ref": media.reference}
            )
            return None

        return self._spawn(
            self.gateway.delete_media(media.reference, remote_id=media.remote_id),
            "remote media delete",
        )

    # ========================================================================
    # LIFECYCLE TRIGGERS
    # ========================================================================

    async def set_online(self, online: bool) -> None:
        """Connectivity changed. Coming back online checks, then pushes."""
        came_online = online and not self._online
        self._online = online
        logger.info(f"Connectivity: {'online' if online else 'offline'}")

        if not online:
            self._debouncer.cancel()
            return

        if came_online and self.gateway.is_authenticated():
            await self.check_remote_status()
            await self.sync_now()

    async def on_authenticated(self) -> None:
        """A session was just established."""
        await self.load()
        if not await self.check_remote_status():
            await self.sync_now()

    def on_session_lost(self) -> None:
        """Sign-out: drop the session and stop pending syncs."""
        self.gateway.clear_session()
        self._debouncer.cancel()
        self.status.update(state=SyncState.IDLE, last_error=None, loading_message=None)

    async def on_foreground(self) -> None:
        await self.check_remote_status()

    async def tick(self) -> None:
        """One poll cycle: check staleness, then push anything outstanding."""
        if not self.can_sync:
            return

        if await self.check_remote_status():
            return

        if self._dirty or self.status.state == SyncState.ERROR or await self._has_pending_media():
            await self.sync_now()

    async def _has_pending_media(self) -> bool:
        return any(self._needs_upload(log) for log in await self.store.all_logs())

    def start(self) -> None:
        """Start the periodic staleness poll."""
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())

    async def stop(self) -> None:
        """Stop polling and wait for background work to finish."""
        if self._poll_task is not None:
            self._poll_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._poll_task
            self._poll_task = None

        self._debouncer.cancel()
        self._cancel_saved_reset()
        await self.drain()

    async def drain(self) -> None:
        """Wait for debounced syncs and background uploads/deletes in flight."""
        await self._debouncer.wait()
        while running := [t for t in self._background if not t.done()]:
            await asyncio.gather(*running, return_exceptions=True)
        await self._debouncer.wait()

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.tick()
            except MyIEPError as e:
                logger.error(f"Sync poll failed: {e}")

    def _spawn(self, coro: Coroutine[Any, Any, Any], label: str) -> asyncio.Task[Any]:
        async def run() -> Any:
            try:
                return await coro
            except MyIEPError as e:
                logger.error(f"Background {label} failed: {e}")
                return False

        task = asyncio.get_running_loop().create_task(run())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task
