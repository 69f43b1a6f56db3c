"""Durable queue of sessions waiting to be uploaded to the Ascend API."""

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional

from .models import TimeWindow
from .protocols import SessionSinkProtocol, StateStoreProtocol
from .session_store import SessionStore

__all__ = ["UploadQueue", "DrainResult", "PENDING_UPLOADS_KEY"]

logger = logging.getLogger(__name__)

PENDING_UPLOADS_KEY = "ascend.pendingUploads"


@dataclass
class DrainResult:
    """Outcome of one drain pass."""

    sessions_uploaded: int = 0
    projects_uploaded: list[str] = field(default_factory=list)
    failed_project: Optional[str] = None
    error: Optional[str] = None
    skipped: bool = False  # another drain was already running

    @property
    def success(self) -> bool:
        return not self.skipped and self.failed_project is None


class UploadQueue:
    """Pending uploads per project, persisted on every change.

    Sessions are added with ``enqueue`` and delivered by ``drain``, one
    project at a time. A project's pending list is cleared before its upload
    starts and restored on failure, so entries enqueued while a request is
    in flight are neither lost nor duplicated. A failed upload ends the pass;
    the remaining projects wait for the next drain.

    Only one drain runs at a time. ``trigger_drain`` starts one on a daemon
    thread (or inline when ``background`` is False) and returns immediately
    if a drain is already in progress.
    """

    def __init__(
        self,
        state: StateStoreProtocol,
        sink: SessionSinkProtocol,
        background: bool = True,
    ):
        """Initialize the queue.

        Args:
            state: Persistence adapter for the pending map
            sink: Destination for uploads
            background: Run triggered drains on a separate thread
        """
        self._state = state
        self._sink = sink
        self._background = background
        self._lock = threading.Lock()
        self._drain_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._pending: dict[str, list[TimeWindow]] = self._load_pending()

    def _load_pending(self) -> dict[str, list[TimeWindow]]:
        stored = self._state.get(PENDING_UPLOADS_KEY)
        if stored is None:
            return {}
        if not isinstance(stored, dict):
            logger.warning("Ignoring malformed pending upload map")
            return {}

        pending: dict[str, list[TimeWindow]] = {}
        for project_key, entries in stored.items():
            if not isinstance(entries, list):
                continue
            windows = [w for w in (TimeWindow.from_dict(e) for e in entries) if w is not None]
            if windows:
                pending[project_key] = windows
        return pending

    def _persist(self) -> None:
        """Write the pending map. Caller must hold ``_lock``."""
        self._state.update(
            PENDING_UPLOADS_KEY,
            {
                project_key: [w.to_dict() for w in windows]
                for project_key, windows in self._pending.items()
                if windows
            },
        )

    def enqueue(self, project_key: str, windows: list[TimeWindow]) -> None:
        """Add sessions owed to the remote service for a project."""
        if not windows:
            return
        with self._lock:
            self._pending.setdefault(project_key, []).extend(windows)
            self._persist()
        logger.debug(f"Queued {len(windows)} session(s) for {project_key}")

    def pending(self, project_key: Optional[str] = None) -> dict[str, list[TimeWindow]]:
        """Snapshot of the pending map, optionally for one project."""
        with self._lock:
            if project_key is not None:
                return {project_key: list(self._pending.get(project_key, []))}
            return {p: list(w) for p, w in self._pending.items() if w}

    def size(self) -> int:
        """Number of pending sessions across all projects."""
        with self._lock:
            return sum(len(windows) for windows in self._pending.values())

    def is_empty(self) -> bool:
        return self.size() == 0

    @property
    def is_draining(self) -> bool:
        return self._drain_lock.locked()

    def _requeue(self, project_key: str, snapshot: list[TimeWindow]) -> None:
        with self._lock:
            self._pending[project_key] = snapshot + self._pending.get(project_key, [])
            self._persist()

    def drain(self) -> DrainResult:
        """Upload pending sessions, project by project.

        Returns:
            DrainResult describing what was delivered. ``skipped`` is set
            when another drain was already running.
        """
        if not self._drain_lock.acquire(blocking=False):
            logger.debug("Drain already in progress, skipping")
            return DrainResult(skipped=True)

        try:
            result = DrainResult()
            with self._lock:
                projects = [p for p, windows in self._pending.items() if windows]

            for project_key in projects:
                with self._lock:
                    snapshot = self._pending.pop(project_key, [])
                    self._persist()
                if not snapshot:
                    continue

                try:
                    upload = self._sink.upload_sessions(project_key, snapshot)
                except Exception:
                    self._requeue(project_key, snapshot)
                    raise

                if upload.success:
                    result.sessions_uploaded += len(snapshot)
                    result.projects_uploaded.append(project_key)
                    logger.info(f"Uploaded {len(snapshot)} session(s) for {project_key}")
                    continue

                self._requeue(project_key, snapshot)
                result.failed_project = project_key
                result.error = upload.error
                logger.warning(
                    f"Upload failed for {project_key}: {upload.error}. "
                    f"{len(snapshot)} session(s) kept for retry"
                )
                break

            return result
        finally:
            self._drain_lock.release()

    def _drain_in_background(self) -> None:
        try:
            self.drain()
        except Exception:
            logger.exception("Upload drain crashed; pending sessions kept for retry")

    def trigger_drain(self) -> None:
        """Start a drain without waiting for it."""
        if not self._background:
            self._drain_in_background()
            return
        if self.is_draining:
            return

        thread = threading.Thread(
            target=self._drain_in_background, name="upload-drain", daemon=True
        )
        self._thread = thread
        thread.start()

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until the last triggered background drain finishes."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def reconcile(self, store: SessionStore) -> int:
        """Re-queue every stored session of every project, then drain.

        Sessions may be delivered more than once; the remote service
        deduplicates them.

        Returns:
            Number of sessions added to the queue.
        """
        added = 0
        for project_key, day_key in store.stored_days():
            sessions = store.load_day(project_key, day_key)
            with self._lock:
                pending = self._pending.setdefault(project_key, [])
                for session in sessions:
                    if session not in pending:
                        pending.append(session)
                        added += 1

        with self._lock:
            self._persist()

        logger.info(f"Startup reconciliation re-queued {added} session(s)")
        self.trigger_drain()
        return added
