"""Tests for the upload queue."""

import tempfile
from pathlib import Path
from unittest.mock import Mock

import pytest

from src.tracking.ascend_client import AscendClient, UploadResult
from src.tracking.models import ONE_HOUR_IN_MS, TimeWindow
from src.tracking.session_store import SessionStore
from src.tracking.state_store import SqliteStateStore
from src.tracking.upload_queue import PENDING_UPLOADS_KEY, UploadQueue

W1 = TimeWindow(1_000, 2_000)
W2 = TimeWindow(3_000, 4_000)
W3 = TimeWindow(5_000, 6_000)


class TestUploadQueue:
    """Tests for UploadQueue."""

    def setup_method(self):
        """Set up a queue with a mock sink that always succeeds."""
        self.temp_dir = tempfile.mkdtemp()
        self.state = SqliteStateStore(db_path=Path(self.temp_dir) / "state.db")
        self.sink = Mock(spec=AscendClient)
        self.sink.upload_sessions.return_value = UploadResult(success=True)
        self.queue = UploadQueue(self.state, self.sink, background=False)

    def teardown_method(self):
        """Clean up."""
        self.state.close()

    def test_enqueue_persists_immediately(self):
        """Pending sessions survive a restart before any drain."""
        self.queue.enqueue("repo-a", [W1, W2])

        assert self.state.get(PENDING_UPLOADS_KEY) == {
            "repo-a": [W1.to_dict(), W2.to_dict()]
        }
        restarted = UploadQueue(self.state, self.sink, background=False)
        assert restarted.pending() == {"repo-a": [W1, W2]}

    def test_enqueue_empty_is_noop(self):
        self.queue.enqueue("repo-a", [])

        assert self.queue.is_empty()
        assert self.state.get(PENDING_UPLOADS_KEY) is None

    def test_drain_uploads_and_clears(self):
        """A successful drain delivers every project and empties the queue."""
        self.queue.enqueue("repo-a", [W1])
        self.queue.enqueue("repo-b", [W2, W3])

        result = self.queue.drain()

        assert result.success is True
        assert result.sessions_uploaded == 3
        assert result.projects_uploaded == ["repo-a", "repo-b"]
        self.sink.upload_sessions.assert_any_call("repo-a", [W1])
        self.sink.upload_sessions.assert_any_call("repo-b", [W2, W3])
        assert self.queue.is_empty()
        assert self.state.get(PENDING_UPLOADS_KEY) == {}

    def test_drain_empty_queue(self):
        result = self.queue.drain()

        assert result.success is True
        assert result.sessions_uploaded == 0
        self.sink.upload_sessions.assert_not_called()

    def test_failure_requeues_and_stops_pass(self):
        """A failed upload keeps its sessions and skips later projects."""
        self.sink.upload_sessions.return_value = UploadResult(
            success=False, error="Server error: 503"
        )
        self.queue.enqueue("repo-a", [W1])
        self.queue.enqueue("repo-b", [W2])

        result = self.queue.drain()

        assert result.success is False
        assert result.failed_project == "repo-a"
        assert result.error == "Server error: 503"
        assert self.sink.upload_sessions.call_count == 1
        assert self.queue.pending() == {"repo-a": [W1], "repo-b": [W2]}
        assert self.state.get(PENDING_UPLOADS_KEY) == {
            "repo-a": [W1.to_dict()],
            "repo-b": [W2.to_dict()],
        }

    def test_retry_after_failure_delivers(self):
        """Sessions kept after a failure go out on the next drain."""
        self.sink.upload_sessions.return_value = UploadResult(success=False, error="down")
        self.queue.enqueue("repo-a", [W1])
        self.queue.drain()

        self.sink.upload_sessions.return_value = UploadResult(success=True)
        result = self.queue.drain()

        assert result.success is True
        assert result.sessions_uploaded == 1
        assert self.queue.is_empty()

    def test_snapshot_cleared_before_send(self):
        """The project's list is emptied and persisted while its upload runs."""
        seen = {}

        def upload(project, sessions):
            seen["pending"] = self.queue.pending(project)
            seen["stored"] = self.state.get(PENDING_UPLOADS_KEY)
            return UploadResult(success=True)

        self.sink.upload_sessions.side_effect = upload
        self.queue.enqueue("repo-a", [W1])

        self.queue.drain()

        assert seen["pending"] == {"repo-a": []}
        assert seen["stored"] == {}

    def test_failure_requeues_in_front_of_new_entries(self):
        """Sessions enqueued during a failed upload stay behind the snapshot."""

        def upload(project, sessions):
            self.queue.enqueue(project, [W3])
            return UploadResult(success=False, error="timeout")

        self.sink.upload_sessions.side_effect = upload
        self.queue.enqueue("repo-a", [W1, W2])

        self.queue.drain()

        assert self.queue.pending("repo-a") == {"repo-a": [W1, W2, W3]}

    def test_entries_enqueued_during_success_are_not_lost(self):
        """A successful upload leaves later entries for the next drain."""

        def upload(project, sessions):
            if sessions == [W1]:
                self.queue.enqueue(project, [W2])
            return UploadResult(success=True)

        self.sink.upload_sessions.side_effect = upload
        self.queue.enqueue("repo-a", [W1])

        self.queue.drain()

        assert self.queue.pending() == {"repo-a": [W2]}

    def test_concurrent_drain_is_skipped(self):
        """A drain requested while one is running returns immediately."""
        nested = {}

        def upload(project, sessions):
            nested["result"] = self.queue.drain()
            return UploadResult(success=True)

        self.sink.upload_sessions.side_effect = upload
        self.queue.enqueue("repo-a", [W1])

        result = self.queue.drain()

        assert result.success is True
        assert nested["result"].skipped is True
        assert nested["result"].success is False
        assert self.sink.upload_sessions.call_count == 1

    def test_unexpected_error_requeues_and_propagates(self):
        """Exceptions from the sink never lose the snapshot."""
        self.sink.upload_sessions.side_effect = RuntimeError("boom")
        self.queue.enqueue("repo-a", [W1])

        with pytest.raises(RuntimeError):
            self.queue.drain()

        assert self.queue.pending() == {"repo-a": [W1]}
        assert self.queue.is_draining is False

    def test_trigger_drain_logs_unexpected_errors(self, caplog):
        """Triggered drains capture and log exceptions."""
        self.sink.upload_sessions.side_effect = RuntimeError("boom")
        self.queue.enqueue("repo-a", [W1])

        self.queue.trigger_drain()

        assert "Upload drain crashed" in caplog.text
        assert self.queue.pending() == {"repo-a": [W1]}

    def test_trigger_drain_in_background(self):
        """Background drains run on a separate thread."""
        queue = UploadQueue(self.state, self.sink, background=True)
        queue.enqueue("repo-a", [W1])

        queue.trigger_drain()
        queue.wait(timeout=5)

        self.sink.upload_sessions.assert_called_once_with("repo-a", [W1])
        assert queue.is_empty()

    def test_malformed_pending_map_is_ignored(self):
        self.state.update(PENDING_UPLOADS_KEY, ["not", "a", "map"])

        queue = UploadQueue(self.state, self.sink, background=False)

        assert queue.is_empty()

    def test_malformed_pending_entries_are_dropped(self):
        self.state.update(
            PENDING_UPLOADS_KEY,
            {"repo-a": [W1.to_dict(), "junk"], "repo-b": "junk"},
        )

        queue = UploadQueue(self.state, self.sink, background=False)

        assert queue.pending() == {"repo-a": [W1]}


class TestReconcile:
    """Tests for startup reconciliation."""

    def setup_method(self):
        """Set up a store with history and a failing sink."""
        self.temp_dir = tempfile.mkdtemp()
        self.state = SqliteStateStore(db_path=Path(self.temp_dir) / "state.db")
        self.store = SessionStore(self.state, timezone="UTC")
        self.sink = Mock(spec=AscendClient)
        self.sink.upload_sessions.return_value = UploadResult(success=False, error="offline")

        self.a1 = TimeWindow(ONE_HOUR_IN_MS, 2 * ONE_HOUR_IN_MS)
        self.a2 = TimeWindow(5 * ONE_HOUR_IN_MS, 6 * ONE_HOUR_IN_MS)
        self.b1 = TimeWindow(30 * ONE_HOUR_IN_MS, 31 * ONE_HOUR_IN_MS)
        self.store.record_session(self.a1, "repo-a")
        self.store.record_session(self.a2, "repo-a")
        self.store.record_session(self.b1, "repo-b")

    def teardown_method(self):
        """Clean up."""
        self.state.close()

    def test_requeues_every_stored_session(self):
        queue = UploadQueue(self.state, self.sink, background=False)

        added = queue.reconcile(SessionStore(self.state, timezone="UTC"))

        assert added == 3
        assert queue.pending() == {"repo-a": [self.a1, self.a2], "repo-b": [self.b1]}

    def test_does_not_duplicate_pending_sessions(self):
        queue = UploadQueue(self.state, self.sink, background=False)
        queue.enqueue("repo-a", [self.a1])

        added = queue.reconcile(self.store)

        assert added == 2
        assert queue.pending("repo-a") == {"repo-a": [self.a1, self.a2]}

    def test_attempts_drain_after_requeue(self):
        self.sink.upload_sessions.return_value = UploadResult(success=True)
        queue = UploadQueue(self.state, self.sink, background=False)

        queue.reconcile(self.store)

        assert self.sink.upload_sessions.call_count == 2
        assert queue.is_empty()

    def test_reconcile_with_no_history(self):
        empty_state = SqliteStateStore(db_path=Path(self.temp_dir) / "empty.db")
        queue = UploadQueue(empty_state, self.sink, background=False)

        assert queue.reconcile(SessionStore(empty_state)) == 0
        self.sink.upload_sessions.assert_not_called()
        empty_state.close()
