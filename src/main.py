"""Ascend Tracker - service wiring and command-line entry point."""

import argparse
import logging
import sys
import time
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from . import __version__
from .auth import KeychainManager
from .config import Config, setup_logging
from .tracking import (
    AscendClient,
    AscendClientError,
    Challenge,
    ChallengeProgress,
    SqliteStateStore,
    TimeTracker,
    TimeWindow,
    UploadQueue,
)
from .tracking.protocols import StateStoreProtocol
from .tracking.retry import calculate_delay

logger = logging.getLogger(__name__)

MAX_RETRY_BACKOFF = 600  # seconds


class TrackerService:
    """Owns the tracker, its upload queue and the periodic retry job.

    Uploads are enabled only when ``config.upload_enabled`` is set and an
    API key is available; otherwise sessions are kept locally.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        state: Optional[StateStoreProtocol] = None,
        keychain: Optional[KeychainManager] = None,
        client: Optional[AscendClient] = None,
        background: bool = True,
    ) -> None:
        self.config = config or Config.load()
        self.state = state if state is not None else SqliteStateStore()
        self.keychain = keychain or KeychainManager()

        if client is None:
            client = AscendClient(
                api_url=self.config.effective_api_url,
                api_key=self.keychain.load(),
                upload_timeout=self.config.upload_timeout,
            )
        self.client = client

        self.upload_queue: Optional[UploadQueue] = None
        if self.config.upload_enabled and self.client.has_credentials:
            self.upload_queue = UploadQueue(self.state, self.client, background=background)
        else:
            logger.info("No API key configured, sessions will stay local")

        self.tracker = TimeTracker(
            self.state,
            timezone=self.config.timezone,
            upload_queue=self.upload_queue,
        )
        self.scheduler = BackgroundScheduler()
        self.challenge: Optional[Challenge] = None
        self._repo_url: Optional[str] = None

        # Backoff for the periodic retry job only
        self._consecutive_failures = 0
        self._backoff_until = 0.0

    def start(self) -> None:
        """Re-queue stored sessions and start retrying pending uploads."""
        self.tracker.reconcile_uploads()
        if self.upload_queue is None:
            return

        self.scheduler.add_job(
            self._retry_pending_uploads,
            trigger=IntervalTrigger(seconds=self.config.retry_interval_seconds),
            id="upload_retry_job",
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(
            f"Upload retry loop started (interval: {self.config.retry_interval_seconds}s)"
        )

    def stop(self) -> None:
        """Shut down the scheduler and release resources."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        if self.upload_queue is not None:
            self.upload_queue.wait(timeout=self.config.upload_timeout)
        self.client.close()
        close = getattr(self.state, "close", None)
        if close is not None:
            close()

    def _retry_pending_uploads(self) -> None:
        """Drain the upload queue, backing off after repeated failures."""
        try:
            if self.upload_queue is None or self.upload_queue.is_empty():
                return
            if time.monotonic() < self._backoff_until:
                return

            result = self.upload_queue.drain()
            if result.skipped:
                return
            if result.success:
                self._consecutive_failures = 0
                self._backoff_until = 0.0
            else:
                self._apply_backoff()
        except Exception as e:
            logger.exception(f"Upload retry error: {e}")

    def _apply_backoff(self) -> None:
        self._consecutive_failures += 1
        delay = calculate_delay(
            self._consecutive_failures - 1,
            base_delay=self.config.retry_interval_seconds,
            max_delay=MAX_RETRY_BACKOFF,
            jitter=False,
        )
        self._backoff_until = time.monotonic() + delay
        logger.info(
            f"Upload backoff: retry in {delay:.0f}s (failure #{self._consecutive_failures})"
        )

    def refresh_challenge(self, repo_url: str) -> Optional[Challenge]:
        """Fetch the active challenge for a repository."""
        self._repo_url = repo_url
        if not self.client.has_credentials:
            return None
        self.challenge = self.client.get_current_challenge(repo_url)
        return self.challenge

    def check_challenge(
        self, project_key: str, now_ms: Optional[int] = None
    ) -> Optional[ChallengeProgress]:
        """Report today's challenge progress and validate the day once the goal is met."""
        if self.challenge is None:
            return None

        progress = self.tracker.challenge_progress(self.challenge, project_key, now_ms)
        if progress.should_validate:
            try:
                self.client.validate_day(self.challenge)
                logger.info(f"Challenge day {progress.day.day_number} validated")
                if self._repo_url:
                    self.refresh_challenge(self._repo_url)
            except AscendClientError as e:
                logger.warning(f"Failed to validate challenge day: {e}")
        return progress

    def __enter__(self) -> "TrackerService":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ascend-tracker", description="Track coding time per project."
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    record = sub.add_parser("record", help="Record an activity session")
    record.add_argument("--project", required=True)
    record.add_argument("start", type=int, help="Start, epoch milliseconds")
    record.add_argument("end", type=int, help="End, epoch milliseconds")

    today = sub.add_parser("today", help="Show today's coding time")
    today.add_argument("--project", required=True)

    window = sub.add_parser("window", help="Show coding time within a window")
    window.add_argument("--project", required=True)
    window.add_argument("start", type=int, help="Start, epoch milliseconds")
    window.add_argument("end", type=int, help="End, epoch milliseconds")

    sub.add_parser("sync", help="Re-queue stored sessions and upload them")

    set_key = sub.add_parser("set-api-key", help="Store the Ascend API key")
    set_key.add_argument("api_key")

    sub.add_parser("clear-api-key", help="Remove the stored Ascend API key")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = _build_parser().parse_args(argv)
    config = Config.load()
    setup_logging(args.debug or config.debug_mode)

    if args.command == "set-api-key":
        return 0 if KeychainManager().store(args.api_key) else 1
    if args.command == "clear-api-key":
        return 0 if KeychainManager().delete() else 1

    with TrackerService(config, background=False) as service:
        tracker = service.tracker

        if args.command == "record":
            delta = tracker.record_session(TimeWindow(args.start, args.end), args.project)
            print(f"Recorded {len(delta)} session change(s) for {args.project}")
        elif args.command == "today":
            parts = tracker.separate_time(tracker.get_today_time(args.project))
            print(f"Today's coding time on {args.project}: {parts}")
        elif args.command == "window":
            duration = tracker.get_time_in_window(
                TimeWindow(args.start, args.end), args.project
            )
            print(f"Coding time on {args.project}: {tracker.separate_time(duration)}")
        elif args.command == "sync":
            if service.upload_queue is None:
                print("Uploads are disabled: no API key configured")
                return 1
            tracker.reconcile_uploads()
            remaining = service.upload_queue.size()
            print(f"{remaining} session(s) still pending upload")
            return 0 if remaining == 0 else 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
