"""Background worker for queued submission grading."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Dict, List, Optional, Set

from sqlalchemy.orm import Session

from codearena.config import Settings
from codearena.core.database import Database
from codearena.core.exceptions import BusinessLogicError
from codearena.models.submission import Submission, SubmissionState
from codearena.services.scoring_engine import ScoringEngine
from codearena.services.submission_store import submission_store

logger = logging.getLogger(__name__)


class SubmissionWorker:
    """
    DB-backed submission queue worker.

    A polling thread claims Pending submissions and hands each to a bounded
    thread pool, one grading task per submission. The same thread runs the
    watchdog, which fails submissions stuck in Judging and re-queues
    flagged failures.
    """

    def __init__(self, database: Database, engine: ScoringEngine, settings: Settings) -> None:
        self._database = database
        self._engine = engine
        self._settings = settings
        self._thread: Optional[threading.Thread] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._stop_event = threading.Event()
        self._wake = threading.Event()
        self._heartbeat: float = 0.0
        self._last_watchdog: float = 0.0
        self._processed_count: int = 0
        self._in_flight: Set[int] = set()
        self._lock = threading.Lock()

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running():
            return
        self._stop_event.clear()
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, self._settings.WORKER_CONCURRENCY),
            thread_name_prefix="grader",
        )
        self._thread = threading.Thread(target=self._run_loop, name="submission-worker", daemon=True)
        self._thread.start()
        logger.info("Submission worker started (concurrency=%s)", self._settings.WORKER_CONCURRENCY)

    def stop(self) -> None:
        self._stop_event.set()
        self._wake.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        logger.info("Submission worker stopped")

    def notify(self) -> None:
        """Wake the polling thread early, e.g. right after a submission is created"""
        self._wake.set()

    def status(self) -> dict:
        with self._lock:
            in_flight = len(self._in_flight)
            processed = self._processed_count
        return {
            "running": self.is_running(),
            "last_heartbeat": self._heartbeat,
            "last_watchdog_run": self._last_watchdog,
            "processed_count": processed,
            "in_flight": in_flight,
            "concurrency": self._settings.WORKER_CONCURRENCY,
        }

    def queue_depth(self, db: Session) -> int:
        return submission_store.queue_depth(db)

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            claimed = 0
            try:
                with self._lock:
                    free = self._settings.WORKER_CONCURRENCY - len(self._in_flight)
                for _ in range(max(0, free)):
                    submission_id = self.claim_next()
                    if submission_id is None:
                        break
                    self._dispatch(submission_id)
                    claimed += 1

                if time.time() - self._last_watchdog >= self._settings.WATCHDOG_INTERVAL_SECONDS:
                    self.run_watchdog()
            except Exception:
                logger.exception("Submission worker loop iteration failed")

            self._heartbeat = time.time()
            if claimed == 0:
                self._wake.wait(max(0.1, self._settings.WORKER_POLL_INTERVAL_SECONDS))
                self._wake.clear()

    def _dispatch(self, submission_id: int) -> None:
        with self._lock:
            self._in_flight.add(submission_id)
        future: Future = self._executor.submit(self.process, submission_id)
        future.add_done_callback(lambda _f: self._done(submission_id))

    def _done(self, submission_id: int) -> None:
        with self._lock:
            self._in_flight.discard(submission_id)
            self._processed_count += 1
        self._wake.set()

    def claim_next(self) -> Optional[int]:
        db = self._database.session()
        try:
            return submission_store.claim_next(db)
        finally:
            db.close()

    def process(self, submission_id: int) -> Optional[SubmissionState]:
        """Grade one claimed submission; any unexpected failure ends it in InternalError"""
        try:
            return self._engine.grade(submission_id)
        except Exception as exc:
            logger.exception("Submission %s processing failed: %s", submission_id, exc)
            try:
                self._engine.fail(submission_id, "worker_failure")
            except Exception:
                # Left in Judging; the watchdog will fail it after its deadline.
                logger.exception("Could not mark submission %s as failed", submission_id)
            return SubmissionState.INTERNAL_ERROR

    def process_next_submission(self) -> bool:
        """Claim and grade one submission on the calling thread"""
        submission_id = self.claim_next()
        if submission_id is None:
            return False
        try:
            self.process(submission_id)
        finally:
            with self._lock:
                self._processed_count += 1
        return True

    def run_watchdog(self, now: Optional[datetime] = None) -> Dict[str, List[int]]:
        """
        Fail submissions stuck in Judging and re-queue flagged failures.

        Returns:
            Ids of submissions failed and of the new copies created by re-queue.
        """
        self._last_watchdog = time.time()
        db = self._database.session()
        try:
            stuck_ids = [s.id for s in submission_store.find_stuck(db, self._settings, now=now)]
        finally:
            db.close()

        failed = []
        for submission_id in stuck_ids:
            with self._lock:
                if submission_id in self._in_flight:
                    logger.warning("Submission %s exceeded its grading deadline while in flight", submission_id)
            if self._engine.fail(submission_id, "stuck"):
                logger.warning("Watchdog failed stuck submission %s", submission_id)
                failed.append(submission_id)

        requeued = self.requeue_flagged() if self._settings.WATCHDOG_AUTO_REQUEUE else []
        return {"failed": failed, "requeued": requeued}

    def requeue_flagged(self) -> List[int]:
        db = self._database.session()
        created = []
        try:
            flagged = [
                row.id
                for row in db.query(Submission.id)
                .filter(
                    Submission.state == SubmissionState.INTERNAL_ERROR.value,
                    Submission.needs_requeue == True,  # noqa: E712
                    Submission.attempt < self._settings.WORKER_MAX_ATTEMPTS,
                )
                .order_by(Submission.id.asc())
                .all()
            ]
            for submission_id in flagged:
                try:
                    created.append(submission_store.requeue(db, submission_id).id)
                except BusinessLogicError:
                    # Re-queued concurrently by an admin.
                    continue
        finally:
            db.close()

        if created:
            self.notify()
        return created
