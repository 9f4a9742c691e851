"""Leaderboard service - ranked contest standings kept in step with participant aggregates"""

from __future__ import annotations

import bisect
import logging
import queue
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session

from codearena.core.database import Database
from codearena.models.contest import ContestParticipant

logger = logging.getLogger(__name__)

SortKey = Tuple[int, int, datetime, int]


@dataclass(frozen=True)
class Standing:
    participant_id: int
    user_id: int
    score: int
    problems_solved: int
    joined_at: datetime
    rank: int = 0

    @property
    def sort_key(self) -> SortKey:
        # score DESC, problems_solved DESC, joined_at ASC, user_id ASC
        return (-self.score, -self.problems_solved, self.joined_at, self.user_id)

    @classmethod
    def from_row(cls, row: ContestParticipant) -> "Standing":
        return cls(
            participant_id=row.id,
            user_id=row.user_id,
            score=row.score,
            problems_solved=row.problems_solved,
            joined_at=row.joined_at,
            rank=row.rank,
        )


class ContestBoard:
    """
    Sorted index over one contest's standings.

    Positions are found by binary search; rank is position + 1. Callers
    hold ``lock`` around every read and write so a reader never observes a
    half-applied move.
    """

    def __init__(self, standings: Iterable[Standing] = ()):
        self.lock = threading.Lock()
        self._by_user: Dict[int, Standing] = {}
        for standing in standings:
            self._by_user[standing.user_id] = standing
        self._keys: List[SortKey] = sorted(s.sort_key for s in self._by_user.values())

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, user_id: int) -> bool:
        return user_id in self._by_user

    def upsert(self, standing: Standing) -> Tuple[int, int]:
        """
        Insert or move one participant.

        Returns:
            Inclusive index range whose ranks may have changed; empty
            (start > end) when the entry did not move.
        """
        previous = self._by_user.get(standing.user_id)
        new_key = standing.sort_key

        if previous is None:
            new_index = bisect.bisect_left(self._keys, new_key)
            self._keys.insert(new_index, new_key)
            self._by_user[standing.user_id] = standing
            return new_index, len(self._keys) - 1

        old_key = previous.sort_key
        self._by_user[standing.user_id] = standing
        if old_key == new_key:
            return 0, -1

        old_index = bisect.bisect_left(self._keys, old_key)
        del self._keys[old_index]
        new_index = bisect.bisect_left(self._keys, new_key)
        self._keys.insert(new_index, new_key)
        return min(old_index, new_index), max(old_index, new_index)

    def rank_of(self, user_id: int) -> Optional[int]:
        standing = self._by_user.get(user_id)
        if standing is None:
            return None
        return bisect.bisect_left(self._keys, standing.sort_key) + 1

    def slice(self, start: int, stop: int) -> List[Standing]:
        """Standings at positions [start, stop) with ranks filled in"""
        result = []
        for index in range(max(0, start), min(stop, len(self._keys))):
            user_id = self._keys[index][3]
            result.append(replace(self._by_user[user_id], rank=index + 1))
        return result

    def ordered(self) -> List[Standing]:
        return self.slice(0, len(self._keys))


class LeaderboardService:
    """
    Per-contest standings.

    Scoring events are queued and applied incrementally: only the moved
    participant and the entries it passed get new ranks. A full rebuild
    from ContestParticipant rows (reconciliation) runs on first access, on
    demand and periodically, and is swapped in whole.
    """

    def __init__(self, database: Database, reconcile_interval_seconds: float = 300.0):
        self._database = database
        self._reconcile_interval = reconcile_interval_seconds
        self._boards: Dict[int, ContestBoard] = {}
        self._boards_lock = threading.Lock()
        # Serializes every path that writes ranks back to the database.
        self._write_lock = threading.Lock()
        self._events: "queue.Queue[Tuple[int, int]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._last_reconcile = 0.0

    # Background loop

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running():
            return
        self._stop_event.clear()
        self._last_reconcile = time.monotonic()
        self._thread = threading.Thread(target=self._run_loop, name="leaderboard", daemon=True)
        self._thread.start()
        logger.info("Leaderboard service started")

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        self.process_pending()
        logger.info("Leaderboard service stopped")

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                contest_id, user_id = self._events.get(timeout=0.5)
            except queue.Empty:
                pass
            else:
                self._apply_safely(contest_id, user_id)
                self.process_pending()

            if time.monotonic() - self._last_reconcile >= self._reconcile_interval:
                self._last_reconcile = time.monotonic()
                for contest_id in self.loaded_contests():
                    try:
                        self.rebuild(contest_id)
                    except Exception:
                        logger.exception("Periodic reconciliation failed for contest %s", contest_id)

    # Events

    def enqueue(self, contest_id: int, user_id: int) -> None:
        """Schedule a recompute of one participant's position"""
        self._events.put((contest_id, user_id))

    def pending_events(self) -> int:
        return self._events.qsize()

    def process_pending(self) -> int:
        """Apply every queued event on the calling thread"""
        processed = 0
        while True:
            try:
                contest_id, user_id = self._events.get_nowait()
            except queue.Empty:
                return processed
            self._apply_safely(contest_id, user_id)
            processed += 1

    def _apply_safely(self, contest_id: int, user_id: int) -> None:
        try:
            self.apply_participant(contest_id, user_id)
        except Exception:
            # The next reconciliation repairs whatever this event missed.
            logger.exception("Leaderboard update failed (contest=%s user=%s)", contest_id, user_id)

    def apply_participant(self, contest_id: int, user_id: int) -> int:
        """
        Re-read one participant's committed aggregate and move it in the index.

        Returns:
            Number of participants whose rank was rewritten.
        """
        with self._write_lock:
            board = self._get_board(contest_id)
            if board is None:
                return self._rebuild_locked(contest_id)

            db = self._database.session()
            try:
                row = (
                    db.query(ContestParticipant)
                    .filter(
                        ContestParticipant.contest_id == contest_id,
                        ContestParticipant.user_id == user_id,
                    )
                    .first()
                )
                if row is None:
                    return 0

                with board.lock:
                    start, end = board.upsert(Standing.from_row(row))
                    changed = board.slice(start, end + 1)

                self._persist_ranks(db, changed)
                return len(changed)
            finally:
                db.close()

    # Reconciliation

    def rebuild(self, contest_id: int) -> int:
        """
        Rebuild a contest's ranking from ContestParticipant rows.

        Returns:
            Number of participants whose stored rank changed.
        """
        with self._write_lock:
            return self._rebuild_locked(contest_id)

    def _rebuild_locked(self, contest_id: int) -> int:
        db = self._database.session()
        try:
            rows = db.query(ContestParticipant).filter(ContestParticipant.contest_id == contest_id).all()
            stored_ranks = {row.user_id: row.rank for row in rows}
            fresh = ContestBoard(Standing.from_row(row) for row in rows)
            ordered = fresh.ordered()
            changed = [s for s in ordered if stored_ranks.get(s.user_id) != s.rank]

            with self._boards_lock:
                self._boards[contest_id] = fresh

            self._persist_ranks(db, changed)
            if changed:
                logger.info(
                    "Leaderboard for contest %s rebuilt: %s participants, %s ranks corrected",
                    contest_id, len(ordered), len(changed),
                )
            return len(changed)
        finally:
            db.close()

    @staticmethod
    def _persist_ranks(db: Session, standings: List[Standing]) -> None:
        if not standings:
            return
        db.execute(
            update(ContestParticipant),
            [{"id": s.participant_id, "rank": s.rank} for s in standings],
        )
        db.commit()

    # Reads

    def _get_board(self, contest_id: int) -> Optional[ContestBoard]:
        with self._boards_lock:
            return self._boards.get(contest_id)

    def loaded_contests(self) -> List[int]:
        with self._boards_lock:
            return list(self._boards)

    def get_page(self, contest_id: int, limit: Optional[int], offset: int = 0) -> Tuple[List[Standing], int]:
        """
        One page of the last fully-applied ranking; every entry when ``limit`` is None.

        Returns:
            Tuple of (standings with rank, total participants)
        """
        board = self._get_board(contest_id)
        if board is None:
            self.rebuild(contest_id)
            board = self._get_board(contest_id)

        with board.lock:
            stop = len(board) if limit is None else offset + limit
            return board.slice(offset, stop), len(board)

    def rank_of(self, contest_id: int, user_id: int) -> Optional[int]:
        board = self._get_board(contest_id)
        if board is None:
            self.rebuild(contest_id)
            board = self._get_board(contest_id)
        with board.lock:
            return board.rank_of(user_id)
