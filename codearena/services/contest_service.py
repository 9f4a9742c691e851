"""Contest service - participation, standings and aggregate reconciliation"""

from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy import and_, case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from codearena.core.clock import utcnow
from codearena.core.exceptions import (
    AlreadyJoinedError,
    ContestClosedError,
    ContestFullError,
    ResourceNotFoundError,
)
from codearena.models.contest import Contest, ContestParticipant
from codearena.models.submission import Submission, SubmissionState, TERMINAL_STATES
from codearena.models.user import User
from codearena.services.leaderboard import LeaderboardService

logger = logging.getLogger(__name__)


class ContestService:
    """Service for contest participation and standings"""

    @staticmethod
    def join(
        db: Session,
        contest_id: int,
        user_id: int,
        leaderboard: Optional[LeaderboardService] = None,
    ) -> ContestParticipant:
        """
        Register a user for a contest.

        Raises:
            ResourceNotFoundError: unknown contest
            ContestClosedError: contest already ended
            AlreadyJoinedError: user is already a participant
            ContestFullError: max_participants reached
        """
        # Row lock serializes concurrent joins on dialects that support it.
        contest = db.query(Contest).filter(Contest.id == contest_id).with_for_update().first()
        if not contest:
            raise ResourceNotFoundError(f"Contest {contest_id}")

        if contest.status_at() == "ended":
            db.rollback()
            raise ContestClosedError()

        existing = (
            db.query(ContestParticipant.id)
            .filter(ContestParticipant.contest_id == contest_id, ContestParticipant.user_id == user_id)
            .first()
        )
        if existing:
            db.rollback()
            raise AlreadyJoinedError()

        if contest.max_participants is not None:
            joined = db.query(ContestParticipant).filter(ContestParticipant.contest_id == contest_id).count()
            if joined >= contest.max_participants:
                db.rollback()
                raise ContestFullError()

        participant = ContestParticipant(contest_id=contest_id, user_id=user_id, joined_at=utcnow())
        db.add(participant)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise AlreadyJoinedError()
        db.refresh(participant)

        logger.info(f"User {user_id} joined contest {contest_id}")
        if leaderboard is not None:
            leaderboard.enqueue(contest_id, user_id)
        return participant

    @staticmethod
    def leaderboard_page(
        db: Session,
        leaderboard: LeaderboardService,
        contest_id: int,
        limit: Optional[int],
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        Ranked page of standings with usernames.

        Returns:
            Tuple of (entries, total participants)
        """
        if not db.query(Contest.id).filter(Contest.id == contest_id).first():
            raise ResourceNotFoundError(f"Contest {contest_id}")

        standings, total = leaderboard.get_page(contest_id, limit, offset)
        user_ids = [s.user_id for s in standings]
        usernames = dict(db.query(User.id, User.username).filter(User.id.in_(user_ids)).all()) if user_ids else {}

        entries = [
            {
                "user_id": s.user_id,
                "username": usernames.get(s.user_id, ""),
                "score": s.score,
                "rank": s.rank,
                "problems_solved": s.problems_solved,
                "joined_at": s.joined_at,
            }
            for s in standings
        ]
        return entries, total

    @staticmethod
    def recompute_aggregates(db: Session, contest_id: int) -> int:
        """
        Batch fallback: rebuild score/problems_solved from terminal submissions.

        A submission counts only if it was decided at or after the user joined,
        which is the same condition the scoring engine applies when it
        increments aggregates on the hot path.

        Participant rows are locked first so that a concurrent terminal
        transition either lands before the sums are read or waits and
        increments on top of the corrected value.

        Returns:
            Number of participants whose aggregate was corrected.
        """
        participants = (
            db.query(ContestParticipant)
            .filter(ContestParticipant.contest_id == contest_id)
            .with_for_update()
            .all()
        )
        if not participants:
            db.rollback()
            return 0

        accepted = SubmissionState.ACCEPTED.value
        totals = {
            user_id: (int(score or 0), int(solved or 0))
            for user_id, score, solved in (
                db.query(
                    Submission.user_id,
                    func.sum(Submission.score),
                    func.sum(case((Submission.state == accepted, 1), else_=0)),
                )
                .join(
                    ContestParticipant,
                    and_(
                        ContestParticipant.contest_id == Submission.contest_id,
                        ContestParticipant.user_id == Submission.user_id,
                    ),
                )
                .filter(
                    Submission.contest_id == contest_id,
                    Submission.state.in_([s.value for s in TERMINAL_STATES]),
                    Submission.decided_at >= ContestParticipant.joined_at,
                )
                .group_by(Submission.user_id)
                .all()
            )
        }

        corrected = 0
        for participant in participants:
            score, solved = totals.get(participant.user_id, (0, 0))
            if participant.score != score or participant.problems_solved != solved:
                logger.warning(
                    "Contest %s user %s aggregate drift: score %s -> %s, solved %s -> %s",
                    contest_id, participant.user_id,
                    participant.score, score, participant.problems_solved, solved,
                )
                participant.score = score
                participant.problems_solved = solved
                corrected += 1

        db.commit()
        return corrected

    @staticmethod
    def reconcile(
        db: Session,
        leaderboard: LeaderboardService,
        contest_id: int,
        recompute_aggregates: bool = False,
    ) -> Dict[str, int]:
        """Admin reconciliation: optional aggregate rebuild, then a full ranking rebuild"""
        if not db.query(Contest.id).filter(Contest.id == contest_id).first():
            raise ResourceNotFoundError(f"Contest {contest_id}")

        corrected = ContestService.recompute_aggregates(db, contest_id) if recompute_aggregates else 0
        ranks_changed = leaderboard.rebuild(contest_id)
        participants = (
            db.query(ContestParticipant).filter(ContestParticipant.contest_id == contest_id).count()
        )
        return {
            "contest_id": contest_id,
            "participants": participants,
            "ranks_changed": ranks_changed,
            "aggregates_corrected": corrected,
        }


# Singleton instance
contest_service = ContestService()
