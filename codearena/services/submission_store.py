"""Submission store - durable submission records and their lifecycle state machine"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.orm import Session, selectinload

from codearena.config import Settings
from codearena.core.clock import utcnow
from codearena.core.exceptions import (
    BusinessLogicError,
    InvalidTransitionError,
    RequeueNotAllowedError,
    ResourceNotFoundError,
    ValidationError,
)
from codearena.models.problem import TestCase
from codearena.models.submission import (
    ALLOWED_PREDECESSORS,
    Submission,
    SubmissionState,
)
from codearena.services.catalog import catalog

logger = logging.getLogger(__name__)

# Columns a transition may set besides state/started_at/decided_at.
TRANSITION_FIELDS = frozenset({
    "score",
    "passed_count",
    "total_count",
    "execution_time_ms",
    "memory_kb",
    "error_type",
    "error_message",
    "needs_requeue",
})


class SubmissionStore:
    """
    System of record for submissions.

    Every state change goes through ``transition``, which is a single
    conditional UPDATE: of several concurrent writers targeting the same
    submission, exactly one matches the predecessor state and wins.
    """

    @staticmethod
    def create(
        db: Session,
        *,
        user_id: int,
        problem_id: int,
        code: str,
        language: str,
        supported_languages: Iterable[str],
        contest_id: Optional[int] = None,
        is_admin: bool = False,
    ) -> Submission:
        """
        Record a new submission in ``Pending``. Never waits for grading.

        Raises:
            ValidationError: unsupported language or contest mismatch
            ResourceNotFoundError: unknown problem, or a problem of a
                contest that has not started (non-admins)
        """
        supported = list(supported_languages)
        if language not in supported:
            raise ValidationError(
                f"Unsupported language '{language}'",
                details={"field": "language", "supported": supported},
            )

        problem = catalog.get_problem(db, problem_id)
        if not catalog.problems_visible(problem.contest, is_admin):
            raise ResourceNotFoundError(f"Problem {problem_id}")
        if contest_id is not None and contest_id != problem.contest_id:
            raise ValidationError(
                "Problem does not belong to this contest",
                details={"field": "contestId", "problem_contest_id": problem.contest_id},
            )

        submission = Submission(
            user_id=user_id,
            problem_id=problem.id,
            contest_id=problem.contest_id,
            language=language,
            code=code,
            state=SubmissionState.PENDING.value,
        )
        db.add(submission)
        db.commit()
        db.refresh(submission)

        logger.info(
            "Submission %s created (user=%s problem=%s contest=%s)",
            submission.id, user_id, problem.id, problem.contest_id,
        )
        return submission

    @staticmethod
    def get(db: Session, submission_id: int, with_results: bool = False) -> Submission:
        query = db.query(Submission)
        if with_results:
            query = query.options(selectinload(Submission.test_results))
        submission = query.filter(Submission.id == submission_id).first()
        if not submission:
            raise ResourceNotFoundError("Submission")
        return submission

    @staticmethod
    def transition(
        db: Session,
        submission_id: int,
        new_state: SubmissionState,
        fields: Optional[Dict[str, Any]] = None,
        commit: bool = True,
    ) -> None:
        """
        Move a submission to ``new_state``.

        With ``commit=False`` the UPDATE joins the caller's transaction so
        that follow-up writes (test results, aggregate increments) commit or
        roll back together with it.

        Raises:
            InvalidTransitionError: target not reachable from the current
                state, including any attempt to leave a terminal state
            ResourceNotFoundError: unknown submission
        """
        new_state = SubmissionState(new_state)
        fields = dict(fields or {})
        unknown = set(fields) - TRANSITION_FIELDS
        if unknown:
            raise ValueError(f"Fields not settable through transition: {sorted(unknown)}")

        predecessors = ALLOWED_PREDECESSORS.get(new_state, frozenset())
        now = utcnow()
        values: Dict[str, Any] = {"state": new_state.value, **fields}
        if new_state is SubmissionState.JUDGING:
            values["started_at"] = now
        if new_state.is_terminal:
            values["decided_at"] = now

        matched = 0
        if predecessors:
            result = db.execute(
                update(Submission)
                .where(
                    Submission.id == submission_id,
                    Submission.state.in_([s.value for s in predecessors]),
                )
                .values(**values)
                .execution_options(synchronize_session="evaluate")
            )
            matched = result.rowcount

        if matched != 1:
            current = db.query(Submission.state).filter(Submission.id == submission_id).scalar()
            if commit:
                db.rollback()
            if current is None:
                raise ResourceNotFoundError("Submission")
            raise InvalidTransitionError(submission_id, current, new_state.value)

        if commit:
            db.commit()

    @staticmethod
    def list_for_user(
        db: Session,
        user_id: Optional[int],
        problem_id: Optional[int] = None,
        state: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Submission], int]:
        """Newest-first page of a user's submissions (all users when ``user_id`` is None)"""
        query = db.query(Submission)
        if user_id is not None:
            query = query.filter(Submission.user_id == user_id)
        if problem_id is not None:
            query = query.filter(Submission.problem_id == problem_id)
        if state:
            try:
                state = SubmissionState(state).value
            except ValueError:
                raise ValidationError(
                    f"Unknown submission state '{state}'",
                    details={"field": "state", "allowed": [s.value for s in SubmissionState]},
                )
            query = query.filter(Submission.state == state)

        total = query.count()
        rows = (
            query.order_by(Submission.submitted_at.desc(), Submission.id.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )
        return rows, total

    @staticmethod
    def list_for_contest(
        db: Session,
        contest_id: int,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Submission], int]:
        query = db.query(Submission).filter(Submission.contest_id == contest_id)
        total = query.count()
        rows = (
            query.order_by(Submission.submitted_at.desc(), Submission.id.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )
        return rows, total

    @staticmethod
    def claim_next(db: Session, attempts: int = 3) -> Optional[int]:
        """
        Claim the oldest Pending submission for grading (Pending -> Judging).

        Returns:
            The claimed submission id, or None when the queue is empty.
        """
        for _ in range(attempts):
            row = (
                db.query(Submission.id)
                .filter(Submission.state == SubmissionState.PENDING.value)
                .order_by(Submission.submitted_at.asc(), Submission.id.asc())
                .with_for_update(skip_locked=True)
                .first()
            )
            if row is None:
                db.rollback()
                return None
            try:
                SubmissionStore.transition(db, row.id, SubmissionState.JUDGING)
            except InvalidTransitionError:
                # Another worker claimed it between SELECT and UPDATE.
                continue
            return row.id
        return None

    @staticmethod
    def queue_depth(db: Session) -> int:
        return db.query(Submission).filter(Submission.state == SubmissionState.PENDING.value).count()

    @staticmethod
    def find_stuck(db: Session, settings: Settings, now: Optional[datetime] = None) -> List[Submission]:
        """Judging submissions that have outlived their grading deadline"""
        now = now or utcnow()
        judging = (
            db.query(Submission)
            .options(selectinload(Submission.problem))
            .filter(Submission.state == SubmissionState.JUDGING.value)
            .all()
        )
        if not judging:
            return []

        problem_ids = {s.problem_id for s in judging}
        case_counts = dict(
            db.query(TestCase.problem_id, func.count(TestCase.id))
            .filter(TestCase.problem_id.in_(problem_ids))
            .group_by(TestCase.problem_id)
            .all()
        )

        stuck = []
        for submission in judging:
            deadline = settings.stuck_after_seconds(
                submission.problem.time_limit_ms,
                case_counts.get(submission.problem_id, 0),
            )
            started = submission.started_at or submission.submitted_at
            if started + timedelta(seconds=deadline) < now:
                stuck.append(submission)
        return stuck

    @staticmethod
    def requeue(db: Session, submission_id: int) -> Submission:
        """
        Append a fresh Pending copy of a submission that ended in InternalError.

        The original keeps its state and score; only its ``needs_requeue``
        flag is cleared, atomically, so a submission is re-queued at most once.
        """
        original = SubmissionStore.get(db, submission_id)
        if original.state != SubmissionState.INTERNAL_ERROR.value:
            raise RequeueNotAllowedError(original.state)

        result = db.execute(
            update(Submission)
            .where(Submission.id == submission_id, Submission.needs_requeue == True)  # noqa: E712
            .values(needs_requeue=False)
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount != 1:
            db.rollback()
            raise BusinessLogicError("Submission was already re-queued")

        copy = Submission(
            user_id=original.user_id,
            problem_id=original.problem_id,
            contest_id=original.contest_id,
            language=original.language,
            code=original.code,
            state=SubmissionState.PENDING.value,
            requeued_from_id=original.id,
            attempt=original.attempt + 1,
        )
        db.add(copy)
        db.commit()
        db.refresh(copy)

        logger.info("Submission %s re-queued as %s (attempt %s)", original.id, copy.id, copy.attempt)
        return copy


# Singleton instance
submission_store = SubmissionStore()
