"""User service - accounts, login with lockout, access tokens, profiles and statistics"""

from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy import and_, case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from codearena.core.clock import utcnow
from codearena.core.exceptions import (
    AccountLockedError,
    DuplicateUsernameError,
    InvalidCredentialsError,
    ResourceNotFoundError,
    ValidationError,
)
from codearena.core.security import create_access_token, get_password_hash, verify_password
from codearena.models.contest import ContestParticipant
from codearena.models.problem import Problem
from codearena.models.submission import Submission, SubmissionState
from codearena.models.user import User
from codearena.schemas.user import UserCreate

logger = logging.getLogger(__name__)


class UserService:
    """Service for user management"""

    LOCKOUT_DURATION_MINUTES = 15
    MAX_FAILED_ATTEMPTS = 5

    @staticmethod
    def create_user(db: Session, user_data: UserCreate) -> User:
        """
        Create new user

        Raises:
            DuplicateUsernameError: username already taken
        """
        if db.query(User).filter(User.username == user_data.username).first():
            raise DuplicateUsernameError(user_data.username)

        user = User(
            username=user_data.username,
            password_hash=get_password_hash(user_data.password),
            role=user_data.role.value,
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration of the same name.
            db.rollback()
            raise DuplicateUsernameError(user_data.username)
        db.refresh(user)

        logger.info(f"Created user: {user.username} (role: {user.role})")
        return user

    @staticmethod
    def authenticate_user(db: Session, username: str, password: str) -> User:
        """
        Authenticate user with account lockout protection

        Raises:
            InvalidCredentialsError: unknown user, wrong password or disabled account
            AccountLockedError: too many recent failures
        """
        user = db.query(User).filter(User.username == username.strip().lower()).first()
        if not user or not user.is_active:
            raise InvalidCredentialsError()

        now = utcnow()
        if user.locked_until and user.locked_until > now:
            raise AccountLockedError(user.locked_until.isoformat())

        if not verify_password(password, user.password_hash):
            user.failed_login_attempts += 1
            if user.failed_login_attempts >= UserService.MAX_FAILED_ATTEMPTS:
                user.locked_until = now + timedelta(minutes=UserService.LOCKOUT_DURATION_MINUTES)
                user.failed_login_attempts = 0
                db.commit()
                logger.warning(f"Account locked for user: {user.username}")
                raise AccountLockedError(user.locked_until.isoformat())
            db.commit()
            raise InvalidCredentialsError()

        user.failed_login_attempts = 0
        user.locked_until = None
        user.last_login = now
        db.commit()

        logger.info(f"User authenticated: {user.username}")
        return user

    @staticmethod
    def issue_access_token(user: User) -> str:
        return create_access_token({"sub": str(user.id), "role": user.role})

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_user_by_username(db: Session, username: str) -> Optional[User]:
        return db.query(User).filter(User.username == username).first()

    @staticmethod
    def get_user(db: Session, user_id: int) -> User:
        user = UserService.get_user_by_id(db, user_id)
        if not user:
            raise ResourceNotFoundError("User")
        return user

    @staticmethod
    def _solved_subquery(db: Session):
        return (
            db.query(
                Submission.user_id.label("user_id"),
                func.count(func.distinct(Submission.problem_id)).label("solved"),
            )
            .filter(Submission.state == SubmissionState.ACCEPTED.value)
            .group_by(Submission.user_id)
            .subquery()
        )

    @staticmethod
    def _submitted_subquery(db: Session):
        return (
            db.query(
                Submission.user_id.label("user_id"),
                func.count(Submission.id).label("submitted"),
            )
            .group_by(Submission.user_id)
            .subquery()
        )

    @staticmethod
    def get_profile(db: Session, user_id: int) -> Dict[str, Any]:
        """User row plus distinct problems solved and submission count"""
        user = UserService.get_user(db, user_id)
        solved = (
            db.query(func.count(func.distinct(Submission.problem_id)))
            .filter(Submission.user_id == user_id, Submission.state == SubmissionState.ACCEPTED.value)
            .scalar()
        )
        submitted = db.query(func.count(Submission.id)).filter(Submission.user_id == user_id).scalar()
        return {
            "id": user.id,
            "username": user.username,
            "role": user.role,
            "is_active": user.is_active,
            "created_at": user.created_at,
            "last_login": user.last_login,
            "total_solved": int(solved or 0),
            "total_submissions": int(submitted or 0),
        }

    @staticmethod
    def list_users(
        db: Session,
        role: Optional[str] = None,
        sort_by: str = "solved",
        limit: int = 100,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        Page of the user directory with solve counters.

        Returns:
            Tuple of (rows, total users matching the role filter)
        """
        solved_sq = UserService._solved_subquery(db)
        submitted_sq = UserService._submitted_subquery(db)
        solved = func.coalesce(solved_sq.c.solved, 0)
        submitted = func.coalesce(submitted_sq.c.submitted, 0)

        query = (
            db.query(User, solved, submitted)
            .outerjoin(solved_sq, solved_sq.c.user_id == User.id)
            .outerjoin(submitted_sq, submitted_sq.c.user_id == User.id)
        )
        count_query = db.query(User)
        if role:
            query = query.filter(User.role == role)
            count_query = count_query.filter(User.role == role)

        orderings = {
            "solved": [solved.desc(), User.id.asc()],
            "submissions": [submitted.desc(), User.id.asc()],
            "created_at": [User.created_at.desc(), User.id.desc()],
        }
        if sort_by not in orderings:
            raise ValidationError(
                "Unknown sort field",
                details={"sortBy": sort_by, "allowed": sorted(orderings)},
            )
        ordering = orderings[sort_by]
        rows = query.order_by(*ordering).limit(limit).offset(offset).all()

        users = [
            {
                "id": user.id,
                "username": user.username,
                "role": user.role,
                "total_solved": int(solved_count),
                "total_submissions": int(submitted_count),
                "created_at": user.created_at,
            }
            for user, solved_count, submitted_count in rows
        ]
        return users, count_query.count()

    @staticmethod
    def get_stats(db: Session, user_id: int) -> Dict[str, Any]:
        """
        Solve and contest statistics for one user.

        A problem counts once per difficulty no matter how many accepted
        submissions it has. Top-3 finishes read the stored contest rank;
        rank 0 means not ranked yet and is never a finish.
        """
        UserService.get_user(db, user_id)
        accepted = SubmissionState.ACCEPTED.value

        total_submissions, accepted_submissions = (
            db.query(
                func.count(Submission.id),
                func.sum(case((Submission.state == accepted, 1), else_=0)),
            )
            .filter(Submission.user_id == user_id)
            .one()
        )

        breakdown = {"easy": 0, "medium": 0, "hard": 0}
        difficulty_rows = (
            db.query(Problem.difficulty, func.count(func.distinct(Submission.problem_id)))
            .join(Problem, Problem.id == Submission.problem_id)
            .filter(Submission.user_id == user_id, Submission.state == accepted)
            .group_by(Problem.difficulty)
            .all()
        )
        for difficulty, count in difficulty_rows:
            breakdown[difficulty.lower()] = int(count)

        usage = func.count(Submission.id)
        language_rows = (
            db.query(Submission.language, usage)
            .filter(Submission.user_id == user_id)
            .group_by(Submission.language)
            .order_by(usage.desc(), Submission.language.asc())
            .all()
        )

        contests, top3 = (
            db.query(
                func.count(ContestParticipant.id),
                func.sum(case(
                    (and_(ContestParticipant.rank >= 1, ContestParticipant.rank <= 3), 1),
                    else_=0,
                )),
            )
            .filter(ContestParticipant.user_id == user_id)
            .one()
        )

        return {
            "user_id": user_id,
            "total_submissions": int(total_submissions or 0),
            "accepted_submissions": int(accepted_submissions or 0),
            "total_solved": sum(breakdown.values()),
            "difficulty_breakdown": breakdown,
            "language_usage": [
                {"language": language, "count": int(count)} for language, count in language_rows
            ],
            "contests_participated": int(contests or 0),
            "top3_finishes": int(top3 or 0),
        }


# Singleton instance
user_service = UserService()
