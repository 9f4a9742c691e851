"""User routes - directory, profiles and statistics"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from codearena.api.deps import get_current_user
from codearena.core.database import get_db
from codearena.core.exceptions import AuthorizationError
from codearena.models.user import User
from codearena.schemas.submission import SubmissionPage, SubmissionSummary
from codearena.schemas.user import (
    UserListResponse,
    UserProfileResponse,
    UserRole,
    UserStatsResponse,
    UserSummary,
)
from codearena.services.submission_store import submission_store
from codearena.services.user_service import user_service

router = APIRouter()


@router.get("", response_model=UserListResponse)
def list_users(
    role: Optional[UserRole] = Query(None),
    sort_by: str = Query("solved", alias="sortBy"),
    limit: int = Query(100, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    User directory

    Args:
        role: Optional role filter
        sort_by: solved | submissions | created_at
    """
    users, total = user_service.list_users(
        db,
        role=role.value if role else None,
        sort_by=sort_by,
        limit=limit,
        offset=offset,
    )
    return UserListResponse(
        users=[UserSummary(**u) for u in users],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{user_id}", response_model=UserProfileResponse)
def get_user_profile(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return UserProfileResponse(**user_service.get_profile(db, user_id))


@router.get("/{user_id}/submissions", response_model=SubmissionPage)
def list_user_submissions(
    user_id: int,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Submission history, newest first. Only the owner and admins may read it."""
    if user_id != current_user.id and not current_user.is_admin:
        raise AuthorizationError("You can only view your own submissions")
    user_service.get_user(db, user_id)

    rows, total = submission_store.list_for_user(db, user_id, limit=limit, offset=offset)
    return SubmissionPage(
        submissions=[SubmissionSummary.model_validate(row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{user_id}/stats", response_model=UserStatsResponse)
def get_user_stats(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Solved problems by difficulty, language usage and contest finishes"""
    return UserStatsResponse(**user_service.get_stats(db, user_id))
