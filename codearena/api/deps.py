"""API dependencies - authentication, authorization and runtime components"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from codearena.core.database import get_db
from codearena.core.exceptions import AuthenticationError, AuthorizationError
from codearena.core.security import decode_access_token
from codearena.models.user import User
from codearena.services.leaderboard import LeaderboardService
from codearena.services.submission_worker import SubmissionWorker
from codearena.services.user_service import user_service

# HTTP Bearer token scheme; missing header handled below as 401
security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """
    Get current authenticated user from JWT token

    Raises:
        AuthenticationError: If token is missing, invalid or the user is gone
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise AuthenticationError("Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    user = user_service.get_user_by_id(db, int(user_id))
    if not user:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthenticationError("User account is disabled")

    return user


def get_current_admin_user(current_user: User = Depends(get_current_user)) -> User:
    """
    Get current admin user (authorization check)

    Raises:
        AuthorizationError: If user is not admin
    """
    if not current_user.is_admin:
        raise AuthorizationError("Admin access required")
    return current_user


def get_leaderboard(request: Request) -> LeaderboardService:
    return request.app.state.leaderboard


def get_worker(request: Request) -> Optional[SubmissionWorker]:
    return getattr(request.app.state, "worker", None)
