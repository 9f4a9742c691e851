"""Authentication routes"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from codearena.api.deps import get_current_user
from codearena.config import settings
from codearena.core.database import get_db
from codearena.models.user import User
from codearena.schemas.user import TokenResponse, UserCreate, UserLogin, UserResponse, UserRole
from codearena.services.rate_limiter import rate_limiter
from codearena.services.user_service import user_service

router = APIRouter()


def _token_response(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=user_service.issue_access_token(user),
        token_type="bearer",
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=UserResponse.model_validate(user),
    )


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(
    user_data: UserCreate,
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Create a participant account and log it in.

    Admin accounts are never created through this route.
    """
    client_ip = request.client.host if request.client else "unknown"
    rate_limiter.enforce([
        (f"register:min:{client_ip}", settings.LOGIN_RATE_LIMIT_PER_MINUTE, 60,
         "Too many registrations. Please wait a minute."),
        (f"register:hour:{client_ip}", settings.LOGIN_RATE_LIMIT_PER_HOUR, 3600,
         "Too many registrations. Please try again later."),
    ])

    user = user_service.create_user(db, user_data.model_copy(update={"role": UserRole.PARTICIPANT}))
    return _token_response(user)


@router.post("/login", response_model=TokenResponse, status_code=status.HTTP_200_OK)
def login(
    credentials: UserLogin,
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Login endpoint - authenticate user and return JWT token

    Args:
        credentials: Username and password
        db: Database session

    Returns:
        JWT token and user info
    """
    client_ip = request.client.host if request.client else "unknown"
    user_key = credentials.username.strip().lower()
    rate_limiter.enforce([
        (f"login:min:{client_ip}:{user_key}", settings.LOGIN_RATE_LIMIT_PER_MINUTE, 60,
         "Too many login attempts. Please wait a minute."),
        (f"login:hour:{client_ip}:{user_key}", settings.LOGIN_RATE_LIMIT_PER_HOUR, 3600,
         "Too many login attempts. Please try again later."),
    ])

    user = user_service.authenticate_user(db, credentials.username, credentials.password)
    return _token_response(user)


@router.get("/me", response_model=UserResponse)
def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current user information"""
    return UserResponse.model_validate(current_user)
