"""User schemas"""

from pydantic import Field, field_validator
from typing import Dict, List, Optional
from datetime import datetime
from enum import Enum

from codearena.schemas.response import RequestModel, ResponseModel


class UserRole(str, Enum):
    """User role enumeration"""
    ADMIN = "admin"
    PARTICIPANT = "participant"


class UserLogin(RequestModel):
    """User login schema"""
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=3)


class UserCreate(RequestModel):
    """User registration schema"""
    username: str = Field(..., min_length=3, max_length=50, pattern=r'^[a-zA-Z0-9_-]+$')
    password: str = Field(..., min_length=8)
    role: UserRole = UserRole.PARTICIPANT

    @field_validator('username')
    @classmethod
    def username_lower(cls, v):
        return v.lower()


class UserResponse(ResponseModel):
    """User response schema"""
    id: int
    username: str
    role: str
    is_active: bool
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


class TokenResponse(ResponseModel):
    """JWT token response"""
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class UserProfileResponse(UserResponse):
    """Public profile with solve counters"""
    total_solved: int = 0
    total_submissions: int = 0


class UserSummary(ResponseModel):
    """Row of the user directory"""
    id: int
    username: str
    role: str
    total_solved: int = 0
    total_submissions: int = 0
    created_at: Optional[datetime] = None


class UserListResponse(ResponseModel):
    """Paginated user directory"""
    users: List[UserSummary]
    total: int
    limit: int
    offset: int


class LanguageUsage(ResponseModel):
    language: str
    count: int


class UserStatsResponse(ResponseModel):
    """Solve and contest statistics for one user"""
    user_id: int
    total_submissions: int
    accepted_submissions: int
    total_solved: int
    difficulty_breakdown: Dict[str, int]
    language_usage: List[LanguageUsage]
    contests_participated: int
    top3_finishes: int
