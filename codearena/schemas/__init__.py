"""Pydantic schemas for API validation"""

from codearena.schemas.user import (
    UserCreate,
    UserLogin,
    UserResponse,
    TokenResponse,
    UserProfileResponse,
    UserListResponse,
    UserStatsResponse,
)
from codearena.schemas.submission import (
    SubmissionCreate,
    SubmissionCreated,
    SubmissionResponse,
    SubmissionStatusResponse,
    SubmissionSummary,
    SubmissionPage,
)
from codearena.schemas.contest import (
    ContestCreate,
    ContestResponse,
    ContestDetailResponse,
    LeaderboardEntry,
    LeaderboardResponse,
)
from codearena.schemas.problem import ProblemCreate, ProblemResponse, ProblemDetailResponse, TestCaseCreate
from codearena.schemas.response import ErrorResponse

__all__ = [
    "UserCreate", "UserLogin", "UserResponse", "TokenResponse",
    "UserProfileResponse", "UserListResponse", "UserStatsResponse",
    "SubmissionCreate", "SubmissionCreated", "SubmissionResponse", "SubmissionStatusResponse",
    "SubmissionSummary", "SubmissionPage",
    "ContestCreate", "ContestResponse", "ContestDetailResponse", "LeaderboardEntry", "LeaderboardResponse",
    "ProblemCreate", "ProblemResponse", "ProblemDetailResponse", "TestCaseCreate",
    "ErrorResponse",
]
