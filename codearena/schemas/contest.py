"""Contest and leaderboard schemas"""

from pydantic import Field, model_validator
from typing import Optional, List
from datetime import datetime

from codearena.schemas.response import RequestModel, ResponseModel


class ContestCreate(RequestModel):
    """Create contest schema (admin)"""
    title: str = Field(..., min_length=3, max_length=200)
    description: str = Field(..., min_length=10)
    start_time: datetime
    end_time: datetime
    duration_minutes: int = Field(..., ge=30, le=600)
    max_participants: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def check_window(self):
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class ContestProblemSummary(ResponseModel):
    id: int
    title: str
    difficulty: str
    max_score: int


class ContestResponse(ResponseModel):
    """Contest listing row"""
    id: int
    title: str
    description: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    max_participants: Optional[int] = None
    current_participants: int = 0
    status: str
    created_at: Optional[datetime] = None


class ContestDetailResponse(ContestResponse):
    problems: List[ContestProblemSummary] = []


class ContestListResponse(ResponseModel):
    contests: List[ContestResponse]
    total: int


class JoinContestResponse(ResponseModel):
    success: bool = True
    message: str = "Successfully joined contest"
    contest_id: int
    joined_at: datetime


class LeaderboardEntry(ResponseModel):
    """One ranked participant"""
    user_id: int
    username: str
    score: int
    rank: int
    problems_solved: int
    joined_at: datetime


class LeaderboardResponse(ResponseModel):
    contest_id: int
    leaderboard: List[LeaderboardEntry]
    total_participants: int
    limit: int
    offset: int


class ReconcileResponse(ResponseModel):
    contest_id: int
    participants: int
    ranks_changed: int
    aggregates_corrected: int = 0
