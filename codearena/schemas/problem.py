"""Problem and test case schemas"""

from enum import Enum
from pydantic import Field
from typing import List, Optional
from datetime import datetime

from codearena.schemas.response import RequestModel, ResponseModel


class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


class TestCaseCreate(RequestModel):
    """Test case payload (admin)"""
    input: str = ""
    expected_output: str
    is_sample: bool = False
    points: int = Field(default=10, ge=0)


class ProblemCreate(RequestModel):
    """Create problem schema (admin)"""
    title: str = Field(..., min_length=3, max_length=200)
    description: str = Field(..., min_length=10)
    difficulty: Difficulty
    max_score: int = Field(..., ge=1, le=1000)
    time_limit_ms: int = Field(..., ge=100, le=60000)
    memory_limit_mb: int = Field(..., ge=1, le=1024)
    contest_id: Optional[int] = Field(default=None, ge=1)
    test_cases: List[TestCaseCreate] = []


class TestCaseResponse(ResponseModel):
    id: int
    input: str
    expected_output: str
    is_sample: bool
    points: int


class ProblemResponse(ResponseModel):
    """Problem listing row"""
    id: int
    title: str
    difficulty: str
    max_score: int
    time_limit_ms: int
    memory_limit_mb: int
    contest_id: Optional[int] = None
    created_at: Optional[datetime] = None


class ProblemDetailResponse(ProblemResponse):
    """Problem statement with sample test cases only"""
    description: str
    sample_test_cases: List[TestCaseResponse] = []
    total_test_cases: int = 0


class ProblemCreatedResponse(ResponseModel):
    success: bool = True
    problem_id: int
    test_case_count: int
    warnings: List[str] = []


class TestCaseCreatedResponse(ResponseModel):
    success: bool = True
    test_case_id: int
