"""Submission schemas"""

from pydantic import Field, field_validator
from typing import Optional, List
from datetime import datetime

from codearena.schemas.response import RequestModel, ResponseModel


class SubmissionCreate(RequestModel):
    """Create submission schema"""
    problem_id: int = Field(..., ge=1)
    language: str = Field(..., min_length=1, max_length=20)
    code: str = Field(..., min_length=1, max_length=51200)
    contest_id: Optional[int] = Field(default=None, ge=1)

    @field_validator('code')
    @classmethod
    def sanitize_code(cls, v):
        """Sanitize code input"""
        v = v.replace('\x00', '')
        if not v.strip():
            raise ValueError('Code must not be blank')
        return v

    @field_validator('language')
    @classmethod
    def normalize_language(cls, v):
        return v.strip().lower()


class SubmissionCreated(ResponseModel):
    """Returned immediately; grading happens in the background"""
    submission_id: int
    status: str = "Pending"
    message: str = "Submission received and is being evaluated"


class TestResultResponse(ResponseModel):
    """Test result response schema"""
    test_case_id: int
    verdict: str
    passed: bool
    time_ms: int
    memory_kb: int
    error_message: Optional[str] = None


class SubmissionStatusResponse(ResponseModel):
    """Cheap polling view"""
    id: int
    status: str
    score: int
    execution_time_ms: int
    memory_kb: int


class SubmissionSummary(ResponseModel):
    """List row (no code)"""
    id: int
    user_id: int
    problem_id: int
    contest_id: Optional[int] = None
    language: str
    status: str
    score: int
    passed_count: int
    total_count: int
    execution_time_ms: int
    memory_kb: int
    submitted_at: Optional[datetime] = None
    decided_at: Optional[datetime] = None


class SubmissionResponse(SubmissionSummary):
    """Full submission record"""
    code: str
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    needs_requeue: bool = False
    requeued_from_id: Optional[int] = None
    attempt: int = 1
    started_at: Optional[datetime] = None
    test_results: List[TestResultResponse] = []


class SubmissionPage(ResponseModel):
    """Paginated submission list"""
    submissions: List[SubmissionSummary]
    total: int
    limit: int
    offset: int
