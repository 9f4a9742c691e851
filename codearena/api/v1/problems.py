"""Problem routes - statements and test case management"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from codearena.api.deps import get_current_admin_user, get_current_user
from codearena.core.database import get_db
from codearena.core.exceptions import ResourceNotFoundError
from codearena.models.user import User
from codearena.schemas.problem import (
    Difficulty,
    ProblemCreate,
    ProblemCreatedResponse,
    ProblemDetailResponse,
    ProblemResponse,
    TestCaseCreate,
    TestCaseCreatedResponse,
    TestCaseResponse,
)
from codearena.services.catalog import catalog

router = APIRouter()


@router.get("", response_model=List[ProblemResponse])
def list_problems(
    contest_id: Optional[int] = Query(None, alias="contestId"),
    difficulty: Optional[Difficulty] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    problems = catalog.list_problems(
        db,
        contest_id=contest_id,
        difficulty=difficulty.value if difficulty else None,
        limit=limit,
        offset=offset,
        include_unstarted=current_user.is_admin,
    )
    return [ProblemResponse.model_validate(p) for p in problems]


@router.get("/{problem_id}", response_model=ProblemDetailResponse)
def get_problem(
    problem_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Problem statement.

    Only sample test cases are exposed; hidden cases are counted but never
    returned here. Problems of a contest that has not started are reported
    as missing to non-admins.
    """
    problem = catalog.get_problem_with_test_cases(db, problem_id)
    if not catalog.problems_visible(problem.contest, current_user.is_admin):
        raise ResourceNotFoundError(f"Problem {problem_id}")
    samples = [tc for tc in problem.test_cases if tc.is_sample]
    return ProblemDetailResponse(
        **ProblemResponse.model_validate(problem).model_dump(),
        description=problem.description,
        sample_test_cases=[TestCaseResponse.model_validate(tc) for tc in samples],
        total_test_cases=len(problem.test_cases),
    )


@router.post("", response_model=ProblemCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_problem(
    problem_data: ProblemCreate,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
):
    """Create a problem with its test cases (admin); returns validation warnings"""
    problem, warnings = catalog.create_problem(db, problem_data, created_by=current_user.id)
    return ProblemCreatedResponse(
        problem_id=problem.id,
        test_case_count=len(problem.test_cases),
        warnings=warnings,
    )


@router.post("/{problem_id}/test-cases", response_model=TestCaseCreatedResponse, status_code=status.HTTP_201_CREATED)
def add_test_case(
    problem_id: int,
    test_case: TestCaseCreate,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
):
    created = catalog.add_test_case(db, problem_id, test_case)
    return TestCaseCreatedResponse(test_case_id=created.id)


@router.get("/{problem_id}/test-cases", response_model=List[TestCaseResponse])
def list_test_cases(
    problem_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
):
    """All test cases including hidden ones (admin)"""
    problem = catalog.get_problem_with_test_cases(db, problem_id)
    return [TestCaseResponse.model_validate(tc) for tc in problem.test_cases]
