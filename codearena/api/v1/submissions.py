"""Submission routes - create, poll and inspect submissions"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from codearena.api.deps import get_current_admin_user, get_current_user, get_worker
from codearena.config import settings
from codearena.core.database import get_db
from codearena.core.exceptions import AuthorizationError, ValidationError
from codearena.models.submission import Submission
from codearena.models.user import User
from codearena.schemas.submission import (
    SubmissionCreate,
    SubmissionCreated,
    SubmissionPage,
    SubmissionResponse,
    SubmissionStatusResponse,
    SubmissionSummary,
)
from codearena.services.rate_limiter import rate_limiter
from codearena.services.submission_store import submission_store
from codearena.services.submission_worker import SubmissionWorker

router = APIRouter()


def _visible_submission(db: Session, submission_id: int, user: User, with_results: bool = False) -> Submission:
    submission = submission_store.get(db, submission_id, with_results=with_results)
    if submission.user_id != user.id and not user.is_admin:
        raise AuthorizationError("You can only view your own submissions")
    return submission


@router.post("", response_model=SubmissionCreated, status_code=status.HTTP_201_CREATED)
def create_submission(
    submission: SubmissionCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    worker: Optional[SubmissionWorker] = Depends(get_worker),
):
    """
    Submit code for evaluation.

    Returns as soon as the submission is recorded in ``Pending``; poll
    ``/submissions/{id}/status`` for the verdict.
    """
    ip = request.client.host if request.client else "unknown"
    rate_limiter.enforce([
        (f"submit:min:{ip}:{current_user.id}", settings.SUBMIT_RATE_LIMIT_PER_MINUTE, 60,
         "Too many submissions. Please wait a minute."),
        (f"submit:hour:{ip}:{current_user.id}", settings.SUBMIT_RATE_LIMIT_PER_HOUR, 3600,
         "Hourly submission limit reached. Please try later."),
    ])

    if len(submission.code.encode("utf-8")) > settings.MAX_CODE_SIZE:
        raise ValidationError(
            "Code exceeds maximum size",
            details={"field": "code", "max_bytes": settings.MAX_CODE_SIZE},
        )

    record = submission_store.create(
        db,
        user_id=current_user.id,
        problem_id=submission.problem_id,
        code=submission.code,
        language=submission.language,
        supported_languages=settings.SUPPORTED_LANGUAGES,
        contest_id=submission.contest_id,
        is_admin=current_user.is_admin,
    )
    if worker is not None:
        worker.notify()

    return SubmissionCreated(submission_id=record.id, status=record.state)


@router.get("", response_model=SubmissionPage)
def list_submissions(
    problem_id: Optional[int] = Query(None, alias="problemId"),
    state: Optional[str] = Query(None),
    user_id: Optional[int] = Query(None, alias="userId"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Own submissions, newest first. Admins may list any user's (or everyone's)."""
    if user_id is not None and user_id != current_user.id and not current_user.is_admin:
        raise AuthorizationError("You can only view your own submissions")
    owner = user_id if current_user.is_admin else current_user.id

    rows, total = submission_store.list_for_user(db, owner, problem_id, state, limit, offset)
    return SubmissionPage(
        submissions=[SubmissionSummary.model_validate(row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{submission_id}", response_model=SubmissionResponse)
def get_submission(
    submission_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Full submission record with per-test-case results"""
    submission = _visible_submission(db, submission_id, current_user, with_results=True)
    return SubmissionResponse.model_validate(submission)


@router.get("/{submission_id}/status", response_model=SubmissionStatusResponse)
def get_submission_status(
    submission_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    submission = _visible_submission(db, submission_id, current_user)
    return SubmissionStatusResponse.model_validate(submission)


@router.post("/{submission_id}/requeue", response_model=SubmissionCreated, status_code=status.HTTP_201_CREATED)
def requeue_submission(
    submission_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    worker: Optional[SubmissionWorker] = Depends(get_worker),
):
    """Re-run a submission that ended in InternalError as a new Pending record (admin)"""
    copy = submission_store.requeue(db, submission_id)
    if worker is not None:
        worker.notify()
    return SubmissionCreated(
        submission_id=copy.id,
        status=copy.state,
        message=f"Submission {submission_id} re-queued",
    )
