"""Contest routes - listing, participation and leaderboards"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from codearena.api.deps import get_current_admin_user, get_current_user, get_leaderboard
from codearena.config import settings
from codearena.core.clock import utcnow
from codearena.core.database import get_db
from codearena.models.contest import Contest
from codearena.models.user import User
from codearena.schemas.contest import (
    ContestCreate,
    ContestDetailResponse,
    ContestListResponse,
    ContestProblemSummary,
    ContestResponse,
    JoinContestResponse,
    LeaderboardEntry,
    LeaderboardResponse,
    ReconcileResponse,
)
from codearena.schemas.submission import SubmissionPage, SubmissionSummary
from codearena.services.catalog import catalog
from codearena.services.contest_service import contest_service
from codearena.services.excel_service import XLSX_MEDIA_TYPE, excel_service
from codearena.services.leaderboard import LeaderboardService
from codearena.services.submission_store import submission_store

router = APIRouter()


def _contest_response(contest: Contest, participants: int, now: datetime) -> dict:
    return dict(
        id=contest.id,
        title=contest.title,
        description=contest.description,
        start_time=contest.start_time,
        end_time=contest.end_time,
        duration_minutes=contest.duration_minutes,
        max_participants=contest.max_participants,
        current_participants=participants,
        status=contest.status_at(now),
        created_at=contest.created_at,
    )


@router.get("", response_model=ContestListResponse)
def list_contests(
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List contests, optionally filtered by upcoming | active | ended"""
    contests, total = catalog.list_contests(db, status_filter, limit, offset)
    counts = catalog.participant_counts(db, [c.id for c in contests])
    now = utcnow()
    return ContestListResponse(
        contests=[ContestResponse(**_contest_response(c, counts.get(c.id, 0), now)) for c in contests],
        total=total,
    )


@router.post("", response_model=ContestResponse, status_code=status.HTTP_201_CREATED)
def create_contest(
    contest_data: ContestCreate,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
):
    contest = catalog.create_contest(db, contest_data, created_by=current_user.id)
    return ContestResponse(**_contest_response(contest, 0, utcnow()))


@router.get("/{contest_id}", response_model=ContestDetailResponse)
def get_contest(
    contest_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Contest details; problems are hidden from participants until the contest starts"""
    contest = catalog.get_contest(db, contest_id)
    now = utcnow()
    counts = catalog.participant_counts(db, [contest.id])

    problems = []
    if catalog.problems_visible(contest, current_user.is_admin, now):
        problems = [ContestProblemSummary.model_validate(p) for p in contest.problems]

    return ContestDetailResponse(
        **_contest_response(contest, counts.get(contest.id, 0), now),
        problems=problems,
    )


@router.post("/{contest_id}/join", response_model=JoinContestResponse)
def join_contest(
    contest_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    leaderboard: LeaderboardService = Depends(get_leaderboard),
):
    participant = contest_service.join(db, contest_id, current_user.id, leaderboard)
    return JoinContestResponse(contest_id=contest_id, joined_at=participant.joined_at)


@router.get("/{contest_id}/leaderboard", response_model=LeaderboardResponse)
def get_leaderboard_page(
    contest_id: int,
    limit: int = Query(100, ge=1, le=settings.LEADERBOARD_MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    leaderboard: LeaderboardService = Depends(get_leaderboard),
):
    """Ranked standings: score, then problems solved, then earliest join"""
    entries, total = contest_service.leaderboard_page(db, leaderboard, contest_id, limit, offset)
    return LeaderboardResponse(
        contest_id=contest_id,
        leaderboard=[LeaderboardEntry(**entry) for entry in entries],
        total_participants=total,
        limit=limit,
        offset=offset,
    )


@router.post("/{contest_id}/leaderboard/reconcile", response_model=ReconcileResponse)
def reconcile_leaderboard(
    contest_id: int,
    recompute_aggregates: bool = Query(False, alias="recomputeAggregates"),
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    leaderboard: LeaderboardService = Depends(get_leaderboard),
):
    """Rebuild the ranking from participant rows, optionally re-summing scores from submissions (admin)"""
    result = contest_service.reconcile(db, leaderboard, contest_id, recompute_aggregates=recompute_aggregates)
    return ReconcileResponse(**result)


@router.get("/{contest_id}/leaderboard/export")
def export_leaderboard(
    contest_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    leaderboard: LeaderboardService = Depends(get_leaderboard),
):
    """Export standings, submissions and per-problem statistics to Excel (admin)"""
    filepath = excel_service.generate_contest_report(db, leaderboard, contest_id, settings.get_exports_dir())
    return FileResponse(
        path=filepath,
        media_type=XLSX_MEDIA_TYPE,
        filename=f"contest_{contest_id}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.xlsx",
    )


@router.get("/{contest_id}/submissions", response_model=SubmissionPage)
def list_contest_submissions(
    contest_id: int,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
):
    catalog.get_contest(db, contest_id)
    rows, total = submission_store.list_for_contest(db, contest_id, limit, offset)
    return SubmissionPage(
        submissions=[SubmissionSummary.model_validate(row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )
