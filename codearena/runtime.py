"""Wiring of the long-lived components shared by the API process and the standalone worker"""

from dataclasses import dataclass
from typing import Optional
import logging

from codearena.config import Settings
from codearena.core.database import Database
from codearena.schemas.user import UserCreate, UserRole
from codearena.services.judge_client import HttpJudgeClient, JudgeClient
from codearena.services.leaderboard import LeaderboardService
from codearena.services.scoring_engine import ScoringEngine
from codearena.services.submission_worker import SubmissionWorker
from codearena.services.user_service import user_service

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    database: Database
    judge: JudgeClient
    leaderboard: LeaderboardService
    engine: ScoringEngine
    worker: SubmissionWorker

    @classmethod
    def build(cls, settings: Settings, database: Database, judge: Optional[JudgeClient] = None) -> "Runtime":
        judge = judge or HttpJudgeClient(settings)
        leaderboard = LeaderboardService(database, settings.LEADERBOARD_RECONCILE_INTERVAL_SECONDS)
        engine = ScoringEngine(database, judge, settings, leaderboard=leaderboard)
        worker = SubmissionWorker(database, engine, settings)
        return cls(database=database, judge=judge, leaderboard=leaderboard, engine=engine, worker=worker)

    def start(self, run_worker: bool = True) -> None:
        self.leaderboard.start()
        if run_worker:
            self.worker.start()

    def stop(self) -> None:
        """Stop grading first so no scoring event is lost, then drain the leaderboard"""
        if self.worker.is_running():
            self.worker.stop()
        self.leaderboard.stop()
        self.judge.close()
        self.database.dispose()


def ensure_admin(database: Database, settings: Settings) -> None:
    """Create the bootstrap admin account if it does not exist yet"""
    db = database.session()
    try:
        if user_service.get_user_by_username(db, settings.ADMIN_USERNAME.lower()):
            return
        user_service.create_user(
            db,
            UserCreate(
                username=settings.ADMIN_USERNAME,
                password=settings.ADMIN_PASSWORD,
                role=UserRole.ADMIN,
            ),
        )
        logger.info(f"Created admin user: {settings.ADMIN_USERNAME}")
    finally:
        db.close()
