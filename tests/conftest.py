import threading
from datetime import timedelta
from typing import Callable, List, Optional

import pytest
from sqlalchemy import create_engine

from codearena.config import Settings
from codearena.core.clock import utcnow
from codearena.core.database import Base, Database
from codearena.core.exceptions import JudgeUnavailableError
from codearena.models.contest import Contest, ContestParticipant
from codearena.models.problem import Problem, TestCase
from codearena.models.submission import Submission, SubmissionState
from codearena.models.user import User
from codearena.services.judge_client import JudgeClient, JudgeResult, Verdict
from codearena.services.rate_limiter import rate_limiter


class FakeJudge(JudgeClient):
    """
    Scripted judge.

    ``script(code, stdin)`` returns a JudgeResult or raises. The default
    echoes ``stdin`` back, so a case passes when its expected output equals
    its input.
    """

    def __init__(self, script: Optional[Callable[[str, str], JudgeResult]] = None):
        self.script = script or (lambda code, stdin: JudgeResult(Verdict.SUCCESS, stdout=stdin, time_ms=5, memory_kb=1024))
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def execute(self, code, language, stdin, limits):
        with self._lock:
            self.calls.append(stdin)
        return self.script(code, stdin)


class DownJudge(JudgeClient):
    def __init__(self):
        self.calls = 0

    def execute(self, code, language, stdin, limits):
        self.calls += 1
        raise JudgeUnavailableError("connection refused")


class Arena:
    """Row factories for one database session"""

    def __init__(self, db):
        self.db = db

    def user(self, username: str, role: str = "participant") -> User:
        user = User(username=username, password_hash="hash", role=role, is_active=True)
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def contest(self, title: str = "Weekly Round", starts_in: timedelta = timedelta(hours=-1),
                length: timedelta = timedelta(hours=3), max_participants: Optional[int] = None) -> Contest:
        start = utcnow() + starts_in
        contest = Contest(
            title=title,
            description="Contest used in tests",
            start_time=start,
            end_time=start + length,
            duration_minutes=int(length.total_seconds() // 60),
            max_participants=max_participants,
        )
        self.db.add(contest)
        self.db.commit()
        self.db.refresh(contest)
        return contest

    def problem(self, contest: Optional[Contest] = None, max_score: int = 100,
                cases=(("1", "1"), ("2", "2"), ("3", "3")), points: Optional[List[int]] = None,
                time_limit_ms: int = 1000) -> Problem:
        problem = Problem(
            contest_id=contest.id if contest else None,
            title="Echo",
            description="Print the input back",
            difficulty="Easy",
            max_score=max_score,
            time_limit_ms=time_limit_ms,
            memory_limit_mb=256,
        )
        problem.test_cases = [
            TestCase(
                input=stdin,
                expected_output=expected,
                is_sample=False,
                points=points[i] if points else 10,
            )
            for i, (stdin, expected) in enumerate(cases)
        ]
        self.db.add(problem)
        self.db.commit()
        self.db.refresh(problem)
        return problem

    def join(self, contest: Contest, user: User, score: int = 0, solved: int = 0,
             joined_at=None) -> ContestParticipant:
        participant = ContestParticipant(
            contest_id=contest.id,
            user_id=user.id,
            score=score,
            problems_solved=solved,
            joined_at=joined_at or utcnow(),
        )
        self.db.add(participant)
        self.db.commit()
        self.db.refresh(participant)
        return participant

    def submission(self, user: User, problem: Problem, state: SubmissionState = SubmissionState.PENDING,
                   language: str = "python", **fields) -> Submission:
        submission = Submission(
            user_id=user.id,
            problem_id=problem.id,
            contest_id=problem.contest_id,
            language=language,
            code="print(input())",
            state=state.value,
            **fields,
        )
        self.db.add(submission)
        self.db.commit()
        self.db.refresh(submission)
        return submission


@pytest.fixture
def database(tmp_path):
    # File-backed so that worker threads share one database.
    engine = create_engine(
        f"sqlite:///{tmp_path / 'arena.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    database = Database(engine)
    yield database
    database.dispose()


@pytest.fixture
def db(database):
    session = database.session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def arena(db):
    return Arena(db)


@pytest.fixture
def settings():
    return Settings(
        JUDGE_MAX_RETRIES=2,
        JUDGE_RETRY_BACKOFF_SECONDS=0.5,
        SCORING_MODE="proportional",
        WORKER_CONCURRENCY=4,
        WORKER_POLL_INTERVAL_SECONDS=0.05,
        WORKER_MAX_ATTEMPTS=3,
        WATCHDOG_INTERVAL_SECONDS=3600,
        WATCHDOG_AUTO_REQUEUE=True,
    )


@pytest.fixture
def judge():
    return FakeJudge()


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    rate_limiter.reset()
    yield
    rate_limiter.reset()


@pytest.fixture
def make_judge():
    return FakeJudge


@pytest.fixture
def down_judge():
    return DownJudge()
