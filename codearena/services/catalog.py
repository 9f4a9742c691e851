"""Contest/problem catalog - read-mostly metadata feeding the scoring engine"""

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload
from datetime import datetime
from typing import Dict, List, Optional, Tuple
import logging

from codearena.core.clock import as_naive_utc, utcnow
from codearena.core.exceptions import ResourceNotFoundError, ValidationError
from codearena.models.contest import Contest, ContestParticipant
from codearena.models.problem import Problem, TestCase
from codearena.schemas.contest import ContestCreate
from codearena.schemas.problem import ProblemCreate, TestCaseCreate
from codearena.services.testcase_validator import testcase_validator

logger = logging.getLogger(__name__)


class Catalog:
    """Queries and admin writes for contests, problems and test cases"""

    # Problems

    @staticmethod
    def get_problem(db: Session, problem_id: int) -> Problem:
        problem = db.query(Problem).filter(Problem.id == problem_id).first()
        if not problem:
            raise ResourceNotFoundError(f"Problem {problem_id}")
        return problem

    @staticmethod
    def get_problem_with_test_cases(db: Session, problem_id: int) -> Problem:
        """Problem with ``test_cases`` eagerly loaded in ascending id order"""
        problem = (
            db.query(Problem)
            .options(selectinload(Problem.test_cases))
            .filter(Problem.id == problem_id)
            .first()
        )
        if not problem:
            raise ResourceNotFoundError(f"Problem {problem_id}")
        return problem

    @staticmethod
    def problems_visible(contest: Optional[Contest], is_admin: bool, now: Optional[datetime] = None) -> bool:
        """Contest problems stay hidden from non-admins until the contest starts"""
        return contest is None or is_admin or contest.status_at(now) != "upcoming"

    @staticmethod
    def list_problems(
        db: Session,
        contest_id: Optional[int] = None,
        difficulty: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
        include_unstarted: bool = True,
    ) -> List[Problem]:
        query = db.query(Problem)
        if not include_unstarted:
            query = query.outerjoin(Contest, Problem.contest_id == Contest.id).filter(
                or_(Problem.contest_id.is_(None), Contest.start_time <= utcnow())
            )
        if contest_id is not None:
            query = query.filter(Problem.contest_id == contest_id)
        if difficulty:
            query = query.filter(Problem.difficulty == difficulty)
        return query.order_by(Problem.id.desc()).limit(limit).offset(offset).all()

    @staticmethod
    def count_test_cases(db: Session, problem_ids: List[int]) -> Dict[int, int]:
        if not problem_ids:
            return {}
        rows = (
            db.query(TestCase.problem_id, func.count(TestCase.id))
            .filter(TestCase.problem_id.in_(problem_ids))
            .group_by(TestCase.problem_id)
            .all()
        )
        return {problem_id: count for problem_id, count in rows}

    @staticmethod
    def create_problem(db: Session, data: ProblemCreate, created_by: Optional[int]) -> Tuple[Problem, List[str]]:
        """
        Create a problem together with its initial test cases.

        Returns:
            Tuple of (problem, validation warnings)
        """
        if data.contest_id is not None:
            Catalog.get_contest(db, data.contest_id)

        test_cases, warnings = testcase_validator.validate_and_normalize(
            data.max_score,
            [tc.model_dump() for tc in data.test_cases],
        )

        problem = Problem(
            title=data.title,
            description=data.description,
            difficulty=data.difficulty.value,
            max_score=data.max_score,
            time_limit_ms=data.time_limit_ms,
            memory_limit_mb=data.memory_limit_mb,
            contest_id=data.contest_id,
            created_by=created_by,
        )
        problem.test_cases = [
            TestCase(
                input=tc["input"],
                expected_output=tc["expected_output"],
                is_sample=tc["is_sample"],
                points=tc["points"],
            )
            for tc in test_cases
        ]
        db.add(problem)
        db.commit()
        db.refresh(problem)

        logger.info(f"Created problem {problem.id} with {len(test_cases)} test cases")
        return problem, warnings

    @staticmethod
    def add_test_case(db: Session, problem_id: int, data: TestCaseCreate) -> TestCase:
        problem = Catalog.get_problem_with_test_cases(db, problem_id)
        existing = [
            {"is_sample": tc.is_sample, "points": tc.points}
            for tc in problem.test_cases
        ]
        normalized = testcase_validator.validate_addition(problem.max_score, existing, data.model_dump())

        test_case = TestCase(
            problem_id=problem.id,
            input=normalized["input"],
            expected_output=normalized["expected_output"],
            is_sample=normalized["is_sample"],
            points=normalized["points"],
        )
        db.add(test_case)
        db.commit()
        db.refresh(test_case)
        return test_case

    # Contests

    @staticmethod
    def get_contest(db: Session, contest_id: int) -> Contest:
        contest = db.query(Contest).filter(Contest.id == contest_id).first()
        if not contest:
            raise ResourceNotFoundError(f"Contest {contest_id}")
        return contest

    @staticmethod
    def list_contests(
        db: Session,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Contest], int]:
        """
        Page of contests, newest start first.

        Returns:
            Tuple of (contests, total matching the status filter)
        """
        now = utcnow()
        query = db.query(Contest)
        if status == "upcoming":
            query = query.filter(Contest.start_time > now)
        elif status == "active":
            query = query.filter(Contest.start_time <= now, Contest.end_time >= now)
        elif status == "ended":
            query = query.filter(Contest.end_time < now)
        elif status:
            raise ValidationError(
                "Unknown contest status filter",
                details={"status": status, "allowed": ["upcoming", "active", "ended"]},
            )
        total = query.count()
        contests = query.order_by(Contest.start_time.desc()).limit(limit).offset(offset).all()
        return contests, total

    @staticmethod
    def participant_counts(db: Session, contest_ids: List[int]) -> Dict[int, int]:
        if not contest_ids:
            return {}
        rows = (
            db.query(ContestParticipant.contest_id, func.count(ContestParticipant.id))
            .filter(ContestParticipant.contest_id.in_(contest_ids))
            .group_by(ContestParticipant.contest_id)
            .all()
        )
        return {contest_id: count for contest_id, count in rows}

    @staticmethod
    def create_contest(db: Session, data: ContestCreate, created_by: Optional[int]) -> Contest:
        contest = Contest(
            title=data.title,
            description=data.description,
            start_time=as_naive_utc(data.start_time),
            end_time=as_naive_utc(data.end_time),
            duration_minutes=data.duration_minutes,
            max_participants=data.max_participants,
            created_by=created_by,
        )
        db.add(contest)
        db.commit()
        db.refresh(contest)
        logger.info(f"Created contest {contest.id}: {contest.title}")
        return contest


# Singleton instance
catalog = Catalog()
