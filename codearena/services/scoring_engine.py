"""Scoring engine - runs a submission against its problem and records the verdict exactly once"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import update

from codearena.config import Settings
from codearena.core.database import Database
from codearena.core.exceptions import InvalidTransitionError, JudgeError, JudgeUnavailableError
from codearena.core.metrics import GRADING_LATENCY, INTEGRITY_EVENTS, JUDGE_RETRY_COUNT, VERDICT_COUNT
from codearena.models.contest import ContestParticipant
from codearena.models.problem import Problem, TestCase
from codearena.models.submission import Submission, SubmissionState, TestResult
from codearena.services.catalog import catalog
from codearena.services.judge_client import ExecutionLimits, JudgeClient, JudgeResult, Verdict
from codearena.services.submission_store import submission_store

logger = logging.getLogger(__name__)

RESUBMIT_MESSAGE = "evaluation failed, please resubmit"

# Per-case verdicts stored on TestResult rows
CASE_PASSED = "passed"
CASE_WRONG_ANSWER = "wrong_answer"
CASE_RUNTIME_ERROR = "runtime_error"
CASE_TIMEOUT = "timeout"
CASE_COMPILE_ERROR = "compile_error"
CASE_INTERNAL_ERROR = "internal_error"

# Worst non-accepted outcome wins
_SEVERITY = {
    SubmissionState.WRONG_ANSWER: 1,
    SubmissionState.TIME_LIMIT_EXCEEDED: 2,
    SubmissionState.RUNTIME_ERROR: 3,
}

_CASE_STATE = {
    CASE_WRONG_ANSWER: SubmissionState.WRONG_ANSWER,
    CASE_TIMEOUT: SubmissionState.TIME_LIMIT_EXCEEDED,
    CASE_RUNTIME_ERROR: SubmissionState.RUNTIME_ERROR,
    CASE_COMPILE_ERROR: SubmissionState.RUNTIME_ERROR,
}


@dataclass
class CaseOutcome:
    test_case_id: int
    verdict: str
    passed: bool
    time_ms: int = 0
    memory_kb: int = 0
    error_message: Optional[str] = None


@dataclass
class Evaluation:
    """Everything the terminal transition writes"""

    state: SubmissionState
    score: int = 0
    passed_count: int = 0
    total_count: int = 0
    execution_time_ms: int = 0
    memory_kb: int = 0
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    needs_requeue: bool = False
    cases: List[CaseOutcome] = field(default_factory=list)

    @classmethod
    def internal_error(cls, error_type: str, total_count: int = 0,
                       cases: Optional[List[CaseOutcome]] = None) -> "Evaluation":
        return cls(
            state=SubmissionState.INTERNAL_ERROR,
            total_count=total_count,
            error_type=error_type,
            error_message=RESUBMIT_MESSAGE,
            needs_requeue=True,
            cases=list(cases or []),
        )

    def fields(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "passed_count": self.passed_count,
            "total_count": self.total_count,
            "execution_time_ms": self.execution_time_ms,
            "memory_kb": self.memory_kb,
            "error_type": self.error_type,
            "error_message": self.error_message,
            "needs_requeue": self.needs_requeue,
        }


def outputs_match(stdout: str, expected: str) -> bool:
    """Compare program output with the expected output, ignoring surrounding whitespace"""
    return stdout.replace("\r\n", "\n").strip() == expected.replace("\r\n", "\n").strip()


def partial_score(max_score: int, earned: int, possible: int) -> int:
    if possible <= 0:
        return 0
    return (max_score * earned) // possible


class ScoringEngine:
    """
    Drives one submission from ``Judging`` to a terminal state.

    Test cases run sequentially in ascending id order. The terminal
    transition, the per-case results and the contest aggregate increment
    share one database transaction; a writer that loses the terminal
    transition changes nothing.
    """

    def __init__(
        self,
        database: Database,
        judge: JudgeClient,
        settings: Settings,
        leaderboard=None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._database = database
        self._judge = judge
        self._settings = settings
        self._leaderboard = leaderboard
        self._sleep = sleep

    # Evaluation

    def evaluate(self, code: str, language: str, problem: Problem,
                 test_cases: Optional[Sequence[TestCase]] = None) -> Evaluation:
        """Judge ``code`` against every test case and aggregate the outcome"""
        cases = sorted(test_cases if test_cases is not None else problem.test_cases, key=lambda tc: tc.id)
        total = len(cases)
        if total == 0:
            logger.error("Problem %s has no test cases; cannot judge", problem.id)
            return Evaluation.internal_error("no_test_cases")

        limits = ExecutionLimits(time_limit_ms=problem.time_limit_ms, memory_limit_mb=problem.memory_limit_mb)
        outcomes: List[CaseOutcome] = []
        worst: Optional[SubmissionState] = None
        first_error: Optional[str] = None

        for test_case in cases:
            try:
                result = self._execute_with_retry(code, language, test_case.input, limits)
            except JudgeError as exc:
                logger.error("Judge failed on test case %s: %s", test_case.id, exc.message)
                outcomes.append(CaseOutcome(
                    test_case_id=test_case.id,
                    verdict=CASE_INTERNAL_ERROR,
                    passed=False,
                    error_message=exc.message,
                ))
                error_type = "judge_unavailable" if isinstance(exc, JudgeUnavailableError) else "judge_error"
                return Evaluation.internal_error(error_type, total_count=total, cases=outcomes)

            if result.verdict is Verdict.COMPILE_ERROR:
                outcome = CaseOutcome(
                    test_case_id=test_case.id,
                    verdict=CASE_COMPILE_ERROR,
                    passed=False,
                    time_ms=result.time_ms,
                    memory_kb=result.memory_kb,
                    error_message=result.stderr or "Compilation failed",
                )
                if worst is None:
                    outcomes.append(outcome)
                    return Evaluation(
                        state=SubmissionState.COMPILE_ERROR,
                        total_count=total,
                        execution_time_ms=result.time_ms,
                        memory_kb=result.memory_kb,
                        error_type="compile_error",
                        error_message=outcome.error_message,
                        cases=outcomes,
                    )
                # An earlier case already failed, so this one ranks as a runtime fault.
            else:
                outcome = self._classify(test_case, result)
            outcomes.append(outcome)
            if not outcome.passed:
                state = _CASE_STATE[outcome.verdict]
                if worst is None or _SEVERITY[state] > _SEVERITY[worst]:
                    worst = state
                    first_error = outcome.error_message

        passed = [o for o in outcomes if o.passed]
        evaluation = Evaluation(
            state=SubmissionState.ACCEPTED,
            passed_count=len(passed),
            total_count=total,
            execution_time_ms=max(o.time_ms for o in outcomes),
            memory_kb=max(o.memory_kb for o in outcomes),
            cases=outcomes,
        )

        if worst is None:
            evaluation.score = problem.max_score
            return evaluation

        evaluation.state = worst
        evaluation.error_type = _error_type(worst)
        evaluation.error_message = first_error
        if self._settings.SCORING_MODE == "points":
            points = {tc.id: tc.points for tc in cases}
            evaluation.score = partial_score(
                problem.max_score,
                sum(points[o.test_case_id] for o in passed),
                sum(points.values()),
            )
        else:
            evaluation.score = partial_score(problem.max_score, len(passed), total)
        return evaluation

    @staticmethod
    def _classify(test_case: TestCase, result: JudgeResult) -> CaseOutcome:
        outcome = CaseOutcome(
            test_case_id=test_case.id,
            verdict=CASE_PASSED,
            passed=True,
            time_ms=result.time_ms,
            memory_kb=result.memory_kb,
        )
        if result.verdict is Verdict.TIMEOUT:
            outcome.verdict, outcome.passed = CASE_TIMEOUT, False
            outcome.error_message = "Time limit exceeded"
        elif result.verdict in (Verdict.RUNTIME_ERROR, Verdict.MEMORY_LIMIT):
            outcome.verdict, outcome.passed = CASE_RUNTIME_ERROR, False
            if result.verdict is Verdict.MEMORY_LIMIT:
                outcome.error_message = "Memory limit exceeded"
            else:
                outcome.error_message = result.stderr or "Runtime error"
        elif not outputs_match(result.stdout, test_case.expected_output):
            outcome.verdict, outcome.passed = CASE_WRONG_ANSWER, False
            outcome.error_message = "Wrong answer"
        return outcome

    def _execute_with_retry(self, code: str, language: str, stdin: str, limits: ExecutionLimits) -> JudgeResult:
        retries = max(0, self._settings.JUDGE_MAX_RETRIES)
        backoff = self._settings.JUDGE_RETRY_BACKOFF_SECONDS
        for attempt in range(retries + 1):
            try:
                return self._judge.execute(code, language, stdin, limits)
            except JudgeUnavailableError as exc:
                if attempt >= retries:
                    raise
                delay = backoff * (2 ** attempt)
                JUDGE_RETRY_COUNT.inc()
                logger.warning(
                    "Judge unavailable (%s); retry %s/%s in %.2fs",
                    exc.message, attempt + 1, retries, delay,
                )
                self._sleep(delay)
        raise JudgeUnavailableError()

    # Recording

    def grade(self, submission_id: int) -> Optional[SubmissionState]:
        """
        Grade a submission already claimed into ``Judging``.

        Returns:
            The terminal state recorded, or None when another writer decided
            the submission first.
        """
        started = time.monotonic()
        db = self._database.session()
        try:
            submission = submission_store.get(db, submission_id)
            if submission.state != SubmissionState.JUDGING.value:
                logger.warning("Submission %s is %s, not Judging; skipping", submission_id, submission.state)
                return None
            problem = catalog.get_problem_with_test_cases(db, submission.problem_id)
            code, language = submission.code, submission.language
            test_cases = list(problem.test_cases)
        finally:
            # Judge calls can be slow; do not hold a connection across them.
            db.close()

        evaluation = self.evaluate(code, language, problem, test_cases)
        won = self.finalize(submission_id, evaluation)
        GRADING_LATENCY.observe(time.monotonic() - started)
        return evaluation.state if won else None

    def fail(self, submission_id: int, error_type: str) -> bool:
        """Force a non-terminal submission into ``InternalError``"""
        return self.finalize(submission_id, Evaluation.internal_error(error_type))

    def finalize(self, submission_id: int, evaluation: Evaluation) -> bool:
        """
        Record ``evaluation`` as the submission's terminal outcome.

        Returns:
            True if this call won the terminal transition.
        """
        db = self._database.session()
        applied_to = None
        try:
            owner = (
                db.query(Submission.user_id, Submission.contest_id)
                .filter(Submission.id == submission_id)
                .first()
            )
            try:
                submission_store.transition(
                    db, submission_id, evaluation.state, evaluation.fields(), commit=False
                )
            except InvalidTransitionError as exc:
                db.rollback()
                INTEGRITY_EVENTS.inc()
                logger.warning(
                    "Integrity: discarded %s for submission %s (already %s)",
                    exc.requested, submission_id, exc.current,
                )
                return False

            for case in evaluation.cases:
                db.add(TestResult(
                    submission_id=submission_id,
                    test_case_id=case.test_case_id,
                    verdict=case.verdict,
                    passed=case.passed,
                    time_ms=case.time_ms,
                    memory_kb=case.memory_kb,
                    error_message=case.error_message,
                ))

            solved_delta = 1 if evaluation.state is SubmissionState.ACCEPTED else 0
            if owner.contest_id is not None and (evaluation.score or solved_delta):
                decided_at = (
                    db.query(Submission.decided_at).filter(Submission.id == submission_id).scalar()
                )
                # Same rule as recompute_aggregates: only verdicts decided after joining count.
                result = db.execute(
                    update(ContestParticipant)
                    .where(
                        ContestParticipant.contest_id == owner.contest_id,
                        ContestParticipant.user_id == owner.user_id,
                        ContestParticipant.joined_at <= decided_at,
                    )
                    .values(
                        score=ContestParticipant.score + evaluation.score,
                        problems_solved=ContestParticipant.problems_solved + solved_delta,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    applied_to = (owner.contest_id, owner.user_id)
                else:
                    logger.info(
                        "User %s was not a participant of contest %s when judged; score not applied",
                        owner.user_id, owner.contest_id,
                    )

            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        VERDICT_COUNT.labels(evaluation.state.value).inc()
        logger.info(
            "Submission %s -> %s (score=%s, %s/%s passed)",
            submission_id, evaluation.state.value, evaluation.score,
            evaluation.passed_count, evaluation.total_count,
        )
        if applied_to is not None and self._leaderboard is not None:
            self._leaderboard.enqueue(*applied_to)
        return True


def _error_type(state: SubmissionState) -> str:
    return {
        SubmissionState.WRONG_ANSWER: "wrong_answer",
        SubmissionState.TIME_LIMIT_EXCEEDED: "time_limit_exceeded",
        SubmissionState.RUNTIME_ERROR: "runtime_error",
    }[state]
