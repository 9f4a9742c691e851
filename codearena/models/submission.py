"""Submission and test result models"""

from enum import Enum

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship, synonym

from codearena.core.clock import utcnow
from codearena.core.database import Base


class SubmissionState(str, Enum):
    """Submission lifecycle states"""
    PENDING = "Pending"
    JUDGING = "Judging"
    ACCEPTED = "Accepted"
    WRONG_ANSWER = "WrongAnswer"
    RUNTIME_ERROR = "RuntimeError"
    TIME_LIMIT_EXCEEDED = "TimeLimitExceeded"
    COMPILE_ERROR = "CompileError"
    INTERNAL_ERROR = "InternalError"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({
    SubmissionState.ACCEPTED,
    SubmissionState.WRONG_ANSWER,
    SubmissionState.RUNTIME_ERROR,
    SubmissionState.TIME_LIMIT_EXCEEDED,
    SubmissionState.COMPILE_ERROR,
    SubmissionState.INTERNAL_ERROR,
})

# target state -> states it may be entered from
ALLOWED_PREDECESSORS = {
    SubmissionState.JUDGING: frozenset({SubmissionState.PENDING}),
    SubmissionState.ACCEPTED: frozenset({SubmissionState.JUDGING}),
    SubmissionState.WRONG_ANSWER: frozenset({SubmissionState.JUDGING}),
    SubmissionState.RUNTIME_ERROR: frozenset({SubmissionState.JUDGING}),
    SubmissionState.TIME_LIMIT_EXCEEDED: frozenset({SubmissionState.JUDGING}),
    SubmissionState.COMPILE_ERROR: frozenset({SubmissionState.JUDGING}),
    SubmissionState.INTERNAL_ERROR: frozenset({SubmissionState.PENDING, SubmissionState.JUDGING}),
}


class Submission(Base):
    """
    Append-only submission record.

    Mutated only through ``SubmissionStore.transition``; score and
    ``decided_at`` never change once the state is terminal.
    """

    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    problem_id = Column(Integer, ForeignKey("problems.id", ondelete="CASCADE"), nullable=False)
    contest_id = Column(Integer, ForeignKey("contests.id", ondelete="SET NULL"), nullable=True)
    language = Column(String(20), nullable=False)
    code = Column(Text, nullable=False)
    state = Column(String(24), default=SubmissionState.PENDING.value, nullable=False)
    score = Column(Integer, default=0, nullable=False)
    passed_count = Column(Integer, default=0, nullable=False)
    total_count = Column(Integer, default=0, nullable=False)
    execution_time_ms = Column(Integer, default=0, nullable=False)
    memory_kb = Column(Integer, default=0, nullable=False)
    error_type = Column(String(40))
    error_message = Column(Text)
    needs_requeue = Column(Boolean, default=False, nullable=False)
    requeued_from_id = Column(Integer, ForeignKey("submissions.id", ondelete="SET NULL"), nullable=True)
    attempt = Column(Integer, default=1, nullable=False)
    submitted_at = Column(DateTime, default=utcnow, nullable=False)
    started_at = Column(DateTime)
    decided_at = Column(DateTime)

    # API name for ``state``
    status = synonym("state")

    # Relationships
    user = relationship("User", back_populates="submissions")
    problem = relationship("Problem")
    test_results = relationship(
        "TestResult",
        back_populates="submission",
        order_by="TestResult.test_case_id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index('idx_submissions_user', 'user_id'),
        Index('idx_submissions_problem', 'problem_id'),
        Index('idx_submissions_contest_user', 'contest_id', 'user_id'),
        Index('idx_submissions_state', 'state'),
        Index('idx_submissions_submitted_at', 'submitted_at'),
        CheckConstraint('score >= 0', name='chk_score_non_negative'),
        CheckConstraint('execution_time_ms >= 0', name='chk_execution_time'),
        CheckConstraint('memory_kb >= 0', name='chk_memory_kb'),
        CheckConstraint('attempt >= 1', name='chk_attempt'),
        CheckConstraint(
            "state IN ('Pending', 'Judging', 'Accepted', 'WrongAnswer', 'RuntimeError', "
            "'TimeLimitExceeded', 'CompileError', 'InternalError')",
            name='chk_state'
        ),
    )

    @property
    def is_terminal(self) -> bool:
        return SubmissionState(self.state).is_terminal

    def __repr__(self):
        return f"<Submission(id={self.id}, user_id={self.user_id}, problem_id={self.problem_id}, state='{self.state}')>"


class TestResult(Base):
    """Per test case outcome, written together with the terminal transition"""

    __tablename__ = "test_results"
    __test__ = False  # not a pytest class

    id = Column(Integer, primary_key=True, index=True)
    submission_id = Column(Integer, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False)
    test_case_id = Column(Integer, nullable=False)
    verdict = Column(String(24), nullable=False)
    passed = Column(Boolean, nullable=False)
    time_ms = Column(Integer, default=0, nullable=False)
    memory_kb = Column(Integer, default=0, nullable=False)
    error_message = Column(Text)

    # Relationships
    submission = relationship("Submission", back_populates="test_results")

    __table_args__ = (
        Index('idx_test_results_submission', 'submission_id'),
    )

    def __repr__(self):
        return f"<TestResult(id={self.id}, submission_id={self.submission_id}, passed={self.passed})>"
