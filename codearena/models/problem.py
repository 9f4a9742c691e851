"""Problem and test case models"""

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from codearena.core.clock import utcnow
from codearena.core.database import Base


class Problem(Base):
    """Problem metadata and limits"""

    __tablename__ = "problems"

    id = Column(Integer, primary_key=True, index=True)
    contest_id = Column(Integer, ForeignKey("contests.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    difficulty = Column(String(10), nullable=False, default="Easy")
    max_score = Column(Integer, nullable=False, default=100)
    time_limit_ms = Column(Integer, nullable=False, default=2000)
    memory_limit_mb = Column(Integer, nullable=False, default=256)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    contest = relationship("Contest", back_populates="problems")
    test_cases = relationship(
        "TestCase",
        back_populates="problem",
        order_by="TestCase.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index('idx_problems_contest', 'contest_id'),
        CheckConstraint('max_score > 0', name='chk_problem_max_score'),
        CheckConstraint('time_limit_ms > 0', name='chk_problem_time_limit'),
        CheckConstraint('memory_limit_mb > 0', name='chk_problem_memory_limit'),
        CheckConstraint("difficulty IN ('Easy', 'Medium', 'Hard')", name='chk_problem_difficulty'),
    )

    def __repr__(self):
        return f"<Problem(id={self.id}, title='{self.title}', max_score={self.max_score})>"


class TestCase(Base):
    """Single input/expected-output pair"""

    __tablename__ = "test_cases"
    __test__ = False  # not a pytest class

    id = Column(Integer, primary_key=True, index=True)
    problem_id = Column(Integer, ForeignKey("problems.id", ondelete="CASCADE"), nullable=False)
    input = Column(Text, nullable=False, default="")
    expected_output = Column(Text, nullable=False, default="")
    is_sample = Column(Boolean, nullable=False, default=False)
    points = Column(Integer, nullable=False, default=10)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    problem = relationship("Problem", back_populates="test_cases")

    __table_args__ = (
        Index('idx_test_cases_problem', 'problem_id'),
        CheckConstraint('points >= 0', name='chk_test_case_points'),
    )

    def __repr__(self):
        return f"<TestCase(id={self.id}, problem_id={self.problem_id}, sample={self.is_sample})>"
